"""
manifest.py - the install manifest synthesized for one packaging run

The manifest plays the role of a Podfile: spec sources, the platform and
its deployment target, one pod declaration and two target definitions.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Optional


@dataclass(frozen=True)
class PodRequirement:
    name: str
    requirement: Optional[str] = None
    path: Optional[Path] = None
    podspec: Optional[Path] = None
    subspecs: tuple = ()

    @property
    def is_local(self) -> bool:
        return self.path is not None

    def requirements(self) -> List[str]:
        return [self.requirement] if self.requirement else []


@dataclass
class TargetDefinition:
    name: str
    inheritance: str = "complete"
    dependencies: List[PodRequirement] = field(default_factory=list)
    abstract: bool = False
    parent: Optional["TargetDefinition"] = None

    def all_dependencies(self) -> List[PodRequirement]:
        inherited = self.parent.all_dependencies() if self.parent and self.inheritance == "complete" else []
        return inherited + [d for d in self.dependencies if d not in inherited]


@dataclass
class Manifest:
    sources: List[str]
    platform_name: str
    deployment_target: Optional[str]
    pods: List[PodRequirement]
    integrate_targets: bool = False
    deterministic_uuids: bool = False
    target_definitions: List[TargetDefinition] = field(default_factory=list)

    def pod(self, name: str) -> Optional[PodRequirement]:
        for p in self.pods:
            if p.name == name:
                return p
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sources": list(self.sources),
            "platform": {self.platform_name: self.deployment_target},
            "pods": [{k: (str(v) if isinstance(v, Path) else v)
                      for k, v in vars(p).items() if v not in (None, ())} for p in self.pods],
            "install": {"integrate_targets": self.integrate_targets,
                        "deterministic_uuids": self.deterministic_uuids},
            "targets": [t.name for t in self.target_definitions],
        }


def manifest_from_spec(path: Optional[Path], spec_name: str, version: str, platform_name: str,
                       deployment_target: Optional[str], subspecs: Optional[List[str]],
                       sources: List[str], local: bool = False) -> Manifest:
    """
    A spec given by path is referenced by that path (in place with local);
    a spec resolved by name is pinned to its exact version.
    """
    subs = tuple(subspecs) if subspecs else ()
    if path is not None and local:
        pod = PodRequirement(spec_name, path=Path(path).parent, podspec=Path(path), subspecs=subs)
    elif path is not None:
        pod = PodRequirement(spec_name, podspec=Path(path), subspecs=subs)
    else:
        pod = PodRequirement(spec_name, requirement=f"= {version}", subspecs=subs)

    root = TargetDefinition("Pods", abstract=True, dependencies=[pod])
    packager = TargetDefinition("packager", inheritance="complete", parent=root)
    return Manifest(
        sources=list(sources),
        platform_name=platform_name,
        deployment_target=deployment_target,
        pods=[pod],
        integrate_targets=False,
        deterministic_uuids=False,
        target_definitions=[root, packager],
    )
