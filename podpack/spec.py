#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
spec.py - Library descriptions (specs) and their resolution

A spec is the JSON/YAML form of a podspec:

    name: Foo
    version: 1.0.0
    source: {path: "."}
    platforms: {ios: "12.0", osx: "10.13"}
    source_files: "Classes/**/*.{h,m}"
    dependencies: {Bar: ["~> 2.0"]}
    subspecs: [{name: Core, source_files: "Core/*.m"}]
    ios: {frameworks: [UIKit]}

SpecResolver finds specs by path or by name inside spec repositories
(<repo>[/Specs]/<Name>/<version>/<Name>.podspec.json).
"""

from __future__ import annotations
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, List, Optional, Iterable, Tuple

import yaml

from podpack.config import Config, get_config
from podpack.dependency import ResolveError, parse_version, satisfies_all, split_requirements
from podpack.logger import get_logger

LOG = get_logger("podpack.spec")

SPEC_EXTENSIONS = (".json", ".yaml", ".yml")

# attributes that subspecs inherit from their parents
_INHERITED_LIST = ("frameworks", "weak_frameworks", "libraries", "compiler_flags")
_INHERITED_DICT = ("pod_target_xcconfig", "xcconfig")
_FILE_PATTERNS = ("source_files", "public_header_files", "resources",
                  "vendored_frameworks", "vendored_libraries", "preserve_paths")
_VENDORED = ("vendored_frameworks", "vendored_libraries")


class SpecError(Exception):
    """Raised when a spec file cannot be used"""


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


_PLATFORM_LABELS = {"ios": "iOS", "osx": "macOS", "tvos": "tvOS", "watchos": "watchOS"}
_PLATFORM_SDKS = {"ios": "iphoneos", "osx": "macosx", "tvos": "appletvos", "watchos": "watchos"}


@dataclass(frozen=True)
class Platform:
    name: str
    deployment_target: Optional[str] = None

    @property
    def label(self) -> str:
        return _PLATFORM_LABELS.get(self.name, self.name)

    @property
    def sdk(self) -> str:
        return _PLATFORM_SDKS.get(self.name, self.name)

    def __str__(self) -> str:
        if self.deployment_target:
            return f"{self.name} {self.deployment_target}"
        return self.name


@dataclass(frozen=True)
class Dependency:
    name: str
    requirements: Tuple[str, ...] = ()

    @property
    def root_name(self) -> str:
        return self.name.split("/", 1)[0]

    @property
    def subspec(self) -> Optional[str]:
        parts = self.name.split("/", 1)
        return parts[1] if len(parts) > 1 else None


class SpecConsumer:
    """Attributes of one spec as seen by one platform."""

    def __init__(self, spec: "Spec", platform_name: str):
        self.spec = spec
        self.platform_name = platform_name

    def _chain(self) -> List["Spec"]:
        chain = []
        cur: Optional[Spec] = self.spec
        while cur is not None:
            chain.append(cur)
            cur = cur.parent
        return list(reversed(chain))

    def _own(self, spec: "Spec", attr: str) -> List[str]:
        values = _as_list(spec.attributes_hash.get(attr))
        plat = spec.attributes_hash.get(self.platform_name) or {}
        values += _as_list(plat.get(attr))
        return values

    def _list(self, attr: str) -> List[str]:
        if attr in _INHERITED_LIST:
            out: List[str] = []
            for s in self._chain():
                for v in self._own(s, attr):
                    if v not in out:
                        out.append(v)
            return out
        return self._own(self.spec, attr)

    def _dict(self, attr: str) -> Dict[str, str]:
        merged: Dict[str, str] = {}
        for s in self._chain():
            merged.update(s.attributes_hash.get(attr) or {})
            plat = s.attributes_hash.get(self.platform_name) or {}
            merged.update(plat.get(attr) or {})
        return {k: str(v) for k, v in merged.items()}

    source_files = property(lambda self: self._list("source_files"))
    public_header_files = property(lambda self: self._list("public_header_files"))
    resources = property(lambda self: self._list("resources"))
    preserve_paths = property(lambda self: self._list("preserve_paths"))
    frameworks = property(lambda self: self._list("frameworks"))
    weak_frameworks = property(lambda self: self._list("weak_frameworks"))
    libraries = property(lambda self: self._list("libraries"))
    vendored_frameworks = property(lambda self: self._list("vendored_frameworks"))
    vendored_libraries = property(lambda self: self._list("vendored_libraries"))
    compiler_flags = property(lambda self: self._list("compiler_flags"))
    pod_target_xcconfig = property(lambda self: self._dict("pod_target_xcconfig"))
    xcconfig = property(lambda self: self._dict("xcconfig"))

    @property
    def requires_arc(self) -> bool:
        value = True
        for s in self._chain():
            if "requires_arc" in s.attributes_hash:
                value = bool(s.attributes_hash["requires_arc"])
        return value


class Spec:
    """
    A root spec or one of its subspecs. Read-only after loading.
    """

    def __init__(self, attributes: Dict[str, Any], parent: Optional["Spec"] = None,
                 defined_in_file: Optional[Path] = None):
        if not attributes.get("name"):
            raise SpecError("spec without a name")
        if parent is None and attributes.get("version") is None:
            raise SpecError(f"spec {attributes['name']} has no version")
        self._attributes = dict(attributes)
        self.parent = parent
        self.defined_in_file = defined_in_file
        self._subspecs = [Spec(sub, parent=self, defined_in_file=defined_in_file)
                          for sub in attributes.get("subspecs") or []]

    # ---------------- loading ----------------

    @classmethod
    def from_file(cls, path: Path) -> "Spec":
        path = Path(path)
        text = path.read_text(encoding="utf-8")
        try:
            if path.suffix == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (ValueError, yaml.YAMLError) as e:
            raise SpecError(f"{path}: unable to parse spec: {e}")
        if not isinstance(data, dict):
            raise SpecError(f"{path}: spec must be a mapping")
        return cls(data, defined_in_file=path.resolve())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Spec":
        return cls(data)

    # ---------------- identity ----------------

    @property
    def attributes_hash(self) -> Dict[str, Any]:
        return self._attributes

    @property
    def name(self) -> str:
        if self.parent is not None:
            return f"{self.parent.name}/{self._attributes['name']}"
        return str(self._attributes["name"])

    @property
    def base_name(self) -> str:
        return str(self._attributes["name"])

    @property
    def root(self) -> "Spec":
        return self if self.parent is None else self.parent.root

    @property
    def root_name(self) -> str:
        return self.root.name

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def version(self) -> str:
        return str(self.root._attributes["version"])

    @property
    def source(self) -> Dict[str, Any]:
        return dict(self.root._attributes.get("source") or {})

    def __repr__(self) -> str:
        return f"<Spec {self.name} ({self.version})>"

    # ---------------- subspecs ----------------

    @property
    def subspecs(self) -> List["Spec"]:
        return list(self._subspecs)

    def recursive_subspecs(self) -> List["Spec"]:
        out: List[Spec] = []
        for sub in self._subspecs:
            out.append(sub)
            out.extend(sub.recursive_subspecs())
        return out

    def subspec_by_name(self, name: str) -> Optional["Spec"]:
        if name == self.name:
            return self
        for sub in self.recursive_subspecs():
            if sub.name == name:
                return sub
        return None

    def default_subspecs(self) -> List["Spec"]:
        names = _as_list(self._attributes.get("default_subspecs"))
        if names:
            out = []
            for n in names:
                sub = self.subspec_by_name(f"{self.name}/{n}")
                if sub is None:
                    raise SpecError(f"{self.name}: unknown default subspec {n}")
                out.append(sub)
            return out
        return list(self._subspecs)

    def specs_for_selection(self, selection: Iterable[str]) -> List["Spec"]:
        """
        Root spec plus the subspecs a selection activates. "" means the
        default subspecs; selecting a subspec activates its children and
        the subspecs it depends on inside this pod.
        """
        root = self.root
        picked: List[Spec] = []
        pending: List[Spec] = []
        for s in selection:
            if s == "" or s == root.name:
                pending.extend(root.default_subspecs())
                continue
            sub = root.subspec_by_name(s)
            if sub is None:
                raise SpecError(f"{root.name} has no subspec named {s}")
            pending.append(sub)
        while pending:
            sub = pending.pop(0)
            if sub in picked or sub is root:
                continue
            picked.append(sub)
            pending.extend(sub.default_subspecs())
            for dep in sub.dependencies():
                if dep.root_name == root.name:
                    target = root.subspec_by_name(dep.name)
                    if target is None:
                        raise SpecError(f"{sub.name} depends on unknown subspec {dep.name}")
                    pending.append(target)
        ordered = [s for s in root.recursive_subspecs() if s in picked]
        return [root] + ordered

    # ---------------- platforms & dependencies ----------------

    def dependencies(self, platform_name: Optional[str] = None) -> List[Dependency]:
        deps: Dict[str, Any] = dict(self._attributes.get("dependencies") or {})
        if platform_name:
            plat = self._attributes.get(platform_name) or {}
            deps.update(plat.get("dependencies") or {})
        return [Dependency(name, tuple(split_requirements(req))) for name, req in deps.items()]

    def declared_platforms(self) -> Dict[str, Optional[str]]:
        platforms = self.root._attributes.get("platforms")
        if platforms is None:
            return {}
        if isinstance(platforms, dict):
            return {str(k): (str(v) if v is not None else None) for k, v in platforms.items()}
        return {str(p): None for p in _as_list(platforms)}

    def available_platforms(self, cfg: Optional[Config] = None) -> List[Platform]:
        """Declared platforms in declaration order, or every known platform."""
        cfg = cfg or get_config()
        declared = self.declared_platforms()
        if not declared:
            declared = {name: None for name in cfg.platform_names()}
        return [Platform(name, target or cfg.platform(name).get("deployment_target"))
                for name, target in declared.items()]

    def supports_platform(self, platform_name: str) -> bool:
        declared = self.declared_platforms()
        return not declared or platform_name in declared

    def deployment_target(self, platform_name: str) -> Optional[str]:
        return self.declared_platforms().get(platform_name)

    def consumer(self, platform: Any) -> SpecConsumer:
        name = platform.name if isinstance(platform, Platform) else str(platform)
        return SpecConsumer(self, name)

    def vendored_binaries(self) -> List[str]:
        """Every vendored framework/library pattern declared anywhere in the spec."""
        found: List[str] = []
        for s in [self.root] + self.root.recursive_subspecs():
            attrs = s.attributes_hash
            levels = [attrs] + [attrs.get(p) or {} for p in ("ios", "osx", "tvos", "watchos")]
            for level in levels:
                for attrib in _VENDORED:
                    found.extend(_as_list(level.get(attrib)))
        return found


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def source_slug(source: str) -> str:
    """https://github.com/CocoaPods/Specs.git -> github.com-CocoaPods-Specs"""
    s = re.sub(r"^[a-z+]+://", "", source.strip())
    s = re.sub(r"^git@", "", s)
    s = re.sub(r"\.git$", "", s.rstrip("/"))
    return re.sub(r"[^A-Za-z0-9._]+", "-", s).strip("-")


class SpecResolver:
    """
    Finds specs by filesystem path or by name in the spec repositories
    named by the request's sources.
    """

    def __init__(self, sources: Optional[List[str]] = None, cfg: Optional[Config] = None):
        self.cfg = cfg or get_config()
        self.sources = list(sources or [self.cfg.get("default_spec_source")])
        self._cache: Dict[str, List[Spec]] = {}
        self.path: Optional[Path] = None

    def repo_dirs(self) -> List[Path]:
        dirs = []
        for source in self.sources:
            local = Path(source).expanduser()
            if local.is_dir():
                dirs.append(local)
                continue
            repo = self.cfg.repos_dir() / source_slug(source)
            if repo.is_dir():
                dirs.append(repo)
            else:
                LOG.debug(f"spec repository for {source} not present at {repo}")
        return dirs

    def _spec_files(self, name: str) -> List[Path]:
        files: List[Path] = []
        for repo in self.repo_dirs():
            for base in (repo / "Specs" / name, repo / name):
                if not base.is_dir():
                    continue
                for version_dir in sorted(p for p in base.iterdir() if p.is_dir()):
                    for ext in (".podspec.json", ".podspec.yaml", ".podspec.yml"):
                        candidate = version_dir / f"{name}{ext}"
                        if candidate.exists():
                            files.append(candidate)
                            break
        return files

    def versions(self, name: str) -> List[Spec]:
        """All known versions of a pod, newest first."""
        if name not in self._cache:
            specs = [Spec.from_file(f) for f in self._spec_files(name)]
            specs.sort(key=lambda s: parse_version(s.version) or parse_version("0"), reverse=True)
            self._cache[name] = specs
        return self._cache[name]

    def spec_with_name(self, name: Optional[str]) -> Optional[Spec]:
        if name is None:
            return None
        versions = self.versions(name.split("/", 1)[0])
        return versions[0].root if versions else None

    def find(self, name: str, requirements: Iterable[str] = ()) -> Spec:
        requirements = list(requirements)
        versions = self.versions(name)
        if not versions:
            raise ResolveError(f"Unable to find a specification for `{name}`")
        for spec in versions:
            if satisfies_all(spec.version, requirements):
                return spec
        available = ", ".join(s.version for s in versions)
        raise ResolveError(f"No version of `{name}` satisfies {', '.join(requirements)} (available: {available})")

    def spec_with_path(self, path: Optional[str], cwd: Optional[Path] = None) -> Optional[Spec]:
        if path is None:
            return None
        p = Path(path).expanduser()
        if not p.is_absolute():
            p = Path(cwd or Path.cwd()) / p
        if not p.exists():
            return None
        p = p.resolve()
        if p.is_dir():
            raise SpecError(f"{p}: is a directory.")
        if p.suffix not in SPEC_EXTENSIONS:
            raise SpecError(f"{p}: is not a podspec.")
        self.path = p
        return Spec.from_file(p)
