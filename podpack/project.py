#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
project.py - native project description

A Project is what the builder compiles: build configurations, groups of
file references and native targets with per-configuration build settings.
It is stored as <path>/project.yaml; user schemes live under
<path>/xcuserdata/<user>.xcuserdatad/xcschemes.
"""

from __future__ import annotations
import getpass
import plistlib
import shutil
from pathlib import Path
from typing import Dict, Any, List, Optional
from xml.etree import ElementTree as ET

import yaml

from podpack.logger import get_logger

log = get_logger("podpack.project")

PROJECT_FILE = "project.yaml"

# ---------------- Groups ----------------

class Group:
    def __init__(self, name: str, path: Optional[str] = None, local: bool = False,
                 was_absolute: bool = False, parent: Optional["Group"] = None):
        self.name = name
        self.path = path
        self.local = local
        self.was_absolute = was_absolute
        self.parent = parent
        self.files: List[str] = []
        self.children: List[Group] = []

    def new_group(self, name: str, path: Optional[str] = None, **kwargs) -> "Group":
        g = Group(name, path, parent=self, **kwargs)
        self.children.append(g)
        return g

    def find(self, name: str) -> Optional["Group"]:
        for g in self.children:
            if g.name == name:
                return g
        return None

    def add_file(self, path: str) -> None:
        if path not in self.files:
            self.files.append(path)

    @property
    def is_empty(self) -> bool:
        return not self.files and not self.children

    def remove_from_project(self) -> None:
        if self.parent is not None:
            self.parent.children.remove(self)
            self.parent = None

    def all_files(self) -> List[str]:
        out = list(self.files)
        for g in self.children:
            out.extend(g.all_files())
        return out

    def entries(self, groups_position: str = "below") -> List[str]:
        """Display order of this group: file names and child group names."""
        files = [Path(f).name for f in self.files]
        groups = [g.name for g in self.children]
        return groups + files if groups_position == "above" else files + groups

    def to_dict(self, groups_position: str = "below") -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name}
        if self.path is not None:
            d["path"] = self.path
        if self.local:
            d["local"] = True
        if self.was_absolute:
            d["was_absolute"] = True
        children = [g.to_dict(groups_position) for g in self.children]
        if children and groups_position == "above":
            d["children"] = children
        if self.files:
            d["files"] = list(self.files)
        if children and groups_position != "above":
            d["children"] = children
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any], parent: Optional["Group"] = None) -> "Group":
        g = cls(d["name"], d.get("path"), d.get("local", False), d.get("was_absolute", False), parent)
        g.files = list(d.get("files", []))
        g.children = [cls.from_dict(c, g) for c in d.get("children", [])]
        return g

# ---------------- Targets ----------------

class BuildConfiguration:
    def __init__(self, name: str, type: str = "release", build_settings: Optional[Dict[str, Any]] = None):
        self.name = name
        self.type = type
        self.build_settings: Dict[str, Any] = dict(build_settings or {})

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type, "build_settings": dict(self.build_settings)}


class NativeTarget:
    def __init__(self, name: str, product_type: str = "static_library", product_name: Optional[str] = None):
        self.name = name
        self.product_type = product_type
        self.product_name = product_name or name
        self.build_configurations: List[BuildConfiguration] = []
        self.source_files: List[str] = []
        self.headers: List[str] = []
        self.public_headers: List[str] = []
        self.resources: List[str] = []
        self.frameworks: List[str] = []
        self.weak_frameworks: List[str] = []
        self.libraries: List[str] = []
        self.dependencies: List[str] = []

    def add_build_configuration(self, name: str, type: str, build_settings: Optional[Dict[str, Any]] = None) -> BuildConfiguration:
        config = BuildConfiguration(name, type, build_settings)
        self.build_configurations.append(config)
        return config

    def build_configuration(self, name: str) -> Optional[BuildConfiguration]:
        for c in self.build_configurations:
            if c.name == name:
                return c
        return None

    def build_settings(self, name: str) -> Dict[str, Any]:
        config = self.build_configuration(name)
        return dict(config.build_settings) if config else {}

    def add_system_framework(self, name: str) -> None:
        if name not in self.frameworks:
            self.frameworks.append(name)

    def add_system_library(self, name: str) -> None:
        if name not in self.libraries:
            self.libraries.append(name)

    def add_dependency(self, target_name: str) -> None:
        if target_name not in self.dependencies:
            self.dependencies.append(target_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "product_type": self.product_type,
            "product_name": self.product_name,
            "build_configurations": [c.to_dict() for c in self.build_configurations],
            "source_files": list(self.source_files),
            "headers": list(self.headers),
            "public_headers": list(self.public_headers),
            "resources": list(self.resources),
            "frameworks": list(self.frameworks),
            "weak_frameworks": list(self.weak_frameworks),
            "libraries": list(self.libraries),
            "dependencies": list(self.dependencies),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "NativeTarget":
        t = cls(d["name"], d.get("product_type", "static_library"), d.get("product_name"))
        for c in d.get("build_configurations", []):
            t.add_build_configuration(c["name"], c.get("type", "release"), c.get("build_settings"))
        for key in ("source_files", "headers", "public_headers", "resources", "frameworks",
                    "weak_frameworks", "libraries", "dependencies"):
            setattr(t, key, list(d.get(key, [])))
        return t

# ---------------- Project ----------------

class Project:
    def __init__(self, path: Path):
        self.path = Path(path)
        self.build_configurations: Dict[str, str] = {}
        self.groups_position = "below"
        self.main_group = Group("Main")
        self.main_group.new_group("Pods")
        self.main_group.new_group("Development Pods")
        self.main_group.new_group("Frameworks")
        self.main_group.new_group("Products")
        self.main_group.new_group("Targets Support Files")
        self.targets: List[NativeTarget] = []

    # groups ---------------------------------------------------------------

    @property
    def pods(self) -> Optional[Group]:
        return self.main_group.find("Pods")

    @property
    def development_pods(self) -> Optional[Group]:
        return self.main_group.find("Development Pods")

    def add_pod_group(self, name: str, path: Path, local: bool = False, was_absolute: bool = False) -> Group:
        parent = self.development_pods if local else self.pods
        if parent is None:
            parent = self.main_group.new_group("Development Pods" if local else "Pods")
        return parent.new_group(name, str(path), local=local, was_absolute=was_absolute)

    def pod_group(self, name: str) -> Optional[Group]:
        for parent in (self.pods, self.development_pods):
            if parent is not None and parent.find(name) is not None:
                return parent.find(name)
        return None

    def add_file_reference(self, path: Path, group: Group) -> str:
        ref = str(path)
        group.add_file(ref)
        return ref

    def sort(self, groups_position: str = "below") -> None:
        """Files and groups ordered by name; groups after files when 'below'."""
        if groups_position not in ("above", "below"):
            raise ValueError(f"groups_position must be above or below, got {groups_position!r}")

        def _sort(group: Group):
            group.files.sort(key=lambda f: Path(f).name.lower())
            group.children.sort(key=lambda g: g.name.lower())
            for child in group.children:
                _sort(child)
        _sort(self.main_group)
        self.groups_position = groups_position

    # configurations & targets ----------------------------------------------

    def add_build_configuration(self, name: str, type: str) -> None:
        self.build_configurations[name] = type

    def new_target(self, name: str, product_type: str = "static_library", product_name: Optional[str] = None) -> NativeTarget:
        target = NativeTarget(name, product_type, product_name)
        for config_name, config_type in self.build_configurations.items():
            target.add_build_configuration(config_name, config_type)
        self.targets.append(target)
        products = self.main_group.find("Products")
        if products is not None:
            products.add_file(_product_file(target))
        return target

    def target(self, name: str) -> Optional[NativeTarget]:
        for t in self.targets:
            if t.name == name:
                return t
        return None

    # schemes ----------------------------------------------------------------

    def user_schemes_dir(self) -> Path:
        return self.path / "xcuserdata" / f"{getpass.getuser()}.xcuserdatad" / "xcschemes"

    def recreate_user_schemes(self, visible: bool = True) -> None:
        schemes_dir = self.user_schemes_dir()
        if schemes_dir.exists():
            shutil.rmtree(schemes_dir)
        schemes_dir.mkdir(parents=True, exist_ok=True)
        management: Dict[str, Any] = {"SchemeUserState": {}}
        for index, target in enumerate(self.targets):
            scheme = ET.Element("Scheme", {"version": "1.3"})
            action = ET.SubElement(scheme, "BuildAction", {"parallelizeBuildables": "YES"})
            entries = ET.SubElement(action, "BuildActionEntries")
            entry = ET.SubElement(entries, "BuildActionEntry", {"buildForRunning": "YES"})
            ET.SubElement(entry, "BuildableReference", {
                "BuildableName": _product_file(target),
                "BlueprintName": target.name,
                "ReferencedContainer": f"container:{self.path.name}",
            })
            ET.ElementTree(scheme).write(schemes_dir / f"{target.name}.xcscheme", encoding="UTF-8", xml_declaration=True)
            management["SchemeUserState"][f"{target.name}.xcscheme"] = {"isShown": visible, "orderHint": index}
        with open(schemes_dir / "xcschememanagement.plist", "wb") as f:
            plistlib.dump(management, f)

    # persistence --------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "build_configurations": dict(self.build_configurations),
            "groups_position": self.groups_position,
            "main_group": self.main_group.to_dict(self.groups_position),
            "targets": [t.to_dict() for t in self.targets],
        }

    def save(self) -> Path:
        self.path.mkdir(parents=True, exist_ok=True)
        out = self.path / PROJECT_FILE
        with open(out, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
        log.debug(f"Project written to {out}")
        return out

    @classmethod
    def load(cls, path: Path) -> "Project":
        path = Path(path)
        data = yaml.safe_load((path / PROJECT_FILE).read_text(encoding="utf-8")) or {}
        project = cls(path)
        project.build_configurations = dict(data.get("build_configurations", {}))
        project.groups_position = data.get("groups_position", "below")
        if "main_group" in data:
            project.main_group = Group.from_dict(data["main_group"])
        project.targets = [NativeTarget.from_dict(t) for t in data.get("targets", [])]
        return project


def _product_file(target: NativeTarget) -> str:
    if target.product_type == "framework":
        return f"{target.product_name}.framework"
    if target.product_type == "aggregate":
        return target.product_name
    return f"lib{target.product_name}.a"
