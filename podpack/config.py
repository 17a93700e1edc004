#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
podpack.config - central configuration for podpack

Responsibilities:
 - Load system (/etc/podpack/config.yaml) and user (~/.config/podpack/config.yaml) configuration
 - Provide defaults and hierarchical override (user > system > defaults)
 - Per-platform toolchain settings (sdk, archs, deployment target)
 - Validation and normalization of paths and tool names
 - BuildConfig: the per-run installation root / sandbox root, passed explicitly
"""

from __future__ import annotations
import copy
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import yaml

TRUNK_SOURCE = "https://github.com/CocoaPods/Specs.git"

# Defaults
_DEFAULTS: Dict[str, Any] = {
    "repos_dir": "~/.podpack/repos",
    "default_spec_source": TRUNK_SOURCE,
    "sandbox_root": "Pods",
    "lockfile_name": "Podfile.lock",
    "project_name": "Pods.xcodeproj",
    "keep_work_dir_on_failure": False,
    "download_timeout": 60,
    "tools": {
        "xcrun": "xcrun",
        "nm": "nm",
        "libtool": "libtool",
        "git": "git",
    },
    "build_configurations": {
        "Debug": "debug",
        "Release": "release",
    },
    # declaration order here is the fallback order for specs without platforms
    "platforms": {
        "ios": {
            "sdk": "iphoneos",
            "archs": ["arm64"],
            "min_version_flag": "-miphoneos-version-min",
            "deployment_setting": "IPHONEOS_DEPLOYMENT_TARGET",
            "deployment_target": "12.0",
        },
        "osx": {
            "sdk": "macosx",
            "archs": ["x86_64", "arm64"],
            "min_version_flag": "-mmacosx-version-min",
            "deployment_setting": "MACOSX_DEPLOYMENT_TARGET",
            "deployment_target": "10.13",
        },
        "tvos": {
            "sdk": "appletvos",
            "archs": ["arm64"],
            "min_version_flag": "-mtvos-version-min",
            "deployment_setting": "TVOS_DEPLOYMENT_TARGET",
            "deployment_target": "12.0",
        },
        "watchos": {
            "sdk": "watchos",
            "archs": ["arm64_32", "armv7k"],
            "min_version_flag": "-mwatchos-version-min",
            "deployment_setting": "WATCHOS_DEPLOYMENT_TARGET",
            "deployment_target": "4.0",
        },
    },
}

# Standard config file paths
_SYSTEM_CONFIG = Path("/etc/podpack/config.yaml")
_USER_CONFIG = Path.home() / ".config" / "podpack" / "config.yaml"

_PATH_KEYS = ("repos_dir",)

# Helper functions -----------------------------------------------------------

def _load_file(p: Path) -> Dict[str, Any]:
    if not p.exists():
        return {}
    data = yaml.safe_load(p.read_text(encoding="utf-8"))
    return data if isinstance(data, dict) else {}


# Config class ---------------------------------------------------------------

class Config:
    """
    Central configuration object. Loads system and user configs, merges them with defaults.
    Use Config.load() or Config.from_dict(...) to obtain an instance.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None) -> None:
        self._data = copy.deepcopy(_DEFAULTS)
        if data:
            self._merge(data)
        self._normalize()

    @classmethod
    def load(cls, system_file: Path = _SYSTEM_CONFIG, user_file: Path = _USER_CONFIG) -> "Config":
        cfg = cls(_load_file(system_file))
        cfg._merge(_load_file(user_file))
        cfg._normalize()
        return cfg

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        return cls(data)

    def _merge(self, other: Dict[str, Any]) -> None:
        # mappings are merged one level deep, everything else replaces
        for k, v in other.items():
            if v is None:
                continue
            if isinstance(v, dict) and isinstance(self._data.get(k), dict):
                merged = dict(self._data[k])
                for kk, vv in v.items():
                    if isinstance(vv, dict) and isinstance(merged.get(kk), dict):
                        merged[kk] = {**merged[kk], **vv}
                    else:
                        merged[kk] = vv
                self._data[k] = merged
            else:
                self._data[k] = v

    def _normalize(self) -> None:
        for key in _PATH_KEYS:
            val = self._data.get(key)
            if val is None:
                continue
            self._data[key] = str(Path(str(val)).expanduser())
        self._data["keep_work_dir_on_failure"] = bool(self._data.get("keep_work_dir_on_failure"))
        try:
            self._data["download_timeout"] = int(self._data.get("download_timeout", 60))
        except (TypeError, ValueError):
            self._data["download_timeout"] = 60

    # accessors ---------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def tool(self, name: str) -> str:
        return str(self._data.get("tools", {}).get(name, name))

    def platform(self, name: str) -> Dict[str, Any]:
        return dict(self._data.get("platforms", {}).get(name, {}))

    def platform_names(self) -> List[str]:
        return list(self._data.get("platforms", {}).keys())

    def build_configurations(self) -> Dict[str, str]:
        return dict(self._data.get("build_configurations", {}))

    def repos_dir(self) -> Path:
        return Path(self._data["repos_dir"])

    # validation --------------------------------------------------------------

    def validate(self) -> Tuple[bool, List[str]]:
        """
        Validate config; returns (is_valid, list_of_problems)
        """
        problems: List[str] = []
        for name, plat in self._data.get("platforms", {}).items():
            for req in ("sdk", "archs", "min_version_flag"):
                if req not in plat:
                    problems.append(f"platform {name} is missing '{req}'")
            if not isinstance(plat.get("archs", []), list):
                problems.append(f"platform {name}: 'archs' must be a list")
        types = set(self.build_configurations().values())
        if not types <= {"debug", "release"}:
            problems.append(f"build configuration types must be debug or release, got {sorted(types)}")
        if not str(self._data.get("sandbox_root", "")).strip():
            problems.append("sandbox_root must not be empty")
        return (len(problems) == 0, problems)


@dataclass(frozen=True)
class BuildConfig:
    """Installation root and sandbox root of one packaging run."""

    installation_root: Path
    sandbox_root: str = "Pods"
    lockfile_name: str = "Podfile.lock"
    project_name: str = "Pods.xcodeproj"

    @classmethod
    def from_config(cls, installation_root: Path, cfg: Config) -> "BuildConfig":
        return cls(
            installation_root=Path(installation_root),
            sandbox_root=str(cfg.get("sandbox_root", "Pods")),
            lockfile_name=str(cfg.get("lockfile_name", "Podfile.lock")),
            project_name=str(cfg.get("project_name", "Pods.xcodeproj")),
        )

    @property
    def sandbox_path(self) -> Path:
        return self.installation_root / self.sandbox_root

    @property
    def lockfile_path(self) -> Path:
        return self.installation_root / self.lockfile_name


# Module convenience: singleton instance loaded from system+user
_DEFAULT_CFG_INSTANCE: Optional[Config] = None

def get_config() -> Config:
    global _DEFAULT_CFG_INSTANCE
    if _DEFAULT_CFG_INSTANCE is None:
        _DEFAULT_CFG_INSTANCE = Config.load()
    return _DEFAULT_CFG_INSTANCE
