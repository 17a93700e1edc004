# /podpack/sandbox.py
"""
podpack sandbox - isolated installation roots

A Sandbox only records paths; directories appear when the installer
writes into them.

Layout of a sandbox root:
  <root>/<Pod>/                  downloaded sources of each non-local pod
  <root>/Headers/Public/<Pod>/   public headers
  <root>/Headers/Private/<Pod>/  every header
  <root>/Target Support Files/    generated support files
  <root>/Pods.xcodeproj/         project description
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Tuple

from podpack.config import BuildConfig


@dataclass
class Sandbox:
    root: Path
    project_name: str = "Pods.xcodeproj"
    _local_pods: Dict[str, Tuple[Path, bool]] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        self.root = Path(self.root)

    @property
    def project_path(self) -> Path:
        return self.root / self.project_name

    @property
    def headers_root(self) -> Path:
        return self.root / "Headers"

    @property
    def public_headers_root(self) -> Path:
        return self.headers_root / "Public"

    @property
    def private_headers_root(self) -> Path:
        return self.headers_root / "Private"

    @property
    def target_support_files_root(self) -> Path:
        return self.root / "Target Support Files"

    @property
    def build_dir(self) -> Path:
        return self.root / "build"

    # local (development) pods ------------------------------------------------

    def store_local_path(self, name: str, path: Path, was_absolute: bool = False) -> None:
        self._local_pods[name] = (Path(path), was_absolute)

    def is_local(self, name: str) -> bool:
        return name.split("/", 1)[0] in self._local_pods

    def local_path_was_absolute(self, name: str) -> bool:
        entry = self._local_pods.get(name.split("/", 1)[0])
        return bool(entry and entry[1])

    @property
    def development_pods(self) -> Dict[str, Path]:
        return {name: path for name, (path, _) in self._local_pods.items()}

    def pod_dir(self, name: str) -> Path:
        root_name = name.split("/", 1)[0]
        if root_name in self._local_pods:
            return self._local_pods[root_name][0]
        return self.root / root_name


def build_static_sandbox(build_config: BuildConfig, dynamic: bool) -> Sandbox:
    if dynamic:
        root = build_config.sandbox_path / "Static"
    else:
        root = build_config.sandbox_path
    return Sandbox(root, project_name=build_config.project_name)


def build_dynamic_sandbox(build_config: BuildConfig) -> Sandbox:
    return Sandbox(build_config.sandbox_path / "Dynamic", project_name=build_config.project_name)
