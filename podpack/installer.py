#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
installer.py - installs a manifest into a sandbox

Steps (in order):
 - analyze:   resolve the pod graph and check platform support
 - download:  materialise every non-local pod into the sandbox
 - targets:   one PodTarget per resolved pod
 - headers:   Headers/Public/<Pod> and Headers/Private/<Pod>
 - project:   native project with one target per pod plus Pods-packager
 - lockfile:  Podfile.lock (YAML) in the installation root
"""

from __future__ import annotations
import hashlib
import json
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, List, Optional

import yaml

from podpack.config import BuildConfig, Config, get_config
from podpack.dependency import Resolution, resolve_pods
from podpack.fetch import fetch_pod_source
from podpack.file_accessor import FileAccessor, PathList
from podpack.logger import get_logger
from podpack.manifest import Manifest, TargetDefinition
from podpack.project import NativeTarget, Project
from podpack.sandbox import Sandbox
from podpack.spec import Platform, Spec

log = get_logger("podpack.installer")

AGGREGATE_TARGET = "Pods-packager"


class InstallError(Exception):
    """Raised when a manifest cannot be installed"""


# ---------------- Results ----------------

@dataclass
class AnalysisResult:
    resolution: Resolution
    platform: Platform
    all_user_build_configurations: Dict[str, str] = field(default_factory=dict)


class PodTarget:
    """One resolved pod as a build target: its active specs and their file accessors."""

    def __init__(self, sandbox: Sandbox, user_build_configurations: Dict[str, str], archs: List[str],
                 platform: Platform, specs: List[Spec], target_definitions: List[TargetDefinition],
                 file_accessors: List[FileAccessor], dependencies: Optional[List[str]] = None):
        self.sandbox = sandbox
        self.user_build_configurations = dict(user_build_configurations)
        self.archs = list(archs)
        self.platform = platform
        self.specs = list(specs)
        self.target_definitions = list(target_definitions)
        self.file_accessors = list(file_accessors)
        self.dependencies = list(dependencies or [])

    @property
    def root_spec(self) -> Spec:
        return self.specs[0].root

    @property
    def name(self) -> str:
        return self.root_spec.name

    @property
    def product_name(self) -> str:
        return f"lib{self.name}.a"

    @property
    def should_build(self) -> bool:
        return any(fa.non_header_sources for fa in self.file_accessors)

    def __repr__(self) -> str:
        return f"<PodTarget {self.name} ({self.platform})>"


@dataclass
class TargetInstallationResult:
    target: PodTarget
    native_target: NativeTarget


@dataclass
class InstallationResult:
    sandbox: Sandbox
    pod_targets: List[PodTarget]
    pods_project: Project
    analysis_result: AnalysisResult


def dummy_class_name(target_name: str) -> str:
    return "PodsDummy_" + re.sub(r"[^A-Za-z0-9_]", "_", target_name)


def create_file_accessors(specs: List[Spec], platform: Platform, pod_root: Path) -> List[FileAccessor]:
    path_list = PathList(pod_root)
    return [FileAccessor(path_list, s.consumer(platform)) for s in specs]


# ---------------- Project generation helpers ----------------

def install_file_references(sandbox: Sandbox, pod_targets: List[PodTarget], project: Project) -> None:
    """Adds every file a target's accessors resolve to its pod group."""
    for target in pod_targets:
        group = project.pod_group(target.name)
        if group is None:
            group = project.add_pod_group(target.name, sandbox.pod_dir(target.name),
                                          sandbox.is_local(target.name),
                                          sandbox.local_path_was_absolute(target.name))
        for fa in target.file_accessors:
            for path in fa.source_files + fa.resources + fa.vendored_frameworks + fa.vendored_libraries:
                project.add_file_reference(path, group)


class PodTargetInstaller:
    def __init__(self, sandbox: Sandbox, project: Project, target: PodTarget, cfg: Optional[Config] = None):
        self.sandbox = sandbox
        self.project = project
        self.target = target
        self.cfg = cfg or get_config()

    def _default_settings(self, config_type: str) -> Dict[str, Any]:
        target = self.target
        plat = self.cfg.platform(target.platform.name)
        consumers = [fa.spec_consumer for fa in target.file_accessors]
        settings: Dict[str, Any] = {
            "PRODUCT_NAME": target.name,
            "SDKROOT": plat.get("sdk") or target.platform.sdk,
            "ARCHS": " ".join(target.archs),
            "CLANG_MODULES_AUTOLINK": "YES",
            "GCC_GENERATE_DEBUGGING_SYMBOLS": "YES",
            "HEADER_SEARCH_PATHS": (f"$(inherited) {self.sandbox.private_headers_root}/{target.name} "
                                    f"{self.sandbox.public_headers_root}/**"),
            "OTHER_LDFLAGS": "$(inherited)",
            "GCC_OPTIMIZATION_LEVEL": "0" if config_type == "debug" else "s",
            "GCC_PREPROCESSOR_DEFINITIONS": "$(inherited) DEBUG=1" if config_type == "debug" else "$(inherited)",
            "CLANG_ENABLE_OBJC_ARC": "YES" if all(c.requires_arc for c in consumers) else "NO",
        }
        if plat.get("deployment_setting") and target.platform.deployment_target:
            settings[plat["deployment_setting"]] = target.platform.deployment_target
        flags = [f for c in consumers for f in c.compiler_flags]
        if flags:
            settings["OTHER_CFLAGS"] = "$(inherited) " + " ".join(dict.fromkeys(flags))
        for c in consumers:
            settings.update(c.pod_target_xcconfig)
        return settings

    def _write_dummy(self) -> Path:
        support_dir = self.sandbox.target_support_files_root / self.target.name
        support_dir.mkdir(parents=True, exist_ok=True)
        dummy = support_dir / f"{self.target.name}-dummy.m"
        cls = dummy_class_name(self.target.name)
        dummy.write_text(
            "#import <Foundation/Foundation.h>\n"
            f"@interface {cls} : NSObject\n@end\n"
            f"@implementation {cls}\n@end\n",
            encoding="utf-8")
        return dummy

    def install(self) -> TargetInstallationResult:
        target = self.target
        native = self.project.new_target(target.name, "static_library", target.name)
        for config in native.build_configurations:
            config.build_settings.update(self._default_settings(config.type))
        native.source_files = [str(p) for fa in target.file_accessors for p in fa.non_header_sources]
        native.headers = [str(p) for fa in target.file_accessors for p in fa.headers]
        native.public_headers = [str(p) for fa in target.file_accessors for p in fa.public_headers]
        native.resources = [str(p) for fa in target.file_accessors for p in fa.resources]
        for dep in target.dependencies:
            native.add_dependency(dep)
        if target.should_build:
            dummy = self._write_dummy()
            native.source_files.append(str(dummy))
            support = self.project.main_group.find("Targets Support Files")
            if support is not None:
                self.project.add_file_reference(dummy, support)
        log.debug(f"Installed target {target.name} ({len(native.source_files)} sources)")
        return TargetInstallationResult(target, native)


# ---------------- Installer ----------------

class Installer:
    def __init__(self, sandbox: Sandbox, manifest: Manifest, resolver: Any,
                 cfg: Optional[Config] = None, build_config: Optional[BuildConfig] = None):
        self.sandbox = sandbox
        self.manifest = manifest
        self.resolver = resolver
        self.cfg = cfg or get_config()
        self.build_config = build_config
        self.analysis_result: Optional[AnalysisResult] = None
        self.pod_targets: List[PodTarget] = []
        self.pods_project: Optional[Project] = None

    def install(self) -> InstallationResult:
        log.info(f"Installing {', '.join(p.name for p in self.manifest.pods)} for {self.manifest.platform_name}")
        self.analysis_result = self.analyze()
        self.download_dependencies()
        self.pod_targets = self.generate_targets()
        self.install_headers()
        self.pods_project = self.generate_project()
        self.write_lockfile()
        return InstallationResult(self.sandbox, self.pod_targets, self.pods_project, self.analysis_result)

    # analyze ----------------------------------------------------------------

    def _root_spec(self) -> Spec:
        pod = self.manifest.pods[0]
        if pod.podspec is not None:
            return Spec.from_file(pod.podspec)
        return self.resolver.find(pod.name, pod.requirements())

    def analyze(self) -> AnalysisResult:
        pod = self.manifest.pods[0]
        platform_name = self.manifest.platform_name
        target = self.manifest.deployment_target or self.cfg.platform(platform_name).get("deployment_target")
        platform = Platform(platform_name, target)
        resolution = resolve_pods(self._root_spec(), self.resolver, platform_name,
                                  list(pod.subspecs) or None, pod.requirements())
        for resolved in resolution:
            if not resolved.spec.supports_platform(platform_name):
                raise InstallError(
                    f"The platform of the target `packager` ({platform}) is not compatible with "
                    f"`{resolved.name} ({resolved.spec.version})`, which does not support `{platform_name}`.")
        log.debug(f"Resolved {', '.join(f'{p.name} ({p.spec.version})' for p in resolution)}")
        return AnalysisResult(resolution, platform, self.cfg.build_configurations())

    # download ---------------------------------------------------------------

    def download_dependencies(self) -> None:
        pod = self.manifest.pods[0]
        for resolved in self.analysis_result.resolution:
            if resolved.name == pod.name and pod.is_local:
                self.sandbox.store_local_path(resolved.name, pod.path, Path(pod.path).is_absolute())
                log.info(f"Using local {resolved.name} at {pod.path}")
                continue
            spec = resolved.spec
            spec_dir = spec.defined_in_file.parent if spec.defined_in_file else None
            fetch_pod_source(resolved.name, spec.source, self.sandbox.pod_dir(resolved.name), spec_dir, self.cfg)

    # targets & headers ----------------------------------------------------

    def generate_targets(self) -> List[PodTarget]:
        analysis = self.analysis_result
        archs = self.cfg.platform(analysis.platform.name).get("archs", [])
        targets = []
        for resolved in analysis.resolution:
            specs = resolved.active_specs()
            accessors = create_file_accessors(specs, analysis.platform, self.sandbox.pod_dir(resolved.name))
            deps = [d for d, _ in analysis.resolution.graph.adj.get(resolved.name, [])]
            targets.append(PodTarget(self.sandbox, analysis.all_user_build_configurations, archs,
                                     analysis.platform, specs, self.manifest.target_definitions,
                                     accessors, list(dict.fromkeys(deps))))
        return targets

    def install_headers(self) -> None:
        for target in self.pod_targets:
            private_dir = self.sandbox.private_headers_root / target.name
            public_dir = self.sandbox.public_headers_root / target.name
            for fa in target.file_accessors:
                for header in fa.headers:
                    private_dir.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(header, private_dir / header.name)
                for header in fa.public_headers:
                    public_dir.mkdir(parents=True, exist_ok=True)
                    shutil.copy2(header, public_dir / header.name)

    # project ------------------------------------------------------------------

    def generate_project(self) -> Project:
        project = Project(self.sandbox.project_path)
        for name, type in self.analysis_result.all_user_build_configurations.items():
            project.add_build_configuration(name, type)
        for target in self.pod_targets:
            project.add_pod_group(target.name, self.sandbox.pod_dir(target.name),
                                  self.sandbox.is_local(target.name),
                                  self.sandbox.local_path_was_absolute(target.name))
        install_file_references(self.sandbox, self.pod_targets, project)
        for target in self.pod_targets:
            PodTargetInstaller(self.sandbox, project, target, self.cfg).install()
        aggregate = project.new_target(AGGREGATE_TARGET, "aggregate")
        for target in self.pod_targets:
            aggregate.add_dependency(target.name)
        project.save()
        return project

    # lockfile ---------------------------------------------------------------

    def lockfile_data(self) -> Dict[str, Any]:
        resolution = self.analysis_result.resolution
        pods: List[Any] = []
        checksums: Dict[str, str] = {}
        for resolved in resolution:
            entry = f"{resolved.name} ({resolved.spec.version})"
            deps = sorted({f"{d.name} ({', '.join(d.requirements)})" if d.requirements else d.name
                           for s in resolved.active_specs()
                           for d in s.dependencies(self.manifest.platform_name)
                           if d.root_name != resolved.name})
            pods.append({entry: deps} if deps else entry)
            payload = json.dumps(resolved.spec.attributes_hash, sort_keys=True, default=str)
            checksums[resolved.name] = hashlib.sha1(payload.encode("utf-8")).hexdigest()
        pod = self.manifest.pods[0]
        data: Dict[str, Any] = {
            "PODS": sorted(pods, key=lambda p: p if isinstance(p, str) else next(iter(p))),
            "DEPENDENCIES": [f"{pod.name} ({pod.requirement})" if pod.requirement else pod.name],
            "SPEC CHECKSUMS": checksums,
        }
        if pod.path is not None or pod.podspec is not None:
            key = ":path" if pod.path is not None else ":podspec"
            data["EXTERNAL SOURCES"] = {pod.name: {key: str(pod.path or pod.podspec)}}
        return data

    def write_lockfile(self) -> Optional[Path]:
        if self.build_config is None:
            return None
        path = self.build_config.lockfile_path
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.lockfile_data(), f, default_flow_style=False, sort_keys=False)
        return path
