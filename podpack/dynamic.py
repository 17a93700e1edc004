"""
dynamic.py - carves a dependency-free project for the dynamic framework

The static installation holds the packaged pod plus everything it needs.
The dynamic framework links those dependencies instead of embedding them,
so a second project is built in the dynamic sandbox around the packaged
pod only. Each stage object exposes just the next stage:

    derive_target() -> Derived
      .create_project()          -> ProjectCreated
      .copy_sources()            -> SourcesCopied
      .install_file_references() -> ReferencesInstalled
      .install_target()          -> Linked
      .persist()                 -> Persisted
"""

from __future__ import annotations
import shutil
from typing import List, Optional

from podpack.config import Config, get_config
from podpack.installer import (InstallationResult, PodTarget, PodTargetInstaller,
                               create_file_accessors, install_file_references)
from podpack.logger import get_logger
from podpack.project import NativeTarget, Project
from podpack.sandbox import Sandbox
from podpack.spec import Platform, Spec, SpecConsumer

log = get_logger("podpack.dynamic")


class DynamicPipelineError(Exception):
    """Raised when the dynamic project cannot be derived"""


class _Stage:
    def __init__(self, dynamic_sandbox: Sandbox, static_sandbox: Sandbox, target: PodTarget,
                 cfg: Config, project: Optional[Project] = None,
                 native_target: Optional[NativeTarget] = None,
                 dependency_consumers: Optional[List[SpecConsumer]] = None):
        self.dynamic_sandbox = dynamic_sandbox
        self.static_sandbox = static_sandbox
        self.target = target
        self.cfg = cfg
        self.project = project
        self.native_target = native_target
        self.dependency_consumers = list(dependency_consumers or [])

    def _next(self, cls, **changes):
        state = dict(project=self.project, native_target=self.native_target,
                     dependency_consumers=self.dependency_consumers)
        state.update(changes)
        return cls(self.dynamic_sandbox, self.static_sandbox, self.target, self.cfg, **state)


class Derived(_Stage):
    def create_project(self, static_installer: InstallationResult) -> "ProjectCreated":
        sandbox = self.dynamic_sandbox
        name = self.target.name
        project = Project(sandbox.project_path)
        for config_name, config_type in static_installer.analysis_result.all_user_build_configurations.items():
            project.add_build_configuration(config_name, config_type)
        project.add_pod_group(name, sandbox.pod_dir(name), sandbox.is_local(name),
                              sandbox.local_path_was_absolute(name))
        return self._next(ProjectCreated, project=project)


class ProjectCreated(_Stage):
    def copy_sources(self) -> "SourcesCopied":
        name = self.target.name
        src = self.static_sandbox.pod_dir(name)
        dest = self.dynamic_sandbox.root / name
        log.debug(f"Copying {src} -> {dest}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(src, dest, symlinks=True, copy_function=shutil.copy2)
        return self._next(SourcesCopied)


class SourcesCopied(_Stage):
    def install_file_references(self) -> "ReferencesInstalled":
        install_file_references(self.dynamic_sandbox, [self.target], self.project)
        return self._next(ReferencesInstalled)


class ReferencesInstalled(_Stage):
    def install_target(self) -> "Linked":
        target = self.target
        if not any(td.all_dependencies() for td in target.target_definitions):
            return self._next(Linked)
        result = PodTargetInstaller(self.dynamic_sandbox, self.project, target, self.cfg).install()
        native = result.native_target
        if target.should_build:
            # statically linked dependencies bring their system frameworks along
            consumers = [fa.spec_consumer for fa in target.file_accessors] + self.dependency_consumers
            for consumer in consumers:
                for framework in consumer.frameworks:
                    native.add_system_framework(framework)
                for library in consumer.libraries:
                    native.add_system_library(library)
        return self._next(Linked, native_target=native)


class Linked(_Stage):
    def persist(self) -> "Persisted":
        project = self.project
        log.info(f"- Writing project file to {self.dynamic_sandbox.project_path}")
        if project.pods is not None and project.pods.is_empty:
            project.pods.remove_from_project()
        if project.development_pods is not None and project.development_pods.is_empty:
            project.development_pods.remove_from_project()
        project.sort(groups_position="below")
        project.recreate_user_schemes(False)

        # dependency headers only exist in the static sandbox
        if project.targets:
            headers = f"$(inherited) {self.static_sandbox.public_headers_root.resolve()}/**"
            for config in project.targets[0].build_configurations:
                config.build_settings["HEADER_SEARCH_PATHS"] = headers
                config.build_settings["USER_HEADER_SEARCH_PATHS"] = headers
                config.build_settings["OTHER_LDFLAGS"] = "$(inherited) -ObjC"
        project.save()
        return self._next(Persisted)


class Persisted(_Stage):
    pass


def derive_target(dynamic_sandbox: Sandbox, static_sandbox: Sandbox, static_installer: InstallationResult,
                  spec: Spec, platform: Platform, cfg: Optional[Config] = None) -> Derived:
    """Projects the packaged pod's target with accessors rooted in the (still empty) dynamic pod dir."""
    matches = [t for t in static_installer.pod_targets if t.name == spec.name]
    if not matches:
        raise DynamicPipelineError(f"No target named {spec.name} in the static installation")
    static_target = matches[0]
    pod_root = dynamic_sandbox.pod_dir(static_target.root_spec.name)
    accessors = create_file_accessors(static_target.specs, static_target.platform, pod_root)
    target = PodTarget(dynamic_sandbox, static_target.user_build_configurations, [], platform,
                       static_target.specs, static_target.target_definitions, accessors)
    dependency_consumers = [fa.spec_consumer for t in static_installer.pod_targets
                            if t.name != spec.name for fa in t.file_accessors]
    return Derived(dynamic_sandbox, static_sandbox, target, cfg or get_config(),
                   dependency_consumers=dependency_consumers)


def install_dynamic_pod(dynamic_sandbox: Sandbox, static_sandbox: Sandbox, static_installer: InstallationResult,
                        spec: Spec, platform: Platform, cfg: Optional[Config] = None) -> Persisted:
    return (derive_target(dynamic_sandbox, static_sandbox, static_installer, spec, platform, cfg)
            .create_project(static_installer)
            .copy_sources()
            .install_file_references()
            .install_target()
            .persist())
