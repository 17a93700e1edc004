#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
package.py - packaging pipeline for podpack

Coordinates one packaging run:
  validate -> output location -> work dir -> per platform
  (static sandbox -> install -> [dynamic project] -> native build -> cleanup)
  -> <name>.podspec -> publish -> caller directory restored
"""

from __future__ import annotations
import shutil
from pathlib import Path
from typing import Any, Callable, Optional, Type

from podpack.builder import Builder
from podpack.config import BuildConfig, Config, get_config
from podpack.dynamic import install_dynamic_pod
from podpack.install import install_pod
from podpack.installer import InstallationResult, Installer
from podpack.logger import get_logger
from podpack.request import PackageRequest
from podpack.sandbox import Sandbox, build_dynamic_sandbox, build_static_sandbox
from podpack.spec import Platform, Spec, SpecResolver
from podpack.spec_builder import SpecBuilder
from podpack.validation import validate
from podpack.workdir import (allocate_work_dir, discard, prepare_output_location,
                             publish, working_directory)

LOG = get_logger("podpack.package")


class Package:
    """
    One packaging run of a spec. Platforms are built in declaration order;
    the first failure aborts the remaining platforms and the run.
    """

    def __init__(self, request: PackageRequest, spec: Optional[Spec], spec_path: Optional[Path],
                 source_dir: Path, cfg: Optional[Config] = None, resolver: Any = None,
                 builder_factory: Callable[..., Any] = Builder,
                 installer_cls: Type[Installer] = Installer):
        self.request = request
        self.spec = spec
        self.spec_path = Path(spec_path) if spec_path else None
        self.source_dir = Path(source_dir)
        self.cfg = cfg or get_config()
        self.resolver = resolver or SpecResolver(list(request.spec_sources), self.cfg)
        self.builder_factory = builder_factory
        self.installer_cls = installer_cls

    @property
    def spec_from_path(self) -> bool:
        return self.spec_path is not None

    def validate(self) -> None:
        validate(self.spec, self.request, self.spec_from_path, self.resolver)

    def run(self) -> Optional[Path]:
        """Returns the published target directory, or None when it already exists."""
        target_dir = prepare_output_location(self.spec, self.request.force, self.source_dir)
        if target_dir is None:
            return None

        work_dir = allocate_work_dir()
        try:
            with working_directory(work_dir):
                self.build_package(work_dir)
            published = publish(work_dir, target_dir)
        except Exception:
            discard(work_dir, keep=bool(self.cfg.get("keep_work_dir_on_failure")))
            raise

        LOG.info(f"Packaged {self.spec.name} ({self.spec.version}) -> {published}")
        return published

    def build_package(self, work_dir: Path) -> Path:
        request = self.request
        builder = SpecBuilder(self.spec, request.source, request.embedded, request.dynamic, request.library)
        newspec = builder.spec_metadata()

        for platform in self.spec.available_platforms(self.cfg):
            self.build_in_sandbox(platform, work_dir)
            newspec += builder.spec_platform(platform)

        newspec += builder.spec_close()
        out = work_dir / f"{self.spec.name}.podspec"
        out.write_text(newspec, encoding="utf-8")
        return out

    def build_in_sandbox(self, platform: Platform, work_dir: Path) -> None:
        LOG.info(f"Building {self.spec.name} for {platform.label} {platform.deployment_target or ''}".rstrip())
        request = self.request
        build_config = BuildConfig.from_config(work_dir, self.cfg)
        static_sandbox = build_static_sandbox(build_config, request.dynamic)
        try:
            static_installer = install_pod(platform.name, static_sandbox, self.spec, self.spec_path,
                                           request.subspec_list(), list(request.spec_sources),
                                           request.local, build_config, self.resolver, self.cfg,
                                           self.installer_cls)
            dynamic_sandbox = None
            if request.dynamic:
                dynamic_sandbox = build_dynamic_sandbox(build_config)
                install_dynamic_pod(dynamic_sandbox, static_sandbox, static_installer,
                                    self.spec, platform, self.cfg)
            self.perform_build(platform, build_config, static_sandbox, dynamic_sandbox, static_installer)
        finally:
            if build_config.sandbox_path.exists():
                shutil.rmtree(build_config.sandbox_path)
            build_config.lockfile_path.unlink(missing_ok=True)

    def perform_build(self, platform: Platform, build_config: BuildConfig, static_sandbox: Sandbox,
                      dynamic_sandbox: Optional[Sandbox], static_installer: InstallationResult) -> None:
        request = self.request
        static_sandbox_root = build_config.sandbox_root
        dynamic_sandbox_root = None
        if request.dynamic:
            static_sandbox_root = f"{build_config.sandbox_root}/{static_sandbox.root.name}"
            dynamic_sandbox_root = f"{build_config.sandbox_root}/{dynamic_sandbox.root.name}"

        builder = self.builder_factory(
            platform,
            static_installer,
            self.source_dir,
            static_sandbox_root,
            dynamic_sandbox_root,
            static_sandbox.public_headers_root,
            self.spec,
            request.embedded,
            request.mangle,
            request.dynamic,
            request.configuration,
            request.bundle_identifier,
            request.exclude_deps,
            self.cfg,
        )
        builder.build(request.kind)

        if request.embedded:
            builder.link_embedded_resources()
