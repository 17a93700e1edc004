#!/usr/bin/env python3
"""
install.py - dependency install step of a platform build

Synthesizes the manifest for the packaged spec, runs the installer against
the static sandbox and neutralizes build settings that would get in the way
of a packaged binary (module autolinking, debug symbols).
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, List, Optional, Type

from podpack.config import BuildConfig, Config, get_config
from podpack.installer import InstallationResult, Installer
from podpack.logger import get_logger
from podpack.manifest import manifest_from_spec
from podpack.sandbox import Sandbox
from podpack.spec import Spec

log = get_logger("podpack.install")

NEUTRALIZED_SETTINGS = {
    "CLANG_MODULES_AUTOLINK": "NO",
    "GCC_GENERATE_DEBUGGING_SYMBOLS": "NO",
}


def install_pod(platform_name: str,
                sandbox: Sandbox,
                spec: Spec,
                spec_path: Optional[Path],
                subspecs: Optional[List[str]],
                sources: List[str],
                local: bool,
                build_config: BuildConfig,
                resolver: Any,
                cfg: Optional[Config] = None,
                installer_cls: Type[Installer] = Installer) -> InstallationResult:
    cfg = cfg or get_config()
    manifest = manifest_from_spec(spec_path, spec.name, spec.version, platform_name,
                                  spec.deployment_target(platform_name), subspecs, sources, local)
    installer = installer_cls(sandbox, manifest, resolver, cfg, build_config)
    result = installer.install()

    for target in result.pods_project.targets:
        for config in target.build_configurations:
            config.build_settings.update(NEUTRALIZED_SETTINGS)
    result.pods_project.save()
    log.debug(f"Static project saved at {result.pods_project.path}")
    return result
