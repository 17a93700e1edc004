#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
builder.py - native build of an installed sandbox

Features:
 - Compiles every native target of the sandbox project with xcrun clang
 - Archives each target with libtool -static
 - Optional mangling rebuild of dependency symbols
 - Static library, static framework (optionally embedded) and dynamic framework outputs
 - Real-time logging of tool output
 - Resource stats (time, RAM)
"""

import os
import plistlib
import shlex
import shutil
import subprocess
import threading
import time
from pathlib import Path
from typing import Dict, Any, List, Optional

import psutil

from podpack import mangle
from podpack.config import Config, get_config
from podpack.logger import get_logger
from podpack.project import NativeTarget, Project
from podpack.request import PackageKind

log = get_logger("podpack.builder")

class BuildError(Exception):
    """Raised when a compiler, linker or archiver invocation fails"""

# ---------------- Utils ----------------

def _stream_logs(proc: subprocess.Popen, label: str):
    """Stream tool output through the logger as it arrives"""

    def reader(stream, emit):
        for line in iter(stream.readline, b""):
            emit(f"[{label}] {line.decode(errors='replace').rstrip()}")
        stream.close()

    threads = [threading.Thread(target=reader, args=(proc.stdout, log.debug)),
               threading.Thread(target=reader, args=(proc.stderr, log.warning))]
    for t in threads: t.start()
    for t in threads: t.join()

def _run_command(cmd: List[str], cwd: Optional[Path] = None, label: str = "build"):
    log.debug(f"Running: {' '.join(shlex.quote(c) for c in cmd)}")
    try:
        proc = subprocess.Popen(cmd, cwd=cwd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except OSError as e:
        raise BuildError(f"Unable to run {cmd[0]}: {e}")
    _stream_logs(proc, label)
    proc.wait()
    if proc.returncode != 0:
        raise BuildError(f"{cmd[0]} failed with exit code {proc.returncode}: {' '.join(cmd)}")

def _settings_list(value: Any) -> List[str]:
    if not value:
        return []
    return [v for v in shlex.split(str(value)) if v != "$(inherited)"]

def _expand_search_paths(paths: List[str]) -> List[str]:
    """'dir/**' stands for dir and every directory below it."""
    out: List[str] = []
    for p in paths:
        if p.endswith("/**"):
            base = Path(p[:-3])
            out.append(str(base))
            if base.is_dir():
                out.extend(str(d) for d in sorted(base.rglob("*")) if d.is_dir())
        else:
            out.append(p)
    return list(dict.fromkeys(out))

def compile_flags(settings: Dict[str, Any], min_version_flag: Optional[str], deployment_target: Optional[str],
                  extra_defines: Optional[List[str]] = None) -> List[str]:
    """clang flags for one build configuration's settings."""
    flags: List[str] = []
    if min_version_flag and deployment_target:
        flags.append(f"{min_version_flag}={deployment_target}")
    flags.append(f"-O{settings.get('GCC_OPTIMIZATION_LEVEL', 's')}")
    if settings.get("GCC_GENERATE_DEBUGGING_SYMBOLS", "YES") == "YES":
        flags.append("-g")
    if settings.get("CLANG_MODULES_AUTOLINK", "YES") == "NO":
        flags.append("-fno-autolink")
    for path in _expand_search_paths(_settings_list(settings.get("HEADER_SEARCH_PATHS"))):
        flags.append(f"-I{path}")
    for path in _expand_search_paths(_settings_list(settings.get("USER_HEADER_SEARCH_PATHS"))):
        flags.append(f"-iquote{path}")
    for define in _settings_list(settings.get("GCC_PREPROCESSOR_DEFINITIONS")) + list(extra_defines or []):
        flags.append(f"-D{define}")
    flags.extend(_settings_list(settings.get("OTHER_CFLAGS")))
    return flags

# ---------------- Framework layout ----------------

class FrameworkTree:
    """<platform>/[<Name>.embeddedframework/]<Name>.framework with a Versions/A layout."""

    def __init__(self, name: str, platform: str, embedded: bool, root: Path = Path(".")):
        self.name = name
        self.root_path = Path(root) / platform
        if embedded:
            self.root_path = self.root_path / f"{name}.embeddedframework"
        self.fwk_path = self.root_path / f"{name}.framework"
        self.versions_path = self.fwk_path / "Versions" / "A"
        self.headers_path = self.versions_path / "Headers"
        self.resources_path = self.versions_path / "Resources"
        self.module_map_path = self.fwk_path / "Modules"

    def make(self) -> "FrameworkTree":
        self.headers_path.mkdir(parents=True, exist_ok=True)
        self.resources_path.mkdir(parents=True, exist_ok=True)
        _force_symlink("A", self.versions_path.parent / "Current")
        for entry in ("Headers", self.name, "Resources"):
            _force_symlink(f"Versions/Current/{entry}", self.fwk_path / entry)
        return self

    @property
    def binary_path(self) -> Path:
        return self.versions_path / self.name

    def delete_resources(self) -> None:
        shutil.rmtree(self.resources_path)
        link = self.fwk_path / "Resources"
        if link.is_symlink():
            link.unlink()

def _force_symlink(target: str, link: Path) -> None:
    if link.is_symlink() or link.exists():
        link.unlink()
    os.symlink(target, link)

# ---------------- Builder ----------------

class Builder:
    def __init__(self, platform, static_installer, source_dir: Path, static_sandbox_root: str,
                 dynamic_sandbox_root: Optional[str], public_headers_root: Path, spec,
                 embedded: bool, mangle: bool, dynamic: bool, configuration: str,
                 bundle_identifier: Optional[str], exclude_deps: bool, cfg: Optional[Config] = None):
        self.platform = platform
        self.static_installer = static_installer
        self.source_dir = Path(source_dir)
        self.static_sandbox_root = Path(static_sandbox_root)
        self.dynamic_sandbox_root = Path(dynamic_sandbox_root) if dynamic_sandbox_root else None
        self.public_headers_root = Path(public_headers_root)
        self.spec = spec
        self.embedded = embedded
        self.mangle = mangle
        self.dynamic = dynamic
        self.configuration = configuration
        self.bundle_identifier = bundle_identifier
        self.exclude_deps = exclude_deps
        self.cfg = cfg or get_config()
        self.fwk: Optional[FrameworkTree] = None
        self.plat = self.cfg.platform(platform.name)

    # entry point ------------------------------------------------------------

    def build(self, kind: PackageKind) -> None:
        log.info(f"Building {kind.value.replace('_', ' ')} {self.spec.name} ({self.platform}) "
                 f"with configuration {self.configuration}")
        start_time = time.time()
        if kind.is_library:
            self.build_static_library()
        elif kind.is_dynamic:
            self.build_dynamic_framework()
        else:
            self.build_static_framework()
        elapsed = time.time() - start_time
        process = psutil.Process(os.getpid())
        mem = process.memory_info().rss / (1024**2)
        log.info(f"[{self.spec.name}] {self.platform.name} built in {elapsed:.1f}s | Memory: {mem:.1f} MB")

    # compilation ------------------------------------------------------------

    @property
    def build_dir(self) -> Path:
        return self.static_sandbox_root / "build" / self.platform.name

    def _archs(self, settings: Dict[str, Any]) -> List[str]:
        return _settings_list(settings.get("ARCHS")) or list(self.plat.get("archs", []))

    def _clang(self, settings: Dict[str, Any]) -> List[str]:
        sdk = settings.get("SDKROOT") or self.plat.get("sdk") or self.platform.sdk
        cmd = [self.cfg.tool("xcrun"), "-sdk", str(sdk), "clang"]
        for arch in self._archs(settings):
            cmd += ["-arch", arch]
        return cmd

    def _settings(self, target: NativeTarget) -> Dict[str, Any]:
        settings = target.build_settings(self.configuration)
        if not settings and target.build_configurations:
            log.warning(f"{target.name}: no configuration named {self.configuration}, "
                        f"using {target.build_configurations[0].name}")
            settings = dict(target.build_configurations[0].build_settings)
        return settings

    def _compile_target(self, target: NativeTarget, obj_dir: Path, extra_defines: List[str]) -> List[Path]:
        settings = self._settings(target)
        flags = compile_flags(settings, self.plat.get("min_version_flag"), self.platform.deployment_target,
                              extra_defines)
        objects = []
        obj_dir.mkdir(parents=True, exist_ok=True)
        for index, src in enumerate(target.source_files):
            src_path = Path(src)
            obj = obj_dir / f"{src_path.stem}-{index}.o"
            cmd = self._clang(settings) + flags
            if settings.get("CLANG_ENABLE_OBJC_ARC") == "YES" and src_path.suffix in (".m", ".mm"):
                cmd.append("-fobjc-arc")
            _run_command(cmd + ["-c", str(src_path), "-o", str(obj)], label=target.name)
            objects.append(obj)
        return objects

    def compile_project(self, sandbox_root: Path, build_dir: Path, extra_defines: List[str]) -> Dict[str, List[Path]]:
        """Compiles and archives each library target. Returns objects per target."""
        project = Project.load(sandbox_root / self.cfg.get("project_name", "Pods.xcodeproj"))
        build_dir.mkdir(parents=True, exist_ok=True)
        compiled: Dict[str, List[Path]] = {}
        for target in project.targets:
            if target.product_type != "static_library" or not target.source_files:
                continue
            objects = self._compile_target(target, build_dir / "objects" / target.name, extra_defines)
            archive = build_dir / f"lib{target.name}.a"
            if archive.exists():
                archive.unlink()
            _run_command([self.cfg.tool("libtool"), "-static", "-o", str(archive)] + [str(o) for o in objects],
                         label=target.name)
            compiled[target.name] = objects
        return compiled

    def _base_defines(self) -> List[str]:
        return [mangle.dummy_alias(self.spec.name)]

    def compile(self) -> List[str]:
        defines = self._base_defines()
        self.compile_project(self.static_sandbox_root, self.build_dir, defines)
        if self.mangle:
            return self.build_with_mangling(defines)
        return defines

    def build_with_mangling(self, defines: List[str]) -> List[str]:
        log.info("Mangling symbols")
        defines = defines + mangle.mangle_for_pod_dependencies(self.cfg.tool("nm"), self.spec.name, self.build_dir)
        log.info("Building mangled framework")
        self.compile_project(self.static_sandbox_root, self.build_dir, defines)
        return defines

    def static_libs_in_sandbox(self) -> List[Path]:
        if self.exclude_deps:
            log.info("Excluding dependencies")
            return sorted(self.build_dir.glob(f"lib{self.spec.name}.a"))
        return sorted(self.build_dir.glob("lib*.a"))

    def vendored_libraries(self) -> List[Path]:
        libs: List[Path] = []
        for target in self.static_installer.pod_targets:
            if self.exclude_deps and target.name != self.spec.name:
                continue
            for fa in target.file_accessors:
                libs.extend(fa.vendored_libraries)
        return libs

    def _combine(self, output: Path) -> None:
        libs = self.static_libs_in_sandbox() + self.vendored_libraries()
        if not libs:
            raise BuildError(f"No static libraries were produced for {self.spec.name}")
        output.parent.mkdir(parents=True, exist_ok=True)
        _run_command([self.cfg.tool("libtool"), "-static", "-o", str(output)] + [str(l) for l in libs],
                     label=self.spec.name)

    # outputs ----------------------------------------------------------------

    def build_static_library(self) -> Path:
        self.compile()
        output = Path(self.platform.name) / f"lib{self.spec.name}.a"
        self._combine(output)
        return output

    def build_static_framework(self) -> Path:
        self.compile()
        self.fwk = FrameworkTree(self.spec.name, self.platform.name, self.embedded).make()
        self._combine(self.fwk.binary_path)
        self.copy_headers()
        self.copy_license()
        self.copy_resources()
        return self.fwk.fwk_path

    def build_dynamic_framework(self) -> Path:
        defines = self.compile()
        if self.dynamic_sandbox_root is None:
            raise BuildError("dynamic build requested without a dynamic sandbox")
        dynamic_build_dir = self.dynamic_sandbox_root / "build" / self.platform.name
        if dynamic_build_dir.exists():
            shutil.rmtree(dynamic_build_dir)
        compiled = self.compile_project(self.dynamic_sandbox_root, dynamic_build_dir, defines)
        project = Project.load(self.dynamic_sandbox_root / self.cfg.get("project_name", "Pods.xcodeproj"))
        target = project.target(self.spec.name)
        if target is None:
            raise BuildError(f"dynamic project has no target {self.spec.name}")

        self.fwk = FrameworkTree(self.spec.name, self.platform.name, False).make()
        settings = self._settings(target)
        cmd = self._clang(settings) + ["-dynamiclib",
                                       "-install_name", f"@rpath/{self.spec.name}.framework/{self.spec.name}",
                                       "-o", str(self.fwk.binary_path)]
        if self.plat.get("min_version_flag") and self.platform.deployment_target:
            cmd.append(f"{self.plat['min_version_flag']}={self.platform.deployment_target}")
        cmd += [str(o) for o in compiled.get(self.spec.name, [])]
        cmd += [str(l) for l in self.build_dir.glob("lib*.a") if l.name != f"lib{self.spec.name}.a"]
        for framework in target.frameworks:
            cmd += ["-framework", framework]
        for library in target.libraries:
            cmd.append(f"-l{library}")
        cmd += _settings_list(settings.get("OTHER_LDFLAGS"))
        _run_command(cmd, label=self.spec.name)

        self.write_info_plist()
        self.copy_headers()
        self.copy_resources()
        return self.fwk.fwk_path

    # framework contents ----------------------------------------------------

    def write_info_plist(self) -> Path:
        info = {
            "CFBundleDevelopmentRegion": "en",
            "CFBundleExecutable": self.spec.name,
            "CFBundleIdentifier": self.bundle_identifier or f"org.cocoapods.{self.spec.name}",
            "CFBundleInfoDictionaryVersion": "6.0",
            "CFBundleName": self.spec.name,
            "CFBundlePackageType": "FMWK",
            "CFBundleShortVersionString": str(self.spec.version),
            "CFBundleVersion": "1",
            "MinimumOSVersion": str(self.platform.deployment_target or ""),
        }
        path = self.fwk.resources_path / "Info.plist"
        with open(path, "wb") as f:
            plistlib.dump(info, f)
        return path

    def copy_headers(self) -> None:
        headers_source_root = self.public_headers_root / self.spec.name
        if headers_source_root.is_dir():
            for header in sorted(headers_source_root.rglob("*.h")):
                dest = self.fwk.headers_path / header.relative_to(headers_source_root)
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(header, dest)
        module_map = self.spec.attributes_hash.get("module_map")
        if module_map:
            src = self.static_installer.sandbox.pod_dir(self.spec.name) / str(module_map)
            content = src.read_text(encoding="utf-8")
        elif (headers_source_root / f"{self.spec.name}.h").exists():
            content = (f"framework module {self.spec.name} {{\n"
                       f"  umbrella header \"{self.spec.name}.h\"\n\n"
                       "  export *\n"
                       "  module * { export * }\n"
                       "}\n")
        else:
            return
        self.fwk.module_map_path.mkdir(parents=True, exist_ok=True)
        (self.fwk.module_map_path / "module.modulemap").write_text(content, encoding="utf-8")

    def copy_license(self) -> None:
        license = self.spec.attributes_hash.get("license")
        name = license.get("file") if isinstance(license, dict) else None
        pod_dir = self.static_installer.sandbox.pod_dir(self.spec.name)
        candidates = [pod_dir / name] if name else sorted(pod_dir.glob("LICENSE*"))
        for candidate in candidates:
            if candidate.is_file():
                shutil.copy2(candidate, Path(".") / candidate.name)
                return

    def copy_resources(self) -> None:
        resources: List[Path] = []
        for target in self.static_installer.pod_targets:
            if target.name == self.spec.name:
                for fa in target.file_accessors:
                    resources.extend(fa.resources)
        if not resources and not self.dynamic:
            self.fwk.delete_resources()
            return
        for resource in resources:
            dest = self.fwk.resources_path / resource.name
            if resource.is_dir():
                shutil.copytree(resource, dest, symlinks=True, copy_function=shutil.copy2, dirs_exist_ok=True)
            else:
                shutil.copy2(resource, dest)

    def link_embedded_resources(self) -> None:
        if self.fwk is None:
            raise BuildError("no framework was built")
        target_path = self.fwk.root_path / "Resources"
        target_path.mkdir(parents=True, exist_ok=True)
        if not self.fwk.resources_path.is_dir():
            return
        for resource in sorted(self.fwk.resources_path.iterdir()):
            _force_symlink(os.path.relpath(resource, target_path), target_path / resource.name)
