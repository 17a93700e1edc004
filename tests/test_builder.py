"""
test_builder - compiler flags, framework layout and the build sequence.

Tool invocations are replaced by a recorder that creates each `-o` output,
so the sequence can be checked without a toolchain.
"""
import os
import plistlib
from pathlib import Path
from types import SimpleNamespace

import pytest

from podpack import builder as builder_mod
from podpack import mangle
from podpack.builder import Builder, BuildError, FrameworkTree, compile_flags
from podpack.project import Project
from podpack.request import PackageKind
from podpack.sandbox import Sandbox
from podpack.spec import Platform, Spec


class TestCompileFlags:

    def test_flags(self):
        settings = {
            "GCC_OPTIMIZATION_LEVEL": "0",
            "GCC_GENERATE_DEBUGGING_SYMBOLS": "NO",
            "CLANG_MODULES_AUTOLINK": "NO",
            "HEADER_SEARCH_PATHS": "$(inherited) include",
            "GCC_PREPROCESSOR_DEFINITIONS": "$(inherited) COCOAPODS=1",
            "OTHER_CFLAGS": "-fmodules",
        }
        flags = compile_flags(settings, "-miphoneos-version-min", "12.0", ["X=Y"])
        assert flags == ["-miphoneos-version-min=12.0", "-O0", "-fno-autolink", "-Iinclude",
                         "-DCOCOAPODS=1", "-DX=Y", "-fmodules"]

    def test_defaults(self):
        assert compile_flags({}, None, None) == ["-Os", "-g"]

    def test_recursive_search_paths(self, tmp_path):
        (tmp_path / "Public" / "Foo" / "Sub").mkdir(parents=True)
        flags = compile_flags({"USER_HEADER_SEARCH_PATHS": f"{tmp_path}/Public/**"}, None, None)
        assert flags[2:] == [f"-iquote{tmp_path}/Public", f"-iquote{tmp_path}/Public/Foo",
                             f"-iquote{tmp_path}/Public/Foo/Sub"]


class TestFrameworkTree:

    def test_layout(self, tmp_path):
        fwk = FrameworkTree("Foo", "ios", embedded=False, root=tmp_path).make()
        assert fwk.fwk_path == tmp_path / "ios" / "Foo.framework"
        assert os.readlink(fwk.fwk_path / "Versions" / "Current") == "A"
        assert os.readlink(fwk.fwk_path / "Headers") == "Versions/Current/Headers"
        assert os.readlink(fwk.fwk_path / "Foo") == "Versions/Current/Foo"
        assert fwk.binary_path == fwk.fwk_path / "Versions" / "A" / "Foo"
        fwk.make()

    def test_embedded(self, tmp_path):
        fwk = FrameworkTree("Foo", "osx", embedded=True, root=tmp_path).make()
        assert fwk.fwk_path == tmp_path / "osx" / "Foo.embeddedframework" / "Foo.framework"
        fwk.delete_resources()
        assert not (fwk.fwk_path / "Resources").exists()
        assert not (fwk.fwk_path / "Resources").is_symlink()


@pytest.fixture
def commands(monkeypatch):
    recorded = []

    def fake_run(cmd, cwd=None, label="build"):
        recorded.append(list(cmd))
        if "-o" in cmd:
            out = Path(cmd[cmd.index("-o") + 1])
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_bytes(b"")

    monkeypatch.setattr(builder_mod, "_run_command", fake_run)
    return recorded


def _save_project(root, frameworks=(), libraries=(), ldflags=None):
    project = Project(root / "Pods.xcodeproj")
    project.add_build_configuration("Release", "release")
    for name in ("Bar", "Foo"):
        target = project.new_target(name)
        target.source_files = [str((root / name / f"{name}.m").resolve())]
        settings = target.build_configuration("Release").build_settings
        settings.update({"ARCHS": "arm64", "SDKROOT": "iphoneos", "CLANG_ENABLE_OBJC_ARC": "YES",
                         "GCC_PREPROCESSOR_DEFINITIONS": "$(inherited) COCOAPODS=1"})
        if ldflags:
            settings["OTHER_LDFLAGS"] = ldflags
    foo = project.target("Foo")
    foo.frameworks = list(frameworks)
    foo.libraries = list(libraries)
    project.save()


def _installer(sandbox_root, resources=()):
    accessor = SimpleNamespace(resources=[Path(r) for r in resources], vendored_libraries=[])
    return SimpleNamespace(
        sandbox=Sandbox(Path(sandbox_root)),
        pod_targets=[SimpleNamespace(name="Foo", file_accessors=[accessor]),
                     SimpleNamespace(name="Bar", file_accessors=[])],
    )


def _builder(cfg, installer, static_root="Pods", dynamic_root=None, **kwargs):
    spec = Spec.from_dict({"name": "Foo", "version": "1.2.0", "license": {"type": "MIT"}})
    options = dict(embedded=False, mangle=False, dynamic=False, configuration="Release",
                   bundle_identifier=None, exclude_deps=False)
    options.update(kwargs)
    return Builder(Platform("ios", "12.0"), installer, Path.cwd(), static_root, dynamic_root,
                   Path(static_root) / "Headers" / "Public", spec, cfg=cfg, **options)


class TestBuild:

    def test_static_library(self, cfg, caller_dir, commands):
        _save_project(Path("Pods"))
        _builder(cfg, _installer("Pods")).build(PackageKind.STATIC_LIBRARY)

        clang = [c for c in commands if c[0] == "xcrun"]
        assert [c[c.index("-c") + 1].rsplit("/", 1)[-1] for c in clang] == ["Bar.m", "Foo.m"]
        assert clang[0][:6] == ["xcrun", "-sdk", "iphoneos", "clang", "-arch", "arm64"]
        assert "-miphoneos-version-min=12.0" in clang[0]
        assert "-DPodsDummy_Foo=PodsDummy_PodPackage_Foo" in clang[0]
        assert "-DCOCOAPODS=1" in clang[0]
        assert "-fobjc-arc" in clang[0]
        assert commands[-1] == ["libtool", "-static", "-o", "ios/libFoo.a",
                                "Pods/build/ios/libBar.a", "Pods/build/ios/libFoo.a"]
        assert Path("ios/libFoo.a").exists()

    def test_exclude_deps(self, cfg, caller_dir, commands):
        _save_project(Path("Pods"))
        _builder(cfg, _installer("Pods"), exclude_deps=True).build(PackageKind.STATIC_LIBRARY)
        assert commands[-1][4:] == ["Pods/build/ios/libFoo.a"]

    def test_mangling_rebuilds_with_prefixed_symbols(self, cfg, caller_dir, commands, monkeypatch):
        _save_project(Path("Pods"))
        monkeypatch.setattr(mangle, "symbols_from_library", lambda nm, lib: ["BarView"])
        _builder(cfg, _installer("Pods"), mangle=True).build(PackageKind.STATIC_LIBRARY)
        clang = [c for c in commands if c[0] == "xcrun"]
        assert len(clang) == 4
        assert "-DBarView=Foo_BarView" not in clang[0]
        assert "-DBarView=Foo_BarView" in clang[2]
        assert "-DPodsDummy_Bar=Foo_PodsDummy_Bar" in clang[3]

    def test_static_framework(self, cfg, caller_dir, commands):
        _save_project(Path("Pods"))
        headers = Path("Pods/Headers/Public/Foo")
        headers.mkdir(parents=True)
        (headers / "Foo.h").write_text("// umbrella")
        Path("Pods/Foo").mkdir(parents=True)
        Path("Pods/Foo/LICENSE").write_text("MIT")

        b = _builder(cfg, _installer("Pods"))
        b.build(PackageKind.STATIC_FRAMEWORK)
        fwk = Path("ios/Foo.framework")
        assert commands[-1][3] == "ios/Foo.framework/Versions/A/Foo"
        assert (fwk / "Versions/A/Headers/Foo.h").read_text() == "// umbrella"
        assert "umbrella header \"Foo.h\"" in (fwk / "Modules/module.modulemap").read_text()
        assert Path("LICENSE").read_text() == "MIT"
        assert not (fwk / "Versions/A/Resources").exists()

    def test_embedded_resources_linked(self, cfg, caller_dir, commands):
        _save_project(Path("Pods"))
        Path("assets").mkdir()
        Path("assets/icon.png").write_bytes(b"png")
        b = _builder(cfg, _installer("Pods", resources=["assets/icon.png"]), embedded=True)
        b.build(PackageKind.EMBEDDED_FRAMEWORK)
        b.link_embedded_resources()
        link = Path("ios/Foo.embeddedframework/Resources/icon.png")
        assert link.is_symlink()
        assert link.read_bytes() == b"png"

    def test_dynamic_framework(self, cfg, caller_dir, commands):
        _save_project(Path("Pods/Static"))
        _save_project(Path("Pods/Dynamic"), frameworks=["UIKit"], libraries=["z"],
                      ldflags="$(inherited) -ObjC")
        b = _builder(cfg, _installer("Pods/Static"), static_root="Pods/Static", dynamic_root="Pods/Dynamic",
                     dynamic=True, bundle_identifier="com.example.Foo")
        b.build(PackageKind.DYNAMIC_FRAMEWORK)

        link = commands[-1]
        assert "-dynamiclib" in link
        assert link[link.index("-install_name") + 1] == "@rpath/Foo.framework/Foo"
        assert "Pods/Static/build/ios/libBar.a" in link
        assert "Pods/Static/build/ios/libFoo.a" not in link
        assert link[-4:] == ["-framework", "UIKit", "-lz", "-ObjC"]
        with open("ios/Foo.framework/Versions/A/Resources/Info.plist", "rb") as f:
            info = plistlib.load(f)
        assert info["CFBundleIdentifier"] == "com.example.Foo"
        assert info["CFBundleShortVersionString"] == "1.2.0"
        assert info["MinimumOSVersion"] == "12.0"

    def test_dynamic_without_sandbox(self, cfg, caller_dir, commands):
        _save_project(Path("Pods"))
        with pytest.raises(BuildError):
            _builder(cfg, _installer("Pods"), dynamic=True).build(PackageKind.DYNAMIC_FRAMEWORK)

    def test_link_before_build(self, cfg, caller_dir):
        with pytest.raises(BuildError, match="no framework"):
            _builder(cfg, _installer("Pods")).link_embedded_resources()
