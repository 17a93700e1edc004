"""
test_installer - installing a synthesized manifest into a sandbox.
"""
import tarfile

import pytest
import yaml

from podpack.config import BuildConfig
from podpack.fetch import FetchError, _extract, fetch_pod_source
from podpack.install import NEUTRALIZED_SETTINGS, install_pod
from podpack.installer import AGGREGATE_TARGET, InstallError, dummy_class_name
from podpack.project import Project
from podpack.sandbox import build_static_sandbox
from podpack.spec import Spec

from conftest import publish_to_repo, write_pod


@pytest.fixture
def foo_with_bar(pods_root, spec_repo):
    bar = write_pod(pods_root, "Bar", "2.0.0", frameworks=["CoreGraphics"])
    publish_to_repo(spec_repo, bar)
    return write_pod(pods_root, "Foo", "1.0.0", dependencies={"Bar": ["~> 2.0"]},
                     pod_target_xcconfig={"OTHER_CFLAGS": "-DFOO_EXTRA"})


def _install(tmp_path, spec_path, resolver, cfg, local=False, dynamic=False, platform="ios"):
    build_config = BuildConfig.from_config(tmp_path / "work", cfg)
    sandbox = build_static_sandbox(build_config, dynamic)
    spec = Spec.from_file(spec_path)
    result = install_pod(platform, sandbox, spec, spec_path, None, list(resolver.sources), local,
                         build_config, resolver, cfg)
    return build_config, sandbox, result


class TestInstall:

    def test_targets_and_project(self, tmp_path, foo_with_bar, resolver, cfg):
        build_config, sandbox, result = _install(tmp_path, foo_with_bar, resolver, cfg)
        assert [t.name for t in result.pod_targets] == ["Bar", "Foo"]
        assert (sandbox.root / "Bar" / "Classes" / "Bar.m").is_file()
        assert (sandbox.root / "Foo" / "Classes" / "Foo.m").is_file()

        project = Project.load(sandbox.project_path)
        assert [t.name for t in project.targets] == ["Bar", "Foo", AGGREGATE_TARGET]
        foo = project.target("Foo")
        assert foo.dependencies == ["Bar"]
        assert any(s.endswith("Foo-dummy.m") for s in foo.source_files)
        assert project.target(AGGREGATE_TARGET).dependencies == ["Bar", "Foo"]
        for config in foo.build_configurations:
            for key, value in NEUTRALIZED_SETTINGS.items():
                assert config.build_settings[key] == value
            assert config.build_settings["OTHER_CFLAGS"] == "-DFOO_EXTRA"
            assert config.build_settings["IPHONEOS_DEPLOYMENT_TARGET"] == "12.0"

    def test_dummy_source(self, tmp_path, foo_with_bar, resolver, cfg):
        _, sandbox, _ = _install(tmp_path, foo_with_bar, resolver, cfg)
        dummy = sandbox.target_support_files_root / "Foo" / "Foo-dummy.m"
        assert f"@implementation {dummy_class_name('Foo')}" in dummy.read_text()
        assert dummy_class_name("Foo-Bar.Baz") == "PodsDummy_Foo_Bar_Baz"

    def test_headers(self, tmp_path, foo_with_bar, resolver, cfg):
        _, sandbox, _ = _install(tmp_path, foo_with_bar, resolver, cfg)
        assert (sandbox.public_headers_root / "Foo" / "Foo.h").is_file()
        assert (sandbox.private_headers_root / "Bar" / "Bar.h").is_file()

    def test_lockfile(self, tmp_path, foo_with_bar, resolver, cfg):
        build_config, _, _ = _install(tmp_path, foo_with_bar, resolver, cfg)
        lock = yaml.safe_load(build_config.lockfile_path.read_text())
        assert lock["PODS"] == ["Bar (2.0.0)", {"Foo (1.0.0)": ["Bar (~> 2.0)"]}]
        assert lock["DEPENDENCIES"] == ["Foo"]
        assert set(lock["SPEC CHECKSUMS"]) == {"Bar", "Foo"}
        assert lock["EXTERNAL SOURCES"] == {"Foo": {":podspec": str(foo_with_bar)}}

    def test_local_pod_used_in_place(self, tmp_path, foo_with_bar, resolver, cfg):
        _, sandbox, _ = _install(tmp_path, foo_with_bar, resolver, cfg, local=True)
        assert sandbox.is_local("Foo")
        assert not (sandbox.root / "Foo").exists()
        project = Project.load(sandbox.project_path)
        assert project.development_pods.find("Foo").path == str(foo_with_bar.parent)
        assert project.pods.find("Bar") is not None

    def test_dynamic_sandbox_root(self, tmp_path, foo_with_bar, resolver, cfg):
        _, sandbox, _ = _install(tmp_path, foo_with_bar, resolver, cfg, dynamic=True)
        assert sandbox.root == tmp_path / "work" / "Pods" / "Static"
        assert sandbox.project_path.is_dir()

    def test_unsupported_platform(self, tmp_path, pods_root, resolver, cfg):
        spec_path = write_pod(pods_root, "Foo", "1.0.0", platforms={"ios": "12.0"})
        with pytest.raises(InstallError, match="not compatible"):
            _install(tmp_path, spec_path, resolver, cfg, platform="osx")


class TestFetch:

    def test_relative_path_source(self, tmp_path, pods_root):
        spec_path = write_pod(pods_root, "Foo", "1.0.0")
        dest = tmp_path / "sandbox" / "Foo"
        fetch_pod_source("Foo", {"path": "."}, dest, spec_path.parent)
        assert (dest / "Classes" / "Foo.h").is_file()

    def test_missing_path(self, tmp_path):
        with pytest.raises(FetchError, match="does not exist"):
            fetch_pod_source("Foo", {"path": str(tmp_path / "nope")}, tmp_path / "dest")

    def test_unsupported_source(self, tmp_path):
        with pytest.raises(FetchError, match="unsupported source"):
            fetch_pod_source("Foo", {"svn": "https://example.com/foo"}, tmp_path / "dest")

    @pytest.mark.skipif(not hasattr(tarfile, "data_filter"), reason="tarfile extraction filters unavailable")
    def test_archive_cannot_escape_destination(self, tmp_path):
        payload = tmp_path / "payload.txt"
        payload.write_text("outside")
        archive = tmp_path / "Foo-1.0.0.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            tar.add(payload, arcname="../escaped.txt")
        dest = tmp_path / "sandbox" / "Foo"
        dest.mkdir(parents=True)
        with pytest.raises(FetchError, match="Failed to extract"):
            _extract(archive, dest)
        assert not (tmp_path / "sandbox" / "escaped.txt").exists()
