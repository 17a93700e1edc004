"""
Shared pytest fixtures for podpack tests.

Specs are written to temporary directories with `path` sources, so the
installer never needs network access. The native build is replaced by
RecordingBuilder, which writes placeholder products and records what the
pipeline handed to it.
"""
import json
import os
import tempfile
from pathlib import Path

# log files go to a throwaway directory; must be set before podpack imports
os.environ.setdefault("PODPACK_LOG_DIR", tempfile.mkdtemp(prefix="podpack-test-logs-"))
# scheme directories are named after the user
os.environ.setdefault("USER", "podpack")

import pytest

from podpack.builder import BuildError
from podpack.config import Config
from podpack.project import Project
from podpack.request import PackageKind, PackageRequest
from podpack.spec import SpecResolver


def write_pod(root: Path, name: str, version: str, files=None, **attributes) -> Path:
    """Creates <root>/<name> with sources and a <name>.podspec.json; returns the spec path."""
    pod_dir = root / name
    for rel, content in (files or {
        f"Classes/{name}.h": f"@interface {name} : NSObject\n@end\n",
        f"Classes/{name}.m": f"#import \"{name}.h\"\n@implementation {name}\n@end\n",
    }).items():
        path = pod_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    data = {
        "name": name,
        "version": version,
        "summary": f"{name} summary",
        "license": {"type": "MIT"},
        "authors": {"Jane": "jane@example.com"},
        "homepage": f"https://example.com/{name}",
        "source": {"path": "."},
        "source_files": "Classes/**/*.{h,m}",
    }
    data.update(attributes)
    spec_path = pod_dir / f"{name}.podspec.json"
    spec_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return spec_path


def publish_to_repo(repo: Path, spec_path: Path) -> Path:
    """Adds a spec to a repository, pointing its source at the pod directory."""
    data = json.loads(spec_path.read_text(encoding="utf-8"))
    data["source"] = {"path": str(spec_path.parent)}
    dest = repo / "Specs" / data["name"] / str(data["version"]) / f"{data['name']}.podspec.json"
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return dest


@pytest.fixture
def pods_root(tmp_path):
    root = tmp_path / "pods"
    root.mkdir()
    return root


@pytest.fixture
def spec_repo(tmp_path):
    repo = tmp_path / "repo"
    (repo / "Specs").mkdir(parents=True)
    return repo


@pytest.fixture
def cfg(tmp_path):
    return Config.from_dict({
        "repos_dir": str(tmp_path / "repos"),
    })


@pytest.fixture
def resolver(spec_repo, cfg):
    return SpecResolver([str(spec_repo)], cfg)


@pytest.fixture
def caller_dir(tmp_path, monkeypatch):
    """The directory the command is run from; the process cwd for the test."""
    d = tmp_path / "caller"
    d.mkdir()
    monkeypatch.chdir(d)
    return d


@pytest.fixture
def make_request(spec_repo):
    def _make(name, **kwargs):
        kwargs.setdefault("spec_sources", (str(spec_repo),))
        return PackageRequest(name=str(name), **kwargs)
    return _make


class RecordingBuilder:
    """Stands in for the native build: records its inputs, writes placeholder products."""

    calls = []
    fail_on = None

    def __init__(self, platform, static_installer, source_dir, static_sandbox_root, dynamic_sandbox_root,
                 public_headers_root, spec, embedded, mangle, dynamic, configuration,
                 bundle_identifier, exclude_deps, cfg=None):
        self.platform = platform
        self.static_installer = static_installer
        self.source_dir = source_dir
        self.static_sandbox_root = static_sandbox_root
        self.dynamic_sandbox_root = dynamic_sandbox_root
        self.public_headers_root = public_headers_root
        self.spec = spec
        self.embedded = embedded
        self.mangle = mangle
        self.dynamic = dynamic
        self.configuration = configuration
        self.bundle_identifier = bundle_identifier
        self.exclude_deps = exclude_deps
        self.cfg = cfg
        self.record = {}

    def build(self, kind: PackageKind):
        self.record = {
            "platform": self.platform.name,
            "kind": kind,
            "cwd": Path.cwd(),
            "static_sandbox_root": self.static_sandbox_root,
            "dynamic_sandbox_root": self.dynamic_sandbox_root,
            "public_headers_root": Path(self.public_headers_root),
            "static_project": Project.load(Path(self.static_sandbox_root) / "Pods.xcodeproj"),
            "lockfile_present": Path("Podfile.lock").exists(),
            "embedded_linked": False,
        }
        if self.dynamic_sandbox_root:
            self.record["dynamic_project"] = Project.load(Path(self.dynamic_sandbox_root) / "Pods.xcodeproj")
            self.record["dynamic_sandbox_files"] = sorted(
                p.relative_to(self.dynamic_sandbox_root).as_posix()
                for p in Path(self.dynamic_sandbox_root).rglob("*") if p.is_file())
        self.calls.append(self.record)
        if self.fail_on == self.platform.name:
            raise BuildError(f"simulated failure on {self.platform.name}")
        out = Path(self.platform.name)
        if kind.is_library:
            out.mkdir(parents=True, exist_ok=True)
            (out / f"lib{self.spec.name}.a").write_bytes(b"!<arch>\n")
        else:
            fwk = out / (f"{self.spec.name}.embeddedframework" if self.embedded else "") / f"{self.spec.name}.framework"
            fwk.mkdir(parents=True, exist_ok=True)
            (fwk / self.spec.name).write_bytes(b"\xca\xfe")

    def link_embedded_resources(self):
        self.record["embedded_linked"] = True


@pytest.fixture
def recording_builder():
    class Builder(RecordingBuilder):
        calls = []
        fail_on = None
    return Builder
