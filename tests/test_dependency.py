"""
test_dependency - requirement matching and pod graph resolution.
"""
import pytest

from podpack.dependency import (DependencyGraph, ResolveError, parse_requirement,
                                resolve_pods, satisfies, satisfies_all, split_requirements)
from podpack.spec import Spec


class DictResolver:
    """find() over in-memory specs, newest first."""

    def __init__(self, *specs):
        self.specs = {}
        for s in specs:
            self.specs.setdefault(s.name, []).append(s)
        for versions in self.specs.values():
            versions.sort(key=lambda s: [int(p) for p in s.version.split(".")], reverse=True)

    def find(self, name, requirements=()):
        for spec in self.specs.get(name, []):
            if satisfies_all(spec.version, requirements):
                return spec
        raise ResolveError(f"Unable to find a specification for `{name}`")


def _spec(name, version, **attrs):
    data = {"name": name, "version": version}
    data.update(attrs)
    return Spec.from_dict(data)


class TestRequirements:

    def test_parse(self):
        assert parse_requirement("~> 1.2") == ("~>", "1.2")
        assert parse_requirement("= 1.0") == ("==", "1.0")
        assert parse_requirement("1.0") == ("==", "1.0")
        assert parse_requirement(">=2") == (">=", "2")

    def test_split(self):
        assert split_requirements(None) == []
        assert split_requirements(">= 1.0, < 2.0") == [">= 1.0", "< 2.0"]
        assert split_requirements(["~> 1.2", "!= 1.2.5"]) == ["~> 1.2", "!= 1.2.5"]

    @pytest.mark.parametrize("version,requirement,expected", [
        ("1.2.0", "~> 1.2", True),
        ("1.9.3", "~> 1.2", True),
        ("2.0.0", "~> 1.2", False),
        ("1.2.9", "~> 1.2.3", True),
        ("1.3.0", "~> 1.2.3", False),
        ("3.0", "~> 3", True),
        ("4.0", "~> 3", False),
        ("1.0.0", "= 1.0.0", True),
        ("1.0.1", "< 1.0.1", False),
        ("1.0.1", "!= 1.0.0", True),
    ])
    def test_satisfies(self, version, requirement, expected):
        assert satisfies(version, requirement) is expected


class TestGraph:

    def test_install_order_dependencies_first(self):
        g = DependencyGraph()
        g.add_edge("Foo", "Bar")
        g.add_edge("Bar", "Baz")
        assert g.install_order("Foo") == ["Baz", "Bar", "Foo"]

    def test_cycle(self):
        g = DependencyGraph()
        g.add_edge("A", "B")
        g.add_edge("B", "A")
        with pytest.raises(ResolveError, match="cycle"):
            g.install_order("A")


class TestResolvePods:

    def test_transitive_resolution(self):
        foo = _spec("Foo", "1.0.0", dependencies={"Bar": ["~> 2.0"]})
        resolver = DictResolver(_spec("Bar", "2.1.0", dependencies={"Baz": []}),
                                _spec("Bar", "3.0.0"),
                                _spec("Baz", "0.1.0"))
        resolution = resolve_pods(foo, resolver)
        assert resolution.order == ["Baz", "Bar", "Foo"]
        assert resolution.pods["Bar"].spec.version == "2.1.0"
        assert resolution.pods["Foo"].external is True

    def test_shared_dependency_narrowed(self):
        foo = _spec("Foo", "1.0.0", dependencies={"Bar": [], "Qux": []})
        resolver = DictResolver(_spec("Bar", "1.0.0", dependencies={"Baz": ["< 2.0"]}),
                                _spec("Qux", "1.0.0", dependencies={"Baz": []}),
                                _spec("Baz", "1.5.0"), _spec("Baz", "2.0.0"))
        resolution = resolve_pods(foo, resolver)
        assert resolution.pods["Baz"].spec.version == "1.5.0"

    def test_missing_dependency(self):
        foo = _spec("Foo", "1.0.0", dependencies={"Nope": []})
        with pytest.raises(ResolveError, match="Nope"):
            resolve_pods(foo, DictResolver())

    def test_subspec_selection(self):
        foo = _spec("Foo", "1.0.0", subspecs=[
            {"name": "Core"},
            {"name": "UI", "dependencies": {"Foo/Core": [], "Bar": []}},
        ])
        resolver = DictResolver(_spec("Bar", "1.0.0"))
        resolution = resolve_pods(foo, resolver, subspecs=["Core"])
        assert "Bar" not in resolution.pods
        names = [s.name for s in resolution.pods["Foo"].active_specs()]
        assert names == ["Foo", "Foo/Core"]

        resolution = resolve_pods(foo, resolver, subspecs=["UI"])
        assert [s.name for s in resolution.pods["Foo"].active_specs()] == ["Foo", "Foo/Core", "Foo/UI"]
        assert "Bar" in resolution.pods

    def test_root_requirement_unmet(self):
        foo = _spec("Foo", "1.0.0")
        with pytest.raises(ResolveError, match="does not satisfy"):
            resolve_pods(foo, DictResolver(), root_requirements=["= 2.0.0"])
