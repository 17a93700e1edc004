"""
test_validation - option checks that run before any filesystem access.
"""
import pytest

from podpack.dependency import ResolveError
from podpack.request import PackageKind, PackageRequest
from podpack.spec import Spec
from podpack.validation import OptionError, binary_only, validate


class FakeResolver:
    def __init__(self, specs=None):
        self.specs = {s.name: s for s in (specs or [])}

    def spec_with_name(self, name):
        if name == "Broken":
            raise ResolveError("unreachable source")
        return self.specs.get(name)


def _spec(**attrs):
    data = {"name": "Foo", "version": "1.0.0"}
    data.update(attrs)
    return Spec.from_dict(data)


class TestBinaryOnly:

    def test_plain_spec(self):
        assert binary_only(_spec(), FakeResolver()) is False

    def test_root_vendored_framework(self):
        assert binary_only(_spec(vendored_frameworks=["Blob.framework"]), FakeResolver()) is True

    def test_subspec_vendored_library(self):
        spec = _spec(subspecs=[{"name": "Core", "vendored_libraries": "libblob.a"}])
        assert binary_only(spec, FakeResolver()) is True

    def test_platform_level_vendored_framework(self):
        spec = _spec(ios={"vendored_frameworks": "Blob.framework"})
        assert binary_only(spec, FakeResolver()) is True

    def test_direct_dependency_vendored(self):
        dep = Spec.from_dict({"name": "Bar", "version": "2.0.0", "vendored_libraries": ["libbar.a"]})
        spec = _spec(dependencies={"Bar/Core": ["~> 2.0"]})
        assert binary_only(spec, FakeResolver([dep])) is True

    def test_unresolvable_dependency_ignored(self):
        spec = _spec(dependencies={"Missing": [], "Broken": []})
        assert binary_only(spec, FakeResolver()) is False


class TestValidate:

    def test_missing_spec(self):
        with pytest.raises(OptionError, match="A podspec name or path is required."):
            validate(None, PackageRequest(name="Foo"), False, FakeResolver())

    def test_mangle_with_binaries_rejected_regardless_of_kind(self):
        spec = _spec(vendored_frameworks="Blob.framework")
        for kind in PackageKind:
            with pytest.raises(OptionError, match="binary-only dependencies"):
                validate(spec, PackageRequest(name="Foo", kind=kind), True, FakeResolver())

    def test_no_mangle_with_binaries_accepted(self):
        spec = _spec(vendored_frameworks="Blob.framework")
        validate(spec, PackageRequest(name="Foo", mangle=False), True, FakeResolver())

    @pytest.mark.parametrize("kind", [PackageKind.STATIC_LIBRARY, PackageKind.STATIC_FRAMEWORK,
                                      PackageKind.EMBEDDED_FRAMEWORK])
    def test_bundle_identifier_requires_dynamic(self, kind):
        request = PackageRequest(name="Foo", kind=kind, bundle_identifier="com.example.foo")
        with pytest.raises(OptionError, match="--bundle-identifier option can only be used for dynamic"):
            validate(_spec(), request, True, FakeResolver())

    def test_bundle_identifier_with_dynamic(self):
        request = PackageRequest(name="Foo", kind=PackageKind.DYNAMIC_FRAMEWORK,
                                 bundle_identifier="com.example.foo")
        validate(_spec(), request, True, FakeResolver())

    def test_exclude_deps_with_dynamic_rejected(self):
        request = PackageRequest(name="Foo", kind=PackageKind.DYNAMIC_FRAMEWORK, exclude_deps=True)
        with pytest.raises(OptionError, match="--exclude-deps option can only be used for static libraries"):
            validate(_spec(), request, True, FakeResolver())

    def test_exclude_deps_with_static_accepted(self):
        request = PackageRequest(name="Foo", kind=PackageKind.STATIC_LIBRARY, exclude_deps=True)
        validate(_spec(), request, True, FakeResolver())

    def test_local_requires_path(self):
        with pytest.raises(OptionError, match="--local option can only be used"):
            validate(_spec(), PackageRequest(name="Foo", local=True), False, FakeResolver())
        validate(_spec(), PackageRequest(name="Foo", local=True), True, FakeResolver())

    def test_checks_run_in_order(self):
        spec = _spec(vendored_frameworks="Blob.framework")
        request = PackageRequest(name="Foo", bundle_identifier="x", local=True)
        with pytest.raises(OptionError, match="binary-only"):
            validate(spec, request, False, FakeResolver())


class TestPackageKind:

    def test_default_is_static_framework(self):
        assert PackageKind.from_flags() is PackageKind.STATIC_FRAMEWORK

    def test_flags(self):
        assert PackageKind.from_flags(embedded=True).is_embedded
        assert PackageKind.from_flags(library=True).is_library
        assert PackageKind.from_flags(dynamic=True).is_dynamic

    def test_exclusive(self):
        with pytest.raises(ValueError):
            PackageKind.from_flags(embedded=True, library=True)
