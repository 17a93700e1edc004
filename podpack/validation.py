"""
validation.py - option checks that run before anything touches the filesystem
"""

from __future__ import annotations
from typing import Any, Optional

from podpack.dependency import ResolveError
from podpack.logger import get_logger
from podpack.request import PackageRequest
from podpack.spec import Spec

log = get_logger("podpack.validation")


class OptionError(Exception):
    """A rejected combination of spec and options"""


def binary_only(spec: Spec, resolver: Any) -> bool:
    """True when the spec or one of its direct dependencies vendors binaries."""
    if spec.vendored_binaries():
        return True
    seen = set()
    for dep in spec.dependencies():
        root_name = dep.root_name
        if root_name == spec.name or root_name in seen:
            continue
        seen.add(root_name)
        try:
            dep_spec = resolver.spec_with_name(root_name)
        except ResolveError as e:
            log.debug(f"binary check skipped for {root_name}: {e}")
            continue
        if dep_spec is not None and dep_spec.vendored_binaries():
            log.debug(f"{root_name} vendors {dep_spec.vendored_binaries()}")
            return True
    return False


def validate(spec: Optional[Spec], request: PackageRequest, spec_from_path: bool, resolver: Any) -> None:
    if spec is None:
        raise OptionError("A podspec name or path is required.")
    if request.mangle and binary_only(spec, resolver):
        raise OptionError("podspec has binary-only dependencies, mangling not possible.")
    if request.bundle_identifier and not request.dynamic:
        raise OptionError("--bundle-identifier option can only be used for dynamic frameworks")
    if request.exclude_deps and request.dynamic:
        raise OptionError("--exclude-deps option can only be used for static libraries")
    if request.local and not spec_from_path:
        raise OptionError("--local option can only be used when a local `.podspec` path is given.")
