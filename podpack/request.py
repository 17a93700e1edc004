"""
request.py - what the user asked podpack to produce
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple

from podpack.config import TRUNK_SOURCE


class PackageKind(Enum):
    STATIC_LIBRARY = "static_library"
    STATIC_FRAMEWORK = "static_framework"
    EMBEDDED_FRAMEWORK = "embedded_framework"
    DYNAMIC_FRAMEWORK = "dynamic_framework"

    @property
    def is_dynamic(self) -> bool:
        return self is PackageKind.DYNAMIC_FRAMEWORK

    @property
    def is_embedded(self) -> bool:
        return self is PackageKind.EMBEDDED_FRAMEWORK

    @property
    def is_library(self) -> bool:
        return self is PackageKind.STATIC_LIBRARY

    @property
    def is_framework(self) -> bool:
        return not self.is_library

    @classmethod
    def from_flags(cls, embedded: bool = False, library: bool = False, dynamic: bool = False) -> "PackageKind":
        chosen = [k for k, on in ((cls.EMBEDDED_FRAMEWORK, embedded),
                                  (cls.STATIC_LIBRARY, library),
                                  (cls.DYNAMIC_FRAMEWORK, dynamic)) if on]
        if len(chosen) > 1:
            raise ValueError("--embedded, --library and --dynamic are mutually exclusive")
        return chosen[0] if chosen else cls.STATIC_FRAMEWORK


def _split(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(v.strip() for v in value.split(",") if v.strip())


@dataclass(frozen=True)
class PackageRequest:
    name: str
    source: Optional[str] = None
    kind: PackageKind = PackageKind.STATIC_FRAMEWORK
    force: bool = False
    mangle: bool = True
    local: bool = False
    bundle_identifier: Optional[str] = None
    exclude_deps: bool = False
    configuration: str = "Release"
    subspecs: Tuple[str, ...] = ()
    spec_sources: Tuple[str, ...] = field(default=(TRUNK_SOURCE,))

    @property
    def dynamic(self) -> bool:
        return self.kind.is_dynamic

    @property
    def embedded(self) -> bool:
        return self.kind.is_embedded

    @property
    def library(self) -> bool:
        return self.kind.is_library

    @classmethod
    def from_args(cls, args: Any) -> "PackageRequest":
        return cls(
            name=args.name,
            source=args.source,
            kind=PackageKind.from_flags(args.embedded, args.library, args.dynamic),
            force=args.force,
            mangle=args.mangle,
            local=args.local,
            bundle_identifier=args.bundle_identifier,
            exclude_deps=args.exclude_deps,
            configuration=args.configuration,
            subspecs=_split(args.subspecs),
            spec_sources=_split(args.spec_sources) or (TRUNK_SOURCE,),
        )

    def subspec_list(self) -> Optional[List[str]]:
        return list(self.subspecs) or None
