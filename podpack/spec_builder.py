"""
spec_builder.py - the podspec describing a packaged binary

The descriptor is assembled in three parts: spec_metadata() once,
spec_platform() for every built platform and spec_close() at the end.
"""

from __future__ import annotations
import json
from typing import Any, Optional

from podpack.spec import Platform, Spec

METADATA_ATTRIBUTES = (
    "name", "version", "summary", "license", "authors", "homepage", "description",
    "social_media_url", "docset_url", "documentation_url", "screenshots",
    "frameworks", "weak_frameworks", "libraries", "requires_arc",
    "deployment_target", "xcconfig",
)
PLATFORM_ATTRIBUTES = ("frameworks", "weak_frameworks", "libraries", "requires_arc", "xcconfig")
DEFAULT_SOURCE = "{ :path => '.' }"


def ruby_literal(value: Any) -> str:
    """Ruby source for a JSON-like value."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "nil"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(ruby_literal(v) for v in value) + "]"
    if isinstance(value, dict):
        return "{ " + ", ".join(f"{ruby_literal(str(k))} => {ruby_literal(v)}" for k, v in value.items()) + " }"
    # JSON string escaping is valid inside Ruby double quotes, except for interpolation
    return json.dumps(str(value), ensure_ascii=False).replace("#{", "\\#{")


class SpecBuilder:
    def __init__(self, spec: Spec, source: Optional[str], embedded: bool, dynamic: bool, library: bool = False):
        self.spec = spec
        self.source = source
        self.embedded = embedded
        self.dynamic = dynamic
        self.library = library

    def framework_path(self) -> str:
        name = self.spec.name
        if self.embedded:
            return f"{name}.embeddedframework/{name}.framework"
        return f"{name}.framework"

    def spec_metadata(self) -> str:
        attrs = self.spec.attributes_hash
        out = "Pod::Spec.new do |s|\n"
        for attribute in METADATA_ATTRIBUTES:
            value = attrs.get(attribute)
            if value is None:
                continue
            out += f"  s.{attribute} = {ruby_literal(value)}\n"
        return out + f"  s.source = {self.source or DEFAULT_SOURCE}\n\n"

    def spec_platform(self, platform: Platform) -> str:
        name = platform.name
        if self.library:
            vendored = f"  s.{name}.vendored_library     = '{name}/lib{self.spec.name}.a'\n"
        else:
            vendored = f"  s.{name}.vendored_framework   = '{name}/{self.framework_path()}'\n"
        out = vendored
        if platform.deployment_target is not None:
            out = f"  s.{name}.deployment_target    = '{platform.deployment_target}'\n" + out
        platform_attrs = self.spec.attributes_hash.get(name)
        if isinstance(platform_attrs, dict):
            for attribute in PLATFORM_ATTRIBUTES:
                value = platform_attrs.get(attribute)
                if value is None:
                    continue
                out += f"  s.{name}.{attribute} = {ruby_literal(value)}\n"
        return out

    def spec_close(self) -> str:
        return "end\n"
