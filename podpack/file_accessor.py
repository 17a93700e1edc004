"""
file_accessor.py - resolves a spec's file patterns against a pod directory

PathList reads the directory lazily, so an accessor can be created for a
pod directory that is only populated later.
"""

from __future__ import annotations
import re
from pathlib import Path
from typing import List, Optional

from podpack.spec import SpecConsumer

HEADER_EXTENSIONS = {".h", ".hh", ".hpp", ".ipp", ".tpp", ".hxx", ".def", ".inl", ".inc"}
SOURCE_EXTENSIONS = {".c", ".cc", ".cpp", ".cxx", ".c++", ".m", ".mm", ".s", ".S", ".swift"}

_BRACES = re.compile(r"\{([^{}]*)\}")


def expand_braces(pattern: str) -> List[str]:
    """'a/*.{h,m}' -> ['a/*.h', 'a/*.m']"""
    m = _BRACES.search(pattern)
    if not m:
        return [pattern]
    out = []
    for alt in m.group(1).split(","):
        out.extend(expand_braces(pattern[:m.start()] + alt + pattern[m.end():]))
    return out


def _to_regex(pattern: str) -> re.Pattern:
    # '**/' may match zero directories
    parts = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            parts.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            parts.append(".*")
            i += 2
        elif pattern[i] == "*":
            parts.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            parts.append("[^/]")
            i += 1
        else:
            parts.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(parts) + "$")


class PathList:
    def __init__(self, root: Path):
        self.root = Path(root)
        self._files: Optional[List[str]] = None
        self._dirs: Optional[List[str]] = None

    def _read(self) -> None:
        files, dirs = [], []
        if self.root.is_dir():
            for p in sorted(self.root.rglob("*")):
                rel = p.relative_to(self.root).as_posix()
                (dirs if p.is_dir() and not p.is_symlink() else files).append(rel)
        self._files, self._dirs = files, dirs

    @property
    def files(self) -> List[str]:
        if self._files is None:
            self._read()
        return self._files

    @property
    def dirs(self) -> List[str]:
        if self._dirs is None:
            self._read()
        return self._dirs

    def glob(self, patterns: List[str], include_dirs: bool = False) -> List[Path]:
        matched: List[str] = []
        for pattern in patterns:
            for alt in expand_braces(pattern):
                regex = _to_regex(alt.strip("/"))
                candidates = self.files + (self.dirs if include_dirs else [])
                for rel in candidates:
                    if regex.match(rel) and rel not in matched:
                        matched.append(rel)
                if not include_dirs:
                    # a pattern naming a directory selects everything below it
                    for d in self.dirs:
                        if regex.match(d):
                            for rel in self.files:
                                if rel.startswith(d + "/") and rel not in matched:
                                    matched.append(rel)
        return [self.root / rel for rel in matched]


class FileAccessor:
    def __init__(self, path_list: PathList, spec_consumer: SpecConsumer):
        self.path_list = path_list
        self.spec_consumer = spec_consumer

    @property
    def spec(self):
        return self.spec_consumer.spec

    @property
    def root(self) -> Path:
        return self.path_list.root

    def _glob(self, patterns: List[str], include_dirs: bool = False) -> List[Path]:
        return self.path_list.glob(patterns, include_dirs=include_dirs)

    @property
    def source_files(self) -> List[Path]:
        return [p for p in self._glob(self.spec_consumer.source_files)
                if p.suffix in SOURCE_EXTENSIONS or p.suffix in HEADER_EXTENSIONS]

    @property
    def non_header_sources(self) -> List[Path]:
        return [p for p in self.source_files if p.suffix in SOURCE_EXTENSIONS]

    @property
    def headers(self) -> List[Path]:
        return [p for p in self.source_files if p.suffix in HEADER_EXTENSIONS]

    @property
    def public_headers(self) -> List[Path]:
        patterns = self.spec_consumer.public_header_files
        if not patterns:
            return self.headers
        public = {p for p in self._glob(patterns) if p.suffix in HEADER_EXTENSIONS}
        return [p for p in self.headers if p in public]

    @property
    def resources(self) -> List[Path]:
        return self._glob(self.spec_consumer.resources, include_dirs=True)

    @property
    def vendored_frameworks(self) -> List[Path]:
        return self._glob(self.spec_consumer.vendored_frameworks, include_dirs=True)

    @property
    def vendored_libraries(self) -> List[Path]:
        return self._glob(self.spec_consumer.vendored_libraries)

    def __repr__(self) -> str:
        return f"<FileAccessor {self.spec.name} @ {self.root}>"
