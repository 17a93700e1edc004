"""
mangle.py - symbol renaming for dependency code

Dependencies compiled into a packaged binary are rebuilt with preprocessor
definitions that prefix their exported symbols with the packaged pod's
name, so two packaged binaries sharing a dependency can be linked into one
application.
"""

from __future__ import annotations
import re
import subprocess
from pathlib import Path
from typing import List, Iterable

from podpack.logger import get_logger

log = get_logger("podpack.mangle")

_IGNORED = {"llvm.cmdline", "llvm.embedded.module",
            "__clang_at_available_requires_core_foundation_framework"}
_ANSI = re.compile(r"\x1b\[[0-9;]*m")


def _unique(items: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(items))


def classes_from_symbols(lines: List[str]) -> List[str]:
    found = [re.sub(r"^.*\$_", "", l) for l in lines if "OBJC_CLASS_$_" in l]
    return _unique(found)


def constants_from_symbols(lines: List[str]) -> List[str]:
    data = [l for l in lines if " S " in l and not re.search(r"OBJC|\.eh", l)]
    text = [l for l in lines if " T " in l]
    return _unique(re.sub(r"^.* _", "", l) for l in data + text)


def symbols_from_nm_output(output: str) -> List[str]:
    """
    Symbols worth renaming from `nm -gU` output: Objective-C classes plus
    data and text constants. Dummy classes and ANSI-coloured noise are
    skipped.
    """
    lines = [_ANSI.sub("", l) for l in output.splitlines() if l.strip()]
    lines = [l for l in lines if not l.endswith(":")]
    symbols = classes_from_symbols(lines) + constants_from_symbols(lines)
    return [s for s in _unique(symbols)
            if s and s not in _IGNORED and not s.startswith("PodsDummy") and " " not in s]


def symbols_from_library(nm: str, library: Path) -> List[str]:
    proc = subprocess.run([nm, "-gU", str(library)], stdout=subprocess.PIPE,
                          stderr=subprocess.PIPE, text=True, check=True)
    return symbols_from_nm_output(proc.stdout)


def dependency_archives(build_dir: Path, pod_name: str) -> List[Path]:
    return sorted(p for p in Path(build_dir).glob("lib*.a") if p.name != f"lib{pod_name}.a")


def dummy_alias(pod_name: str) -> str:
    return f"PodsDummy_{pod_name}=PodsDummy_PodPackage_{pod_name}"


def mangle_defines(pod_name: str, symbols: Iterable[str]) -> List[str]:
    return [f"{s}={pod_name}_{s}" for s in _unique(symbols)]


def mangle_for_pod_dependencies(nm: str, pod_name: str, build_dir: Path) -> List[str]:
    archives = dependency_archives(build_dir, pod_name)
    dummies = [f"PodsDummy_{a.stem[3:]}={pod_name}_PodsDummy_{a.stem[3:]}" for a in archives]
    symbols: List[str] = []
    for archive in archives:
        symbols.extend(symbols_from_library(nm, archive))
    defines = mangle_defines(pod_name, symbols)
    log.info(f"Mangling {len(defines)} symbols from {len(archives)} dependencies")
    return dummies + defines
