"""
workdir.py - output location, temporary working directory and publishing

The whole build happens inside a fresh directory under the system temp root;
moving it to <caller-cwd>/<name>-<version> is the only publish step.
"""

from __future__ import annotations
import os
import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from podpack.logger import get_logger

log = get_logger("podpack.workdir")


def target_path(spec, cwd: Path) -> Path:
    return Path(cwd) / f"{spec.name}-{spec.version}"


def prepare_output_location(spec, force: bool, cwd: Path) -> Optional[Path]:
    target_dir = target_path(spec, cwd)
    if target_dir.exists():
        if not force:
            log.warning(f"Target directory '{target_dir}' already exists.")
            return None
        log.info(f"Removing existing target directory {target_dir}")
        if target_dir.is_dir() and not target_dir.is_symlink():
            shutil.rmtree(target_dir)
        else:
            target_dir.unlink()
    return target_dir


def allocate_work_dir(prefix: str = "podpack-") -> Path:
    work_dir = Path(tempfile.mkdtemp(prefix=prefix))
    log.debug(f"Working directory {work_dir}")
    return work_dir


def restore_caller_directory(original_dir: Path) -> None:
    os.chdir(original_dir)


def current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


@contextmanager
def working_directory(path: Path) -> Iterator[Path]:
    """chdir into path; always come back to the directory we were in."""
    original = Path.cwd()
    os.chdir(path)
    try:
        yield Path(path)
    finally:
        restore_caller_directory(original)


def publish(work_dir: Path, target_dir: Path) -> Path:
    log.info(f"Publishing {target_dir}")
    # mkdtemp creates 0700; the published directory follows the umask like a plain mkdir
    os.chmod(work_dir, 0o777 & ~current_umask())
    return Path(shutil.move(str(work_dir), str(target_dir)))


def discard(work_dir: Path, keep: bool = False) -> None:
    if keep:
        log.info(f"Keeping failed working directory {work_dir}")
        return
    if work_dir.exists():
        shutil.rmtree(work_dir)
