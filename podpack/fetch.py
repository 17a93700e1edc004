#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
fetch.py - Pod source fetcher for podpack

Features:
 - path sources (copied, relative to the spec file)
 - git clone with tag/branch/commit
 - http/https archives (tar.*, zip) downloaded with requests and extracted
 - optional sha256 verification of archives
"""

import hashlib
import shutil
import subprocess
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Dict, Any, Optional

import requests

from podpack.config import Config, get_config
from podpack.logger import get_logger

log = get_logger("podpack.fetch")

class FetchError(Exception):
    """Raised when a fetch fails"""

# ---------------- Helpers ----------------

def _sha256sum(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest()

def _download_file(url: str, dest: Path, timeout: int = 60) -> None:
    log.info(f"Downloading {url} -> {dest}")
    try:
        with requests.get(url, stream=True, timeout=timeout) as r:
            r.raise_for_status()
            with open(dest, "wb") as f:
                for chunk in r.iter_content(chunk_size=65536):
                    f.write(chunk)
    except requests.RequestException as e:
        raise FetchError(f"Failed to download {url}: {e}")

def _git_clone(git: str, repo: str, dest: Path, branch: Optional[str] = None,
               tag: Optional[str] = None, commit: Optional[str] = None) -> None:
    log.info(f"Cloning {repo} -> {dest}")
    cmd = [git, "clone"]
    if commit is None:
        cmd.append("--depth=1")
        if tag or branch:
            cmd += ["--branch", tag or branch]
    cmd += [repo, str(dest)]
    try:
        subprocess.run(cmd, check=True)
        if commit:
            log.info(f"Checking out commit {commit}")
            subprocess.run([git, "checkout", commit], cwd=dest, check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        raise FetchError(f"git clone of {repo} failed: {e}")

def _detect_format(archive: Path) -> str:
    name = archive.name
    if name.endswith((".tar.gz", ".tgz", ".tar.xz", ".txz", ".tar.bz2", ".tbz2", ".tar")):
        return "tar"
    if name.endswith(".zip"):
        return "zip"
    return "unknown"

def _extract(archive: Path, dest: Path) -> None:
    fmt = _detect_format(archive)
    try:
        if fmt == "tar":
            with tarfile.open(archive, "r:*") as tar:
                # the data filter rejects members that would land outside dest
                extra = {"filter": "data"} if hasattr(tarfile, "data_filter") else {}
                tar.extractall(dest, **extra)
        elif fmt == "zip":
            with zipfile.ZipFile(archive, "r") as z:
                z.extractall(dest)
        else:
            raise FetchError(f"Unsupported archive: {archive.name}")
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
        raise FetchError(f"Failed to extract {archive}: {e}")

def _single_top_dir(dest: Path) -> None:
    """Archives that wrap everything in one directory are flattened into dest."""
    entries = list(dest.iterdir())
    if len(entries) == 1 and entries[0].is_dir():
        inner = entries[0]
        for child in inner.iterdir():
            shutil.move(str(child), str(dest / child.name))
        inner.rmdir()

# ---------------- Public API ----------------

def fetch_pod_source(name: str, source: Dict[str, Any], dest: Path,
                     spec_dir: Optional[Path] = None, cfg: Optional[Config] = None) -> Path:
    """
    Materialise a pod's source into dest. Returns dest.
    """
    cfg = cfg or get_config()
    dest = Path(dest)
    if dest.exists():
        shutil.rmtree(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)

    if "path" in source:
        src = Path(str(source["path"])).expanduser()
        if not src.is_absolute():
            src = Path(spec_dir or Path.cwd()) / src
        if not src.is_dir():
            raise FetchError(f"{name}: source path {src} does not exist")
        log.info(f"[{name}] Copying {src}")
        shutil.copytree(src, dest, symlinks=True, copy_function=shutil.copy2)

    elif "git" in source:
        _git_clone(cfg.tool("git"), str(source["git"]), dest,
                   branch=source.get("branch"), tag=source.get("tag"), commit=source.get("commit"))

    elif "http" in source:
        url = str(source["http"])
        with tempfile.TemporaryDirectory(prefix="podpack-dl-") as tmp:
            archive = Path(tmp) / (source.get("filename") or url.split("?")[0].split("/")[-1])
            _download_file(url, archive, timeout=int(cfg.get("download_timeout", 60)))
            if "sha256" in source:
                checksum = _sha256sum(archive)
                if checksum != source["sha256"]:
                    raise FetchError(f"Wrong checksum for {archive.name}: {checksum}")
                log.info(f"Checksum OK for {archive.name}")
            dest.mkdir(parents=True)
            _extract(archive, dest)
        if source.get("flatten", True):
            _single_top_dir(dest)

    else:
        raise FetchError(f"{name}: unsupported source {source}")

    log.debug(f"[{name}] source ready at {dest}")
    return dest
