#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
cli.py - command line interface of podpack

  podpack NAME [SOURCE] [--embedded | --library | --dynamic] [options]
  podpack-repo update [SOURCES...]
  podpack-repo list
"""

import argparse
import logging
import subprocess
import sys
import traceback
from pathlib import Path

from podpack.config import TRUNK_SOURCE, get_config
from podpack.logger import get_logger, set_level
from podpack.package import Package
from podpack.request import PackageRequest
from podpack.spec import SpecError, SpecResolver, source_slug
from podpack.validation import OptionError

LOG = get_logger("podpack.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="podpack",
                                     description="Package a podspec into a static library or framework.")
    parser.add_argument("name", help="podspec name or path")
    parser.add_argument("source", nargs="?", default=None,
                        help="source written into the generated podspec (Ruby literal)")
    kind = parser.add_mutually_exclusive_group()
    kind.add_argument("--embedded", action="store_true", help="Generate embedded frameworks.")
    kind.add_argument("--library", action="store_true", help="Generate static libraries.")
    kind.add_argument("--dynamic", action="store_true", help="Generate dynamic framework.")
    parser.add_argument("--force", action="store_true", help="Overwrite existing files.")
    parser.add_argument("--mangle", action=argparse.BooleanOptionalAction, default=True,
                        help="Mangle symbols of dependent pods (default: on).")
    parser.add_argument("--local", action="store_true", help="Use local state rather than published versions.")
    parser.add_argument("--bundle-identifier", default=None, help="Bundle identifier for dynamic framework")
    parser.add_argument("--exclude-deps", action="store_true", help="Exclude symbols from dependencies.")
    parser.add_argument("--configuration", default="Release",
                        help="Build the specified configuration (e.g. Debug). Defaults to Release")
    parser.add_argument("--subspecs", default=None, help="Only include the given subspecs (comma separated)")
    parser.add_argument("--spec-sources", default=TRUNK_SOURCE,
                        help=f"The sources to pull dependent pods from (defaults to {TRUNK_SOURCE})")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="More verbosity")
    return parser


def main(argv=None, cwd: Path = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose >= 1:
        set_level(logging.DEBUG)

    cfg = get_config()
    ok, problems = cfg.validate()
    if not ok:
        for problem in problems:
            LOG.error(f"Invalid configuration: {problem}")
        return 1
    source_dir = Path(cwd) if cwd else Path.cwd()
    request = PackageRequest.from_args(args)
    resolver = SpecResolver(list(request.spec_sources), cfg)

    try:
        spec = resolver.spec_with_path(args.name, source_dir)
        spec_path = resolver.path if spec is not None else None
        if spec is None:
            spec = resolver.spec_with_name(args.name)
        package = Package(request, spec, spec_path, source_dir, cfg, resolver)
        package.validate()
    except (SpecError, OptionError) as e:
        parser.error(str(e))

    try:
        result = package.run()
    except Exception as e:
        LOG.error(f"Packaging {args.name} failed: {e}")
        if args.verbose >= 2:
            traceback.print_exc()
        return 1
    return 0 if result is not None else 1


# ---------------- spec repositories ----------------

def _sync_repo(git: str, url: str, dest: Path) -> None:
    if dest.exists():
        LOG.info(f"Updating spec repository {dest}")
        subprocess.run([git, "-C", str(dest), "pull", "--ff-only"], check=True)
    else:
        LOG.info(f"Cloning spec repository {url}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        subprocess.run([git, "clone", "--depth=1", url, str(dest)], check=True)


def repo_main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="podpack-repo", description="Manage podpack spec repositories")
    parser.add_argument("--verbose", "-v", action="count", default=0, help="More verbosity")
    sub = parser.add_subparsers(dest="cmd", required=True)
    p_update = sub.add_parser("update", help="Clone or update spec repositories")
    p_update.add_argument("sources", nargs="*", help="repository URLs (default: the configured source)")
    sub.add_parser("list", help="List local spec repositories")
    args = parser.parse_args(argv)
    if args.verbose >= 1:
        set_level(logging.DEBUG)

    cfg = get_config()
    repos_dir = cfg.repos_dir()

    if args.cmd == "list":
        if not repos_dir.is_dir():
            LOG.info(f"No spec repositories in {repos_dir}")
            return 0
        for repo in sorted(p for p in repos_dir.iterdir() if p.is_dir()):
            print(f"{repo.name}\t{repo}")
        return 0

    failed = 0
    for url in args.sources or [cfg.get("default_spec_source")]:
        if Path(url).expanduser().is_dir():
            LOG.info(f"{url} is a local directory, nothing to update")
            continue
        try:
            _sync_repo(cfg.tool("git"), url, repos_dir / source_slug(url))
        except (OSError, subprocess.CalledProcessError) as e:
            LOG.error(f"Failed to sync {url}: {e}")
            failed += 1
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
