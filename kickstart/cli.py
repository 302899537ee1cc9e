"""
cli.py

Responsibility: CLI entrypoint for kickstart.

Commands:
- `init`: run the bootstrap pipeline on a freshly cloned template
- `env render|show|check`: work with the environment descriptor

This module should orchestrate behavior but keep concerns isolated:
- Configuration: `config.py`
- Bootstrap steps: `steps.py` (git via `git.py`)
- Descriptor: `environment.py`, `renderer.py`
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from kickstart import __version__
from kickstart.config import ConfigError, load_config
from kickstart.environment import (
    DescriptorError,
    DirectoryStore,
    NixStore,
    PackageStore,
    activate,
    exported_names,
    format_exports,
    missing_tools,
)
from kickstart.git import GitError, Repository, deterministic_env
from kickstart.renderer import RenderError, write_descriptor
from kickstart.steps import BootstrapError, bootstrap

logger = logging.getLogger(__name__)


HANDLED_ERRORS = (BootstrapError, ConfigError, DescriptorError, GitError, RenderError)


def _configure_logging(args: argparse.Namespace) -> None:
    if args.verbose:
        level = logging.DEBUG
        format_str = "%(levelname)s [%(name)s] %(message)s"
    elif args.quiet:
        level = logging.ERROR
        format_str = "%(levelname)s: %(message)s"
    else:
        level = logging.WARNING
        format_str = "%(levelname)s: %(message)s"
    logging.basicConfig(level=level, format=format_str, force=True)


def init_cmd(args: argparse.Namespace) -> int:
    env = deterministic_env(os.environ.copy()) if args.deterministic_git else None
    repo = Repository.open(args.repo, env=env)
    config = load_config(repo.root, args.config)

    result = bootstrap(repo, config, name=args.name, dry_run=args.dry_run, force=args.force)

    for outcome in result.outcomes:
        line = f"{outcome.status:<8} {outcome.name}"
        if outcome.detail:
            line += f"  ({outcome.detail})"
        print(line)
    if not args.dry_run:
        print(f"{result.project_name} is ready on branch {config.git.branch}")
    return 0


def _store(args: argparse.Namespace, nixpkgs: str) -> PackageStore:
    if args.store:
        return DirectoryStore(args.store)
    return NixStore(nixpkgs)


def env_render_cmd(args: argparse.Namespace) -> int:
    config = load_config(args.repo, args.config)
    result = write_descriptor(config.environment, args.repo, overwrite=bool(args.overwrite))
    for name in result.written:
        print(f"wrote    {name}")
    for name in result.skipped:
        print(f"kept     {name}  (exists; use --overwrite to replace)")
    return 0


def env_show_cmd(args: argparse.Namespace) -> int:
    config = load_config(args.repo, args.config)
    descriptor = config.environment
    env = activate(descriptor, _store(args, descriptor.nixpkgs), system=args.system)
    sys.stdout.write(format_exports(env, exported_names(descriptor)))
    return 0


def env_check_cmd(args: argparse.Namespace) -> int:
    config = load_config(args.repo, args.config)
    descriptor = config.environment
    env = activate(descriptor, _store(args, descriptor.nixpkgs), system=args.system)
    missing = missing_tools(env, descriptor.tools)
    if missing:
        print(f"Missing tools: {', '.join(missing)}", file=sys.stderr)
        return 1
    if not env.get(descriptor.library_path_var):
        logger.warning("%s is empty: no package ships a lib directory", descriptor.library_path_var)
    print(f"All {len(descriptor.tools)} tools resolve")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="kickstart", description="Turn a cloned project template into a standalone project")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    p.add_argument("--quiet", "-q", action="store_true", help="Only report errors")
    sub = p.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--repo", default=".", help="Project directory (default: current directory)")
    common.add_argument("--config", default=None, help="Config file (default: <repo>/kickstart.yaml when present)")

    i = sub.add_parser("init", parents=[common], help="Detach the template, rename the project, squash history")
    i.add_argument("--name", default=None, help="Project name (default: project directory name)")
    i.add_argument("--dry-run", action="store_true", help="List the steps that would run")
    i.add_argument("--force", action="store_true", help="Ignore the completion marker and re-check every step")
    i.add_argument(
        "--deterministic-git",
        action="store_true",
        help="Use fixed git author/committer identity and timestamps when unset",
    )
    i.set_defaults(func=init_cmd)

    e = sub.add_parser("env", help="Environment descriptor commands")
    env_sub = e.add_subparsers(dest="env_command", required=True)

    store = argparse.ArgumentParser(add_help=False, parents=[common])
    store.add_argument("--store", default=None, help="Directory of package prefixes (default: resolve with nix)")
    store.add_argument("--system", default=None, help="Platform identifier, e.g. x86_64-linux (default: this machine)")

    r = env_sub.add_parser("render", parents=[common], help="Write flake.nix and .envrc")
    r.add_argument("--overwrite", action="store_true", help="Replace existing files")
    r.set_defaults(func=env_render_cmd)

    s = env_sub.add_parser("show", parents=[store], help="Print the activated environment as export lines")
    s.set_defaults(func=env_show_cmd)

    c = env_sub.add_parser("check", parents=[store], help="Verify every declared tool resolves on PATH")
    c.set_defaults(func=env_check_cmd)

    return p


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args)
    try:
        return int(args.func(args))
    except HANDLED_ERRORS as e:
        logger.debug("%s failed", args.command, exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
