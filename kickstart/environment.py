"""
environment.py

Responsibility: the development-environment descriptor and its activation.

The descriptor is the declarative part of the template: a package set plus the
variables a shell gets when it activates the environment. Nix evaluates the
rendered `flake.nix` (see `renderer.py`); this module computes the same
environment in Python against a `PackageStore`, so it can be printed as shell
exports or checked for missing tools.
"""

from __future__ import annotations

import logging
import os
import platform
import re
import shlex
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

logger = logging.getLogger(__name__)

DEFAULT_PACKAGES: tuple[str, ...] = (
    "pkg-config",
    "gcc",
    "cargo",
    "rustc",
    "rustfmt",
    "rustPackages.clippy",
    "rust-analyzer",
)

DEFAULT_TOOLS: tuple[str, ...] = (
    "pkg-config",
    "gcc",
    "cargo",
    "rustc",
    "rustfmt",
    "cargo-clippy",
    "rust-analyzer",
)

DEFAULT_VARIABLES: dict[str, str] = {"RUST_SRC_PATH": "rustPlatform.rustLibSrc"}

# Systems covered by flake-utils' eachDefaultSystem.
SUPPORTED_SYSTEMS: tuple[str, ...] = (
    "x86_64-linux",
    "aarch64-linux",
    "x86_64-darwin",
    "aarch64-darwin",
)

_MACHINES = {"x86_64": "x86_64", "amd64": "x86_64", "aarch64": "aarch64", "arm64": "aarch64"}

_ATTR_PATH = re.compile(r"^[A-Za-z_][A-Za-z0-9_'-]*(\.[A-Za-z_][A-Za-z0-9_'-]*)*$")
_VAR_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DescriptorError(RuntimeError):
    pass


class PackageNotFoundError(DescriptorError):
    def __init__(self, name: str, system: str, detail: str = "") -> None:
        self.name = name
        self.system = system
        msg = f"Package not available for {system}: {name}"
        if detail:
            msg = f"{msg}\n\n{detail.strip()}"
        super().__init__(msg)


class UnsupportedPlatformError(DescriptorError):
    pass


@dataclass(frozen=True)
class EnvironmentDescriptor:
    """Package set and exported variables of the development shell."""

    packages: tuple[str, ...] = DEFAULT_PACKAGES
    library_path_var: str = "LD_LIBRARY_PATH"
    # variable name -> package attribute whose prefix becomes the value
    variables: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_VARIABLES))
    tools: tuple[str, ...] = DEFAULT_TOOLS
    nixpkgs: str = "github:NixOS/nixpkgs/nixos-unstable"
    flake_utils: str = "github:numtide/flake-utils"


def validate_descriptor(descriptor: EnvironmentDescriptor) -> None:
    """
    Reject names that cannot be emitted verbatim into the flake.
    """
    if not descriptor.packages:
        raise DescriptorError("The environment must declare at least one package.")
    seen: set[str] = set()
    for name in descriptor.packages:
        if not _ATTR_PATH.match(name):
            raise DescriptorError(f"Invalid package attribute: {name!r}")
        if name in seen:
            raise DescriptorError(f"Package listed twice: {name}")
        seen.add(name)
    for var, attr in [(descriptor.library_path_var, None), *descriptor.variables.items()]:
        if not _VAR_NAME.match(var):
            raise DescriptorError(f"Invalid variable name: {var!r}")
        if attr is not None and not _ATTR_PATH.match(attr):
            raise DescriptorError(f"Invalid package attribute for {var}: {attr!r}")
    if descriptor.library_path_var in descriptor.variables:
        raise DescriptorError(f"{descriptor.library_path_var} is computed and cannot be set explicitly.")


def current_system(machine: str | None = None, kernel: str | None = None) -> str:
    """
    Return the Nix platform identifier of this machine, e.g. `x86_64-linux`.
    """
    machine = (machine or platform.machine()).lower()
    kernel = (kernel or sys.platform).lower()
    arch = _MACHINES.get(machine)
    if kernel.startswith("linux"):
        os_name = "linux"
    elif kernel == "darwin":
        os_name = "darwin"
    else:
        os_name = ""
    system = f"{arch}-{os_name}"
    if arch is None or not os_name or system not in SUPPORTED_SYSTEMS:
        raise UnsupportedPlatformError(f"Unsupported platform: {machine} / {kernel}")
    return system


class PackageStore(ABC):
    """Maps package attribute names to installation prefixes."""

    @abstractmethod
    def resolve(self, name: str, system: str) -> Path:
        """Return the prefix of `name` for `system`, or raise PackageNotFoundError."""


class DirectoryStore(PackageStore):
    """
    Prefixes laid out on disk as `root/<system>/<name>`, falling back to
    `root/<name>` for platform-independent layouts.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def resolve(self, name: str, system: str) -> Path:
        for candidate in (self.root / system / name, self.root / name):
            if candidate.is_dir():
                return candidate.resolve()
        raise PackageNotFoundError(name, system)


class NixStore(PackageStore):
    """Realises packages with `nix build` from a flake's legacyPackages."""

    def __init__(self, flake: str = "nixpkgs", *, nix: str = "nix") -> None:
        self.flake = flake
        self.nix = nix

    def resolve(self, name: str, system: str) -> Path:
        installable = f"{self.flake}#legacyPackages.{system}.{name}"
        cmd = [self.nix, "build", "--no-link", "--print-out-paths", installable]
        logger.debug("Resolving %s", installable)
        try:
            result = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
        except FileNotFoundError as e:
            raise DescriptorError(f"nix executable not found: {self.nix}") from e
        if result.returncode != 0:
            raise PackageNotFoundError(name, system, result.stderr)
        paths = result.stdout.split()
        if not paths:
            raise PackageNotFoundError(name, system, "nix build printed no output path")
        # First line is the default output.
        return Path(paths[0])


def activate(
    descriptor: EnvironmentDescriptor,
    store: PackageStore,
    *,
    system: str | None = None,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """
    Compute the environment of a shell that activated `descriptor`.

    - PATH gets every package's `bin` directory prepended, in declaration order.
    - The library path variable lists `<prefix>/lib` of each package shipping one.
    - Each extra variable is set to its package's prefix.
    """
    system = system or current_system()
    env = dict(os.environ if base_env is None else base_env)
    prefixes: dict[str, Path] = {}

    def prefix_of(name: str) -> Path:
        if name not in prefixes:
            prefixes[name] = store.resolve(name, system)
            logger.debug("%s -> %s", name, prefixes[name])
        return prefixes[name]

    bin_dirs: list[str] = []
    lib_dirs: list[str] = []
    for name in descriptor.packages:
        prefix = prefix_of(name)
        if (prefix / "bin").is_dir():
            bin_dirs.append(str(prefix / "bin"))
        if (prefix / "lib").is_dir():
            lib_dirs.append(str(prefix / "lib"))

    path = env.get("PATH", "")
    env["PATH"] = os.pathsep.join([*bin_dirs, path] if path else bin_dirs)
    env[descriptor.library_path_var] = os.pathsep.join(lib_dirs)
    for var, attr in descriptor.variables.items():
        env[var] = str(prefix_of(attr))
    return env


def missing_tools(env: Mapping[str, str], tools: Iterable[str]) -> list[str]:
    """Return the tools that do not resolve on `env["PATH"]`."""
    path = env.get("PATH", "")
    return [tool for tool in tools if shutil.which(tool, path=path) is None]


def exported_names(descriptor: EnvironmentDescriptor) -> list[str]:
    return ["PATH", descriptor.library_path_var, *descriptor.variables]


def format_exports(env: Mapping[str, str], names: Iterable[str]) -> str:
    """Render `export NAME=value` lines, one per name present in `env`."""
    lines = [f"export {name}={shlex.quote(env[name])}" for name in names if name in env]
    return "\n".join(lines) + ("\n" if lines else "")
