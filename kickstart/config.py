"""
config.py

Responsibility: Load and parse `kickstart.yaml` into a deterministic, typed model.

Every key is optional; the defaults describe the stock Rust/Nix template
(placeholder `PROJECT_NAME` in `Cargo.toml`, branch `master`, commit `Init`).
A repository without a config file bootstraps with defaults only.

The bootstrap steps, renderer and CLI treat the parsed result as the single
source of truth.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from kickstart.environment import DescriptorError, EnvironmentDescriptor, validate_descriptor

CONFIG_FILENAME = "kickstart.yaml"


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ProjectConfig:
    """What gets renamed: the placeholder token and the manifest carrying it."""

    placeholder: str = "PROJECT_NAME"
    manifest: str = "Cargo.toml"
    name: str | None = None


@dataclass(frozen=True)
class GitConfig:
    """Git layout of the bootstrapped project."""

    remote: str = "origin"
    branch: str = "master"
    temp_branch: str = "temp_branch"
    commit_message: str = "Init"
    stage: tuple[str, ...] = (".envrc", ".gitignore", "flake.nix")
    trigger: str = "setup.sh"
    # Abort when the remote is already gone instead of skipping.
    require_remote: bool = False


@dataclass(frozen=True)
class Config:
    project: ProjectConfig = field(default_factory=ProjectConfig)
    git: GitConfig = field(default_factory=GitConfig)
    environment: EnvironmentDescriptor = field(default_factory=EnvironmentDescriptor)


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    raw = data.get(key)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"`{key}` must be an object/mapping when provided.")
    return raw


def _str(raw: dict[str, Any], key: str, default: str) -> str:
    value = raw.get(key)
    if value is None:
        return default
    value = str(value).strip()
    if not value:
        raise ConfigError(f"`{key}` must not be empty.")
    return value


def _bool(raw: dict[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ConfigError(f"`{key}` must be true or false.")
    return value


def _str_list(raw: dict[str, Any], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = raw.get(key)
    if value is None:
        return default
    if isinstance(value, str) or not isinstance(value, list):
        raise ConfigError(f"`{key}` must be a list of strings.")
    return tuple(str(v).strip() for v in value if str(v).strip())


def parse_config(data: dict[str, Any]) -> Config:
    """
    Build a `Config` from an already-loaded mapping.

    Recognised sections: `project`, `git`, `environment`.
    Unknown keys are ignored.
    """
    project_raw = _section(data, "project")
    defaults = ProjectConfig()
    name = project_raw.get("name")
    if name is not None:
        name = str(name).strip() or None
    project = ProjectConfig(
        placeholder=_str(project_raw, "placeholder", defaults.placeholder),
        manifest=_str(project_raw, "manifest", defaults.manifest),
        name=name,
    )

    git_raw = _section(data, "git")
    git_defaults = GitConfig()
    git = GitConfig(
        remote=_str(git_raw, "remote", git_defaults.remote),
        branch=_str(git_raw, "branch", git_defaults.branch),
        temp_branch=_str(git_raw, "temp_branch", git_defaults.temp_branch),
        commit_message=_str(git_raw, "commit_message", git_defaults.commit_message),
        stage=_str_list(git_raw, "stage", git_defaults.stage),
        trigger=_str(git_raw, "trigger", git_defaults.trigger),
        require_remote=_bool(git_raw, "require_remote", git_defaults.require_remote),
    )
    if git.branch == git.temp_branch:
        raise ConfigError("`git.branch` and `git.temp_branch` must differ.")

    env_raw = _section(data, "environment")
    env_defaults = EnvironmentDescriptor()
    variables_raw = env_raw.get("variables")
    if variables_raw is None:
        variables = dict(env_defaults.variables)
    elif isinstance(variables_raw, dict):
        variables = {str(k): str(v) for k, v in variables_raw.items()}
    else:
        raise ConfigError("`variables` must be an object/mapping when provided.")
    environment = EnvironmentDescriptor(
        packages=_str_list(env_raw, "packages", env_defaults.packages),
        library_path_var=_str(env_raw, "library_path_var", env_defaults.library_path_var),
        variables=variables,
        tools=_str_list(env_raw, "tools", env_defaults.tools),
        nixpkgs=_str(env_raw, "nixpkgs", env_defaults.nixpkgs),
        flake_utils=_str(env_raw, "flake_utils", env_defaults.flake_utils),
    )
    try:
        validate_descriptor(environment)
    except DescriptorError as e:
        raise ConfigError(f"Invalid `environment` section: {e}") from e

    return Config(project=project, git=git, environment=environment)


def load_config(root: str | Path, config_path: str | Path | None = None) -> Config:
    """
    Load the configuration of the project at `root`.

    Without `config_path`, `root/kickstart.yaml` is used when it exists and the
    defaults otherwise. An explicit `config_path` must exist.
    """
    if config_path is None:
        path = Path(root) / CONFIG_FILENAME
        if not path.exists():
            return Config()
    else:
        path = Path(config_path)
        if not path.exists():
            raise ConfigError(f"Config file does not exist: {path}")

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file is not valid YAML: {path}") from e
    if not isinstance(data, dict):
        raise ConfigError("Config must be a mapping/object at the top level.")
    return parse_config(data)
