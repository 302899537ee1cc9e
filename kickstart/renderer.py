"""
renderer.py

Responsibility: Deterministically render the environment descriptor into files.

Rules:
- `flake.nix` is rendered from the packaged Jinja2 template with the
  descriptor's packages and variables, in declaration order.
- `.envrc` makes direnv load the flake's development shell.
- Existing files are left alone unless `overwrite` is requested.

This module intentionally does NOT know about git or CLI parsing.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError

from kickstart.environment import EnvironmentDescriptor

TEMPLATES_DIR = Path(__file__).parent / "templates"

# output file -> template name
DESCRIPTOR_FILES = {
    "flake.nix": "flake.nix.j2",
    ".envrc": "envrc.j2",
}


class RenderError(RuntimeError):
    pass


@dataclass(frozen=True)
class RenderResult:
    written: tuple[str, ...]
    skipped: tuple[str, ...]


def _environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=False,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )


def _context(descriptor: EnvironmentDescriptor) -> dict[str, object]:
    return {
        "packages": list(descriptor.packages),
        "library_path_var": descriptor.library_path_var,
        "variables": dict(descriptor.variables),
        "nixpkgs": descriptor.nixpkgs,
        "flake_utils": descriptor.flake_utils,
    }


def _render(template_name: str, context: dict[str, object]) -> str:
    try:
        return _environment().get_template(template_name).render(**context)
    except TemplateError as e:
        raise RenderError(f"Failed rendering template file: {template_name}") from e


def render_flake(descriptor: EnvironmentDescriptor) -> str:
    return _render(DESCRIPTOR_FILES["flake.nix"], _context(descriptor))


def render_envrc() -> str:
    return _render(DESCRIPTOR_FILES[".envrc"], {})


def write_descriptor(
    descriptor: EnvironmentDescriptor,
    destination_dir: str | Path,
    *,
    overwrite: bool = False,
) -> RenderResult:
    """
    Write `flake.nix` and `.envrc` into destination_dir.
    """
    dst_dir = Path(destination_dir).resolve()
    if not dst_dir.is_dir():
        raise RenderError(f"Destination directory not found: {dst_dir}")

    rendered = {"flake.nix": render_flake(descriptor), ".envrc": render_envrc()}
    written: list[str] = []
    skipped: list[str] = []
    for name, text in rendered.items():
        dst_path = dst_dir / name
        if dst_path.exists() and not overwrite:
            skipped.append(name)
            continue
        # Normalize newlines for stable cross-platform output.
        dst_path.write_text(text, encoding="utf-8", newline="\n")
        written.append(name)

    return RenderResult(written=tuple(written), skipped=tuple(skipped))
