"""
kickstart package

This package turns a freshly cloned project template into a standalone project
and manages the template's development-environment descriptor.

Key responsibilities are split across modules:
- `config.py`: load `kickstart.yaml` into a typed configuration
- `git.py`: the repository handle (git porcelain via subprocess)
- `steps.py`: the ordered, idempotent bootstrap pipeline
- `journal.py`: the completion marker kept inside the git directory
- `environment.py`: the environment descriptor, package stores and activation
- `renderer.py`: render the descriptor to `flake.nix` / `.envrc`
- `cli.py`: CLI entrypoint and orchestration
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
