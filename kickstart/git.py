"""
git.py

Responsibility: the repository handle every bootstrap step operates on.

All git porcelain goes through `Repository`; nothing else in the package runs
git directly. Commands run with the repository root as working directory, so
no step depends on the process's current directory.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


class GitError(RuntimeError):
    def __init__(self, cmd: list[str], output: str, returncode: int) -> None:
        self.cmd = cmd
        self.output = output
        self.returncode = returncode
        super().__init__(f"Command failed ({returncode}): {' '.join(cmd)}\n\n{output.strip()}")


def deterministic_env(base_env: dict[str, str]) -> dict[str, str]:
    """
    Deterministic git commit metadata, so the initial commit id only depends on
    the committed contents. Values already present in `base_env` win.
    """
    env = dict(base_env)
    env.setdefault("GIT_AUTHOR_NAME", "kickstart")
    env.setdefault("GIT_AUTHOR_EMAIL", "kickstart@example.invalid")
    env.setdefault("GIT_COMMITTER_NAME", "kickstart")
    env.setdefault("GIT_COMMITTER_EMAIL", "kickstart@example.invalid")
    env.setdefault("GIT_AUTHOR_DATE", "1970-01-01T00:00:00Z")
    env.setdefault("GIT_COMMITTER_DATE", "1970-01-01T00:00:00Z")
    return env


class Repository:
    """A git work tree, addressed by its root directory."""

    def __init__(self, root: str | Path, *, env: dict[str, str] | None = None) -> None:
        self.root = Path(root)
        self._env = env

    @classmethod
    def open(cls, path: str | Path, *, env: dict[str, str] | None = None) -> "Repository":
        """
        Return the repository containing `path`; raise GitError when `path` is
        not inside a git work tree.
        """
        start = Path(path).resolve()
        if not start.is_dir():
            raise GitError(["git", "rev-parse", "--show-toplevel"], f"Not a directory: {start}", 128)
        probe = cls(start, env=env)
        toplevel = probe._run("rev-parse", "--show-toplevel").stdout.strip()
        return cls(Path(toplevel).resolve(), env=env)

    def _run(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        cmd = ["git", *args]
        logger.debug("git %s (in %s)", " ".join(args), self.root)
        result = subprocess.run(
            cmd,
            cwd=str(self.root),
            env=self._env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
        if check and result.returncode != 0:
            raise GitError(cmd, result.stdout, result.returncode)
        return result

    @property
    def git_dir(self) -> Path:
        return Path(self._run("rev-parse", "--absolute-git-dir").stdout.strip())

    # remotes

    def remotes(self) -> list[str]:
        return self._run("remote").stdout.split()

    def remove_remote(self, name: str) -> None:
        self._run("remote", "remove", name)

    # branches

    def current_branch(self) -> str | None:
        """Branch HEAD points at (possibly unborn), or None when HEAD is detached."""
        result = self._run("symbolic-ref", "--short", "-q", "HEAD", check=False)
        if result.returncode != 0:
            return None
        return result.stdout.strip() or None

    def branch_exists(self, name: str) -> bool:
        result = self._run("show-ref", "--verify", "--quiet", f"refs/heads/{name}", check=False)
        return result.returncode == 0

    def checkout_orphan(self, name: str) -> None:
        self._run("checkout", "-q", "--orphan", name)

    def delete_branch(self, name: str) -> None:
        self._run("branch", "-D", name)

    def rename_branch(self, new_name: str) -> None:
        self._run("branch", "-m", new_name)

    # commits

    def has_commits(self) -> bool:
        result = self._run("rev-parse", "--verify", "-q", "HEAD", check=False)
        return result.returncode == 0

    def head(self) -> str:
        return self._run("rev-parse", "HEAD").stdout.strip()

    def commit_count(self, ref: str = "HEAD") -> int:
        return int(self._run("rev-list", "--count", ref).stdout.strip())

    def add(self, *paths: str) -> None:
        self._run("add", "--", *paths)

    def commit(self, message: str) -> None:
        self._run("commit", "-q", "-m", message)

    def root_commit_message(self) -> str | None:
        """Message of the first commit on HEAD's first-parent line, or None on an unborn branch."""
        if not self.has_commits():
            return None
        roots = self._run("rev-list", "--first-parent", "--max-parents=0", "HEAD").stdout.split()
        return self._run("log", "-1", "--format=%B", roots[-1]).stdout
