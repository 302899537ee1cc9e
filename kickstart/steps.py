"""
steps.py

Responsibility: convert a cloned template into a standalone project.

The bootstrap is an ordered list of named steps. Each step has a guard
(`is_applied`) that makes it a no-op when its effect is already present, a
precondition check, and the mutation itself. The pipeline stops at the first
failing step and reports it; there is no rollback, but since every step is
guarded, re-running after fixing the cause resumes where it stopped.

Applied steps are recorded in the journal (see `journal.py`); the last step
marks the journal done, after which the whole pipeline is a no-op.

The initial commit carries a `Kickstart-Project: <name>` trailer. A checkout
whose configured branch starts from such a commit, with no placeholder left in
its manifest, is treated as bootstrapped even without a journal (a fresh clone,
or a forced re-run), so the history-rewriting steps never touch it again.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path

from kickstart.config import Config
from kickstart.git import GitError, Repository
from kickstart.journal import Journal

logger = logging.getLogger(__name__)

APPLIED = "applied"
SKIPPED = "skipped"
PLANNED = "planned"

PROJECT_TRAILER = "Kickstart-Project"


class BootstrapError(RuntimeError):
    pass


class RemoteNotFoundError(BootstrapError):
    pass


class ManifestNotFoundError(BootstrapError):
    pass


class SubstitutionNoMatchError(BootstrapError):
    pass


class CommitFailedError(BootstrapError):
    pass


class BranchOperationError(BootstrapError):
    pass


class StepFailedError(BootstrapError):
    def __init__(self, step: str, cause: Exception) -> None:
        self.step = step
        self.cause = cause
        super().__init__(f"Step '{step}' failed: {cause}")


@dataclass
class StepContext:
    repo: Repository
    config: Config
    project_name: str
    journal: Journal
    bootstrapped: bool = False

    @property
    def manifest_path(self) -> Path:
        return self.repo.root / self.config.project.manifest


@dataclass(frozen=True)
class StepOutcome:
    name: str
    status: str
    detail: str = ""


@dataclass(frozen=True)
class BootstrapResult:
    project_name: str
    outcomes: list[StepOutcome] = field(default_factory=list)
    commit: str | None = None

    @property
    def applied(self) -> list[str]:
        return [o.name for o in self.outcomes if o.status == APPLIED]


def _declares_name(text: str, name: str) -> bool:
    """True when a `name = "..."` / `"name": "..."` line of the manifest holds `name`."""
    pattern = r"""^\s*["']?name["']?\s*[:=]\s*["']""" + re.escape(name) + r"""["']"""
    return re.search(pattern, text, re.MULTILINE) is not None


def recorded_project(repo: Repository) -> str | None:
    """Project name from the trailer of HEAD's root commit, if it has one."""
    message = repo.root_commit_message()
    if message is None:
        return None
    for line in message.splitlines():
        key, sep, value = line.partition(":")
        if sep and key.strip() == PROJECT_TRAILER and value.strip():
            return value.strip()
    return None


def bootstrapped_project(repo: Repository, config: Config) -> str | None:
    """
    Name of the project `repo` was bootstrapped as, or None when it still is
    a template checkout.

    A template that was itself made from a bootstrapped project carries the
    trailer too, but has its placeholder back in the manifest.
    """
    if repo.current_branch() != config.git.branch:
        return None
    project = recorded_project(repo)
    if project is None:
        return None
    manifest = repo.root / config.project.manifest
    if manifest.is_file() and config.project.placeholder in manifest.read_bytes().decode("utf-8"):
        return None
    return project


class Step(ABC):
    name: str = ""

    @abstractmethod
    def is_applied(self, ctx: StepContext) -> bool:
        """True when the effect of this step is already present."""

    def check(self, ctx: StepContext) -> None:
        """Raise a BootstrapError when the step cannot run."""

    @abstractmethod
    def apply(self, ctx: StepContext) -> str:
        """Perform the step; return a short description of what changed."""


class DetachRemote(Step):
    name = "detach-remote"

    def is_applied(self, ctx: StepContext) -> bool:
        # A bootstrapped checkout keeps the remote it was cloned from.
        if ctx.bootstrapped:
            return True
        # An absent remote already satisfies the goal of this step.
        if ctx.config.git.require_remote:
            return False
        return ctx.config.git.remote not in ctx.repo.remotes()

    def check(self, ctx: StepContext) -> None:
        if ctx.config.git.remote not in ctx.repo.remotes():
            raise RemoteNotFoundError(f"No remote named '{ctx.config.git.remote}'")

    def apply(self, ctx: StepContext) -> str:
        ctx.repo.remove_remote(ctx.config.git.remote)
        return f"removed remote {ctx.config.git.remote}"


class OrphanBranch(Step):
    name = "orphan-branch"

    def is_applied(self, ctx: StepContext) -> bool:
        if ctx.bootstrapped:
            return True
        return ctx.repo.current_branch() == ctx.config.git.temp_branch

    def check(self, ctx: StepContext) -> None:
        if ctx.repo.branch_exists(ctx.config.git.temp_branch):
            raise BranchOperationError(f"Branch '{ctx.config.git.temp_branch}' already exists")

    def apply(self, ctx: StepContext) -> str:
        try:
            ctx.repo.checkout_orphan(ctx.config.git.temp_branch)
        except GitError as e:
            raise BranchOperationError(str(e)) from e
        return f"switched to orphan branch {ctx.config.git.temp_branch}"


class SubstitutePlaceholder(Step):
    name = "substitute-placeholder"

    def _text(self, ctx: StepContext) -> str:
        return ctx.manifest_path.read_bytes().decode("utf-8")

    def is_applied(self, ctx: StepContext) -> bool:
        if ctx.bootstrapped:
            return True
        if not ctx.manifest_path.is_file():
            return False
        text = self._text(ctx)
        return ctx.config.project.placeholder not in text and _declares_name(text, ctx.project_name)

    def check(self, ctx: StepContext) -> None:
        if not ctx.manifest_path.is_file():
            raise ManifestNotFoundError(f"Manifest not found: {ctx.manifest_path}")
        if ctx.config.project.placeholder not in self._text(ctx):
            raise SubstitutionNoMatchError(
                f"Placeholder '{ctx.config.project.placeholder}' not found in {ctx.config.project.manifest}"
            )

    def apply(self, ctx: StepContext) -> str:
        text = self._text(ctx)
        count = text.count(ctx.config.project.placeholder)
        text = text.replace(ctx.config.project.placeholder, ctx.project_name)
        # Bytes in, bytes out: line endings stay as authored.
        ctx.manifest_path.write_bytes(text.encode("utf-8"))
        return f"replaced {count} occurrence(s) of {ctx.config.project.placeholder} in {ctx.config.project.manifest}"


class InitialCommit(Step):
    name = "initial-commit"

    def _paths(self, ctx: StepContext) -> list[str]:
        paths = [ctx.config.project.manifest]
        paths.extend(p for p in ctx.config.git.stage if p not in paths)
        return paths

    def is_applied(self, ctx: StepContext) -> bool:
        if ctx.bootstrapped:
            return True
        return ctx.repo.current_branch() != ctx.config.git.temp_branch or ctx.repo.has_commits()

    def check(self, ctx: StepContext) -> None:
        missing = [p for p in self._paths(ctx) if not (ctx.repo.root / p).exists()]
        if missing:
            raise CommitFailedError(f"Cannot stage missing file(s): {', '.join(missing)}")

    def apply(self, ctx: StepContext) -> str:
        try:
            ctx.repo.add(*self._paths(ctx))
            ctx.repo.commit(f"{ctx.config.git.commit_message}\n\n{PROJECT_TRAILER}: {ctx.project_name}")
        except GitError as e:
            raise CommitFailedError(str(e)) from e
        return f"committed '{ctx.config.git.commit_message}'"


class ReplaceBranch(Step):
    name = "replace-branch"

    def is_applied(self, ctx: StepContext) -> bool:
        if ctx.bootstrapped:
            return True
        return ctx.repo.current_branch() == ctx.config.git.branch

    def check(self, ctx: StepContext) -> None:
        if not ctx.repo.has_commits():
            raise BranchOperationError("Current branch has no commit to keep")

    def apply(self, ctx: StepContext) -> str:
        target = ctx.config.git.branch
        try:
            if ctx.repo.branch_exists(target):
                ctx.repo.delete_branch(target)
            ctx.repo.rename_branch(target)
        except GitError as e:
            raise BranchOperationError(str(e)) from e
        return f"{target} now holds the initial commit"


class RemoveTrigger(Step):
    name = "remove-trigger"

    def is_applied(self, ctx: StepContext) -> bool:
        return not (ctx.repo.root / ctx.config.git.trigger).exists()

    def apply(self, ctx: StepContext) -> str:
        (ctx.repo.root / ctx.config.git.trigger).unlink()
        return f"deleted {ctx.config.git.trigger}"


class RecordMarker(Step):
    name = "record-marker"

    def is_applied(self, ctx: StepContext) -> bool:
        return ctx.journal.done

    def apply(self, ctx: StepContext) -> str:
        ctx.journal.project = ctx.project_name
        ctx.journal.commit = ctx.repo.head() if ctx.repo.has_commits() else None
        ctx.journal.done = True
        ctx.journal.save()
        return f"recorded completion in {ctx.journal.path.name}"


DEFAULT_STEPS: tuple[Step, ...] = (
    DetachRemote(),
    OrphanBranch(),
    SubstitutePlaceholder(),
    InitialCommit(),
    ReplaceBranch(),
    RemoveTrigger(),
    RecordMarker(),
)


def bootstrap(
    repo: Repository,
    config: Config,
    *,
    name: str | None = None,
    dry_run: bool = False,
    force: bool = False,
    steps: tuple[Step, ...] = DEFAULT_STEPS,
) -> BootstrapResult:
    """
    Run the bootstrap pipeline against `repo`.

    - `name` overrides the project name (default: config, then the name
      recorded in the initial commit, then the repository directory's base
      name).
    - `dry_run` evaluates only the journal: steps not yet recorded are
      reported as planned, nothing is mutated.
    - `force` ignores the journal and relies on the per-step guards alone.
      On an already bootstrapped checkout the history-rewriting steps stay
      skipped.

    Raises StepFailedError naming the first step that failed.
    """
    try:
        recorded = bootstrapped_project(repo, config)
    except (GitError, OSError, UnicodeDecodeError) as e:
        raise BootstrapError(f"Cannot inspect repository {repo.root}: {e}") from e
    project_name = name or config.project.name or recorded or repo.root.name
    journal = Journal.load(repo.git_dir)
    if force:
        journal.reset()
    journal.project = project_name
    ctx = StepContext(
        repo=repo,
        config=config,
        project_name=project_name,
        journal=journal,
        bootstrapped=recorded is not None,
    )
    if ctx.bootstrapped:
        logger.info("%s was already bootstrapped as %s", repo.root, recorded)

    outcomes: list[StepOutcome] = []
    if journal.done:
        logger.info("Already bootstrapped (%s)", journal.path)
        outcomes = [StepOutcome(step.name, SKIPPED, "already bootstrapped") for step in steps]
        return BootstrapResult(project_name=project_name, outcomes=outcomes, commit=journal.commit)

    for step in steps:
        if journal.has(step.name):
            outcomes.append(StepOutcome(step.name, SKIPPED, "recorded in journal"))
            continue
        if dry_run:
            outcomes.append(StepOutcome(step.name, PLANNED))
            continue
        try:
            if step.is_applied(ctx):
                logger.info("%s: already applied", step.name)
                outcomes.append(StepOutcome(step.name, SKIPPED, "already applied"))
            else:
                step.check(ctx)
                detail = step.apply(ctx)
                logger.info("%s: %s", step.name, detail)
                outcomes.append(StepOutcome(step.name, APPLIED, detail))
        except (BootstrapError, GitError, OSError, UnicodeDecodeError) as e:
            logger.debug("%s failed", step.name, exc_info=True)
            raise StepFailedError(step.name, e) from e
        journal.record(step.name)

    return BootstrapResult(project_name=project_name, outcomes=outcomes, commit=journal.commit)
