"""
journal.py

Responsibility: the completion marker of a bootstrap.

The journal lives inside the git directory (`.git/kickstart.json`), so it is
never tracked and survives the branch surgery the bootstrap performs. It
records which steps have been applied; once `done` is set, re-running the
bootstrap is a no-op.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

JOURNAL_FILENAME = "kickstart.json"


@dataclass
class Journal:
    path: Path
    project: str = ""
    completed: list[str] = field(default_factory=list)
    commit: str | None = None
    done: bool = False

    @classmethod
    def load(cls, git_dir: Path) -> "Journal":
        path = git_dir / JOURNAL_FILENAME
        if not path.exists():
            return cls(path=path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            data = None
        if not isinstance(data, dict):
            logger.warning("Ignoring unreadable journal %s", path)
            return cls(path=path)
        return cls(
            path=path,
            project=str(data.get("project") or ""),
            completed=[str(s) for s in data.get("completed") or []],
            commit=data.get("commit"),
            done=bool(data.get("done", False)),
        )

    def has(self, step: str) -> bool:
        return step in self.completed

    def record(self, step: str) -> None:
        if step not in self.completed:
            self.completed.append(step)
        self.save()

    def reset(self) -> None:
        self.completed = []
        self.commit = None
        self.done = False

    def save(self) -> None:
        data = asdict(self)
        data.pop("path")
        self.path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
