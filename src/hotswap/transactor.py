"""Backup-then-replace for a single file, and its inverse.

Every move is a copy followed by a delete of the source, never a rename:
copies work across volumes and the backup is flushed to disk before the
original is removed. At any instant a file that existed before the commit is
present at its current path, its backup path, or both.
"""

import asyncio
import logging
import os
import shutil
from enum import Enum
from pathlib import Path

from hotswap.domain.models import FileTarget

logger = logging.getLogger(__name__)


class CommitStage(str, Enum):
    """How far a commit of one target got."""

    STARTED = "started"  # original untouched; backup may be partial
    BACKED_UP = "backed_up"  # backup complete, original removed
    NO_ORIGINAL = "no_original"  # nothing existed at current_path
    COMMITTED = "committed"


def durable_copy(source: Path, destination: Path) -> None:
    """Copy ``source`` over ``destination`` (metadata included) and flush it."""
    shutil.copy2(source, destination)
    with destination.open("rb+") as fh:
        os.fsync(fh.fileno())


class FileTransactor:
    """Commits and rolls back file targets for one run.

    Holds a cache of directories already known to exist and the stage each
    commit reached; an instance must not be shared between runs.

    I/O and permission errors propagate unmodified. Repairing a partially
    applied batch is the orchestrator's job: it calls ``rollback`` for
    committed targets and ``recover`` for the one whose commit failed.
    """

    def __init__(self) -> None:
        self._known_dirs: set[Path] = set()
        self._stages: dict[Path, CommitStage] = {}

    def stage(self, target: FileTarget) -> CommitStage | None:
        return self._stages.get(target.current_path)

    async def prepare(self, target: FileTarget) -> None:
        """Create the parent directories of all three paths of ``target``."""
        await asyncio.to_thread(self._ensure_parents, target)

    async def commit(self, target: FileTarget) -> None:
        """Move ``target`` from old content to new content, keeping a backup."""
        await asyncio.to_thread(self._commit, target)

    async def rollback(self, target: FileTarget) -> None:
        """Restore the pre-commit content of ``target`` from its backup."""
        await asyncio.to_thread(self._rollback, target)

    async def recover(self, target: FileTarget) -> None:
        """Undo whatever a failed ``commit`` of ``target`` left behind."""
        await asyncio.to_thread(self._recover, target)

    async def discard_backup(self, target: FileTarget) -> None:
        """Drop the backup once a run has fully succeeded."""
        await asyncio.to_thread(_remove, target.backup_path)

    async def discard_staged(self, target: FileTarget) -> None:
        """Drop a partial or rejected download."""
        await asyncio.to_thread(_remove, target.new_path)

    def _ensure_parents(self, target: FileTarget) -> None:
        for path in (target.current_path, target.new_path, target.backup_path):
            directory = path.parent
            if directory in self._known_dirs:
                continue
            directory.mkdir(parents=True, exist_ok=True)
            self._known_dirs.add(directory)

    def _commit(self, target: FileTarget) -> None:
        self._ensure_parents(target)
        current, new, backup = target.current_path, target.new_path, target.backup_path
        self._stages[current] = CommitStage.STARTED

        # A stale backup from an earlier run must never be restored by a rollback
        _remove(backup)
        if current.exists():
            durable_copy(current, backup)
            current.unlink()
            self._stages[current] = CommitStage.BACKED_UP
            logger.debug(f"Backed up {current} to {backup}")
        else:
            self._stages[current] = CommitStage.NO_ORIGINAL

        durable_copy(new, current)
        new.unlink()
        self._stages[current] = CommitStage.COMMITTED
        logger.debug(f"Installed {new} as {current}")

    def _rollback(self, target: FileTarget) -> None:
        current, new, backup = target.current_path, target.new_path, target.backup_path

        if backup.exists():
            # Overwrite in place: current is never missing while the backup exists
            durable_copy(backup, current)
            backup.unlink()
            logger.debug(f"Restored {current} from {backup}")
        elif current.exists():
            current.unlink()
            logger.debug(f"Removed {current}, which did not exist before the update")

        _remove(new)
        self._stages.pop(current, None)

    def _recover(self, target: FileTarget) -> None:
        stage = self._stages.get(target.current_path)
        if stage is None:
            return
        if stage in (CommitStage.BACKED_UP, CommitStage.COMMITTED, CommitStage.NO_ORIGINAL):
            self._rollback(target)
            return
        # STARTED: the original is intact, only a partial backup can exist
        _remove(target.backup_path)
        _remove(target.new_path)
        self._stages.pop(target.current_path, None)


def _remove(path: Path) -> None:
    path.unlink(missing_ok=True)
