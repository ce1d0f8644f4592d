"""Detect, stop and start the OS processes behind an executable path.

Processes are matched by executable base name without extension, not by PID:
the engine does not track the sessions of the programs it updates.
"""

import asyncio
import logging
import os
import subprocess
from pathlib import Path
from typing import Any, Final

import psutil

from hotswap.domain.errors import ProcessControlError

logger = logging.getLogger(__name__)

# Wait after each terminate before moving on
DEFAULT_GRACE_SECONDS: Final = 1.0


def process_key(name: str | os.PathLike[str]) -> str:
    """Comparable process name: base name, no extension, case-folded on Windows."""
    return os.path.normcase(Path(name).stem)


class ProcessController:
    """Name-based control of processes tied to an executable file.

    ``stop`` is a best-effort wait, not a barrier: after terminating each
    process it sleeps for the grace period without confirming the exit. A
    replace that follows may still hit a file lock if the process is slow to
    die.
    """

    def __init__(self, grace_seconds: float = DEFAULT_GRACE_SECONDS):
        self.grace_seconds = grace_seconds

    def find(self, executable: Path) -> list[psutil.Process]:
        """Processes whose name matches ``executable``. Never includes this process.

        Scans the whole process table; async callers run it in a worker thread.
        """
        key = process_key(executable)
        own_pid = os.getpid()
        matches: list[psutil.Process] = []
        for proc in psutil.process_iter(["name"]):
            name = proc.info.get("name")
            if not name or proc.pid == own_pid:
                continue
            if process_key(name) == key:
                matches.append(proc)
        return matches

    def is_running(self, executable: Path) -> bool:
        return bool(self.find(executable))

    async def stop(self, executable: Path) -> int:
        """Terminate every process matching ``executable``.

        Returns:
            Number of processes signalled.

        Raises:
            ProcessControlError: If a process cannot be terminated (e.g. access denied).
        """
        stopped = 0
        for proc in await asyncio.to_thread(self.find, executable):
            try:
                logger.info(f"Terminating {proc.info.get('name')} (pid {proc.pid})")
                proc.terminate()
            except psutil.NoSuchProcess:
                logger.debug(f"Process {proc.pid} exited before it could be terminated")
                continue
            except (psutil.Error, OSError) as e:
                raise ProcessControlError(executable, f"cannot terminate pid {proc.pid}: {e}") from e
            stopped += 1
            await asyncio.sleep(self.grace_seconds)
        return stopped

    async def start(self, executable: Path) -> None:
        """Launch ``executable`` through the OS default handler without waiting on it.

        Raises:
            ProcessControlError: If the launch itself fails.
        """
        path = Path(executable)
        logger.info(f"Starting {path}")
        try:
            if os.name == "nt":  # pragma: no cover - exercised on Windows
                os.startfile(str(path))  # type: ignore[attr-defined]
            else:
                popen_kwargs: dict[str, Any] = {
                    "cwd": str(path.parent) if str(path.parent) else None,
                    "stdin": subprocess.DEVNULL,
                    "stdout": subprocess.DEVNULL,
                    "stderr": subprocess.DEVNULL,
                    "start_new_session": True,
                }
                subprocess.Popen([str(path)], **popen_kwargs)
        except OSError as e:
            raise ProcessControlError(path, f"cannot start: {e}") from e
