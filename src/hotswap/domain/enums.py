"""Enumerations for domain models."""

from enum import Enum


class LogLevel(str, Enum):
    """Severity of a message sent to the reporter."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class RunState(str, Enum):
    """States of a single update run."""

    IDLE = "idle"
    FETCHING_MANIFEST = "fetching_manifest"
    STOPPING_PROCESSES = "stopping_processes"
    DOWNLOADING = "downloading"
    VERIFYING = "verifying"
    REPLACING = "replacing"
    STARTING_PROCESSES = "starting_processes"
    CLEANING_UP = "cleaning_up"
    ROLLING_BACK = "rolling_back"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.DONE, RunState.CANCELLED, RunState.FAILED)


SUPPORTED_SCHEMES = frozenset({"http", "https", "ftp", "ftps"})
