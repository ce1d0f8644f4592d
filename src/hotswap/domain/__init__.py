"""Domain models for hotswap."""

from hotswap.domain.enums import SUPPORTED_SCHEMES, LogLevel, RunState
from hotswap.domain.errors import (
    CancelledError,
    FileTransactionError,
    HashMismatchError,
    IncompleteTransferError,
    ManifestError,
    ProcessControlError,
    TransportError,
    UpdateError,
)
from hotswap.domain.models import FileTarget, Manifest, RunResult, UpdateOutcome

__all__ = [
    # Enums
    "LogLevel",
    "RunState",
    "SUPPORTED_SCHEMES",
    # Models
    "FileTarget",
    "Manifest",
    "RunResult",
    "UpdateOutcome",
    # Errors
    "UpdateError",
    "ManifestError",
    "TransportError",
    "IncompleteTransferError",
    "HashMismatchError",
    "ProcessControlError",
    "FileTransactionError",
    "CancelledError",
]
