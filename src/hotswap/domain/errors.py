"""Error taxonomy for update runs."""

from pathlib import Path


class UpdateError(Exception):
    """Base class for every failure raised by the update engine."""


class ManifestError(UpdateError):
    """Raised when a manifest cannot be fetched, parsed or validated."""


class TransportError(UpdateError):
    """Raised when a network or protocol failure interrupts a fetch."""

    def __init__(self, url: str, message: str):
        self.url = url
        super().__init__(f"{message} ({url})")


class IncompleteTransferError(TransportError):
    """Raised when the bytes received differ from the declared content length."""

    def __init__(self, url: str, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(url, f"Incomplete transfer: expected {expected} bytes, received {received}")


class HashMismatchError(UpdateError):
    """Raised when a downloaded file does not match its expected digest."""

    def __init__(self, name: str, expected: str, actual: str):
        self.name = name
        self.expected = expected
        self.actual = actual
        super().__init__(f"Hash verification failed for {name}: expected {expected}, got {actual}")


class ProcessControlError(UpdateError):
    """Raised when a dependent process cannot be stopped or started."""

    def __init__(self, executable: Path, reason: str):
        self.executable = executable
        self.reason = reason
        super().__init__(f"Process control failed for {executable}: {reason}")


class FileTransactionError(UpdateError):
    """Raised when backing up or replacing a file fails."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"File transaction failed for {path}: {reason}")


class CancelledError(UpdateError):
    """Raised when a run is stopped through its cancellation token.

    Distinct from ``asyncio.CancelledError``: this is a cooperative, requested
    stop and is reported as such rather than as a failure.
    """

    def __init__(self, message: str = "Update cancelled"):
        super().__init__(message)
