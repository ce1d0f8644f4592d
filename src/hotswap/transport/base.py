"""Transport abstraction shared by every protocol implementation."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Final
from urllib.parse import SplitResult, unquote, urlsplit, urlunsplit

from hotswap.cancellation import CancellationToken

# Read window used for every streamed transfer
CHUNK_SIZE: Final = 8192

# Connect/read timeout in seconds
DEFAULT_TIMEOUT: Final = 30.0

USER_AGENT: Final = "hotswap-updater/0.1"

ProgressCallback = Callable[[int | None, str], Awaitable[None] | None]


class Transport(ABC):
    """Fetches bytes from a URL.

    Implementations poll the cancellation token at every chunk boundary and
    raise ``hotswap.domain.CancelledError`` when it trips. A partially written
    destination file is left in place for the caller to discard.
    """

    @abstractmethod
    async def fetch_to_file(
        self,
        url: str,
        destination: Path,
        token: CancellationToken,
        progress: ProgressCallback | None = None,
    ) -> int:
        """Stream ``url`` into ``destination`` and return the number of bytes written.

        Raises:
            TransportError: On network or protocol failure.
            IncompleteTransferError: If a declared content length was not met.
            CancelledError: If the token tripped mid-transfer.
        """
        ...

    @abstractmethod
    async def fetch_to_memory(self, url: str, token: CancellationToken) -> bytes:
        """Return the complete body of ``url``. Used for manifests only."""
        ...

    async def aclose(self) -> None:
        """Release pooled connections."""

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


def split_credentials(url: str) -> tuple[SplitResult, str | None, str | None]:
    """Strip ``user:pass@`` from a URL.

    Returns:
        Tuple of (URL parts without user-info, username, password).
    """
    parts = urlsplit(url)
    username = unquote(parts.username) if parts.username is not None else None
    password = unquote(parts.password) if parts.password is not None else None

    netloc = parts.hostname or ""
    if ":" in netloc:
        netloc = f"[{netloc}]"  # IPv6 literal
    if parts.port is not None:
        netloc = f"{netloc}:{parts.port}"
    return parts._replace(netloc=netloc), username, password


def redact(url: str) -> str:
    """URL safe to log: credentials removed."""
    parts, _, _ = split_credentials(url)
    return urlunsplit(parts)


def percent_complete(received: int, total: int | None) -> int | None:
    if not total or total <= 0:
        return None
    return min(100, received * 100 // total)


async def report_progress(progress: ProgressCallback | None, received: int, total: int | None) -> None:
    if progress is None:
        return
    percent = percent_complete(received, total)
    if percent is None:
        label = f"Downloading... {received // 1024} KiB"
    else:
        label = f"Downloading... {percent}%"
    result = progress(percent, label)
    if asyncio.iscoroutine(result):
        await result
