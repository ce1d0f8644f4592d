"""Scheme-based routing between protocol transports."""

import logging
from pathlib import Path
from urllib.parse import urlsplit

from hotswap.cancellation import CancellationToken
from hotswap.domain.errors import TransportError
from hotswap.transport.base import CHUNK_SIZE, DEFAULT_TIMEOUT, ProgressCallback, Transport, redact
from hotswap.transport.ftp import FtpTransport
from hotswap.transport.http import HttpTransport

logger = logging.getLogger(__name__)


class SchemeTransport(Transport):
    """The one Transport handed to the orchestrator.

    Dispatches ``http``/``https`` to an HTTP transport and ``ftp``/``ftps`` to
    an FTP transport. Either can be replaced, e.g. with a preconfigured httpx
    client in tests.
    """

    def __init__(
        self,
        http: Transport | None = None,
        ftp: Transport | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = CHUNK_SIZE,
        verify: bool = True,
    ):
        self.http = http or HttpTransport(timeout=timeout, chunk_size=chunk_size, verify=verify)
        self.ftp = ftp or FtpTransport(timeout=timeout, chunk_size=chunk_size)
        self._routes: dict[str, Transport] = {
            "http": self.http,
            "https": self.http,
            "ftp": self.ftp,
            "ftps": self.ftp,
        }

    def route(self, url: str) -> Transport:
        """Return the transport responsible for ``url``.

        Raises:
            TransportError: If the scheme is not supported.
        """
        scheme = urlsplit(url).scheme.lower()
        transport = self._routes.get(scheme)
        if transport is None:
            raise TransportError(redact(url), f"Unsupported protocol: {scheme or '<none>'}")
        return transport

    async def fetch_to_file(
        self,
        url: str,
        destination: Path,
        token: CancellationToken,
        progress: ProgressCallback | None = None,
    ) -> int:
        return await self.route(url).fetch_to_file(url, destination, token, progress)

    async def fetch_to_memory(self, url: str, token: CancellationToken) -> bytes:
        return await self.route(url).fetch_to_memory(url, token)

    async def aclose(self) -> None:
        for transport in {id(t): t for t in self._routes.values()}.values():
            try:
                await transport.aclose()
            except Exception as e:
                logger.warning(f"Failed to close {type(transport).__name__}: {e}")
