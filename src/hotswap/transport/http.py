"""HTTP(S) transport backed by a pooled httpx client."""

import logging
from pathlib import Path
from urllib.parse import urlunsplit

import httpx

from hotswap.cancellation import CancellationToken
from hotswap.domain.errors import IncompleteTransferError, TransportError
from hotswap.transport.base import (
    CHUNK_SIZE,
    DEFAULT_TIMEOUT,
    USER_AGENT,
    ProgressCallback,
    Transport,
    report_progress,
    split_credentials,
)

logger = logging.getLogger(__name__)


class HttpTransport(Transport):
    """Downloads over HTTP and HTTPS.

    One ``httpx.AsyncClient`` is reused for every request so connections are
    pooled across the files of a run. Response bodies are decompressed
    transparently; the declared length is only enforced when the body was
    sent without a content encoding, since it then describes the bytes we
    write.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = CHUNK_SIZE,
        verify: bool = True,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            verify=verify,
            headers={"User-Agent": USER_AGENT},
        )
        self._chunk_size = chunk_size

    async def fetch_to_file(
        self,
        url: str,
        destination: Path,
        token: CancellationToken,
        progress: ProgressCallback | None = None,
    ) -> int:
        token.raise_if_cancelled()
        request_url, auth = self._prepare(url)
        written = 0
        total: int | None = None

        try:
            async with self._client.stream("GET", request_url, auth=auth) as response:
                self._check_status(request_url, response)
                total = _declared_length(response)
                logger.debug(f"Downloading {request_url} ({total if total is not None else 'unknown'} bytes)")

                with destination.open("wb") as fh:
                    async for chunk in response.aiter_bytes(self._chunk_size):
                        token.raise_if_cancelled()
                        fh.write(chunk)
                        written += len(chunk)
                        await report_progress(progress, written, total)
        except httpx.HTTPError as e:
            raise TransportError(request_url, f"HTTP transfer failed: {type(e).__name__}: {e}") from e

        if total is not None and written != total:
            raise IncompleteTransferError(request_url, total, written)
        return written

    async def fetch_to_memory(self, url: str, token: CancellationToken) -> bytes:
        token.raise_if_cancelled()
        request_url, auth = self._prepare(url)
        try:
            response = await self._client.get(request_url, auth=auth)
        except httpx.HTTPError as e:
            raise TransportError(request_url, f"HTTP request failed: {type(e).__name__}: {e}") from e
        self._check_status(request_url, response)
        token.raise_if_cancelled()
        return response.content

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _prepare(self, url: str) -> tuple[str, httpx.BasicAuth | None]:
        parts, username, password = split_credentials(url)
        auth = httpx.BasicAuth(username, password or "") if username is not None else None
        return urlunsplit(parts), auth

    def _check_status(self, url: str, response: httpx.Response) -> None:
        if response.is_error:
            raise TransportError(url, f"HTTP {response.status_code} {response.reason_phrase}")


def _declared_length(response: httpx.Response) -> int | None:
    """Content length describing the decoded body, if the server declared one."""
    encoding = response.headers.get("content-encoding", "identity").strip().lower()
    if encoding not in ("", "identity"):
        return None
    raw = response.headers.get("content-length")
    if raw is None:
        return None
    try:
        length = int(raw)
    except ValueError:
        logger.debug(f"Ignoring malformed Content-Length header: {raw!r}")
        return None
    return length if length >= 0 else None
