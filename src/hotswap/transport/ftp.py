"""FTP and FTPS transport.

ftplib is blocking, so each control command and each data-channel read is
offloaded to a worker thread. The chunk loop itself stays on the event loop,
which keeps cancellation and progress reporting identical to HTTP.
"""

import asyncio
import contextlib
import ftplib
import io
import logging
import ssl
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO
from urllib.parse import SplitResult, unquote, urlunsplit

from hotswap.cancellation import CancellationToken
from hotswap.domain.errors import IncompleteTransferError, TransportError
from hotswap.transport.base import (
    CHUNK_SIZE,
    DEFAULT_TIMEOUT,
    ProgressCallback,
    Transport,
    report_progress,
    split_credentials,
)

logger = logging.getLogger(__name__)

FtpFactory = Callable[[bool, float], ftplib.FTP]


def _default_factory(secure: bool, timeout: float) -> ftplib.FTP:
    if secure:
        return ftplib.FTP_TLS(context=ssl.create_default_context(), timeout=timeout)
    return ftplib.FTP(timeout=timeout)


def _remote_path(parts: SplitResult) -> str:
    """Path to RETR, relative to the login directory.

    ``ftp://host/dir/file`` resolves against the login directory and
    ``ftp://host//abs/file`` is absolute.
    """
    path = unquote(parts.path)
    if path.startswith("/"):
        path = path[1:]
    return path


class FtpTransport(Transport):
    """Downloads over FTP (plain) and FTPS (explicit TLS, protected data channel).

    Transfers are passive and binary. Credentials come from the URL's
    user-info; without them the server's anonymous login is used.
    """

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        chunk_size: int = CHUNK_SIZE,
        ftp_factory: FtpFactory | None = None,
    ):
        self._timeout = timeout
        self._chunk_size = chunk_size
        self._factory = ftp_factory or _default_factory

    async def fetch_to_file(
        self,
        url: str,
        destination: Path,
        token: CancellationToken,
        progress: ProgressCallback | None = None,
    ) -> int:
        with destination.open("wb") as fh:
            return await self._transfer(url, fh, token, progress)

    async def fetch_to_memory(self, url: str, token: CancellationToken) -> bytes:
        buffer = io.BytesIO()
        await self._transfer(url, buffer, token, None)
        return buffer.getvalue()

    async def _transfer(
        self,
        url: str,
        sink: BinaryIO,
        token: CancellationToken,
        progress: ProgressCallback | None,
    ) -> int:
        token.raise_if_cancelled()
        parts, username, password = split_credentials(url)
        safe_url = urlunsplit(parts)
        secure = parts.scheme.lower() == "ftps"
        remote = _remote_path(parts)
        if not remote:
            raise TransportError(safe_url, "FTP URL does not name a file")

        try:
            ftp = await asyncio.to_thread(self._connect, parts, username, password, secure)
        except ftplib.all_errors as e:
            raise TransportError(safe_url, f"FTP connection failed: {e}") from e

        completed = False
        try:
            total = await asyncio.to_thread(self._size, ftp, remote)
            logger.debug(f"Downloading {safe_url} ({total if total is not None else 'unknown'} bytes)")
            conn = await asyncio.to_thread(ftp.transfercmd, f"RETR {remote}")
            written = 0
            try:
                while True:
                    token.raise_if_cancelled()
                    chunk = await asyncio.to_thread(conn.recv, self._chunk_size)
                    if not chunk:
                        break
                    sink.write(chunk)
                    written += len(chunk)
                    await report_progress(progress, written, total)
                if isinstance(conn, ssl.SSLSocket):
                    await asyncio.to_thread(conn.unwrap)
            finally:
                conn.close()
            await asyncio.to_thread(ftp.voidresp)
            completed = True
        except ftplib.all_errors as e:
            raise TransportError(safe_url, f"FTP transfer failed: {e}") from e
        finally:
            await asyncio.to_thread(self._disconnect, ftp, completed)

        if total is not None and written != total:
            raise IncompleteTransferError(safe_url, total, written)
        return written

    def _connect(
        self,
        parts: SplitResult,
        username: str | None,
        password: str | None,
        secure: bool,
    ) -> ftplib.FTP:
        ftp = self._factory(secure, self._timeout)
        try:
            ftp.connect(parts.hostname or "", parts.port or 21)
            # Empty user makes ftplib log in as anonymous
            ftp.login(username or "", password or "")
            if secure and isinstance(ftp, ftplib.FTP_TLS):
                ftp.prot_p()
            ftp.set_pasv(True)
            ftp.voidcmd("TYPE I")
        except BaseException:
            ftp.close()
            raise
        return ftp

    def _size(self, ftp: ftplib.FTP, remote: str) -> int | None:
        try:
            return ftp.size(remote)
        except (ftplib.error_perm, ftplib.error_reply):
            # SIZE is an extension; servers may refuse it
            return None

    def _disconnect(self, ftp: ftplib.FTP, graceful: bool) -> None:
        if graceful:
            with contextlib.suppress(*ftplib.all_errors):
                ftp.quit()
                return
        ftp.close()
