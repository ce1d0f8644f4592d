"""Protocol transports for fetching manifests and file payloads."""

from hotswap.transport.base import (
    CHUNK_SIZE,
    DEFAULT_TIMEOUT,
    ProgressCallback,
    Transport,
    percent_complete,
    redact,
    split_credentials,
)
from hotswap.transport.ftp import FtpTransport
from hotswap.transport.http import HttpTransport
from hotswap.transport.router import SchemeTransport

__all__ = [
    "CHUNK_SIZE",
    "DEFAULT_TIMEOUT",
    "FtpTransport",
    "HttpTransport",
    "ProgressCallback",
    "SchemeTransport",
    "Transport",
    "percent_complete",
    "redact",
    "split_credentials",
]
