"""Resolve a manifest locator into a Manifest.

The wire format is JSON::

    {"files": [{"name": ..., "isExecutable": ..., "currentPath": ...,
                "newPath": ..., "backupPath": ..., "downloadUrl": ...,
                "expectedHash": ...}]}
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import urlsplit

from pydantic import ValidationError

from hotswap.cancellation import CancellationToken
from hotswap.domain.enums import SUPPORTED_SCHEMES
from hotswap.domain.errors import ManifestError, TransportError
from hotswap.domain.models import Manifest
from hotswap.transport.base import Transport, redact

logger = logging.getLogger(__name__)


class ManifestProvider(Protocol):
    """Anything that can turn a locator (URL or path) into a Manifest."""

    async def get_manifest(self, locator: str, token: CancellationToken) -> Manifest: ...


def parse_manifest(payload: bytes | str, source: str = "<manifest>") -> Manifest:
    """Parse manifest JSON.

    Raises:
        ManifestError: If the payload is not JSON or fails validation.
    """
    try:
        data = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ManifestError(f"Manifest {source} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ManifestError(f"Manifest {source} must be a JSON object with a 'files' list")
    if data.get("files") is None:
        data = {**data, "files": []}

    try:
        return Manifest.model_validate(data)
    except ValidationError as e:
        raise ManifestError(f"Manifest {source} is invalid: {e}") from e


def is_remote(locator: str) -> bool:
    return urlsplit(locator).scheme.lower() in SUPPORTED_SCHEMES


class TransportManifestProvider:
    """Reads remote manifests through a Transport and local ones from disk."""

    def __init__(self, transport: Transport):
        self.transport = transport

    async def get_manifest(self, locator: str, token: CancellationToken) -> Manifest:
        if is_remote(locator):
            source = redact(locator)
            logger.info(f"Fetching manifest from {source}")
            try:
                payload = await self.transport.fetch_to_memory(locator, token)
            except TransportError as e:
                raise ManifestError(f"Failed to download manifest: {e}") from e
        else:
            source = locator
            path = Path(locator).expanduser()
            logger.info(f"Reading manifest from {path}")
            try:
                payload = await asyncio.to_thread(path.read_bytes)
            except OSError as e:
                raise ManifestError(f"Failed to read manifest {path}: {e}") from e

        manifest = parse_manifest(payload, source)
        logger.debug(f"Manifest {source} lists {len(manifest.files)} file(s)")
        return manifest
