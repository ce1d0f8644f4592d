"""SHA-256 verification of downloaded files."""

import asyncio
import hashlib
from pathlib import Path
from typing import Final

from hotswap.cancellation import CancellationToken

HASH_CHUNK_SIZE: Final = 65536


def _digest_file(path: Path, token: CancellationToken | None) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as source:
        for chunk in iter(lambda: source.read(HASH_CHUNK_SIZE), b""):
            if token is not None:
                token.raise_if_cancelled()
            digest.update(chunk)
    return digest.hexdigest()


async def compute_digest(path: Path, token: CancellationToken | None = None) -> str:
    """Lowercase hex SHA-256 of ``path``, hashed incrementally off the event loop."""
    return await asyncio.to_thread(_digest_file, Path(path), token)


def digests_match(actual: str, expected: str) -> bool:
    return actual.strip().lower() == expected.strip().lower()


async def verify(path: Path, expected_hex: str | None, token: CancellationToken | None = None) -> bool:
    """Check ``path`` against an expected hex digest, ignoring case.

    Raises:
        ValueError: If ``expected_hex`` is empty; an empty hash never verifies anything.
        OSError: If the file cannot be read.
    """
    if not expected_hex or not expected_hex.strip():
        raise ValueError("Expected hash must not be empty")
    actual = await compute_digest(path, token)
    return digests_match(actual, expected_hex)


class Verifier:
    """Object form of the helpers above, so the orchestrator can take a substitute."""

    async def digest(self, path: Path, token: CancellationToken | None = None) -> str:
        return await compute_digest(path, token)

    async def verify(self, path: Path, expected_hex: str | None, token: CancellationToken | None = None) -> bool:
        return await verify(path, expected_hex, token)
