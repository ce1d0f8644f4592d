"""Manifest retrieval and parsing."""

from hotswap.manifest.provider import (
    ManifestProvider,
    TransportManifestProvider,
    is_remote,
    parse_manifest,
)

__all__ = ["ManifestProvider", "TransportManifestProvider", "is_remote", "parse_manifest"]
