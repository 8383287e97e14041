"""Brotli decompression for fetched artifacts.

Every artifact except the verification key is Brotli-compressed on the
network (``*.br``). The vkey is plain JSON and passes through untouched.
"""

from __future__ import annotations

import logging

import brotli

from .catalog import ArtifactName
from .errors import DecompressionError

logger = logging.getLogger(__name__)

__all__ = ["decompress_artifact", "compress_artifact"]


def decompress_artifact(data: bytes, name: ArtifactName) -> bytes:
    """Reverse the network-side compression for ``name``.

    Raises:
        DecompressionError: If ``data`` is not a valid Brotli stream.
    """

    name = ArtifactName(name)
    if not name.compressed:
        return bytes(data)

    try:
        result = brotli.decompress(bytes(data))
    except brotli.error as exc:
        raise DecompressionError(
            f"{name.value} artifact is not valid Brotli data ({len(data)} bytes)"
        ) from exc

    logger.debug(
        "artifact decompressed",
        extra={"stage": "decompress", "artifact": name.value, "compressed": len(data), "size": len(result)},
    )
    return result


def compress_artifact(data: bytes, name: ArtifactName) -> bytes:
    """Apply the network-side compression for ``name`` (used to publish fixtures)."""

    name = ArtifactName(name)
    if not name.compressed:
        return bytes(data)
    return brotli.compress(bytes(data))
