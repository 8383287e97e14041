"""Convenience entry points over :class:`~.downloader.Downloader`.

Each call builds a short-lived downloader from settings, runs one operation,
and shuts it down. Long-running callers should hold a :class:`Downloader`
instead so connections and the in-process cache are reused.
"""

from __future__ import annotations

from typing import Optional, Union

from .catalog import ArtifactKind, ArtifactName, poi_variant, standard_variant
from .downloader import ArtifactBundle, Downloader, VariantArtifacts
from .settings import DownloaderSettings
from .storage.base import ArtifactStore

__all__ = [
    "download_artifacts_for_variant",
    "download_artifacts_for_poi",
    "download_artifacts_for_circuit",
    "load_artifacts_for_variant",
    "fetch_one",
]


def download_artifacts_for_variant(
    variant: str,
    settings: Optional[DownloaderSettings] = None,
    *,
    store: Optional[ArtifactStore] = None,
) -> VariantArtifacts:
    """Ensure the three artifacts of ``variant`` are stored; return their keys."""

    with Downloader(store, settings=settings) as downloader:
        return downloader.download_variant(variant)


def load_artifacts_for_variant(
    variant: str,
    settings: Optional[DownloaderSettings] = None,
    *,
    store: Optional[ArtifactStore] = None,
) -> ArtifactBundle:
    """Like :func:`download_artifacts_for_variant` but return the bytes."""

    with Downloader(store, settings=settings) as downloader:
        return downloader.load_variant(variant)


def download_artifacts_for_circuit(
    inputs: int,
    outputs: int,
    settings: Optional[DownloaderSettings] = None,
) -> VariantArtifacts:
    """Download the standard circuit with ``inputs`` nullifiers and ``outputs`` commitments."""

    return download_artifacts_for_variant(standard_variant(inputs, outputs), settings)


def download_artifacts_for_poi(
    max_inputs: int,
    max_outputs: int,
    settings: Optional[DownloaderSettings] = None,
) -> VariantArtifacts:
    """Download a privacy-proof circuit (only 3x3 and 13x13 exist)."""

    return download_artifacts_for_variant(poi_variant(max_inputs, max_outputs), settings)


def fetch_one(
    root_id: Optional[str],
    variant: str,
    kind: Union[ArtifactKind, ArtifactName, str],
    settings: Optional[DownloaderSettings] = None,
    *,
    store: Optional[ArtifactStore] = None,
) -> bytes:
    """Fetch one artifact of ``variant`` under ``root_id`` (family root when ``None``)."""

    with Downloader(store, settings=settings) as downloader:
        return downloader.fetch_one(variant, kind, root_id=root_id)
