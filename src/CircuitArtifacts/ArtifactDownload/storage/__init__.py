"""Artifact store protocol and the bundled implementations."""

from .base import ArtifactStore, CallableArtifactStore
from .filesystem import FilesystemArtifactStore
from .memory import MemoryArtifactStore

__all__ = [
    "ArtifactStore",
    "CallableArtifactStore",
    "FilesystemArtifactStore",
    "MemoryArtifactStore",
]
