"""Artifact store abstraction.

The downloader persists decompressed, validated artifact bytes through any
object satisfying :class:`ArtifactStore`. Keys are relative POSIX paths such
as ``artifacts-v2.1/01x01/zkey``; ``dir`` is the key's parent directory,
passed separately so stores backed by real directories can create it first.

NAVMAP:
  - ArtifactStore: protocol (exists, get, store)
  - CallableArtifactStore: adapter over three plain callables
"""

from __future__ import annotations

from typing import Callable, Optional, Protocol, runtime_checkable

__all__ = ["ArtifactStore", "CallableArtifactStore"]


@runtime_checkable
class ArtifactStore(Protocol):
    """Persistent key/value store for artifact bytes.

    Implementation Notes:
      - ``store`` must be atomic: a reader never observes a partial entry
      - keys are produced by the variant catalog and never contain ``..``
      - failures are raised as ordinary exceptions; the downloader wraps them
    """

    def exists(self, key: str) -> bool:
        """Return whether ``key`` holds a complete entry."""
        ...

    def get(self, key: str) -> Optional[bytes]:
        """Return the bytes stored under ``key``, or ``None`` when absent."""
        ...

    def store(self, dir: str, key: str, data: bytes) -> None:
        """Persist ``data`` under ``key``, creating ``dir`` if needed."""
        ...


class CallableArtifactStore:
    """Build an :class:`ArtifactStore` from three callables.

    Example:
        >>> entries = {}
        >>> store = CallableArtifactStore(
        ...     get=entries.get,
        ...     store=lambda d, k, v: entries.__setitem__(k, v),
        ...     exists=lambda k: k in entries,
        ... )
        >>> store.store("a", "a/b", b"x")
        >>> store.get("a/b")
        b'x'
    """

    def __init__(
        self,
        *,
        get: Callable[[str], Optional[bytes]],
        store: Callable[[str, str, bytes], None],
        exists: Callable[[str], bool],
    ) -> None:
        self._get = get
        self._store = store
        self._exists = exists

    def exists(self, key: str) -> bool:
        return bool(self._exists(key))

    def get(self, key: str) -> Optional[bytes]:
        return self._get(key)

    def store(self, dir: str, key: str, data: bytes) -> None:
        self._store(dir, key, data)
