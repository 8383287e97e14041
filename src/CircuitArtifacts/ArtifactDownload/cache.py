"""In-process cache of decompressed, validated artifact bytes.

Entries are keyed by ``(root_id, variant, artifact)`` and live until
:meth:`ArtifactCache.clear` or process exit; there is no eviction. Only fully
fetched and validated bytes are ever inserted.
"""

from __future__ import annotations

import threading
from typing import Dict, Optional, Tuple

from .catalog import ArtifactName

__all__ = ["ArtifactCache", "CacheKey"]

CacheKey = Tuple[str, str, ArtifactName]


class ArtifactCache:
    """Thread-safe memo of artifact bytes."""

    def __init__(self) -> None:
        self._entries: Dict[CacheKey, bytes] = {}
        self._lock = threading.Lock()

    @staticmethod
    def key(root_id: str, variant: str, name: ArtifactName) -> CacheKey:
        return (root_id, variant, ArtifactName(name))

    def get(self, root_id: str, variant: str, name: ArtifactName) -> Optional[bytes]:
        with self._lock:
            return self._entries.get(self.key(root_id, variant, name))

    def set(self, root_id: str, variant: str, name: ArtifactName, data: bytes) -> None:
        with self._lock:
            self._entries[self.key(root_id, variant, name)] = bytes(data)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def __len__(self) -> int:
        return self.size()
