"""In-memory artifact store (tests and ephemeral use)."""

from __future__ import annotations

import threading
from typing import Dict, Optional

__all__ = ["MemoryArtifactStore"]


class MemoryArtifactStore:
    """Thread-safe dict-backed :class:`~.base.ArtifactStore`."""

    def __init__(self) -> None:
        self._entries: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._entries.get(key)

    def store(self, dir: str, key: str, data: bytes) -> None:
        with self._lock:
            self._entries[key] = bytes(data)

    def keys(self):
        with self._lock:
            return sorted(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
