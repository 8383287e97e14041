# === NAVMAP v1 ===
# {
#   "module": "CircuitArtifacts.ArtifactDownload.storage.filesystem",
#   "purpose": "Local filesystem artifact store with atomic, locked writes",
#   "sections": [
#     {"id": "filesystemartifactstore", "name": "FilesystemArtifactStore", "anchor": "class-filesystemartifactstore", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Local filesystem artifact store.

Layout mirrors the storage keys under the store root::

    <root>/artifacts-v2.1/01x01/{vkey.json,zkey,wasm}
    <root>/artifacts-v2.1/ppoi-nov-2-23/POI_3x3/{vkey.json,zkey,wasm}

Writes go to a temporary sibling, are fsynced, and land with ``os.replace``;
the parent directory is fsynced afterwards. A per-key :mod:`filelock` lock
serialises writers from separate processes sharing one root. Lock files live
under ``<root>/.locks`` so artifact directories only ever hold artifacts.
"""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import Optional, Union

from filelock import FileLock

logger = logging.getLogger(__name__)

__all__ = ["FilesystemArtifactStore"]

_LOCK_DIR_NAME = ".locks"
_LOCK_TIMEOUT_S = 60.0


class FilesystemArtifactStore:
    """Artifact store rooted at a local directory."""

    def __init__(self, root: Union[str, Path], *, lock_timeout: float = _LOCK_TIMEOUT_S) -> None:
        self.root = Path(root).expanduser().resolve()
        self.lock_timeout = lock_timeout

    def _abs(self, rel: str) -> Path:
        """Convert a storage key to an absolute path.

        Raises:
            ValueError: If ``rel`` is absolute or escapes the root.
        """
        if not rel or rel.startswith("/") or "\\" in rel or ".." in Path(rel).parts:
            raise ValueError(f"unsafe storage key: {rel!r}")
        path = (self.root / Path(rel)).resolve()
        if self.root not in path.parents:
            raise ValueError(f"unsafe storage key: {rel!r}")
        return path

    def path_for(self, key: str) -> Path:
        """Absolute path an entry is (or would be) stored at."""
        return self._abs(key)

    def _lock_for(self, key: str) -> FileLock:
        lock_dir = self.root / _LOCK_DIR_NAME
        lock_dir.mkdir(parents=True, exist_ok=True)
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return FileLock(str(lock_dir / f"{digest}.lock"), timeout=self.lock_timeout)

    def exists(self, key: str) -> bool:
        return self._abs(key).is_file()

    def get(self, key: str) -> Optional[bytes]:
        path = self._abs(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def store(self, dir: str, key: str, data: bytes) -> None:
        dest = self._abs(key)
        parent = self._abs(dir)
        if dest.parent != parent:
            raise ValueError(f"storage key {key!r} is not inside {dir!r}")
        parent.mkdir(parents=True, exist_ok=True)
        tmp = dest.with_name(f"{dest.name}.tmp-{os.getpid()}")

        with self._lock_for(key):
            try:
                with open(tmp, "wb") as wf:
                    wf.write(data)
                    wf.flush()
                    os.fsync(wf.fileno())
            except Exception:
                tmp.unlink(missing_ok=True)
                raise
            os.replace(tmp, dest)

            fd = os.open(str(parent), os.O_RDONLY)
            try:
                os.fsync(fd)
            finally:
                os.close(fd)

        logger.debug(
            "artifact stored",
            extra={"stage": "store", "key": key, "size": len(data), "path": str(dest)},
        )

    def __repr__(self) -> str:
        return f"FilesystemArtifactStore(root={str(self.root)!r})"
