from __future__ import annotations

import threading

import pytest

from CircuitArtifacts.ArtifactDownload.storage import (
    ArtifactStore,
    CallableArtifactStore,
    FilesystemArtifactStore,
    MemoryArtifactStore,
)

KEY = "artifacts-v2.1/01x01/zkey"
DIR = "artifacts-v2.1/01x01"


def test_filesystem_store_round_trip(tmp_path) -> None:
    store = FilesystemArtifactStore(tmp_path)

    assert not store.exists(KEY)
    assert store.get(KEY) is None

    store.store(DIR, KEY, b"zkey-bytes")

    assert store.exists(KEY)
    assert store.get(KEY) == b"zkey-bytes"
    assert (tmp_path / DIR / "zkey").read_bytes() == b"zkey-bytes"
    assert store.path_for(KEY) == (tmp_path / KEY).resolve()


def test_filesystem_store_overwrites_atomically(tmp_path) -> None:
    store = FilesystemArtifactStore(tmp_path)
    store.store(DIR, KEY, b"first")
    store.store(DIR, KEY, b"second")

    assert store.get(KEY) == b"second"
    leftovers = [p.name for p in (tmp_path / DIR).iterdir()]
    assert leftovers == ["zkey"]


def test_filesystem_store_keeps_locks_out_of_artifact_dirs(tmp_path) -> None:
    store = FilesystemArtifactStore(tmp_path)
    store.store("artifacts-v2.1/ppoi-nov-2-23/POI_3x3", "artifacts-v2.1/ppoi-nov-2-23/POI_3x3/wasm", b"w")

    assert sorted(p.name for p in (tmp_path / "artifacts-v2.1/ppoi-nov-2-23/POI_3x3").iterdir()) == ["wasm"]
    assert (tmp_path / ".locks").is_dir()


@pytest.mark.parametrize(
    "key",
    ["", "/etc/passwd", "../outside", "artifacts-v2.1/../../outside", "a\\b"],
)
def test_filesystem_store_rejects_unsafe_keys(tmp_path, key: str) -> None:
    store = FilesystemArtifactStore(tmp_path)

    with pytest.raises(ValueError):
        store.get(key)


def test_filesystem_store_requires_key_inside_dir(tmp_path) -> None:
    store = FilesystemArtifactStore(tmp_path)

    with pytest.raises(ValueError):
        store.store("artifacts-v2.1", KEY, b"x")


def test_filesystem_store_concurrent_writers(tmp_path) -> None:
    store = FilesystemArtifactStore(tmp_path)
    errors = []

    def _write(payload: bytes) -> None:
        try:
            store.store(DIR, KEY, payload)
        except Exception as exc:  # pragma: no cover - surfaced by the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=_write, args=(bytes([i]) * 1024,)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    data = store.get(KEY)
    assert data is not None and len(data) == 1024 and len(set(data)) == 1


def test_memory_store() -> None:
    store = MemoryArtifactStore()
    store.store(DIR, KEY, bytearray(b"abc"))

    assert store.exists(KEY)
    assert store.get(KEY) == b"abc"
    assert store.get("missing") is None
    assert store.keys() == [KEY]
    assert len(store) == 1


def test_callable_store_delegates() -> None:
    entries = {}
    seen_dirs = []

    def _store(directory: str, key: str, data: bytes) -> None:
        seen_dirs.append(directory)
        entries[key] = data

    store = CallableArtifactStore(get=entries.get, store=_store, exists=lambda k: k in entries)
    store.store(DIR, KEY, b"x")

    assert store.exists(KEY)
    assert store.get(KEY) == b"x"
    assert seen_dirs == [DIR]


def test_bundled_stores_satisfy_protocol(tmp_path) -> None:
    assert isinstance(FilesystemArtifactStore(tmp_path), ArtifactStore)
    assert isinstance(MemoryArtifactStore(), ArtifactStore)
    assert isinstance(
        CallableArtifactStore(get=lambda k: None, store=lambda d, k, v: None, exists=lambda k: False),
        ArtifactStore,
    )
    assert not isinstance(object(), ArtifactStore)
