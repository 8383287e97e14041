"""Shared fixtures for the circuit artifact downloader tests.

Nothing here touches the network: transports are either :class:`FakeTransport`
(serving a published artifact set from memory) or real transports wired to an
``httpx.MockTransport``.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import httpx
import pytest

from CircuitArtifacts.ArtifactDownload.catalog import (
    ArtifactName,
    VariantCatalog,
)
from CircuitArtifacts.ArtifactDownload.compression import compress_artifact
from CircuitArtifacts.ArtifactDownload.errors import TerminalFetchError
from CircuitArtifacts.ArtifactDownload.integrity import (
    ExpectedDigest,
    IntegrityValidator,
    compute_digest,
)
from CircuitArtifacts.ArtifactDownload.logging_config import LOGGER_NAME
from CircuitArtifacts.ArtifactDownload.network.base import Transport
from CircuitArtifacts.ArtifactDownload.network.retry import RetryPolicy
from CircuitArtifacts.ArtifactDownload.settings import DownloaderSettings, reset_settings
from CircuitArtifacts.ArtifactDownload.storage.memory import MemoryArtifactStore


def artifact_contents(variant: str) -> Dict[ArtifactName, bytes]:
    """Deterministic decompressed contents for every artifact of ``variant``."""

    vkey = json.dumps({"protocol": "groth16", "curve": "bn128", "variant": variant}).encode()
    return {
        ArtifactName.VKEY: vkey,
        ArtifactName.ZKEY: (f"zkey:{variant}:".encode() * 64),
        ArtifactName.WASM: b"\x00asm\x01\x00\x00\x00" + variant.encode() * 32,
        ArtifactName.DAT: (f"dat:{variant}:".encode() * 48),
    }


class PublishedArtifacts:
    """In-memory stand-in for the IPFS catalog, keyed by ``(root_id, path)``."""

    def __init__(self, catalog: VariantCatalog) -> None:
        self.catalog = catalog
        self.network: Dict[Tuple[str, str], bytes] = {}
        self.contents: Dict[Tuple[str, ArtifactName], bytes] = {}

    def publish(self, variant: str) -> Dict[ArtifactName, bytes]:
        contents = artifact_contents(variant)
        for name, data in contents.items():
            location = self.catalog.locate(variant, name)
            self.network[(location.root_id, location.network_path)] = compress_artifact(data, name)
            self.contents[(variant, name)] = data
        return contents

    def digest_table(self) -> Dict[str, Dict[ArtifactName, ExpectedDigest]]:
        table: Dict[str, Dict[ArtifactName, ExpectedDigest]] = {}
        for (variant, name), data in self.contents.items():
            if name is ArtifactName.VKEY:
                continue
            table.setdefault(variant, {})[name] = ExpectedDigest("sha256", compute_digest(data))
        return table


class FakeTransport(Transport):
    """Transport that serves :class:`PublishedArtifacts` and counts calls.

    ``failures`` maps a network path to a list of exceptions raised (in order)
    before the published bytes are returned.
    """

    name = "fake"

    def __init__(
        self,
        published: PublishedArtifacts,
        *,
        verifies_content: bool = False,
        failures: Optional[Dict[str, List[BaseException]]] = None,
        gate: Optional[threading.Event] = None,
    ) -> None:
        super().__init__(client_factory=lambda: httpx.Client())
        self.published = published
        self.verifies_content = verifies_content
        self.failures = {path: list(errors) for path, errors in (failures or {}).items()}
        self.gate = gate
        self.calls: List[Tuple[str, str]] = []
        self.shutdowns = 0
        self._calls_lock = threading.Lock()

    def fetch(self, root_id: str, path: str) -> bytes:
        with self._calls_lock:
            self.calls.append((root_id, path))
            pending = self.failures.get(path)
            error = pending.pop(0) if pending else None
        if self.gate is not None:
            self.gate.wait(5.0)
        if error is not None:
            raise error
        try:
            return self.published.network[(root_id, path)]
        except KeyError:
            raise TerminalFetchError(f"HTTP 404 for {path}", status_code=404) from None

    def _fetch(self, client: httpx.Client, root_id: str, path: str) -> bytes:
        raise AssertionError("FakeTransport.fetch does not use an HTTP client")

    def shutdown(self) -> None:
        self.shutdowns += 1
        super().shutdown()

    def paths_fetched(self) -> List[str]:
        return [path for _, path in self.calls]


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path) -> Iterable[None]:
    """Keep environment overrides from leaking between tests."""

    for key in list(os.environ):
        if key.upper().startswith("CIRCUIT_ARTIFACTS_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CIRCUIT_ARTIFACTS_STORE_ROOT", str(tmp_path / "default-store"))
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(autouse=True)
def _restore_package_logger() -> Iterable[None]:
    """Undo handler, level, and propagation changes made by ``setup_logging``."""

    logger = logging.getLogger(LOGGER_NAME)
    level, propagate = logger.level, logger.propagate
    yield
    for handler in list(logger.handlers):
        if getattr(handler, "_circuit_artifacts_managed", False):
            logger.removeHandler(handler)
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def catalog() -> VariantCatalog:
    return VariantCatalog()


@pytest.fixture
def published(catalog: VariantCatalog) -> PublishedArtifacts:
    artifacts = PublishedArtifacts(catalog)
    for variant in ("01x01", "02x03", "POI_3x3"):
        artifacts.publish(variant)
    return artifacts


@pytest.fixture
def fake_transport(published: PublishedArtifacts) -> FakeTransport:
    return FakeTransport(published)


@pytest.fixture
def make_transport(published: PublishedArtifacts) -> Callable[..., FakeTransport]:
    def _make(**kwargs) -> FakeTransport:
        return FakeTransport(published, **kwargs)

    return _make


@pytest.fixture
def mock_clients() -> Callable[[Callable[[httpx.Request], httpx.Response]], Callable[[], httpx.Client]]:
    return mock_client_factory


@pytest.fixture
def memory_store() -> MemoryArtifactStore:
    return MemoryArtifactStore()


@pytest.fixture
def settings(tmp_path) -> DownloaderSettings:
    return DownloaderSettings(store_root=tmp_path / "store")


@pytest.fixture
def validator(published: PublishedArtifacts) -> IntegrityValidator:
    return IntegrityValidator(published.digest_table())


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return RetryPolicy(max_attempts=3, base_delay=0.0, jitter=False)


@pytest.fixture
def recorded_sleeps() -> Tuple[List[float], Callable[[float], None]]:
    sleeps: List[float] = []
    return sleeps, sleeps.append


def mock_client_factory(
    handler: Callable[[httpx.Request], httpx.Response],
) -> Callable[[], httpx.Client]:
    """Client factory whose clients answer through ``handler``."""

    def _factory() -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(handler))

    return _factory
