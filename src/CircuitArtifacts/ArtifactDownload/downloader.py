# === NAVMAP v1 ===
# {
#   "module": "CircuitArtifacts.ArtifactDownload.downloader",
#   "purpose": "Orchestrate store-first, single-flight, concurrent artifact retrieval",
#   "sections": [
#     {"id": "results", "name": "Result Types", "anchor": "RES", "kind": "api"},
#     {"id": "downloader", "name": "Downloader", "anchor": "DOW", "kind": "api"},
#     {"id": "pipeline", "name": "Fetch Pipeline", "anchor": "PIP", "kind": "infra"},
#     {"id": "lifecycle", "name": "Lifecycle", "anchor": "LIF", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Artifact download orchestration.

:class:`Downloader` ties the catalog, transport, retry policy, decompressor,
integrity validator, and artifact store together. For each artifact it:

1. derives the network locator and storage key from the variant catalog;
2. returns stored bytes without touching the network when the store has them;
3. otherwise fetches under the retry policy, decompresses, validates (when the
   transport does not verify content itself), and persists the result.

Concurrent requests for the same storage key collapse onto one execution
(single-flight): late arrivals wait for the first caller's outcome, success or
failure. The shared execution runs under a token owned by the downloader, not
by any one caller; it is cancelled by :meth:`Downloader.shutdown` or once every
waiting caller has cancelled. :meth:`Downloader.download_variant` fans the
three artifacts of a variant out on a thread pool and fails as soon as any of
them fails.

Example:
    >>> from CircuitArtifacts.ArtifactDownload import Downloader, MemoryArtifactStore
    >>> with Downloader(MemoryArtifactStore()) as downloader:  # doctest: +SKIP
    ...     result = downloader.download_variant("01x01")
    >>> result.vkey  # doctest: +SKIP
    'artifacts-v2.1/01x01/vkey.json'
"""

from __future__ import annotations

import json
import logging
import threading
import time
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, ClassVar, Dict, Generic, Optional, Sequence, Tuple, TypeVar, Union

from .cache import ArtifactCache
from .cancellation import CancellationToken, CancellationTokenGroup
from .catalog import (
    ArtifactKind,
    ArtifactLocation,
    ArtifactName,
    ProgramFormat,
    VariantCatalog,
    get_default_catalog,
    resolve_artifact_name,
)
from .compression import decompress_artifact
from .errors import ArtifactDownloadError, FetchCancelled, StoreReadError, StoreWriteError
from .integrity import IntegrityValidator, load_digest_table, load_packaged_digest_table
from .network.base import Transport
from .network.factory import create_transport
from .network.retry import RetryPolicy, run_with_retry
from .settings import DownloaderSettings, get_settings
from .storage.base import ArtifactStore
from .storage.filesystem import FilesystemArtifactStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = [
    "WasmProgram",
    "NativeProgram",
    "Program",
    "VariantArtifacts",
    "ArtifactBundle",
    "Downloader",
]


# ============================================================================
# Result Types
# ============================================================================


@dataclass(frozen=True)
class WasmProgram(Generic[T]):
    """WebAssembly circuit program (storage key or bytes)."""

    value: T

    format: ClassVar[ProgramFormat] = ProgramFormat.WASM


@dataclass(frozen=True)
class NativeProgram(Generic[T]):
    """Native (``.dat``) circuit program (storage key or bytes)."""

    value: T

    format: ClassVar[ProgramFormat] = ProgramFormat.NATIVE


Program = Union[WasmProgram[T], NativeProgram[T]]


def _program(program_format: ProgramFormat, value: T) -> "Program[T]":
    if program_format is ProgramFormat.NATIVE:
        return NativeProgram(value)
    return WasmProgram(value)


@dataclass(frozen=True)
class VariantArtifacts:
    """Storage keys of the three artifacts of a downloaded variant."""

    variant: str
    vkey: str
    zkey: str
    program: "Program[str]"


@dataclass(frozen=True)
class ArtifactBundle:
    """Decompressed bytes of the three artifacts of a variant."""

    variant: str
    vkey: bytes
    zkey: bytes
    program: "Program[bytes]"

    def vkey_json(self) -> Any:
        """Parse the verification key."""
        return json.loads(self.vkey)


class _SharedFetch:
    """One in-flight artifact fetch and the number of callers waiting on it."""

    def __init__(self, token: CancellationToken) -> None:
        self.future: Future = Future()
        self.future.set_running_or_notify_cancel()
        self.token = token
        self.waiters = 0
        self.abandoned = False


# ============================================================================
# Downloader
# ============================================================================


class Downloader:
    """Fetch, verify, and persist circuit artifacts.

    Args:
        store: Artifact store; defaults to a filesystem store at
            ``settings.store_root``.
        transport: Retrieval strategy; defaults to the one named in settings.
        settings: Configuration; defaults to :func:`get_settings`.
        catalog: Variant catalog; defaults to the published catalog.
        validator: Digest validator; defaults to one built from settings.
        cache: Optional in-process cache; created when ``settings.memory_cache``.
        retry_policy: Backoff policy; defaults to the one in settings.
        sleep: Replacement for retry sleeps (tests).
    """

    def __init__(
        self,
        store: Optional[ArtifactStore] = None,
        transport: Optional[Transport] = None,
        *,
        settings: Optional[DownloaderSettings] = None,
        catalog: Optional[VariantCatalog] = None,
        validator: Optional[IntegrityValidator] = None,
        cache: Optional[ArtifactCache] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self.settings = settings or get_settings()
        if store is None:
            store = FilesystemArtifactStore(self.settings.store_root)
        self.store: ArtifactStore = store
        self.transport = transport if transport is not None else create_transport(self.settings.transport)
        self.catalog = catalog or get_default_catalog()
        self.validator = validator or self._default_validator(self.settings)
        if cache is None and self.settings.memory_cache:
            cache = ArtifactCache()
        self.cache = cache
        self.retry_policy = retry_policy or self.settings.to_retry_policy()
        self.program_format = self.settings.program_format
        self.max_workers = self.settings.max_workers
        self._sleep = sleep

        self._inflight: Dict[str, _SharedFetch] = {}
        self._inflight_lock = threading.Lock()
        self._tokens = CancellationTokenGroup()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    @staticmethod
    def _default_validator(settings: DownloaderSettings) -> IntegrityValidator:
        if settings.digest_table is not None:
            table = load_digest_table(settings.digest_table)
        else:
            table = load_packaged_digest_table()
        return IntegrityValidator(table, require_digests=settings.require_digests)

    # --- public operations -------------------------------------------------

    def fetch_one(
        self,
        variant: str,
        kind: Union[ArtifactKind, ArtifactName, str],
        *,
        root_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> bytes:
        """Return the decompressed bytes of one artifact, fetching it if needed.

        Args:
            variant: Circuit variant, e.g. ``"01x01"`` or ``"POI_3x3"``.
            kind: Logical kind (``vkey``/``zkey``/``program``) or physical name.
            root_id: Network root override; defaults to the family's root.
            cancel_token: Token whose cancellation aborts pending retries.

        Raises:
            InvalidVariant: Before any I/O, for unknown or unsafe variants.
            ArtifactDownloadError: Any pipeline failure, with ``kind`` and
                ``variant`` attached.
        """

        name = resolve_artifact_name(kind, self.program_format)
        location = self.catalog.locate(variant, name, root_id=root_id)
        return self._fetch_location(location, cancel_token)

    def download_variant(
        self,
        variant: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> VariantArtifacts:
        """Ensure all three artifacts of ``variant`` are stored and return their keys."""

        locations = self.catalog.locate_all(variant, self.program_format)
        self._fetch_all(locations, cancel_token)
        vkey, zkey, program = locations
        return VariantArtifacts(
            variant=variant,
            vkey=vkey.storage_key,
            zkey=zkey.storage_key,
            program=_program(self.program_format, program.storage_key),
        )

    def load_variant(
        self,
        variant: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> ArtifactBundle:
        """Like :meth:`download_variant` but return the artifact bytes."""

        locations = self.catalog.locate_all(variant, self.program_format)
        data = self._fetch_all(locations, cancel_token)
        vkey, zkey, program = locations
        return ArtifactBundle(
            variant=variant,
            vkey=data[vkey.name],
            zkey=data[zkey.name],
            program=_program(self.program_format, data[program.name]),
        )

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    def cache_size(self) -> int:
        return self.cache.size() if self.cache is not None else 0

    # ========================================================================
    # Fetch Pipeline
    # ========================================================================

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="artifact-fetch"
                )
            return self._executor

    def _fetch_all(
        self,
        locations: Sequence[ArtifactLocation],
        cancel_token: Optional[CancellationToken],
    ) -> Dict[ArtifactName, bytes]:
        token = cancel_token or self._tokens.create_token()
        executor = self._get_executor()
        futures = {
            executor.submit(self._fetch_location, location, token): location
            for location in locations
        }
        try:
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            for future in done:
                if future.cancelled():
                    raise FetchCancelled(
                        f"{futures[future].name.value} fetch cancelled by shutdown"
                    ).with_context(kind=futures[future].name.value, variant=futures[future].variant)
                exc = future.exception()
                if exc is not None:
                    for other in pending:
                        other.cancel()
                    if cancel_token is None:
                        # drop this call from sibling fetches; ones nobody else awaits stop retrying
                        token.cancel()
                    raise exc
            return {futures[future].name: future.result() for future in futures}
        finally:
            if cancel_token is None:
                self._tokens.remove_token(token)

    def _fetch_location(
        self,
        location: ArtifactLocation,
        cancel_token: Optional[CancellationToken] = None,
    ) -> bytes:
        key = location.storage_key
        with self._inflight_lock:
            shared = self._inflight.get(key)
            owner = shared is None or shared.abandoned
            if owner:
                shared = _SharedFetch(self._tokens.create_token())
                self._inflight[key] = shared
            shared.waiters += 1

        leave = partial(self._leave, shared)
        if cancel_token is not None:
            # May fire at once for a token that is already cancelled
            cancel_token.add_callback(leave)
        try:
            if owner:
                return self._run_shared(key, shared, location)
            logger.debug(
                "joining in-flight fetch",
                extra={"stage": "fetch", "variant": location.variant, "artifact": location.name.value},
            )
            return self._await_shared(shared, location, cancel_token)
        finally:
            if cancel_token is not None:
                cancel_token.remove_callback(leave)

    def _run_shared(self, key: str, shared: _SharedFetch, location: ArtifactLocation) -> bytes:
        try:
            data = self._resolve(location, shared.token)
        except BaseException as exc:
            self._release(key, shared)
            shared.future.set_exception(exc)
            raise
        self._release(key, shared)
        shared.future.set_result(data)
        return data

    def _await_shared(
        self,
        shared: _SharedFetch,
        location: ArtifactLocation,
        cancel_token: Optional[CancellationToken],
    ) -> bytes:
        if cancel_token is None:
            return shared.future.result()

        woken = threading.Event()
        shared.future.add_done_callback(lambda _future: woken.set())
        cancel_token.add_callback(woken.set)
        try:
            woken.wait()
        finally:
            cancel_token.remove_callback(woken.set)
        if shared.future.done():
            return shared.future.result()
        raise FetchCancelled("fetch cancelled while waiting on a shared download").with_context(
            kind=location.name.value, variant=location.variant, attempt_count=0
        )

    def _leave(self, shared: _SharedFetch) -> None:
        """Drop one waiter; the last one to leave cancels the shared fetch."""

        with self._inflight_lock:
            shared.waiters -= 1
            if shared.waiters > 0 or shared.future.done():
                return
            shared.abandoned = True
        shared.token.cancel()

    def _release(self, key: str, shared: _SharedFetch) -> None:
        # Unpublish before settling the future so a retrying caller starts afresh
        with self._inflight_lock:
            if self._inflight.get(key) is shared:
                del self._inflight[key]
        self._tokens.remove_token(shared.token)

    def _resolve(
        self,
        location: ArtifactLocation,
        cancel_token: CancellationToken,
    ) -> bytes:
        name = location.name
        variant = location.variant
        attempts = 0
        try:
            if self.cache is not None:
                cached = self.cache.get(location.root_id, variant, name)
                if cached is not None:
                    logger.debug(
                        "artifact cache hit",
                        extra={"stage": "cache", "variant": variant, "artifact": name.value},
                    )
                    return cached

            stored = self._read_store(location)
            if stored is not None:
                self._remember(location, stored)
                return stored

            started = time.monotonic()
            raw, attempts = self._download(location, cancel_token)
            data = decompress_artifact(raw, name)
            if not self.transport.verifies_content:
                self.validator.validate(data, name, variant)
            self._write_store(location, data)
            self._remember(location, data)
        except ArtifactDownloadError as exc:
            raise exc.with_context(kind=name.value, variant=variant, attempt_count=attempts)

        logger.info(
            "artifact fetched",
            extra={
                "stage": "fetch",
                "variant": variant,
                "artifact": name.value,
                "transport": self.transport.name,
                "attempts": attempts,
                "size": len(data),
                "elapsed_ms": int((time.monotonic() - started) * 1000),
            },
        )
        return data

    def _read_store(self, location: ArtifactLocation) -> Optional[bytes]:
        key = location.storage_key
        try:
            if not self.store.exists(key):
                return None
            data = self.store.get(key)
        except Exception as exc:
            raise StoreReadError(f"cannot read stored artifact {key}: {exc}") from exc
        if data is None:
            raise StoreReadError(f"store reported {key} present but returned no data")
        logger.debug(
            "artifact already stored",
            extra={"stage": "store", "variant": location.variant, "artifact": location.name.value, "key": key},
        )
        return bytes(data)

    def _write_store(self, location: ArtifactLocation, data: bytes) -> None:
        key = location.storage_key
        try:
            self.store.store(location.storage_dir, key, data)
        except Exception as exc:
            raise StoreWriteError(f"cannot store artifact {key}: {exc}") from exc

    def _remember(self, location: ArtifactLocation, data: bytes) -> None:
        if self.cache is not None:
            self.cache.set(location.root_id, location.variant, location.name, data)

    def _download(
        self,
        location: ArtifactLocation,
        cancel_token: CancellationToken,
    ) -> Tuple[bytes, int]:
        """Fetch the raw (still compressed) bytes; return them with the attempt count."""

        attempts = 0

        def _attempt() -> bytes:
            nonlocal attempts
            attempts += 1
            return self.transport.fetch(location.root_id, location.network_path)

        raw = run_with_retry(
            _attempt,
            self.retry_policy,
            kind=location.name.value,
            variant=location.variant,
            cancel_token=cancel_token,
            sleep=self._sleep,
        )
        return raw, attempts

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def shutdown(self) -> None:
        """Cancel pending retries and release network and thread resources.

        Idempotent and safe before first use. The downloader stays usable: a
        later call re-initialises what it needs.
        """

        self._tokens.cancel_all()
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        self.transport.shutdown()
        logger.debug("downloader shut down", extra={"stage": "lifecycle"})

    def __enter__(self) -> "Downloader":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def __repr__(self) -> str:
        return (
            f"Downloader(store={self.store!r}, transport={self.transport!r}, "
            f"program_format={self.program_format.value!r})"
        )
