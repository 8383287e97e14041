# === NAVMAP v1 ===
# {
#   "module": "CircuitArtifacts.ArtifactDownload.network.base",
#   "purpose": "Transport interface with lazily initialised, owned HTTP client",
#   "sections": [
#     {"id": "transport", "name": "Transport", "anchor": "class-transport", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Transport interface shared by the three retrieval strategies.

A transport fetches the raw (still compressed) bytes stored at
``/ipfs/<root_id>/<path>``. Implementations differ in where the bytes come
from and whether they are verified against the content identifier on the way
(:attr:`Transport.verifies_content`).

The network handle is an ``httpx.Client`` owned by the transport instance. It
is created at most once per lifetime, on the first :meth:`Transport.init` or
:meth:`Transport.fetch`, under a lock so that concurrent first fetches share a
single client. :meth:`Transport.shutdown` closes it; fetches caught in flight
by the shutdown fail with
:class:`~CircuitArtifacts.ArtifactDownload.errors.TransportClosedError`. A
later fetch initialises a fresh client.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional

import httpx

from ..errors import (
    ArtifactDownloadError,
    RetryableFetchError,
    TerminalFetchError,
    TransportClosedError,
    TransportInitError,
)
from .client import create_http_client
from .retry import error_for_status

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], httpx.Client]

__all__ = ["ClientFactory", "Transport"]


class Transport(ABC):
    """Abstract retrieval strategy.

    Args:
        client_factory: Zero-argument callable returning a new ``httpx.Client``.
            Defaults to :func:`create_http_client` with package defaults.
    """

    #: Short identifier used in logs and settings
    name: str = "transport"

    #: Whether fetched bytes are checked against their content identifier
    verifies_content: bool = False

    def __init__(self, *, client_factory: Optional[ClientFactory] = None) -> None:
        self._client_factory: ClientFactory = client_factory or create_http_client
        self._client: Optional[httpx.Client] = None
        self._lock = threading.Lock()

    # --- lifecycle ---------------------------------------------------------

    @property
    def initialized(self) -> bool:
        return self._client is not None

    def init(self) -> None:
        """Create the network client if needed. Idempotent and thread-safe.

        Raises:
            TransportInitError: If the client cannot be created or the
                strategy-specific readiness check fails.
        """
        self._acquire_client()

    def shutdown(self) -> None:
        """Close the network client. Safe to call repeatedly or before init."""

        with self._lock:
            client, self._client = self._client, None
        if client is None:
            return
        client.close()
        logger.debug("transport shut down", extra={"stage": "transport", "transport": self.name})

    def _acquire_client(self) -> httpx.Client:
        client = self._client
        if client is not None:
            return client
        with self._lock:
            if self._client is None:
                try:
                    candidate = self._client_factory()
                except Exception as exc:
                    raise TransportInitError(f"{self.name}: cannot create HTTP client: {exc}") from exc
                try:
                    self._on_init(candidate)
                except ArtifactDownloadError:
                    candidate.close()
                    raise
                except Exception as exc:
                    candidate.close()
                    raise TransportInitError(f"{self.name}: initialisation failed: {exc}") from exc
                self._client = candidate
                logger.debug(
                    "transport initialised", extra={"stage": "transport", "transport": self.name}
                )
            return self._client

    def _on_init(self, client: httpx.Client) -> None:
        """Strategy-specific readiness check run once per new client."""

    # --- fetching ----------------------------------------------------------

    def fetch(self, root_id: str, path: str) -> bytes:
        """Return the bytes stored at ``/ipfs/<root_id>/<path>``.

        Raises:
            RetryableFetchError: Network-level failure or retryable status.
            TerminalFetchError: Any other non-2xx response.
            TransportClosedError: The transport was shut down mid-flight.
        """

        client = self._acquire_client()
        try:
            return self._fetch(client, root_id, path.lstrip("/"))
        except ArtifactDownloadError as exc:
            if self._client is not client and not isinstance(exc, TransportClosedError):
                raise TransportClosedError(
                    f"{self.name}: transport shut down during fetch"
                ) from exc
            raise
        except (httpx.HTTPError, RuntimeError) as exc:
            if self._client is not client or getattr(client, "is_closed", False):
                raise TransportClosedError(
                    f"{self.name}: transport shut down during fetch"
                ) from exc
            if isinstance(exc, httpx.UnsupportedProtocol):
                raise TerminalFetchError(f"{self.name}: {exc}") from exc
            if isinstance(exc, httpx.TransportError):
                raise RetryableFetchError(f"{self.name}: {type(exc).__name__}: {exc}") from exc
            raise

    @abstractmethod
    def _fetch(self, client: httpx.Client, root_id: str, path: str) -> bytes:
        """Perform one fetch with an initialised client."""

    def _get(self, client: httpx.Client, url: str, **kwargs) -> httpx.Response:
        response = client.get(url, **kwargs)
        error_for_status(response, url=url)
        return response

    def __repr__(self) -> str:
        return f"{type(self).__name__}(initialized={self.initialized})"
