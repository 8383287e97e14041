# === NAVMAP v1 ===
# {
#   "module": "CircuitArtifacts.ArtifactDownload.errors",
#   "purpose": "Define the exception hierarchy shared across variant validation, fetching, and storage",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "catalog", "name": "Variant Errors", "anchor": "VAR", "kind": "api"},
#     {"id": "transport", "name": "Transport & Fetch Errors", "anchor": "FET", "kind": "api"},
#     {"id": "content", "name": "Content Errors", "anchor": "CON", "kind": "api"},
#     {"id": "store", "name": "Store Errors", "anchor": "STO", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared across variant validation, fetching, and storage.

The artifact pipeline spans local validation, network retrieval, Brotli
decompression, digest verification, and persistence. Every failure raised by
the package derives from :class:`ArtifactDownloadError` so callers can catch a
single type, while specialised subclasses describe which stage failed.

Errors that reach the orchestrator boundary carry diagnostic context
(``kind``, ``variant``, ``attempt_count``) attached with
:meth:`ArtifactDownloadError.with_context`; the underlying failure is chained
through ``__cause__``.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "ArtifactDownloadError",
    "InvalidVariant",
    "PathTraversal",
    "TransportInitError",
    "RetryableFetchError",
    "TerminalFetchError",
    "TransportClosedError",
    "FetchCancelled",
    "DecompressionError",
    "IntegrityMismatch",
    "StoreReadError",
    "StoreWriteError",
    "ConfigError",
]


class ArtifactDownloadError(RuntimeError):
    """Base exception for artifact validation, download, or storage failures."""

    kind: Optional[str] = None
    variant: Optional[str] = None
    attempt_count: Optional[int] = None

    def with_context(
        self,
        *,
        kind: Optional[str] = None,
        variant: Optional[str] = None,
        attempt_count: Optional[int] = None,
    ) -> "ArtifactDownloadError":
        """Attach diagnostic context without overwriting values already set."""

        if kind is not None and self.kind is None:
            self.kind = kind
        if variant is not None and self.variant is None:
            self.variant = variant
        if attempt_count is not None and self.attempt_count is None:
            self.attempt_count = attempt_count
        return self

    @property
    def cause(self) -> Optional[BaseException]:
        """Return the chained underlying error, if any."""

        return self.__cause__

    def __str__(self) -> str:
        message = super().__str__()
        details = []
        if self.kind is not None:
            details.append(f"kind={self.kind}")
        if self.variant is not None:
            details.append(f"variant={self.variant}")
        if self.attempt_count is not None:
            details.append(f"attempts={self.attempt_count}")
        if not details:
            return message
        return f"{message} [{', '.join(details)}]"


class ConfigError(ArtifactDownloadError):
    """Raised when settings or reference data inputs are invalid."""


# --- Variant errors ---------------------------------------------------------


class InvalidVariant(ArtifactDownloadError, ValueError):
    """Raised when a variant string belongs to neither catalog family."""

    def __init__(self, message: str, *, variant: Optional[str] = None) -> None:
        super().__init__(message)
        self.variant = variant


class PathTraversal(InvalidVariant):
    """Raised when a variant would escape the artifact root once used as a path."""


# --- Transport & fetch errors ----------------------------------------------


class TransportInitError(ArtifactDownloadError):
    """Raised when a transport cannot acquire its network resources."""


class RetryableFetchError(ArtifactDownloadError):
    """A single fetch attempt failed transiently.

    Only ever raised inside a retry loop; exhaustion surfaces it as the cause
    of a :class:`TerminalFetchError`.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class TerminalFetchError(ArtifactDownloadError):
    """Raised for non-retryable responses or when retries are exhausted."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        attempt_count: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url
        self.attempt_count = attempt_count


class TransportClosedError(TerminalFetchError):
    """Raised when a transport is shut down while a fetch is in flight."""


class FetchCancelled(ArtifactDownloadError):
    """Raised when cancellation interrupts a pending retry."""


# --- Content errors ---------------------------------------------------------


class DecompressionError(ArtifactDownloadError):
    """Raised when fetched bytes are not a valid Brotli stream."""


class IntegrityMismatch(ArtifactDownloadError):
    """Raised when an artifact digest diverges from the reference table."""

    def __init__(
        self,
        message: str,
        *,
        expected: Optional[str],
        actual: str,
    ) -> None:
        super().__init__(message)
        self.expected = expected
        self.actual = actual


# --- Store errors -----------------------------------------------------------


class StoreReadError(ArtifactDownloadError):
    """Raised when the artifact store reports an entry it cannot return."""


class StoreWriteError(ArtifactDownloadError):
    """Raised when persisting an artifact to the store fails."""
