"""Cooperative cancellation primitives shared by concurrent artifact fetches.

A :class:`~CircuitArtifacts.ArtifactDownload.downloader.Downloader` fans each
variant out into parallel fetches whose retry loops may sleep for tens of
seconds. This module offers the light-weight :class:`CancellationToken` those
loops sleep on, so that shutting the downloader down (or a caller giving up)
interrupts pending backoff waits instead of leaving them to run out, and
:class:`CancellationTokenGroup` for broadcasting cancellation across the
tokens handed out by one downloader.
"""

from __future__ import annotations

import threading
from typing import Callable


class CancellationToken:
    """Thread-safe cancellation token for cooperative task cancellation.

    Callbacks registered with :meth:`add_callback` run once, in the thread that
    calls :meth:`cancel`.

    Examples:
        >>> token = CancellationToken()
        >>> token.wait(0.0)
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()
        self._callbacks: list[Callable[[], None]] = []
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        with self._lock:
            if self._is_cancelled.is_set():
                return
            self._is_cancelled.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._is_cancelled.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to ``timeout`` seconds, waking early on cancellation.

        Returns:
            True if the token was cancelled before or during the wait.
        """
        return self._is_cancelled.wait(max(timeout, 0.0))

    def add_callback(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` on cancellation, or right away if already cancelled."""
        with self._lock:
            if not self._is_cancelled.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                # Already run or never registered
                pass


class CancellationTokenGroup:
    """A group of cancellation tokens that can be cancelled together."""

    def __init__(self) -> None:
        self._tokens: list[CancellationToken] = []
        self._lock = threading.Lock()

    def create_token(self) -> CancellationToken:
        """Create a new token and add it to this group."""
        token = CancellationToken()
        with self._lock:
            self._tokens.append(token)
        return token

    def remove_token(self, token: CancellationToken) -> None:
        """Release ``token`` once the work it guarded has finished."""

        with self._lock:
            try:
                self._tokens.remove(token)
            except ValueError:
                # Already released
                pass

    def cancel_all(self) -> None:
        """Cancel every token currently in the group and forget them."""
        with self._lock:
            tokens, self._tokens = self._tokens, []
        for token in tokens:
            token.cancel()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)
