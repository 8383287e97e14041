"""Tests for the cooperative cancellation primitives."""

from __future__ import annotations

import threading
import time

from CircuitArtifacts.ArtifactDownload.cancellation import (
    CancellationToken,
    CancellationTokenGroup,
)


class TestCancellationToken:
    def test_initial_state(self) -> None:
        token = CancellationToken()
        assert not token.is_cancelled()

    def test_cancel(self) -> None:
        token = CancellationToken()
        token.cancel()
        assert token.is_cancelled()
        token.cancel()
        assert token.is_cancelled()

    def test_wait_times_out_when_not_cancelled(self) -> None:
        token = CancellationToken()
        assert token.wait(0.01) is False

    def test_wait_wakes_early_on_cancel(self) -> None:
        token = CancellationToken()
        threading.Timer(0.05, token.cancel).start()

        started = time.monotonic()
        assert token.wait(10.0) is True
        assert time.monotonic() - started < 5.0

    def test_negative_wait_is_immediate(self) -> None:
        assert CancellationToken().wait(-1.0) is False

    def test_callbacks_run_once_on_cancel(self) -> None:
        token = CancellationToken()
        calls = []
        token.add_callback(lambda: calls.append("a"))
        token.add_callback(lambda: calls.append("b"))

        token.cancel()
        token.cancel()

        assert calls == ["a", "b"]

    def test_callback_added_after_cancel_runs_immediately(self) -> None:
        token = CancellationToken()
        token.cancel()
        calls = []

        token.add_callback(lambda: calls.append("late"))

        assert calls == ["late"]

    def test_removed_callback_does_not_run(self) -> None:
        token = CancellationToken()
        calls = []

        def callback() -> None:
            calls.append("removed")

        token.add_callback(callback)
        token.remove_callback(callback)
        token.remove_callback(callback)

        token.cancel()

        assert calls == []


class TestCancellationTokenGroup:
    def test_cancel_all_reaches_every_token(self) -> None:
        group = CancellationTokenGroup()
        created = group.create_token()
        other = group.create_token()

        assert len(group) == 2
        group.cancel_all()

        assert created.is_cancelled()
        assert other.is_cancelled()
        assert len(group) == 0

    def test_removed_tokens_are_not_cancelled(self) -> None:
        group = CancellationTokenGroup()
        kept = group.create_token()
        released = group.create_token()
        group.remove_token(released)
        group.remove_token(released)

        group.cancel_all()

        assert kept.is_cancelled()
        assert not released.is_cancelled()

    def test_tokens_created_after_cancel_all_start_fresh(self) -> None:
        group = CancellationTokenGroup()
        group.cancel_all()

        assert not group.create_token().is_cancelled()
