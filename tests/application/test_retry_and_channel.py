"""Tests for the retry policy, progress channel and sync handle."""

import queue
import threading
from unittest.mock import Mock

import pytest

from issuemirror.application.sync import ProgressChannel, RetryPolicy, SyncHandle
from issuemirror.core.cancellation import CancellationToken
from issuemirror.core.domain import RepositoryRef, SyncPhase, SyncProgress
from issuemirror.core.exceptions import (
    AuthenticationError,
    CancelledError,
    NotFoundError,
    RateLimitError,
    TransientError,
)


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_success_needs_no_retry(self):
        fn = Mock(return_value="page")
        assert RetryPolicy().call(fn, "cursor") == "page"
        fn.assert_called_once_with("cursor")

    def test_retries_transient_then_succeeds(self):
        fn = Mock(side_effect=[TransientError("502"), "page"])
        sleep = Mock()
        on_retry = Mock()

        result = RetryPolicy(max_attempts=3, base_delay=1.0).call(fn, on_retry=on_retry, sleep=sleep)

        assert result == "page"
        sleep.assert_called_once_with(1.0)
        assert on_retry.call_args.args[:2] == (1, 1.0)

    def test_gives_up_after_max_attempts(self):
        fn = Mock(side_effect=TransientError("timeout"))

        with pytest.raises(TransientError):
            RetryPolicy(max_attempts=3, base_delay=0).call(fn, sleep=Mock())

        assert fn.call_count == 3

    @pytest.mark.parametrize("error", [
        AuthenticationError("bad token"),
        NotFoundError("gone"),
        CancelledError(),
    ])
    def test_fatal_errors_are_not_retried(self, error):
        fn = Mock(side_effect=error)

        with pytest.raises(type(error)):
            RetryPolicy(max_attempts=5).call(fn, sleep=Mock())

        fn.assert_called_once()

    def test_exponential_backoff_is_capped(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0)
        error = TransientError("x")

        assert [policy.delay_for(n, error) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 5.0]

    def test_rate_limit_retry_after(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=30.0)

        assert policy.delay_for(1, RateLimitError("slow", retry_after=12)) == 12
        assert policy.delay_for(1, RateLimitError("slow", retry_after=3600)) == 30.0
        assert policy.delay_for(2, RateLimitError("slow")) == 2.0

    def test_backoff_waits_on_token(self):
        token = Mock(spec=CancellationToken)
        token.wait.return_value = False
        fn = Mock(side_effect=[TransientError("x"), "ok"])

        assert RetryPolicy(base_delay=2.0).call(fn, cancel_token=token) == "ok"
        token.wait.assert_called_once_with(2.0)

    def test_cancel_during_backoff(self):
        token = CancellationToken()
        token.cancel("stop")
        fn = Mock(side_effect=TransientError("x"))

        with pytest.raises(CancelledError, match="stop"):
            RetryPolicy(base_delay=60.0).call(fn, cancel_token=token)

        fn.assert_called_once()


def progress(n):
    return SyncProgress(phase=SyncPhase.FETCHING_ISSUES, fetched=n)


class TestProgressChannel:
    """Tests for ProgressChannel."""

    def test_iterates_until_closed(self):
        channel = ProgressChannel()
        for n in (1, 2, 3):
            channel.publish(progress(n))
        channel.close()

        assert [e.fetched for e in channel] == [1, 2, 3]

    def test_publish_after_close_is_dropped(self):
        channel = ProgressChannel()
        channel.close()
        channel.publish(progress(1))

        assert list(channel) == []
        assert channel.closed

    def test_get_times_out(self):
        with pytest.raises(queue.Empty):
            ProgressChannel().get(timeout=0.01)

    def test_get_after_close_returns_none(self):
        channel = ProgressChannel()
        channel.close()

        assert channel.get() is None
        assert channel.get() is None

    def test_drain(self):
        channel = ProgressChannel()
        channel.publish(progress(1))
        channel.publish(progress(2))

        assert [e.fetched for e in channel.drain()] == [1, 2]
        assert channel.drain() == []

    def test_cross_thread(self):
        channel = ProgressChannel()

        def produce():
            for n in range(1, 51):
                channel.publish(progress(n))
            channel.close()

        thread = threading.Thread(target=produce)
        thread.start()
        received = [e.fetched for e in channel]
        thread.join()

        assert received == list(range(1, 51))


class TestSyncHandle:
    """Tests for SyncHandle."""

    @pytest.fixture
    def handle(self):
        return SyncHandle(RepositoryRef("acme", "widgets"), CancellationToken(), ProgressChannel())

    def test_cancel_sets_token(self, handle):
        handle.cancel("bye")
        assert handle.cancel_token.is_cancelled
        assert handle.cancel_token.reason == "bye"

    def test_finish_closes_events(self, handle):
        result = Mock()
        handle._finish(result=result)

        assert handle.done
        assert handle.events.closed
        assert handle.result() is result

    def test_error_is_reraised(self, handle):
        handle._finish(error=RuntimeError("bug"))

        with pytest.raises(RuntimeError, match="bug"):
            handle.result()
