import threading

import pytest

from steamtop.exceptions import RateLimitedError, TransportError
from steamtop.pipeline.scope import CancelScope


class TestCancel:
    def test_first_error_wins(self):
        """Only the first cancellation is recorded."""
        scope = CancelScope(2)
        first, second = TransportError("first"), RateLimitedError("second")
        assert scope.cancel(first) is True
        assert scope.cancel(second) is False
        assert scope.cancelled
        assert scope.error is first

    def test_quiet_stop_wins_over_later_error(self):
        """A stop without error keeps the run successful."""
        scope = CancelScope(2)
        scope.cancel(None)
        scope.cancel(TransportError("late"))
        assert scope.error is None
        scope.raise_for_error()

    def test_raise_for_error(self):
        scope = CancelScope(2)
        scope.cancel(TransportError("timeout"))
        with pytest.raises(TransportError, match="timeout"):
            scope.raise_for_error()

    def test_concurrent_cancels_record_one_error(self):
        scope = CancelScope(2)
        errors = [TransportError(str(i)) for i in range(16)]
        results = []
        barrier = threading.Barrier(len(errors))

        def cancel(error):
            barrier.wait()
            results.append(scope.cancel(error))

        threads = [threading.Thread(target=cancel, args=(e,)) for e in errors]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert results.count(True) == 1
        assert scope.error in errors


class TestSubmit:
    def test_requires_enter(self):
        with pytest.raises(RuntimeError):
            CancelScope(1).submit(print)

    def test_runs_work_and_joins_on_exit(self):
        """Leaving the block should wait for every submitted worker."""
        done = []
        with CancelScope(4) as scope:
            for i in range(20):
                assert scope.submit(done.append, i)
        assert sorted(done) == list(range(20))

    def test_submit_after_cancel_is_refused(self):
        ran = []
        with CancelScope(1) as scope:
            scope.cancel(None)
            assert scope.submit(ran.append, 1) is False
        assert ran == []

    def test_queued_work_skipped_after_cancel(self):
        """Work queued behind the cancelling worker never runs."""
        ran = []
        release = threading.Event()

        def first():
            release.wait(5)
            scope.cancel(TransportError("stop"))

        with CancelScope(1) as scope:
            scope.submit(first)
            for i in range(5):
                scope.submit(ran.append, i)
            release.set()
        assert ran == []
        assert isinstance(scope.error, TransportError)

    def test_crashing_worker_cancels(self):
        def crash():
            raise ValueError("boom")

        with CancelScope(1) as scope:
            scope.submit(crash)
        assert scope.cancelled
        with pytest.raises(ValueError, match="boom"):
            scope.raise_for_error()

    def test_exception_in_block_cancels(self):
        with pytest.raises(KeyError):
            with CancelScope(1) as scope:
                raise KeyError("x")
        assert scope.cancelled
        assert isinstance(scope.error, KeyError)
