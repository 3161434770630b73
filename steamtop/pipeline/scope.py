import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from steamtop.settings import settings

logger = logging.getLogger(__name__)


class CancelScope:
    """
    Shared cancellation for one run plus the pool its workers run on.

    ``cancel`` records the run's outcome once: the first call wins, whether it
    carries an error or None (a normal early stop), and later calls are
    ignored. Workers submitted through ``submit`` are skipped once the scope
    is cancelled, and leaving the ``with`` block joins every worker.

    Args:
        max_workers: Size of the worker pool.
        name: Thread name prefix, used in logs.
    """

    def __init__(self, max_workers: Optional[int] = None, name: str = "worker"):
        self.max_workers = max_workers or settings.max_workers
        self.name = name
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._error: Optional[BaseException] = None
        self._pool: Optional[ThreadPoolExecutor] = None

    def __enter__(self) -> "CancelScope":
        self._pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix=self.name)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            self.cancel(exc)
        self.join()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def cancel(self, error: Optional[BaseException] = None) -> bool:
        """Record ``error`` and signal cancellation. Returns False if the scope was already cancelled."""
        with self._lock:
            if self._event.is_set():
                if error is not None:
                    logger.debug(f"[{self.name}] ignoring error after cancellation: {error}")
                return False
            self._error = error
            self._event.set()
        if error is not None:
            logger.warning(f"[{self.name}] cancelled: {error}")
        else:
            logger.info(f"[{self.name}] stopped")
        return True

    def submit(self, fn: Callable[..., Any], *args: Any) -> bool:
        """Schedule ``fn(*args)`` on the pool. Returns False if the scope is already cancelled."""
        if self._pool is None:
            raise RuntimeError("CancelScope must be entered before submitting work")
        if self.cancelled:
            return False
        self._pool.submit(self._run, fn, *args)
        return True

    def _run(self, fn: Callable[..., Any], *args: Any) -> None:
        if self.cancelled:
            return
        try:
            fn(*args)
        except Exception as e:
            logger.exception(f"[{self.name}] worker {getattr(fn, '__name__', fn)}{args} crashed")
            self.cancel(e)

    def join(self) -> None:
        if self._pool is None:
            return
        self._pool.shutdown(wait=True)
        self._pool = None

    def raise_for_error(self) -> None:
        if self._error is not None:
            raise self._error
