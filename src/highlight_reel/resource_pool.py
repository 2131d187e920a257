"""
Serial Executor - Single-Worker Access to Image Processing

Frame decoding, face detection and pixel sampling share native resources that
are not thread-safe. Every such call goes through one SerialExecutor, which
runs work on a single dedicated thread, one item at a time.

Usage:
    from highlight_reel.resource_pool import get_frame_executor

    executor = get_frame_executor()
    measurement = executor.run(analyzer.analyze, image, t, timeout=30)
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, Optional

from .logger import logger


class SerialExecutor:
    """
    One-thread executor with timeouts and stats.

    Calls made from the worker thread itself run inline, so nested helpers
    never deadlock waiting on their own queue.
    """

    def __init__(self, name: str = "frame-analysis"):
        self.name = name
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name)
        self._lock = threading.Lock()
        self._worker_ident: Optional[int] = None
        self._stats = {
            "submitted": 0,
            "completed": 0,
            "failed": 0,
            "timeouts": 0,
        }

    def _invoke(self, fn: Callable, args: tuple, kwargs: dict) -> Any:
        self._worker_ident = threading.get_ident()
        try:
            result = fn(*args, **kwargs)
        except Exception:
            with self._lock:
                self._stats["failed"] += 1
            raise
        with self._lock:
            self._stats["completed"] += 1
        return result

    def run(self, fn: Callable, *args, timeout: Optional[float] = None, **kwargs) -> Any:
        """
        Run ``fn`` on the worker and wait for its result.

        Raises:
            concurrent.futures.TimeoutError: the call did not finish in time.
                The call still completes on the worker; later work queues behind it.
        """
        if threading.get_ident() == self._worker_ident:
            return fn(*args, **kwargs)

        with self._lock:
            self._stats["submitted"] += 1
        future = self._executor.submit(self._invoke, fn, args, kwargs)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError:
            future.cancel()
            with self._lock:
                self._stats["timeouts"] += 1
            logger.debug(f"{self.name}: call to {getattr(fn, '__name__', fn)} timed out after {timeout}s")
            raise

    def get_stats(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._stats)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


# Global singleton executor
_global_executor: Optional[SerialExecutor] = None
_executor_lock = threading.Lock()


def get_frame_executor() -> SerialExecutor:
    """Shared executor for all frame-touching work."""
    global _global_executor

    if _global_executor is None:
        with _executor_lock:
            if _global_executor is None:
                _global_executor = SerialExecutor()

    return _global_executor


def reset_frame_executor() -> None:
    """Shut down and forget the global executor (for testing)."""
    global _global_executor

    with _executor_lock:
        if _global_executor is not None:
            _global_executor.shutdown(wait=False)
            _global_executor = None
