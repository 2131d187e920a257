"""
Tests for the serial frame executor.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

import pytest

from highlight_reel.resource_pool import SerialExecutor, get_frame_executor, reset_frame_executor


class TestSerialExecutor:
    """Tests for SerialExecutor.run."""

    def test_returns_result(self, serial_executor):
        assert serial_executor.run(lambda a, b=0: a + b, 2, b=3) == 5

    def test_single_worker_thread(self, serial_executor):
        idents = {serial_executor.run(threading.get_ident) for _ in range(5)}
        assert len(idents) == 1
        assert threading.get_ident() not in idents

    def test_serializes_concurrent_callers(self, serial_executor):
        active = []
        overlaps = []

        def work():
            active.append(1)
            overlaps.append(len(active))
            time.sleep(0.01)
            active.pop()

        with ThreadPoolExecutor(max_workers=4) as pool:
            for future in [pool.submit(serial_executor.run, work) for _ in range(8)]:
                future.result()
        assert max(overlaps) == 1

    def test_reentrant_call_runs_inline(self, serial_executor):
        def outer():
            return serial_executor.run(lambda: "inner")

        assert serial_executor.run(outer, timeout=5) == "inner"

    def test_errors_propagate(self, serial_executor):
        def boom():
            raise ValueError("bad frame")

        with pytest.raises(ValueError):
            serial_executor.run(boom)
        assert serial_executor.get_stats()["failed"] == 1

    def test_timeout(self, serial_executor):
        with pytest.raises(FutureTimeoutError):
            serial_executor.run(time.sleep, 0.5, timeout=0.05)
        assert serial_executor.get_stats()["timeouts"] == 1

    def test_stats(self, serial_executor):
        for _ in range(3):
            serial_executor.run(int)
        stats = serial_executor.get_stats()
        assert stats["submitted"] == 3
        assert stats["completed"] == 3


class TestGlobalExecutor:

    def test_singleton(self):
        reset_frame_executor()
        try:
            assert get_frame_executor() is get_frame_executor()
        finally:
            reset_frame_executor()

    def test_reset_creates_new(self):
        first = get_frame_executor()
        reset_frame_executor()
        try:
            assert get_frame_executor() is not first
        finally:
            reset_frame_executor()
