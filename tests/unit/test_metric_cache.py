import sys
import threading
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT / "packages" / "telemetry"))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from _fakes import FakeClock
from hostwatch_telemetry.cache import CachedMetric


class _Counting:
    def __init__(self, values=None, error: Exception | None = None):
        self.calls = 0
        self.values = list(values or [1])
        self.error = error

    def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.values.pop(0) if len(self.values) > 1 else self.values[0]


class _WaitCountingLock:
    """threading.Lock that reports how many callers have asked for it."""

    def __init__(self):
        self._lock = threading.Lock()
        self._cond = threading.Condition()
        self.acquirers = 0

    def acquire(self, blocking=True):
        with self._cond:
            self.acquirers += 1
            self._cond.notify_all()
        return self._lock.acquire(blocking)

    def release(self):
        self._lock.release()

    def wait_for_acquirers(self, count, timeout):
        with self._cond:
            return self._cond.wait_for(lambda: self.acquirers >= count, timeout)


class CachedMetricTests(unittest.TestCase):
    def test_second_call_within_interval_does_not_refetch(self):
        clock = FakeClock()
        fetch = _Counting(["a", "b"])
        metric = CachedMetric("cpu_load", fetch, 1.0, clock=clock)

        self.assertEqual(metric.get(), "a")
        clock.advance(0.5)
        self.assertEqual(metric.get(), "a")
        self.assertEqual(fetch.calls, 1)

    def test_call_after_interval_refetches(self):
        clock = FakeClock()
        fetch = _Counting(["a", "b"])
        metric = CachedMetric("cpu_load", fetch, 1.0, clock=clock)

        metric.get()
        clock.advance(1.0)
        self.assertEqual(metric.get(), "b")
        self.assertEqual(fetch.calls, 2)
        self.assertEqual(metric.fetched_at, clock.now)

    def test_no_ttl_fetches_once(self):
        clock = FakeClock()
        fetch = _Counting(["x", "y"])
        metric = CachedMetric("cpu_info", fetch, None, clock=clock)

        metric.get()
        clock.advance(10_000)
        self.assertEqual(metric.get(), "x")
        self.assertEqual(fetch.calls, 1)

    def test_failure_without_value_returns_empty_and_retries(self):
        clock = FakeClock()
        fetch = _Counting(error=RuntimeError("down"))
        metric = CachedMetric("disks", fetch, 60.0, empty=(), clock=clock)

        with self.assertLogs("hostwatch.telemetry.cache", level="ERROR"):
            self.assertEqual(metric.get(), ())
        fetch.error = None
        fetch.values = [("sda",)]
        self.assertEqual(metric.get(), ("sda",))
        self.assertEqual(fetch.calls, 2)

    def test_failure_keeps_previous_value_and_timestamp(self):
        clock = FakeClock()
        fetch = _Counting(["first"])
        metric = CachedMetric("network", fetch, 1.0, clock=clock)
        metric.get()
        stamp = metric.fetched_at

        clock.advance(2.0)
        fetch.error = OSError("counters unavailable")
        with self.assertLogs("hostwatch.telemetry.cache", level="ERROR"):
            self.assertEqual(metric.get(), "first")
        self.assertEqual(metric.fetched_at, stamp)

        # Not advanced on failure, so the next call tries again.
        with self.assertLogs("hostwatch.telemetry.cache", level="ERROR"):
            metric.get()
        self.assertEqual(fetch.calls, 3)

    def test_reconcile_chooses_stored_value(self):
        clock = FakeClock()
        fetch = _Counting([[1], [1], [2]])
        stored = []
        metric = CachedMetric(
            "memory",
            fetch,
            1.0,
            reconcile=lambda prev, fresh: prev if prev == fresh else fresh,
            on_store=stored.append,
            clock=clock,
        )
        first = metric.get()
        clock.advance(1.0)
        self.assertIs(metric.get(), first)
        clock.advance(1.0)
        self.assertEqual(metric.get(), [2])
        self.assertEqual(len(stored), 3)

    def test_invalidate_forces_refetch(self):
        fetch = _Counting()
        metric = CachedMetric("cpu_info", fetch, None)
        metric.get()
        metric.invalidate()
        self.assertIsNone(metric.fetched_at)
        metric.get()
        self.assertEqual(fetch.calls, 2)

    def test_concurrent_cold_misses_fetch_once(self):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def slow_fetch():
            calls.append(1)
            started.set()
            release.wait(5)
            return "value"

        metric = CachedMetric("gpu", slow_fetch, 1.0)
        results = []
        first = threading.Thread(target=lambda: results.append(metric.get()))
        first.start()
        self.assertTrue(started.wait(5))
        second = threading.Thread(target=lambda: results.append(metric.get()))
        second.start()
        release.set()
        first.join(5)
        second.join(5)

        self.assertEqual(len(calls), 1)
        self.assertEqual(results, ["value", "value"])

    def test_concurrent_cold_misses_share_one_failed_fetch(self):
        started = threading.Event()
        release = threading.Event()
        calls = []

        def failing_fetch():
            calls.append(1)
            started.set()
            release.wait(5)
            raise OSError("provider unavailable")

        metric = CachedMetric("disks", failing_fetch, 60.0, empty=())
        lock = _WaitCountingLock()
        metric._lock = lock
        results = []

        def reader():
            results.append(metric.get())

        threads = [threading.Thread(target=reader) for _ in range(5)]
        with self.assertLogs("hostwatch.telemetry.cache", level="ERROR") as logs:
            threads[0].start()
            self.assertTrue(started.wait(5))
            for thread in threads[1:]:
                thread.start()
            self.assertTrue(lock.wait_for_acquirers(5, timeout=5))
            release.set()
            for thread in threads:
                thread.join(5)

        self.assertEqual(len(calls), 1)
        self.assertEqual(results, [(), (), (), (), ()])
        self.assertEqual(len(logs.output), 1)

        # A later call is a new request and tries again.
        with self.assertLogs("hostwatch.telemetry.cache", level="ERROR"):
            self.assertEqual(metric.get(), ())
        self.assertEqual(len(calls), 2)

    def test_reader_during_refresh_gets_last_complete_value(self):
        clock = FakeClock()
        started = threading.Event()
        release = threading.Event()
        values = ["old", "new"]

        def fetch():
            value = values.pop(0)
            if value == "new":
                started.set()
                release.wait(5)
            return value

        metric = CachedMetric("host", fetch, 1.0, clock=clock)
        metric.get()
        clock.advance(5.0)

        refresher = threading.Thread(target=metric.get)
        refresher.start()
        self.assertTrue(started.wait(5))
        self.assertEqual(metric.get(), "old")
        release.set()
        refresher.join(5)
        self.assertEqual(metric.get(), "new")


if __name__ == "__main__":
    unittest.main()
