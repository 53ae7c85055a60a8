"""Tests for ConcurrentTracker using real threads.

Interleaving across threads is not deterministic; assertions only rely on
every finished operation appearing exactly once.
"""

import threading
from collections import Counter

import pytest

from phasebench import ConcurrentTracker, MetricsDelta, profile_operation

BASE = (0.0, 0.0, 0.0, 1000)


class TestPerThreadSlots:
    def test_threads_do_not_clobber_each_others_operation(self):
        tracker = ConcurrentTracker()
        both_started = threading.Barrier(2)

        def worker(name: str) -> None:
            tracker.start_operation(name)
            both_started.wait()
            tracker.finish_operation()

        threads = [threading.Thread(target=worker, args=(name,)) for name in ("left", "right")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(op.name for op in tracker.operations) == ["left", "right"]
        assert tracker.open_operation_count() == 0

    def test_open_operation_count_tracks_threads(self):
        tracker = ConcurrentTracker()
        started = threading.Event()
        release = threading.Event()

        def worker() -> None:
            tracker.start_operation("background")
            started.set()
            release.wait()
            tracker.finish_operation()

        t = threading.Thread(target=worker)
        t.start()
        started.wait()
        tracker.start_operation("main")
        assert tracker.open_operation_count() == 2

        release.set()
        t.join()
        tracker.finish_operation()
        assert tracker.open_operation_count() == 0

    def test_finish_on_thread_without_operation_is_noop(self, log_messages):
        tracker = ConcurrentTracker()
        tracker.start_operation("owned by main")

        result = []
        t = threading.Thread(target=lambda: result.append(tracker.finish_operation()))
        t.start()
        t.join()

        assert result == [None]
        assert tracker.operations == []
        assert tracker.open_operation_count() == 1
        assert any("no open operation on thread" in m for m in log_messages)

    def test_restart_on_same_thread_folds_stale_operation(self, scripted):
        sampler = scripted([BASE, (1.0, 0.0, 0.0, 1000), (2.0, 0.0, 0.0, 1000), (4.0, 0.0, 0.0, 1000)])
        tracker = ConcurrentTracker(sampler=sampler)

        tracker.start_phase("P")
        tracker.start_operation("stale")
        tracker.start_operation("fresh")
        tracker.finish_operation()
        tracker.end_phase("P")

        assert [op.name for op in tracker.operations] == ["stale", "fresh"]
        assert tracker.phase_total("P").wall_clock_time == pytest.approx(3.0)


class TestSharedPhases:
    def test_every_operation_logged_exactly_once(self):
        tracker = ConcurrentTracker()
        n_threads, n_ops = 8, 50

        def worker(index: int) -> None:
            for i in range(n_ops):
                with profile_operation(f"t{index}-op{i}", tracker):
                    _ = sum(range(100))

        tracker.start_phase("All")
        threads = [threading.Thread(target=worker, args=(i,)) for i in range(n_threads)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        total = tracker.end_phase("All")

        names = Counter(op.name for op in tracker.operations)
        assert len(names) == n_threads * n_ops
        assert set(names.values()) == {1}

        expected = MetricsDelta.zero("All")
        for op in tracker.operations:
            expected = expected.combine(op)
        assert total.wall_clock_time == pytest.approx(expected.wall_clock_time)
        assert total.user_time == pytest.approx(expected.user_time)
        assert total.system_time == pytest.approx(expected.system_time)
        assert total.max_resident_memory == expected.max_resident_memory

    def test_phases_started_from_different_threads(self):
        tracker = ConcurrentTracker()

        def worker(name: str) -> None:
            tracker.start_phase(name)
            with profile_operation(f"{name}-op", tracker):
                pass
            tracker.end_phase(name)

        threads = [threading.Thread(target=worker, args=(f"phase-{i}",)) for i in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        reported = [name for name, _ in tracker.phase_totals()]
        assert sorted(reported) == [f"phase-{i}" for i in range(6)]
        assert tracker.open_phases() == []

    def test_report_renders_while_other_threads_record(self):
        tracker = ConcurrentTracker()
        stop = threading.Event()

        def worker() -> None:
            while not stop.is_set():
                with profile_operation("spin", tracker):
                    pass

        t = threading.Thread(target=worker)
        t.start()
        try:
            for _ in range(20):
                assert "Total Metrics" in tracker.render()
        finally:
            stop.set()
            t.join()
