"""Operation/phase trackers.

Design by Contract:
- Every public tracker method is infallible; misuse is logged, never raised
- Argument types are enforced with beartype
- No lock is held across a resource capture
- Each finished operation is logged exactly once and folded into every
  phase open at the time it finished
"""

import json
import sys
import threading
from collections.abc import Callable, Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TextIO

from beartype import beartype
from loguru import logger

from phasebench._metrics import MetricsDelta, ResourceSample, capture, diff
from phasebench._phases import PhaseAggregator
from phasebench._report import render_report

Sampler = Callable[[str], ResourceSample]


class Tracker:
    """Single-threaded tracker: one in-flight operation slot plus phases.

    Args:
        sampler: Callable returning a ResourceSample for a label
            (default: capture, the real OS read)

    Example:
        tracker = Tracker()
        tracker.start_phase("Load")
        tracker.start_operation("read image")
        image = read_image(path)
        tracker.finish_operation()
        tracker.end_phase("Load")
        tracker.print_all()

    Starting an operation while another is open finishes and records the
    stale one first, using the new start sample as its end.

    Subclasses replace the operation slot storage through _init_slots(),
    _swap_slot() and _slot_label().
    """

    @beartype
    def __init__(self, sampler: Sampler = capture) -> None:
        self._sampler = sampler
        self.start_sample: ResourceSample = sampler("Total")
        self._init_slots()
        self._completed: list[MetricsDelta] = []
        self._phases = PhaseAggregator()

    # -- slot storage (overridden by ConcurrentTracker) --------------------

    def _init_slots(self) -> None:
        self._current: ResourceSample | None = None

    def _slot_label(self) -> str:
        return "tracker"

    def _swap_slot(self, sample: ResourceSample | None) -> ResourceSample | None:
        previous = self._current
        self._current = sample
        return previous

    def _record(self, delta: MetricsDelta) -> None:
        self._completed.append(delta)
        self._phases.fold(delta)

    def _snapshot(self) -> tuple[list[MetricsDelta], list[tuple[str, MetricsDelta]]]:
        return list(self._completed), self._phases.completed()

    # -- operations --------------------------------------------------------

    @beartype
    def start_operation(self, name: str) -> None:
        sample = self._sampler(name)
        stale = self._swap_slot(sample)
        if stale is not None:
            logger.warning(
                f"Operation '{stale.name}' still open when '{name}' started; finishing it first"
            )
            self._record(diff(sample, stale))

    @beartype
    def finish_operation(self) -> MetricsDelta | None:
        """Close the open operation and return its delta (None if nothing was open)."""
        start = self._swap_slot(None)
        if start is None:
            logger.debug(f"finish_operation() with no open operation on {self._slot_label()}; ignored")
            return None

        delta = diff(self._sampler(start.name), start)
        self._record(delta)
        return delta

    # -- phases ------------------------------------------------------------

    @beartype
    def start_phase(self, name: str) -> None:
        self._phases.start(name)

    @beartype
    def end_phase(self, name: str) -> MetricsDelta | None:
        return self._phases.end(name)

    @beartype
    def open_phases(self) -> list[str]:
        return self._phases.open_names()

    # -- results -----------------------------------------------------------

    @property
    def operations(self) -> list[MetricsDelta]:
        """Completed-operation log in completion order (a copy)."""
        return self._snapshot()[0]

    @beartype
    def phase_totals(self) -> list[tuple[str, MetricsDelta]]:
        """Completed phase totals in first-start order."""
        return self._snapshot()[1]

    @beartype
    def phase_total(self, name: str) -> MetricsDelta | None:
        """Most recent frozen total for ``name``, or None if it never ended."""
        for phase_name, total in reversed(self.phase_totals()):
            if phase_name == name:
                return total
        return None

    @beartype
    def total(self) -> MetricsDelta:
        """Whole-run cost from tracker construction until now."""
        return diff(self._sampler("Total"), self.start_sample)

    @beartype
    def render(self) -> str:
        operations, phases = self._snapshot()
        return render_report(operations, phases, self.total())

    @beartype
    def print_all(self, stream: TextIO | None = None) -> None:
        """Write the report to ``stream`` (default: stdout). Safe to call repeatedly."""
        out = stream if stream is not None else sys.stdout
        out.write(self.render())
        out.flush()

    @beartype
    def get_results(self) -> dict[str, Any]:
        """JSON-serialisable results: operations, phases (report order) and total."""
        operations, phases = self._snapshot()
        return {
            "operations": [delta.to_dict() for delta in operations],
            "phases": [delta.to_dict() for _, delta in phases],
            "total": self.total().to_dict(),
        }

    @beartype
    def log_checkpoint(self, checkpoint_name: str) -> None:
        """Log condensed snapshot via loguru.

        Args:
            checkpoint_name: Name for this checkpoint (e.g., "After Inference")
        """
        operations, phases = self._snapshot()
        total = self.total()
        logger.info(
            f"[CHECKPOINT: {checkpoint_name}] {len(operations)} operations, "
            f"elapsed {total.wall_clock_time:.2f}s, cpu {total.cpu_usage_percent:.1f}%"
        )

        open_names = self.open_phases()
        if open_names:
            logger.info(f"  open phases: {', '.join(open_names)}")

        for name, delta in phases:
            logger.info(
                f"  {name}: {delta.wall_clock_time:.2f}s wall, "
                f"{delta.user_time + delta.system_time:.2f}s cpu, "
                f"peak Δ={delta.max_resident_memory / 1024**2:.2f}MB"
            )

    @beartype
    def flush_to_file(self, path: Path) -> None:
        """Write current results to a JSON file (created/overwritten).

        Args:
            path: Output file path; parent directories are created
        """
        results = self.get_results()
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(results, f, indent=2, default=str)


class ConcurrentTracker(Tracker):
    """Thread-safe tracker: one operation slot per thread, shared phases.

    Each thread owns its slot in a map keyed by thread identity. The
    completed-operation log and the phase accumulators are shared and each
    guarded by its own lock, held only for the in-memory mutation.

    Across threads, log order follows lock acquisition, not start time.
    """

    @beartype
    def __init__(self, sampler: Sampler = capture) -> None:
        super().__init__(sampler)
        self._log_lock = threading.Lock()
        self._phase_lock = threading.Lock()

    def _init_slots(self) -> None:
        self._slots: dict[int, ResourceSample] = {}
        self._slots_lock = threading.Lock()

    def _slot_label(self) -> str:
        return f"thread {threading.get_ident()}"

    def _swap_slot(self, sample: ResourceSample | None) -> ResourceSample | None:
        key = threading.get_ident()
        with self._slots_lock:
            previous = self._slots.pop(key, None)
            if sample is not None:
                self._slots[key] = sample
        return previous

    def _record(self, delta: MetricsDelta) -> None:
        with self._log_lock:
            self._completed.append(delta)
        with self._phase_lock:
            self._phases.fold(delta)

    def _snapshot(self) -> tuple[list[MetricsDelta], list[tuple[str, MetricsDelta]]]:
        with self._log_lock:
            operations = list(self._completed)
        with self._phase_lock:
            phases = self._phases.completed()
        return operations, phases

    @beartype
    def start_phase(self, name: str) -> None:
        with self._phase_lock:
            self._phases.start(name)

    @beartype
    def end_phase(self, name: str) -> MetricsDelta | None:
        with self._phase_lock:
            return self._phases.end(name)

    @beartype
    def open_phases(self) -> list[str]:
        with self._phase_lock:
            return self._phases.open_names()

    @beartype
    def open_operation_count(self) -> int:
        """Number of threads with an operation currently open."""
        with self._slots_lock:
            return len(self._slots)


@beartype
def new_tracker(thread_safe: bool = False) -> Tracker:
    """Create a tracker for one run, capturing the run-start baseline."""
    return ConcurrentTracker() if thread_safe else Tracker()


@beartype
@contextmanager
def profile_operation(
    name: str,
    tracker: Tracker | None,
) -> Generator[None, None, None]:
    """Bracket a block as one operation.

    When tracker is None, the wrapped code still executes but nothing is
    recorded. The operation is finished even if the block raises.
    """
    if tracker is None:
        yield
        return

    tracker.start_operation(name)
    try:
        yield
    finally:
        tracker.finish_operation()


@beartype
@contextmanager
def profile_phase(
    name: str,
    tracker: Tracker | None,
) -> Generator[None, None, None]:
    """Bracket a block as a phase; no-op when tracker is None."""
    if tracker is None:
        yield
        return

    tracker.start_phase(name)
    try:
        yield
    finally:
        tracker.end_phase(name)
