"""Resource samples and the delta algebra.

A ResourceSample is a point-in-time read of the process clock and OS
accounting counters. A MetricsDelta is the cost of an interval: diff() turns
two samples into a delta, combine() folds deltas into a running total.

Design by Contract:
- capture() never raises (zeroed counters when the OS read fails)
- Deltas never carry negative values (clamped to zero and logged)
- combine() sums times and takes the max of resident memory
"""

import sys
import time
from typing import Any

import psutil
from loguru import logger

if sys.platform != "win32":
    import resource


class ResourceSample:
    """Point-in-time read of the process wall clock and resource counters.

    Attributes:
        name: Label of the operation or phase the sample belongs to
        timestamp: Monotonic capture instant (perf_counter seconds)
        user_time: Cumulative process user CPU time (seconds)
        system_time: Cumulative process system CPU time (seconds)
        max_resident_memory: Peak resident memory of the process (bytes)
    """

    def __init__(
        self,
        name: str,
        timestamp: float,
        user_time: float,
        system_time: float,
        max_resident_memory: int,
    ) -> None:
        self.name = name
        self.timestamp = float(timestamp)
        self.user_time = float(user_time)
        self.system_time = float(system_time)
        self.max_resident_memory = int(max_resident_memory)

    def __repr__(self) -> str:
        return (
            f"ResourceSample(name={self.name!r}, timestamp={self.timestamp:.6f}, "
            f"user_time={self.user_time:.6f}, system_time={self.system_time:.6f}, "
            f"max_resident_memory={self.max_resident_memory})"
        )


class MetricsDelta:
    """Cost of an interval, or the fold of several intervals.

    ``max_resident_memory`` is peak growth over the baseline for a single
    interval and the maximum (not the sum) across folded intervals.
    ``name`` is a label only and takes no part in equality.
    """

    def __init__(
        self,
        name: str,
        wall_clock_time: float,
        user_time: float,
        system_time: float,
        max_resident_memory: int,
    ) -> None:
        self.name = name
        self.wall_clock_time = float(wall_clock_time)
        self.user_time = float(user_time)
        self.system_time = float(system_time)
        self.max_resident_memory = int(max_resident_memory)

    @classmethod
    def zero(cls, name: str) -> "MetricsDelta":
        """Identity element of combine()."""
        return cls(name, 0.0, 0.0, 0.0, 0)

    @property
    def cpu_usage_percent(self) -> float:
        if self.wall_clock_time <= 0:
            return 0.0
        return (self.user_time + self.system_time) / self.wall_clock_time * 100

    def combine(self, other: "MetricsDelta") -> "MetricsDelta":
        """Fold ``other`` into a new delta that keeps this delta's name."""
        return MetricsDelta(
            self.name,
            self.wall_clock_time + other.wall_clock_time,
            self.user_time + other.user_time,
            self.system_time + other.system_time,
            max(self.max_resident_memory, other.max_resident_memory),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "wall_clock_time": self.wall_clock_time,
            "user_time": self.user_time,
            "system_time": self.system_time,
            "max_resident_memory": self.max_resident_memory,
            "cpu_usage_percent": self.cpu_usage_percent,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetricsDelta):
            return NotImplemented
        return (
            self.wall_clock_time == other.wall_clock_time
            and self.user_time == other.user_time
            and self.system_time == other.system_time
            and self.max_resident_memory == other.max_resident_memory
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return (
            f"MetricsDelta(name={self.name!r}, wall_clock_time={self.wall_clock_time:.6f}, "
            f"user_time={self.user_time:.6f}, system_time={self.system_time:.6f}, "
            f"max_resident_memory={self.max_resident_memory})"
        )


def _peak_rss_bytes(process: psutil.Process) -> int:
    if sys.platform == "win32":
        return int(process.memory_info().peak_wset)
    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # ru_maxrss is bytes on macOS, KB elsewhere.
    if sys.platform == "darwin":
        return int(peak)
    return int(peak) * 1024


def capture(name: str) -> ResourceSample:
    """Read the clock and the process accounting counters.

    Falls back to zeroed counters (timestamp still real) when the OS read
    fails, so a profiling defect never aborts the host's work.
    """
    timestamp = time.perf_counter()
    try:
        process = psutil.Process()
        with process.oneshot():
            cpu = process.cpu_times()
            peak = _peak_rss_bytes(process)
    except (psutil.Error, OSError) as exc:
        logger.warning(f"Resource counters unavailable for '{name}', using zeroed sample: {exc}")
        return ResourceSample(name, timestamp, 0.0, 0.0, 0)

    return ResourceSample(name, timestamp, cpu.user, cpu.system, peak)


def diff(end: ResourceSample, start: ResourceSample) -> MetricsDelta:
    """Cost of the interval between two samples, labelled with ``start.name``.

    Negative components (clock skew, zeroed fallback samples) are clamped to
    zero and reported as a degraded reading.
    """
    wall_clock_time = end.timestamp - start.timestamp
    user_time = end.user_time - start.user_time
    system_time = end.system_time - start.system_time
    max_resident_memory = end.max_resident_memory - start.max_resident_memory

    if min(wall_clock_time, user_time, system_time, max_resident_memory) < 0:
        logger.warning(
            f"Degraded reading for '{start.name}': negative delta clamped to zero "
            f"(wall={wall_clock_time:.6f}s, user={user_time:.6f}s, "
            f"system={system_time:.6f}s, rss={max_resident_memory}B)"
        )

    return MetricsDelta(
        start.name,
        max(wall_clock_time, 0.0),
        max(user_time, 0.0),
        max(system_time, 0.0),
        max(max_resident_memory, 0),
    )


def combine(a: MetricsDelta, b: MetricsDelta) -> MetricsDelta:
    """Fold two deltas: times add, resident memory takes the maximum."""
    return a.combine(b)
