"""phasebench: Per-operation and per-phase resource tracking for a host program.

Provides:
- capture / diff / combine: ResourceSample reads and the MetricsDelta algebra
- Tracker: Operation + phase tracker for single-threaded hosts
- ConcurrentTracker: Per-thread operation slots over shared, locked phases
- PhaseAggregator: Named running totals reported in first-start order
- profile_operation / profile_phase: Context managers around a tracker (or None)
- render_report / format_delta: Plain-text report rendering

Usage:
    from phasebench import Tracker, profile_operation, profile_phase

    tracker = Tracker()

    with profile_phase("Setup", tracker):
        with profile_operation("load model", tracker):
            model = load_model(path)

    tracker.print_all()
"""

from phasebench._metrics import (
    MetricsDelta,
    ResourceSample,
    capture,
    combine,
    diff,
)
from phasebench._phases import PhaseAggregator
from phasebench._report import format_delta, render_report
from phasebench._tracker import (
    ConcurrentTracker,
    Tracker,
    new_tracker,
    profile_operation,
    profile_phase,
)

__all__ = [
    "ConcurrentTracker",
    "MetricsDelta",
    "PhaseAggregator",
    "ResourceSample",
    "Tracker",
    "capture",
    "combine",
    "diff",
    "format_delta",
    "new_tracker",
    "profile_operation",
    "profile_phase",
    "render_report",
]

__version__ = "0.1.0"
