"""Named, possibly nested phase accumulators.

Not thread-safe on its own; ConcurrentTracker guards it with a lock.
"""

from loguru import logger

from phasebench._metrics import MetricsDelta


class _Phase:
    def __init__(self, name: str) -> None:
        self.name = name
        self.running: MetricsDelta | None = None
        self.total: MetricsDelta | None = None

    @property
    def is_open(self) -> bool:
        return self.running is not None


class PhaseAggregator:
    """Running totals keyed by phase name, reported in first-start order.

    Every delta folded while a phase is open contributes its full cost to
    that phase, so overlapping and nested phases each see the whole
    operation. Phases are kept in one insertion-ordered dict, which gives
    both name lookup and first-start ordering.

    Each phase reports one total: the most recently frozen one. Restarting
    a phase that is still open freezes its in-flight total (as end() would)
    before opening a fresh accumulator.

    Example:
        phases = PhaseAggregator()
        phases.start("Load")
        phases.fold(delta)
        total = phases.end("Load")
    """

    def __init__(self) -> None:
        self._phases: dict[str, _Phase] = {}

    def start(self, name: str) -> None:
        phase = self._phases.get(name)
        if phase is None:
            phase = self._phases[name] = _Phase(name)
        elif phase.running is not None:
            logger.warning(f"Phase '{name}' restarted while open; freezing its in-flight total")
            phase.total = phase.running

        phase.running = MetricsDelta.zero(name)

    def end(self, name: str) -> MetricsDelta | None:
        """Freeze and return the phase total, or None if the phase is not open."""
        phase = self._phases.get(name)
        if phase is None or phase.running is None:
            logger.debug(f"end_phase('{name}') on a phase that is not open; ignored")
            return None

        total = phase.total = phase.running
        phase.running = None
        return total

    def fold(self, delta: MetricsDelta) -> None:
        for phase in self._phases.values():
            if phase.running is not None:
                phase.running = phase.running.combine(delta)

    def open_names(self) -> list[str]:
        return [name for name, phase in self._phases.items() if phase.is_open]

    def completed(self) -> list[tuple[str, MetricsDelta]]:
        """Latest frozen total per phase, in first-start order."""
        return [
            (name, phase.total)
            for name, phase in self._phases.items()
            if phase.total is not None
        ]

    def latest(self, name: str) -> MetricsDelta | None:
        phase = self._phases.get(name)
        if phase is None:
            return None
        return phase.total
