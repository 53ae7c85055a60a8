"""Plain-text rendering of tracker results."""

from phasebench._metrics import MetricsDelta

PHASE_BANNER = "=========== Phase Metrics ==========="


def format_delta(delta: MetricsDelta) -> str:
    """Render one metrics block (name, times, RSS delta, CPU usage)."""
    header = f"============= {delta.name} Metrics ============="
    memory_mb = delta.max_resident_memory / 1024**2
    lines = [
        header,
        f"Wall Clock Time: {delta.wall_clock_time:.6f}s",
        f"User time: {delta.user_time:.6f}s",
        f"System time: {delta.system_time:.6f}s",
        f"Max RSS: {delta.max_resident_memory} bytes ({memory_mb:.2f} MB)",
        f"CPU Usage: {delta.cpu_usage_percent:.1f}%",
        "=" * len(header),
    ]
    return "\n".join(lines) + "\n"


def render_report(
    operations: list[MetricsDelta],
    phases: list[tuple[str, MetricsDelta]],
    total: MetricsDelta,
) -> str:
    """Render operations in completion order, then phase totals, then the run total.

    The phase section (with its banner) is omitted when no phase completed.
    """
    parts = [format_delta(delta) for delta in operations]

    if phases:
        parts.append(f"\n{PHASE_BANNER}\n")
        parts.extend(format_delta(delta) for _, delta in phases)
        parts.append("=" * len(PHASE_BANNER) + "\n\n")

    parts.append(format_delta(total))
    return "".join(parts)
