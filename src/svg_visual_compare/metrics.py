"""Stage timings and counters for comparison runs."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from time import perf_counter
from typing import Dict, Iterator, Optional


_STATS_VAR: ContextVar["PipelineStats | None"] = ContextVar(
    "svg_visual_compare_pipeline_stats", default=None
)


@dataclass
class PipelineStats:
    """Accumulated wall-clock time per stage plus free-form counters."""

    timings: Dict[str, float] = field(default_factory=dict)
    counters: Dict[str, int] = field(default_factory=dict)

    def add_time(self, stage: str, duration: float) -> None:
        if duration < 0.0:
            return
        self.timings[stage] = self.timings.get(stage, 0.0) + duration

    def increment(self, key: str, value: int = 1) -> None:
        self.counters[key] = self.counters.get(key, 0) + value

    def summary(self) -> str:
        parts = [f"{name}={seconds:.3f}s" for name, seconds in self.timings.items()]
        parts.extend(f"{name}={count}" for name, count in self.counters.items())
        return ", ".join(parts) if parts else "no stages recorded"


def current_stats() -> Optional[PipelineStats]:
    return _STATS_VAR.get()


@contextmanager
def collect_stats(stats: Optional[PipelineStats] = None) -> Iterator[PipelineStats]:
    """Make ``stats`` the active collector for the enclosed block."""

    stats = stats if stats is not None else PipelineStats()
    token = _STATS_VAR.set(stats)
    try:
        yield stats
    finally:
        _STATS_VAR.reset(token)


@contextmanager
def stage(
    name: str,
    *,
    logger: Optional[logging.Logger] = None,
    level: int = logging.DEBUG,
) -> Iterator[None]:
    """Time the enclosed block and add it to the active :class:`PipelineStats`.

    Failed stages are timed too.
    """

    start = perf_counter()
    try:
        yield
    finally:
        duration = perf_counter() - start
        stats = _STATS_VAR.get()
        if stats is not None:
            stats.add_time(name, duration)
        if logger is not None and logger.isEnabledFor(level):
            logger.log(level, "%s took %.3f s", name, duration)


__all__ = ["PipelineStats", "collect_stats", "current_stats", "stage"]
