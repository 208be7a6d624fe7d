"""Where provisioning metrics are recorded.

:class:`MeterRegistry` is the interface the hooks write to.
:class:`InMemoryRegistry` keeps the series in process, for tests and for
hosts that nobody scrapes.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class MeterRegistry(Protocol):
    """Protocol for recording provisioning metrics.

    All methods must be safe to call from multiple threads, since every
    provisioning task records from its own thread.
    """

    def counter(
        self,
        name: str,
        value: float = 1.0,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Add *value* to the counter *name* (e.g. ``"opsm_installs_total"``)."""
        ...

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Set a gauge metric to an absolute value."""
        ...

    def timer(
        self,
        name: str,
        duration_ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        """Record a timing measurement in milliseconds."""
        ...

    def get_metrics(self) -> dict[str, Any]:
        """Return a snapshot of all recorded metrics."""
        ...


def _tag_key(tags: dict[str, str] | None) -> str:
    """Render *tags* as a stable ``k=v,k=v`` string."""
    return ",".join(f"{k}={v}" for k, v in sorted((tags or {}).items()))


@dataclass
class _Series:
    """Aggregated samples of one metric with one tag set."""

    tags: dict[str, str]
    value: float = 0.0
    count: int = 0


_KINDS = ("counters", "gauges", "timers")


class InMemoryRegistry:
    """Thread-safe registry keeping every series in memory.

    Series are keyed by ``(kind, name, tag key)``. Counters and timers
    accumulate; gauges keep the last value.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._series: dict[tuple[str, str, str], _Series] = {}

    def _record(self, kind: str, name: str, value: float, tags: dict[str, str] | None, replace: bool = False) -> None:
        key = (kind, name, _tag_key(tags))
        with self._lock:
            series = self._series.get(key)
            if series is None:
                series = self._series[key] = _Series(tags=dict(tags or {}))
            series.value = value if replace else series.value + value
            series.count += 1

    def _lookup(self, kind: str, name: str, tags: dict[str, str] | None) -> _Series | None:
        with self._lock:
            return self._series.get((kind, name, _tag_key(tags)))

    def counter(
        self,
        name: str,
        value: float = 1.0,
        tags: dict[str, str] | None = None,
    ) -> None:
        self._record("counters", name, value, tags)

    def gauge(
        self,
        name: str,
        value: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        self._record("gauges", name, value, tags, replace=True)

    def timer(
        self,
        name: str,
        duration_ms: float,
        tags: dict[str, str] | None = None,
    ) -> None:
        self._record("timers", name, duration_ms, tags)

    def get_metrics(self) -> dict[str, Any]:
        """Return a snapshot of all recorded metrics.

        Returns:
            ``{"counters": ..., "gauges": ..., "timers": ...}``, each mapping
            metric name to ``{tag key: value}``. Timer values are
            ``{"total_ms", "count", "tags"}`` dictionaries.
        """
        snapshot: dict[str, dict[str, dict[str, Any]]] = {kind: {} for kind in _KINDS}
        with self._lock:
            for (kind, name, key), series in self._series.items():
                if kind == "timers":
                    value: Any = {"total_ms": series.value, "count": series.count, "tags": dict(series.tags)}
                else:
                    value = series.value
                snapshot[kind].setdefault(name, {})[key] = value
        return snapshot

    def get_counter(self, name: str, tags: dict[str, str] | None = None) -> float:
        """Return the current counter value, or ``0.0`` if never incremented."""
        series = self._lookup("counters", name, tags)
        return series.value if series else 0.0

    def get_gauge(self, name: str, tags: dict[str, str] | None = None) -> float | None:
        """Return the current gauge value, or ``None`` if never set."""
        series = self._lookup("gauges", name, tags)
        return series.value if series else None

    def get_timer_count(self, name: str, tags: dict[str, str] | None = None) -> int:
        """Return the number of timer recordings."""
        series = self._lookup("timers", name, tags)
        return series.count if series else 0
