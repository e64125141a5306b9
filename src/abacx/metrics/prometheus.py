from __future__ import annotations

from typing import Any, Dict, Optional

try:
    from prometheus_client import REGISTRY, Counter, Histogram
except Exception:  # pragma: no cover
    Counter = Histogram = REGISTRY = None  # type: ignore[assignment,misc]


class PrometheusMetrics:
    """Prometheus-based metrics sink.

    Exposes:
      - ``<namespace>_decisions_total{decision="allow|deny"}`` (Counter)
      - ``<namespace>_decision_seconds{decision}`` (Histogram)
    """

    _counter: Any
    _hist: Any

    def __init__(self, namespace: str = "abacx", registry: Optional[Any] = None) -> None:
        if Counter is None or Histogram is None:
            raise RuntimeError(
                "PrometheusMetrics requires 'prometheus_client'. Install with extra: abacx[metrics]."
            )
        reg = registry if registry is not None else REGISTRY
        self._counter = Counter(
            f"{namespace}_decisions_total",
            "Total authorization decisions by effect.",
            labelnames=("decision",),
            registry=reg,
        )
        self._hist = Histogram(
            f"{namespace}_decision_seconds",
            "Authorization decision duration in seconds.",
            labelnames=("decision",),
            registry=reg,
        )

    def inc(self, name: str, labels: Dict[str, str] | None = None) -> None:
        """Increment the decision counter. *name* is informational only."""
        decision = (labels or {}).get("decision", "unknown")
        self._counter.labels(decision=decision).inc()

    def observe(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None:
        decision = (labels or {}).get("decision", "unknown")
        self._hist.labels(decision=decision).observe(float(value))


__all__ = ["PrometheusMetrics"]
