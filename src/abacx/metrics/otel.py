from __future__ import annotations

from typing import Any, Dict

try:
    from opentelemetry.metrics import get_meter
except Exception:  # pragma: no cover
    get_meter = None  # type: ignore[assignment]


class OpenTelemetryMetrics:
    """OpenTelemetry-based metrics sink.

    Creates:
      - Counter: abacx_decisions_total (attribute: decision)
      - Histogram: abacx_decision_seconds (unit: s)
    """

    _counter: Any
    _hist: Any

    def __init__(self, meter_name: str = "abacx.metrics") -> None:
        if get_meter is None:
            raise RuntimeError(
                "OpenTelemetryMetrics requires 'opentelemetry-api'. Install with extra: abacx[otel]."
            )
        meter = get_meter(meter_name)
        self._counter = meter.create_counter(
            name="abacx_decisions_total",
            description="Total authorization decisions by effect.",
        )
        self._hist = meter.create_histogram(
            name="abacx_decision_seconds",
            description="Authorization decision duration in seconds.",
            unit="s",
        )

    def inc(self, name: str, labels: Dict[str, str] | None = None) -> None:
        self._counter.add(1, {"decision": (labels or {}).get("decision", "unknown")})

    def observe(self, name: str, value: float, labels: Dict[str, str] | None = None) -> None:
        self._hist.record(float(value), {"decision": (labels or {}).get("decision", "unknown")})


__all__ = ["OpenTelemetryMetrics"]
