import importlib
import sys
import types

import pytest


def _install_fake_prometheus(monkeypatch):
    class _Lbl:
        def __init__(self, obj, labels):
            self._obj, self._labels = obj, labels

        def inc(self, *args, **kwargs):
            self._obj.counts[self._labels["decision"]] = self._obj.counts.get(self._labels["decision"], 0) + 1

        def observe(self, v):
            self._obj.vals.append((self._labels["decision"], float(v)))

    class Cnt:
        def __init__(self, name, doc, labelnames=None, registry=None):
            self.name, self.doc = name, doc
            self.labelnames = tuple(labelnames or [])
            self.registry = registry
            self.counts = {}

        def labels(self, **kw):
            return _Lbl(self, kw)

    class Hst(Cnt):
        def __init__(self, *a, **kw):
            super().__init__(*a, **kw)
            self.vals = []

    fake = types.ModuleType("prometheus_client")
    fake.Counter = Cnt
    fake.Histogram = Hst
    fake.REGISTRY = object()
    monkeypatch.setitem(sys.modules, "prometheus_client", fake)
    import abacx.metrics.prometheus as prom

    return importlib.reload(prom), fake


def _install_fake_otel(monkeypatch):
    calls = {"add": [], "record": []}

    class Counter:
        def add(self, v, attributes=None):
            calls["add"].append((v, attributes))

    class Hist:
        def record(self, v, attributes=None):
            calls["record"].append((v, attributes))

    class Meter:
        def create_counter(self, name, description="", unit=""):
            calls["counter_name"] = name
            return Counter()

        def create_histogram(self, name, description="", unit=""):
            calls["hist_unit"] = unit
            return Hist()

    metrics_mod = types.ModuleType("opentelemetry.metrics")
    metrics_mod.get_meter = lambda name: Meter()
    pkg = types.ModuleType("opentelemetry")
    pkg.metrics = metrics_mod
    monkeypatch.setitem(sys.modules, "opentelemetry", pkg)
    monkeypatch.setitem(sys.modules, "opentelemetry.metrics", metrics_mod)
    import abacx.metrics.otel as otel

    return importlib.reload(otel), calls


def test_prometheus_metrics_counts_by_decision(monkeypatch):
    prom, fake = _install_fake_prometheus(monkeypatch)
    m = prom.PrometheusMetrics(namespace="svc")
    assert m._counter.name == "svc_decisions_total"
    assert m._counter.registry is fake.REGISTRY
    m.inc("abacx_decisions_total", {"decision": "allow"})
    m.inc("abacx_decisions_total", {"decision": "allow"})
    m.inc("abacx_decisions_total")
    m.observe("abacx_decision_seconds", 0.002, {"decision": "deny"})
    assert m._counter.counts == {"allow": 2, "unknown": 1}
    assert m._hist.vals == [("deny", 0.002)]


def test_prometheus_metrics_uses_given_registry(monkeypatch):
    prom, _ = _install_fake_prometheus(monkeypatch)
    reg = object()
    assert prom.PrometheusMetrics(registry=reg)._hist.registry is reg


def test_prometheus_missing_dependency(monkeypatch):
    prom, _ = _install_fake_prometheus(monkeypatch)
    monkeypatch.setattr(prom, "Counter", None)
    with pytest.raises(RuntimeError):
        prom.PrometheusMetrics()


def test_otel_metrics(monkeypatch):
    otel, calls = _install_fake_otel(monkeypatch)
    m = otel.OpenTelemetryMetrics()
    m.inc("abacx_decisions_total", {"decision": "deny"})
    m.observe("abacx_decision_seconds", 0.5, {"decision": "deny"})
    assert calls["counter_name"] == "abacx_decisions_total"
    assert calls["hist_unit"] == "s"
    assert calls["add"] == [(1, {"decision": "deny"})]
    assert calls["record"] == [(0.5, {"decision": "deny"})]


def test_otel_missing_dependency(monkeypatch):
    otel, _ = _install_fake_otel(monkeypatch)
    monkeypatch.setattr(otel, "get_meter", None)
    with pytest.raises(RuntimeError):
        otel.OpenTelemetryMetrics()


@pytest.mark.asyncio
async def test_engine_feeds_prometheus_sink(monkeypatch, spy_store):
    prom, _ = _install_fake_prometheus(monkeypatch)
    from abacx.core.engine import DecisionEngine
    from abacx.core.model import Role

    m = prom.PrometheusMetrics()
    await DecisionEngine(spy_store(), metrics=m).decide([Role(id=1, name="root", is_super_admin=True)], "user:read")
    assert m._counter.counts == {"allow": 1}
    assert len(m._hist.vals) == 1
