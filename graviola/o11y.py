"""Querier wrapper that counts and times the queries sent to a remote or group."""

from __future__ import annotations

import threading
import time
import weakref
from typing import Any

from graviola.metrics import CounterVec, HistogramVec, Registry

__all__ = ["QuerierO11y"]

_LATENCY_BUCKETS = (0.1, 0.25, 0.5, 0.75, 1.0, 1.5, 2.5, 5.0, 10.0, 20.0, 30.0, 45.0, 60.0)
_LABELS = ("querier_type", "querier_name")

_metrics_lock = threading.Lock()
_metrics: "weakref.WeakKeyDictionary[Registry, tuple[HistogramVec, CounterVec]]" = (
    weakref.WeakKeyDictionary()
)


def _querier_metrics(registry: Registry) -> tuple[HistogramVec, CounterVec]:
    with _metrics_lock:
        found = _metrics.get(registry)
        if found is None:
            latency = HistogramVec(
                "query_latency_seconds",
                "Latency of outgoing requests to a remote/group, in seconds. Only PromQL "
                "queries. Label queries are not accounted here.",
                _LABELS, _LATENCY_BUCKETS, namespace="graviola", subsystem="querier",
            )
            total = CounterVec(
                "query_total",
                "Counter for outgoing requests. Label queries are not accounted here.",
                _LABELS, namespace="graviola", subsystem="querier",
            )
            registry.register(latency, total)
            found = _metrics[registry] = (latency, total)
        return found


class QuerierO11y:
    """Delegates to a querier, recording count and latency of ``select`` calls."""

    def __init__(self, registry: Registry, name: str, type_of_querier: str, wrapped: Any) -> None:
        self.name = name
        self.type_of_querier = type_of_querier
        self._wrapped = wrapped
        self._latency, self._total = _querier_metrics(registry)

    def select(self, sort_series: bool, hints: Any, *args: Any) -> Any:
        start = time.monotonic()
        self._total.labels(self.type_of_querier, self.name).inc()
        try:
            return self._wrapped.select(sort_series, hints, *args)
        finally:
            self._latency.labels(self.type_of_querier, self.name).observe(
                time.monotonic() - start
            )

    def close(self) -> Any:
        return self._wrapped.close()

    def label_values(self, name: str, hints: Any, *args: Any) -> Any:
        return self._wrapped.label_values(name, hints, *args)

    def label_names(self, hints: Any, *args: Any) -> Any:
        return self._wrapped.label_names(hints, *args)