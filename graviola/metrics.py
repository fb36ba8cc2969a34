"""Small Prometheus-style metric registry with counters and histograms."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Protocol, Sequence

__all__ = ["Registry", "CounterVec", "HistogramVec", "HistogramSnapshot"]


def _full_name(namespace: str, subsystem: str, name: str) -> str:
    return "_".join(part for part in (namespace, subsystem, name) if part)


def _fmt(value: float) -> str:
    if value == float("inf"):
        return "+Inf"
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _label_text(names: Sequence[str], values: Sequence[str], extra: str = "") -> str:
    pairs = [f'{n}="{_escape(v)}"' for n, v in zip(names, values)]
    if extra:
        pairs.append(extra)
    return "{" + ",".join(pairs) + "}" if pairs else ""


class _Collector(Protocol):
    name: str

    def render(self) -> str: ...


class Registry:
    """Holds collectors and renders them in the text exposition format."""

    def __init__(self) -> None:
        self._collectors: dict[str, _Collector] = {}
        self._lock = threading.Lock()

    def register(self, *args: _Collector) -> None:
        """Register collectors; a name registered twice raises ValueError."""
        with self._lock:
            for collector in args:
                if collector.name in self._collectors:
                    raise ValueError(f"duplicate metrics collector registration: {collector.name}")
            for collector in args:
                self._collectors[collector.name] = collector

    def expose(self) -> str:
        """All registered metrics as text, ordered by name."""
        with self._lock:
            collectors = [self._collectors[name] for name in sorted(self._collectors)]
        return "".join(collector.render() for collector in collectors)


class _Vec:
    kind = ""

    def __init__(self, name: str, help: str, labelnames: Sequence[str],
                 namespace: str = "", subsystem: str = "") -> None:
        self.name = _full_name(namespace, subsystem, name)
        self.help = help
        self.labelnames = tuple(labelnames)
        self._lock = threading.Lock()

    def _key(self, values: Sequence[str]) -> tuple[str, ...]:
        if len(values) != len(self.labelnames):
            raise ValueError(
                f"{self.name}: expected {len(self.labelnames)} label values, got {len(values)}"
            )
        return tuple(str(v) for v in values)

    def _header(self) -> str:
        return f"# HELP {self.name} {self.help}\n# TYPE {self.name} {self.kind}\n"


class _Counter:
    def __init__(self, lock: threading.Lock) -> None:
        self._lock = lock
        self.value = 0.0

    def inc(self, amount: float = 1.0) -> None:
        if amount < 0:
            raise ValueError("counter cannot decrease")
        with self._lock:
            self.value += amount


class CounterVec(_Vec):
    """A family of counters partitioned by label values."""

    kind = "counter"

    def __init__(self, name: str, help: str, labelnames: Sequence[str],
                 namespace: str = "", subsystem: str = "") -> None:
        super().__init__(name, help, labelnames, namespace, subsystem)
        self._children: dict[tuple[str, ...], _Counter] = {}

    def labels(self, *args: str) -> _Counter:
        key = self._key(args)
        with self._lock:
            return self._children.setdefault(key, _Counter(self._lock))

    def value(self, *args: str) -> float:
        key = self._key(args)
        with self._lock:
            child = self._children.get(key)
            return child.value if child else 0.0

    def render(self) -> str:
        with self._lock:
            items = sorted((k, c.value) for k, c in self._children.items())
        lines = [f"{self.name}{_label_text(self.labelnames, k)} {_fmt(v)}\n" for k, v in items]
        return self._header() + "".join(lines)


@dataclass(frozen=True)
class HistogramSnapshot:
    """Cumulative bucket counts, sum and count of one histogram."""

    buckets: dict[float, int]
    sum: float
    count: int


class _Histogram:
    def __init__(self, bounds: tuple[float, ...], lock: threading.Lock) -> None:
        self._lock = lock
        self._bounds = bounds
        self._counts = [0] * len(bounds)
        self._sum = 0.0
        self._count = 0

    def observe(self, value: float) -> None:
        with self._lock:
            for i, bound in enumerate(self._bounds):
                if value <= bound:
                    self._counts[i] += 1
            self._sum += value
            self._count += 1

    def _snapshot(self) -> HistogramSnapshot:
        buckets = dict(zip(self._bounds, self._counts))
        buckets[float("inf")] = self._count
        return HistogramSnapshot(buckets, self._sum, self._count)


class HistogramVec(_Vec):
    """A family of histograms partitioned by label values."""

    kind = "histogram"

    def __init__(self, name: str, help: str, labelnames: Sequence[str], buckets: Sequence[float],
                 namespace: str = "", subsystem: str = "") -> None:
        super().__init__(name, help, labelnames, namespace, subsystem)
        bounds = tuple(sorted(float(b) for b in buckets if b != float("inf")))
        if len(set(bounds)) != len(bounds):
            raise ValueError("histogram buckets must be unique")
        self.buckets = bounds
        self._children: dict[tuple[str, ...], _Histogram] = {}

    def labels(self, *args: str) -> _Histogram:
        key = self._key(args)
        with self._lock:
            return self._children.setdefault(key, _Histogram(self.buckets, self._lock))

    def snapshot(self, *args: str) -> HistogramSnapshot:
        key = self._key(args)
        with self._lock:
            child = self._children.get(key)
            if child is None:
                return _Histogram(self.buckets, self._lock)._snapshot()
            return child._snapshot()

    def render(self) -> str:
        with self._lock:
            items = sorted((k, c._snapshot()) for k, c in self._children.items())
        out = [self._header()]
        for key, snap in items:
            for bound, count in snap.buckets.items():
                labels = _label_text(self.labelnames, key, f'le="{_fmt(bound)}"')
                out.append(f"{self.name}_bucket{labels} {count}\n")
            plain = _label_text(self.labelnames, key)
            out.append(f"{self.name}_sum{plain} {_fmt(snap.sum)}\n")
            out.append(f"{self.name}_count{plain} {snap.count}\n")
        return "".join(out)