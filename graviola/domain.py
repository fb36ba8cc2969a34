"""Time-series values handed to the query engine: series, their iterators and series sets."""

from __future__ import annotations

import enum
from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Iterator

__all__ = [
    "ValueType",
    "SamplePair",
    "UnsupportedSampleError",
    "GraviolaSeries",
    "GraviolaIterator",
    "GraviolaSeriesSet",
]


class ValueType(enum.IntEnum):
    """Kind of sample an iterator is positioned on."""

    NONE = 0
    FLOAT = 1
    HISTOGRAM = 2
    FLOAT_HISTOGRAM = 3


@dataclass(frozen=True)
class SamplePair:
    """A single datapoint: a timestamp in milliseconds and its value."""

    timestamp: int
    value: float


class UnsupportedSampleError(RuntimeError):
    """Raised when a sample is read in a form the iterator cannot provide."""


def _timestamp(point: SamplePair) -> int:
    return point.timestamp


_UNSUPPORTED_MESSAGES = {
    ValueType.FLOAT: "iterator is not on a float sample",
    ValueType.HISTOGRAM: "native histograms is not supported yet",
    ValueType.FLOAT_HISTOGRAM: "float histograms are not supported",
}


@dataclass
class GraviolaSeries:
    """A time-series: its labels and its datapoints, ordered by timestamp."""

    lbs: dict[str, str] = field(default_factory=dict)
    datapoints: list[SamplePair] = field(default_factory=list)

    def labels(self) -> dict[str, str]:
        """A sorted copy of the series labels."""
        return dict(sorted(self.lbs.items()))

    def iterator(self, reuse: object = None) -> GraviolaIterator:
        """An iterator over the datapoints, resetting ``reuse`` when it is one of ours."""
        if isinstance(reuse, GraviolaIterator):
            reuse._reset(self)
            return reuse
        return GraviolaIterator(self)


class GraviolaIterator:
    """Cursor over the datapoints of a series."""

    def __init__(self, series: GraviolaSeries) -> None:
        self._reset(series)

    def _reset(self, series: GraviolaSeries) -> None:
        self._cur = -1
        self._value_type = ValueType.NONE
        self._series = series
        self._error: BaseException | None = None

    def next(self) -> ValueType:
        """Advance by one; return the type of the new sample or NONE when exhausted."""
        if self._cur + 1 < len(self._series.datapoints):
            self._cur += 1
            self._value_type = ValueType.FLOAT
            return self._value_type
        self._value_type = ValueType.NONE
        return ValueType.NONE

    def seek(self, t: int) -> ValueType:
        """Advance to the first sample with a timestamp at or after ``t``."""
        points = self._series.datapoints
        if self._cur == -1:
            self._cur = 0

        if self._cur >= len(points):
            return ValueType.NONE

        if self._value_type is ValueType.FLOAT and points[self._cur].timestamp >= t:
            return self._value_type

        self._value_type = ValueType.NONE
        self._cur = bisect_left(points, t, lo=self._cur, key=_timestamp)
        if self._cur < len(points):
            self._value_type = ValueType.FLOAT
        return self._value_type

    def _sample_as(self, kind: ValueType) -> tuple[int, float]:
        """The current sample, provided the iterator sits on a sample of ``kind``."""
        if self._value_type is not kind:
            raise UnsupportedSampleError(_UNSUPPORTED_MESSAGES[kind])
        point = self._series.datapoints[self._cur]
        return point.timestamp, float(point.value)

    def at(self) -> tuple[int, float]:
        """The current timestamp and value."""
        return self._sample_as(ValueType.FLOAT)

    def at_histogram(self) -> tuple[int, object]:
        """The current native histogram sample; series here hold only floats."""
        return self._sample_as(ValueType.HISTOGRAM)

    def at_float_histogram(self) -> tuple[int, object]:
        """The current float histogram sample; series here hold only floats."""
        return self._sample_as(ValueType.FLOAT_HISTOGRAM)

    def at_t(self) -> int:
        """The timestamp of the current, or last reached, sample."""
        if not 0 <= self._cur < len(self._series.datapoints):
            raise IndexError("iterator is not positioned on a sample")
        return self._series.datapoints[self._cur].timestamp

    def err(self) -> BaseException | None:
        """The error iteration failed with; in-memory datapoints never fail."""
        return self._error


@dataclass
class GraviolaSeriesSet:
    """An ordered collection of series with the warnings and error of the query."""

    series: list[GraviolaSeries] = field(default_factory=list)
    annots: dict[str, BaseException] = field(default_factory=dict)
    error: BaseException | None = None
    _current: int = field(default=0, init=False, repr=False, compare=False)

    def next(self) -> bool:
        """Advance to the next series; False once all have been visited."""
        self._current += 1
        return self._current - 1 < len(self.series)

    def at(self) -> GraviolaSeries:
        """The series the set is positioned on."""
        if not 1 <= self._current <= len(self.series):
            raise IndexError("series set is not positioned on a series")
        return self.series[self._current - 1]

    def err(self) -> BaseException | None:
        """The error iteration failed with, if any."""
        return self.error

    def warnings(self) -> dict[str, BaseException]:
        """Warnings attached to the whole set."""
        return self.annots

    def __iter__(self) -> Iterator[GraviolaSeries]:
        while self.next():
            yield self.at()