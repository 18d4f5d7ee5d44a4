"""
Temporal correlation between differently paced event streams.

Matching is symmetric within a radius (not "before only") because capture order
between modalities is not guaranteed.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from util.logging import emit_event

from .config import get_correlation_window, get_extended_correlation_window
from ..streams.channel import TimestampedItem


def _timestamp_of(item: Union[TimestampedItem, datetime]) -> datetime:
    return item if isinstance(item, datetime) else item.captured_at


@dataclass(frozen=True)
class CorrelationWindow:
    """Time interval [center - radius, center + radius]."""
    center: datetime
    radius: timedelta

    @property
    def start(self) -> datetime:
        return self.center - self.radius

    @property
    def end(self) -> datetime:
        return self.center + self.radius

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def contains(self, timestamp: datetime) -> bool:
        """Inclusive at both edges, matching correlate()."""
        return self.start <= timestamp <= self.end


@dataclass(frozen=True)
class TemporalAnalysis:
    """Interval statistics over a series of timestamps."""
    first: Optional[datetime]
    last: Optional[datetime]
    total_span: timedelta
    count: int
    mean_interval: Optional[timedelta]
    intervals: Sequence[timedelta] = ()

    @classmethod
    def empty(cls) -> "TemporalAnalysis":
        return cls(first=None, last=None, total_span=timedelta(0), count=0,
                   mean_interval=None, intervals=())

    @property
    def frequency(self) -> Optional[float]:
        """Events per second; None when fewer than two events or zero span."""
        span_seconds = self.total_span.total_seconds()
        if self.count <= 1 or span_seconds == 0:
            return None
        return (self.count - 1) / span_seconds

    def summary(self) -> str:
        frequency = f"{self.frequency:.2f}" if self.frequency is not None else "N/A"
        mean = (f"{self.mean_interval.total_seconds() * 1000:.0f}"
                if self.mean_interval is not None else "N/A")
        return (f"events: {self.count}, span: {self.total_span.total_seconds():.1f}s, "
                f"frequency: {frequency} Hz, mean interval: {mean} ms")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "first": self.first.isoformat() if self.first else None,
            "last": self.last.isoformat() if self.last else None,
            "total_span_sec": self.total_span.total_seconds(),
            "count": self.count,
            "mean_interval_sec": self.mean_interval.total_seconds() if self.mean_interval else None,
            "frequency_hz": self.frequency,
        }


@dataclass(frozen=True)
class CorrelationReport:
    """On-demand correlation statistics for a session. Never persisted."""
    window: timedelta
    photo_count: int
    event_count_by_kind: Dict[str, int] = field(default_factory=dict)
    correlated_count_by_kind: Dict[str, int] = field(default_factory=dict)
    timing_stats_by_kind: Dict[str, TemporalAnalysis] = field(default_factory=dict)

    @property
    def correlation_rate_by_kind(self) -> Dict[str, float]:
        rates = {}
        for kind, total in self.event_count_by_kind.items():
            correlated = self.correlated_count_by_kind.get(kind, 0)
            rates[kind] = correlated / total if total > 0 else 0.0
        return rates

    @property
    def overall_correlation_rate(self) -> float:
        total = sum(self.event_count_by_kind.values())
        correlated = sum(self.correlated_count_by_kind.values())
        return correlated / total if total > 0 else 0.0

    def generate_summary(self) -> str:
        lines = ["Correlation Report:"]
        rates = self.correlation_rate_by_kind
        for kind, total in self.event_count_by_kind.items():
            lines.append(
                f"  {kind.upper()}: {total} events, {self.correlated_count_by_kind.get(kind, 0)} "
                f"correlated ({rates[kind] * 100:.1f}%)"
            )
        lines.append(f"  Photos: {self.photo_count} available")
        lines.append(f"  Overall: {self.overall_correlation_rate * 100:.1f}% correlation rate")
        lines.append(f"  Window: {self.window.total_seconds() * 1000:.0f}ms")
        for kind, analysis in self.timing_stats_by_kind.items():
            lines.append(f"  {kind.upper()} timing: {analysis.summary()}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "window_sec": self.window.total_seconds(),
            "photo_count": self.photo_count,
            "event_count_by_kind": dict(self.event_count_by_kind),
            "correlated_count_by_kind": dict(self.correlated_count_by_kind),
            "correlation_rate_by_kind": self.correlation_rate_by_kind,
            "overall_correlation_rate": self.overall_correlation_rate,
            "timing_stats_by_kind": {
                kind: analysis.to_dict() for kind, analysis in self.timing_stats_by_kind.items()
            },
        }


class TemporalCorrelator:
    """Windowed timestamp matching and cadence analysis."""

    def __init__(self, window: timedelta = None, sink: Any = None):
        self.window = window if window is not None else get_correlation_window()
        self.extended_window = get_extended_correlation_window()
        self.sink = sink

    def correlate(self, reference: datetime, candidates: Iterable[TimestampedItem],
                  window: timedelta = None) -> List[TimestampedItem]:
        """Candidates within ``window`` of ``reference``, nearest first.

        Equal distances keep their original relative order.
        """
        window = window if window is not None else self.window
        matches = [item for item in candidates if abs(item.captured_at - reference) <= window]
        # sorted() is stable, so ties keep candidate order
        matches = sorted(matches, key=lambda item: abs(item.captured_at - reference))

        emit_event(self.sink, "correlation.matched", reference=reference.isoformat(),
                   matches=len(matches), window_sec=window.total_seconds())
        return matches

    def best_match(self, reference: datetime, candidates: Iterable[TimestampedItem],
                   window: timedelta = None) -> Optional[TimestampedItem]:
        matches = self.correlate(reference, candidates, window)
        return matches[0] if matches else None

    def create_window(self, center: datetime, radius: timedelta = None) -> CorrelationWindow:
        return CorrelationWindow(center=center, radius=radius if radius is not None else self.window)

    def analyze(self, timestamps: Iterable[datetime]) -> TemporalAnalysis:
        """Interval statistics over ``timestamps`` (sorted ascending first)."""
        ordered = sorted(timestamps)
        if not ordered:
            return TemporalAnalysis.empty()

        intervals = [later - earlier for earlier, later in zip(ordered, ordered[1:])]
        mean_interval = None
        if intervals:
            mean_interval = sum(intervals, timedelta(0)) / len(intervals)

        return TemporalAnalysis(
            first=ordered[0],
            last=ordered[-1],
            total_span=ordered[-1] - ordered[0],
            count=len(ordered),
            mean_interval=mean_interval,
            intervals=tuple(intervals),
        )

    def report(self, asr_timestamps: Sequence[datetime], ocr_timestamps: Sequence[datetime],
               photos: Sequence[Union[TimestampedItem, datetime]],
               window: timedelta = None) -> CorrelationReport:
        """Correlation rates and timing statistics for the ASR and OCR series."""
        return self.report_by_kind({"asr": asr_timestamps, "ocr": ocr_timestamps}, photos, window)

    def report_by_kind(self, events_by_kind: Mapping[str, Sequence[datetime]],
                       photos: Sequence[Union[TimestampedItem, datetime]],
                       window: timedelta = None) -> CorrelationReport:
        window = window if window is not None else self.window
        photo_times = [_timestamp_of(photo) for photo in photos]

        event_counts = {}
        correlated_counts = {}
        timing = {}
        for kind, timestamps in events_by_kind.items():
            timestamps = list(timestamps)
            event_counts[kind] = len(timestamps)
            correlated_counts[kind] = sum(
                1 for ts in timestamps
                if any(abs(photo_ts - ts) <= window for photo_ts in photo_times)
            )
            timing[kind] = self.analyze(timestamps)
        timing["photo"] = self.analyze(photo_times)

        return CorrelationReport(
            window=window,
            photo_count=len(photo_times),
            event_count_by_kind=event_counts,
            correlated_count_by_kind=correlated_counts,
            timing_stats_by_kind=timing,
        )
