"""
Tests for temporal correlation, cadence analysis and correlation reports.
"""

import pytest
from datetime import datetime, timedelta

from glassmem.core.correlation import CorrelationWindow, TemporalCorrelator
from glassmem.streams.channel import TimestampedItem
from util.logging import RecordingEventSink

T0 = datetime(2024, 3, 1, 10, 0, 0)


def at(seconds, payload=None):
    return TimestampedItem(payload=payload if payload is not None else seconds,
                           captured_at=T0 + timedelta(seconds=seconds))


@pytest.fixture
def correlator():
    return TemporalCorrelator(window=timedelta(seconds=2))


def test_audio_correlates_with_both_nearby_photos_closest_first(correlator):
    """Audio at 10.0s with photos at 9.0s and 11.5s matches both, 9.0s first."""
    photos = [at(11.5), at(9.0)]
    matches = correlator.correlate(T0 + timedelta(seconds=10), photos)

    assert [m.payload for m in matches] == [9.0, 11.5]


def test_correlate_never_returns_items_outside_window(correlator):
    reference = T0 + timedelta(seconds=10)
    photos = [at(s) for s in (5.0, 7.9, 8.0, 10.0, 12.0, 12.1, 20.0)]

    matches = correlator.correlate(reference, photos)

    assert [m.payload for m in matches] == [10.0, 8.0, 12.0]
    for match in matches:
        assert abs(match.captured_at - reference) <= timedelta(seconds=2)


def test_equal_distances_keep_original_order(correlator):
    reference = T0 + timedelta(seconds=10)
    photos = [at(11.0, "after"), at(9.0, "before"), at(10.0, "same")]

    matches = correlator.correlate(reference, photos)

    assert [m.payload for m in matches] == ["same", "after", "before"]


def test_empty_candidates_is_not_an_error(correlator):
    assert correlator.correlate(T0, []) == []
    assert correlator.best_match(T0, []) is None


def test_correlate_emits_event():
    sink = RecordingEventSink()
    correlator = TemporalCorrelator(window=timedelta(seconds=2), sink=sink)
    correlator.correlate(T0, [at(1.0)])

    event = sink.named("correlation.matched")[0]
    assert event.details["matches"] == 1
    assert event.details["window_sec"] == 2.0


def test_create_window_is_inclusive(correlator):
    window = correlator.create_window(T0)
    assert isinstance(window, CorrelationWindow)
    assert window.duration == timedelta(seconds=4)
    assert window.contains(T0 + timedelta(seconds=2))
    assert window.contains(T0 - timedelta(seconds=2))
    assert not window.contains(T0 + timedelta(seconds=2, microseconds=1))


def test_analyze_empty_and_single(correlator):
    empty = correlator.analyze([])
    assert empty.count == 0
    assert empty.mean_interval is None
    assert empty.frequency is None

    single = correlator.analyze([T0])
    assert single.count == 1
    assert single.mean_interval is None
    assert single.frequency is None


def test_analyze_regular_series(correlator):
    timestamps = [T0 + timedelta(seconds=s) for s in (3, 0, 2, 1)]
    analysis = correlator.analyze(timestamps)

    assert analysis.count == 4
    assert analysis.first == T0
    assert analysis.total_span == timedelta(seconds=3)
    assert analysis.mean_interval == timedelta(seconds=1)
    assert analysis.frequency == pytest.approx(1.0)
    assert "events: 4" in analysis.summary()


def test_analyze_zero_span_does_not_divide_by_zero(correlator):
    analysis = correlator.analyze([T0, T0, T0])
    assert analysis.total_span == timedelta(0)
    assert analysis.frequency is None


def test_report_rates(correlator):
    asr = [T0 + timedelta(seconds=s) for s in (0, 10, 20)]
    ocr = [T0 + timedelta(seconds=1)]
    photos = [at(0.5), at(19.0)]

    report = correlator.report(asr, ocr, photos)

    assert report.photo_count == 2
    assert report.event_count_by_kind == {"asr": 3, "ocr": 1}
    assert report.correlated_count_by_kind == {"asr": 2, "ocr": 1}
    assert report.correlation_rate_by_kind["asr"] == pytest.approx(2 / 3)
    assert report.overall_correlation_rate == pytest.approx(0.75)
    assert report.timing_stats_by_kind["photo"].count == 2

    summary = report.generate_summary()
    assert "ASR: 3 events, 2 correlated" in summary
    assert "Window: 2000ms" in summary


def test_report_with_no_events_has_zero_rates(correlator):
    report = correlator.report([], [], [])
    assert report.correlation_rate_by_kind == {"asr": 0.0, "ocr": 0.0}
    assert report.overall_correlation_rate == 0.0
    assert report.to_dict()["photo_count"] == 0
