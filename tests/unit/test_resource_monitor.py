"""Unit tests for resource sampling and trend detection."""

from unittest.mock import MagicMock

import pytest

from loadchaos.core.models import ResourceSample
from loadchaos.core.resource_monitor import (
    ResourceMonitor,
    growth_pattern,
    linear_slope,
    lower_median,
)


def make_monitor(track_trends=True, **kwargs):
    return ResourceMonitor(track_trends=track_trends, process=MagicMock(), **kwargs)


def sample(memory, elapsed=None, peak=None, user=1.0):
    timestamp = None if elapsed is None else 1000.0 + elapsed
    return ResourceSample(
        memory_usage=memory,
        peak_memory=peak if peak is not None else memory,
        user_time=user,
        system_time=0.1,
        timestamp=timestamp,
        elapsed=elapsed,
    )


class TestSample:
    """Test sampling through a psutil process."""

    def test_sample_converts_to_megabytes(self, fake_process):
        monitor = ResourceMonitor(process=fake_process)
        result = monitor.sample()

        assert result.memory_usage == 101.0
        assert result.user_time == 1.23
        assert result.system_time == 0.5
        assert result.elapsed is None
        assert monitor.samples == [result]

    def test_peak_is_high_water_mark(self):
        process = MagicMock()
        process.cpu_times.return_value = MagicMock(user=0.0, system=0.0)
        process.memory_info.side_effect = [
            MagicMock(rss=200 * 1024 * 1024),
            MagicMock(rss=100 * 1024 * 1024),
        ]
        monitor = ResourceMonitor(process=process)

        monitor.sample()
        second = monitor.sample()

        assert second.memory_usage == 100.0
        assert second.peak_memory == 200.0

    def test_trend_tracking_records_elapsed(self, fake_process):
        clock = MagicMock(side_effect=[1000.0, 1002.5])
        monitor = ResourceMonitor(track_trends=True, process=fake_process, clock=clock)
        result = monitor.sample()
        assert result.timestamp == 1002.5
        assert result.elapsed == 2.5


class TestSummary:
    """Test summary statistics."""

    def test_empty_summary(self):
        assert make_monitor().generate_summary() == {}

    def test_summary_uses_lower_median(self):
        monitor = make_monitor()
        for memory in (10.0, 20.0, 30.0, 40.0):
            monitor.record(sample(memory))

        summary = monitor.generate_summary()

        assert summary["samples"] == 4
        assert summary["memory"] == {"avg": 25.0, "median": 30.0, "min": 10.0, "max": 40.0}
        assert summary["system_time"]["avg"] == 0.1

    def test_lower_median(self):
        assert lower_median([0.4, 0.1, 0.3, 0.2]) == 0.3
        assert lower_median([3, 1, 2]) == 2


class TestTrends:
    """Test slope and growth classification."""

    def test_disabled_without_trend_tracking(self):
        monitor = make_monitor(track_trends=False)
        for i in range(5):
            monitor.record(sample(10.0 + i, elapsed=float(i)))
        assert monitor.analyze_trends() is None

    def test_needs_three_samples(self):
        monitor = make_monitor()
        monitor.record(sample(10.0, elapsed=0.0))
        monitor.record(sample(11.0, elapsed=1.0))
        assert monitor.analyze_trends() is None

    def test_linear_slope(self):
        assert linear_slope([0, 1, 2], [0, 2, 4]) == pytest.approx(2.0)
        assert linear_slope([0, 1, 2, 3], [1, 3, 2, 4]) == pytest.approx(0.8)
        assert linear_slope([1, 1, 1], [3, 4, 5]) == 0.0
        assert linear_slope([5], [10]) == 0.0

    def test_out_of_order_samples_are_sorted(self):
        monitor = make_monitor()
        monitor.record(sample(30.0, elapsed=2.0))
        monitor.record(sample(10.0, elapsed=0.0))
        monitor.record(sample(20.0, elapsed=1.0))

        trends = monitor.analyze_trends()

        memory = trends["trends"]["memory_usage"]
        assert memory["slope"] == 10.0
        assert memory["change_percent"] == 200.0
        assert memory["growth_pattern"] == "insufficient_data"
        assert trends["data_points"] == 3
        assert trends["time_span"] == 2.0

    def test_continuous_growth_flags_unbounded(self, null_logger):
        monitor = make_monitor(logger=null_logger)
        for i in range(8):
            monitor.record(sample(10.0 * (i + 1), elapsed=float(i)))

        trends = monitor.report_trends()

        assert trends["trends"]["memory_usage"]["growth_pattern"] == "continuous_growth"
        assert trends["potentially_unbounded"] is True
        assert any("continuous growth" in m for m in null_logger.messages_of("warning"))

    def test_flat_memory_is_bounded(self):
        monitor = make_monitor()
        for i in range(8):
            monitor.record(sample(50.0, elapsed=float(i)))
        trends = monitor.analyze_trends()
        assert trends["trends"]["memory_usage"]["growth_pattern"] == "stabilizing"
        assert trends["potentially_unbounded"] is False

    @pytest.mark.parametrize(
        "values,expected",
        [
            ([1, 2, 3, 4], "insufficient_data"),
            ([1, 2, 3, 4, 5, 6, 7, 8], "continuous_growth"),
            ([10, 10.5, 11, 11.5, 12, 12.5, 13, 13.5], "moderate_growth"),
            ([5, 1, 5, 1, 5, 1, 5, 1], "stabilizing"),
            ([1, 1, 10, 10, 1, 1, 5, 5], "fluctuating"),
        ],
    )
    def test_growth_pattern(self, values, expected):
        assert growth_pattern(values) == expected


class TestBaselines:
    """Test resource baselines."""

    def test_save_and_get(self, storage):
        monitor = make_monitor(storage=storage)
        monitor.record(sample(10.0))
        assert monitor.save_baseline("nightly") is True
        assert monitor.get_baseline("nightly")["memory"]["avg"] == 10.0

    def test_nothing_to_save(self, storage):
        assert make_monitor(storage=storage).save_baseline("empty") is False

    def test_report_compares_with_baseline(self, storage, null_logger):
        baseline = make_monitor(storage=storage)
        baseline.record(sample(10.0))
        baseline.save_baseline("nightly")

        monitor = make_monitor(storage=storage, logger=null_logger)
        monitor.record(sample(20.0))
        monitor.report_summary(compare_baseline="nightly")

        assert any("10.0MB -> 20.0MB (↑ 100.0%)" in m for m in null_logger.messages_of("log"))

    def test_report_warns_on_missing_baseline(self, storage, null_logger):
        monitor = make_monitor(storage=storage, logger=null_logger)
        monitor.record(sample(20.0))
        monitor.report_summary(compare_baseline="missing")
        assert "Resource baseline 'missing' not found." in null_logger.messages_of("warning")
