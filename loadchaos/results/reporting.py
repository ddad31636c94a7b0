"""Result aggregation, baselines and export."""

import json
from dataclasses import dataclass, field, asdict
from typing import List, Dict, Any, Optional

import pandas as pd

from ..core.log import Logger, NullLogger
from ..core.models import RequestResult, ExecutionMetrics
from ..core.presets import BASELINE_TTL_SECONDS
from ..core.resource_monitor import lower_median
from ..core.thresholds import ThresholdEngine, ThresholdProfile, Severity, response_time_histogram

SEVERITY_MARKERS = {
    Severity.GOOD: "[OK]",
    Severity.WARN: "[WARN]",
    Severity.CRITICAL: "[CRIT]",
}


@dataclass
class TimingStats:
    avg: float = 0.0
    median: float = 0.0
    min: float = 0.0
    max: float = 0.0


@dataclass
class PerformanceSummary:
    """Aggregate statistics over a run's request results."""

    count: int = 0
    success: int = 0
    http_errors: int = 0
    protocol_errors: int = 0
    protocol_error_requests: int = 0
    error_rate: float = 0.0
    timing: TimingStats = field(default_factory=TimingStats)
    histogram: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PerformanceSummary":
        timing = data.get("timing", {})
        return cls(
            count=data.get("count", 0),
            success=data.get("success", 0),
            http_errors=data.get("http_errors", 0),
            protocol_errors=data.get("protocol_errors", 0),
            protocol_error_requests=data.get("protocol_error_requests", 0),
            error_rate=data.get("error_rate", 0.0),
            timing=TimingStats(
                avg=timing.get("avg", 0.0),
                median=timing.get("median", 0.0),
                min=timing.get("min", 0.0),
                max=timing.get("max", 0.0),
            ),
            histogram=data.get("histogram", []),
        )


def percentage_change(current: float, baseline: float) -> float:
    """Percent change from ``baseline``; 0 when the baseline is 0."""
    if not baseline:
        return 0.0
    return round((current - baseline) / baseline * 100, 1)


def change_indicator(change: float) -> str:
    """Lower is better: a drop or no change is an improvement."""
    return "↓" if change <= 0 else "↑"


def format_large_number(value: float) -> str:
    """Abbreviate with K/M/B and one decimal, e.g. 1500000 -> '1.5M'."""
    for threshold, suffix in ((1_000_000_000, "B"), (1_000_000, "M"), (1_000, "K")):
        if value >= threshold:
            return f"{value / threshold:.1f}{suffix}"
    return str(int(value))


class ReportingEngine:
    """Owns the run's results and turns them into summaries and exports."""

    def __init__(
        self,
        storage=None,
        logger: Optional[Logger] = None,
        threshold_engine: Optional[ThresholdEngine] = None,
    ):
        self.storage = storage
        self.logger = logger or NullLogger()
        self.threshold_engine = threshold_engine or ThresholdEngine(logger=self.logger)
        self.results: List[RequestResult] = []

    def add_result(self, result: RequestResult) -> None:
        self.results.append(result)

    def add_results(self, results: List[RequestResult]) -> None:
        self.results.extend(results)

    def clear(self) -> None:
        self.results = []

    def response_times(self) -> List[float]:
        return [r.elapsed for r in self.results]

    def generate_summary(self) -> PerformanceSummary:
        if not self.results:
            return PerformanceSummary()

        count = len(self.results)
        success = sum(1 for r in self.results if r.is_success)
        http_errors = sum(1 for r in self.results if r.is_http_error)
        protocol_errors = sum(r.protocol_errors or 0 for r in self.results)
        protocol_error_requests = sum(
            1 for r in self.results if not r.is_http_error and r.has_protocol_errors
        )
        error_rate = round((http_errors + protocol_error_requests) / count * 100, 1)

        times = self.response_times()
        return PerformanceSummary(
            count=count,
            success=success,
            http_errors=http_errors,
            protocol_errors=protocol_errors,
            protocol_error_requests=protocol_error_requests,
            error_rate=error_rate,
            timing=TimingStats(
                avg=round(sum(times) / count, 4),
                median=round(lower_median(times), 4),
                min=round(min(times), 4),
                max=round(max(times), 4),
            ),
            histogram=response_time_histogram(times),
        )

    def save_baseline(self, name: str, summary: Optional[PerformanceSummary] = None) -> bool:
        if self.storage is None:
            self.logger.warning("No storage configured; baseline not saved.")
            return False
        summary = summary or self.generate_summary()
        data = summary.to_dict()
        data.pop("histogram", None)
        if self.storage.save(name, data, BASELINE_TTL_SECONDS):
            self.logger.success(f"Baseline '{name}' saved.")
            return True
        self.logger.warning(f"Failed to save baseline '{name}'.")
        return False

    def get_baseline(self, name: str) -> Optional[PerformanceSummary]:
        if self.storage is None:
            return None
        data = self.storage.get(name)
        if not data:
            return None
        return PerformanceSummary.from_dict(data)

    def compare_to_baseline(
        self, name: str, summary: Optional[PerformanceSummary] = None
    ) -> Optional[Dict[str, Dict[str, Any]]]:
        """Per-metric change against a saved baseline, or None if it is missing."""
        baseline = self.get_baseline(name)
        if baseline is None:
            self.logger.warning(f"Baseline '{name}' not found.")
            return None

        summary = summary or self.generate_summary()
        pairs = {
            "avg": (summary.timing.avg, baseline.timing.avg),
            "median": (summary.timing.median, baseline.timing.median),
            "min": (summary.timing.min, baseline.timing.min),
            "max": (summary.timing.max, baseline.timing.max),
            "error_rate": (summary.error_rate, baseline.error_rate),
        }
        comparison = {}
        for metric, (current, previous) in pairs.items():
            change = percentage_change(current, previous)
            comparison[metric] = {
                "current": current,
                "baseline": previous,
                "change": change,
                "indicator": change_indicator(change),
            }
        return comparison

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame(
            [{"Time (s)": r.elapsed, "Status Code": r.status} for r in self.results],
            columns=["Time (s)", "Status Code"],
        )

    def export(self, format: str, path: str) -> bool:
        """Write results as 'json' (summary + raw results) or 'csv'.

        Returns False instead of raising when the file cannot be written.
        """
        try:
            if format == "json":
                data = {
                    "summary": self.generate_summary().to_dict(),
                    "results": [r.to_dict() for r in self.results],
                }
                with open(path, "w") as f:
                    json.dump(data, f, indent=2, default=str)
            elif format == "csv":
                if not self.results:
                    self.logger.warning("No results to export.")
                    return False
                self.to_dataframe().to_csv(path, index=False)
            else:
                self.logger.warning(f"Unknown export format '{format}'. Use 'json' or 'csv'.")
                return False
        except OSError as e:
            self.logger.warning(f"Failed to export results to {path}: {e}")
            return False

        self.logger.success(f"Results exported to {path}")
        return True

    def _marker(self, value: float, kind: str, profile: Optional[ThresholdProfile]) -> str:
        return SEVERITY_MARKERS[self.threshold_engine.classify(value, kind, profile)]

    def print_summary(
        self,
        summary: Optional[PerformanceSummary] = None,
        profile: Optional[ThresholdProfile] = None,
        comparison: Optional[Dict[str, Dict[str, Any]]] = None,
        execution_metrics: Optional[ExecutionMetrics] = None,
    ) -> None:
        """Print the run summary in a formatted way."""
        summary = summary or self.generate_summary()

        print("\n" + "=" * 60)
        print("LOAD TEST RESULTS")
        print("=" * 60)
        print(f"Total Requests:      {summary.count}")
        print(f"Successful:          {summary.success}")
        print(f"HTTP Errors:         {summary.http_errors}")
        if summary.protocol_errors:
            print(
                f"GraphQL Errors:      {summary.protocol_errors} "
                f"(in {summary.protocol_error_requests} requests)"
            )
        print(
            f"Error Rate:          {summary.error_rate}% "
            f"{self._marker(summary.error_rate, 'error_rate', profile)}"
        )
        print()
        print("RESPONSE TIME (s)")
        print("-" * 30)
        for label, value in (
            ("Average", summary.timing.avg),
            ("Median", summary.timing.median),
            ("Minimum", summary.timing.min),
            ("Maximum", summary.timing.max),
        ):
            print(f"{label + ':':<21}{value} {self._marker(value, 'response_time', profile)}")

        if summary.histogram:
            print()
            print("RESPONSE TIME DISTRIBUTION")
            print("-" * 30)
            for bucket in summary.histogram:
                bar = "#" * int(bucket["percentage"] / 2)
                print(
                    f"{bucket['min']:.4f}-{bucket['max']:.4f}s "
                    f"{bucket['count']:>6} ({bucket['percentage']:>5}%) {bar}"
                )

        if comparison:
            print()
            print("BASELINE COMPARISON")
            print("-" * 30)
            for metric, row in comparison.items():
                print(
                    f"{metric + ':':<21}{row['baseline']} -> {row['current']} "
                    f"({row['indicator']} {abs(row['change'])}%)"
                )

        if execution_metrics:
            print()
            print("THROUGHPUT")
            print("-" * 30)
            print(f"Duration:            {execution_metrics.formatted_duration}")
            print(f"Requests/second:     {execution_metrics.requests_per_second}")
            print(
                f"Capacity:            ~{format_large_number(execution_metrics.capacity_per_hour)}/hour, "
                f"~{format_large_number(execution_metrics.capacity_per_day)}/day, "
                f"~{format_large_number(execution_metrics.capacity_per_month)}/month"
            )
            print(f"  ({ExecutionMetrics.CAPACITY_NOTE})")
        print("=" * 60)
