"""Process resource sampling and trend detection."""

import time
from typing import Dict, Any, List, Optional

import numpy as np
import psutil

from .log import Logger, NullLogger
from .models import ResourceSample
from .presets import BASELINE_TTL_SECONDS

BYTES_PER_MB = 1024 * 1024

SUMMARY_METRICS = ("memory_usage", "peak_memory", "user_time", "system_time")
TREND_METRICS = ("memory_usage", "peak_memory", "user_time")
MEMORY_METRICS = ("memory_usage", "peak_memory")

_SUMMARY_KEYS = {
    "memory_usage": "memory",
    "peak_memory": "peak_memory",
    "user_time": "user_time",
    "system_time": "system_time",
}


def lower_median(values: List[float]) -> float:
    """Element at index floor(n/2) of the sorted values."""
    ordered = sorted(values)
    return ordered[len(ordered) // 2]


def linear_slope(xs: List[float], ys: List[float]) -> float:
    """Ordinary least squares slope of ys over xs."""
    if len(xs) < 2 or len(set(xs)) < 2:
        return 0.0
    return float(np.polyfit(xs, ys, 1)[0])


def growth_pattern(values: List[float]) -> str:
    """Classify a time-ordered series by comparing four segment averages."""
    n = len(values)
    if n < 5:
        return "insufficient_data"

    size = n // 4
    segments = []
    for i in range(4):
        chunk = values[i * size:(i + 1) * size]
        segments.append(sum(chunk) / len(chunk))

    increasing = all(segments[i] > segments[i - 1] for i in range(1, 4))
    if increasing:
        first = segments[0]
        growth = (segments[-1] - first) / first * 100 if first else 100.0
        return "continuous_growth" if growth > 50 else "moderate_growth"

    previous, last = segments[-2], segments[-1]
    if previous == 0:
        difference = 0.0 if last == 0 else 100.0
    else:
        difference = abs(last - previous) / abs(previous) * 100
    return "stabilizing" if difference < 5 else "fluctuating"


class ResourceMonitor:
    """Samples this process's memory and CPU usage between bursts."""

    def __init__(
        self,
        track_trends: bool = False,
        storage=None,
        logger: Optional[Logger] = None,
        process: Optional[psutil.Process] = None,
        clock=time.time,
    ):
        self.track_trends = track_trends
        self.storage = storage
        self.logger = logger or NullLogger()
        self.process = process or psutil.Process()
        self._clock = clock
        self.samples: List[ResourceSample] = []
        self.start_time = clock()
        self._peak_bytes = 0

    def sample(self) -> ResourceSample:
        """Take one sample and append it to the run's sequence."""
        rss = self.process.memory_info().rss
        self._peak_bytes = max(self._peak_bytes, rss)
        cpu = self.process.cpu_times()

        timestamp = elapsed = None
        if self.track_trends:
            timestamp = self._clock()
            elapsed = round(timestamp - self.start_time, 2)

        sample = ResourceSample(
            memory_usage=round(rss / BYTES_PER_MB, 2),
            peak_memory=round(self._peak_bytes / BYTES_PER_MB, 2),
            user_time=round(cpu.user, 2),
            system_time=round(cpu.system, 2),
            timestamp=timestamp,
            elapsed=elapsed,
        )
        self.samples.append(sample)
        return sample

    def record(self, sample: ResourceSample) -> None:
        """Append an externally produced sample."""
        self.samples.append(sample)

    def generate_summary(self) -> Dict[str, Any]:
        if not self.samples:
            return {}

        summary: Dict[str, Any] = {"samples": len(self.samples)}
        for metric in SUMMARY_METRICS:
            values = [getattr(s, metric) for s in self.samples]
            summary[_SUMMARY_KEYS[metric]] = {
                "avg": round(sum(values) / len(values), 2),
                "median": round(lower_median(values), 2),
                "min": round(min(values), 2),
                "max": round(max(values), 2),
            }
        return summary

    def analyze_trends(self) -> Optional[Dict[str, Any]]:
        """Slope, change and growth pattern per metric, or None."""
        if not self.track_trends or len(self.samples) < 3:
            return None

        timed = [s for s in self.samples if s.elapsed is not None]
        if len(timed) < 3:
            return None
        timed.sort(key=lambda s: s.elapsed)
        xs = [s.elapsed for s in timed]

        trends: Dict[str, Any] = {}
        for metric in TREND_METRICS:
            ys = [getattr(s, metric) for s in timed]
            first, last = ys[0], ys[-1]
            change_percent = round((last - first) / first * 100, 1) if first else 0.0
            trends[metric] = {
                "slope": round(linear_slope(xs, ys), 4),
                "change_percent": change_percent,
                "growth_pattern": growth_pattern(ys),
            }

        return {
            "data_points": len(timed),
            "time_span": round(xs[-1] - xs[0], 2),
            "trends": trends,
            "potentially_unbounded": any(
                trends[m]["growth_pattern"] == "continuous_growth" for m in MEMORY_METRICS
            ),
        }

    def report_summary(self, compare_baseline: Optional[str] = None) -> Dict[str, Any]:
        """Log the summary, optionally against a saved resource baseline."""
        summary = self.generate_summary()
        if not summary:
            self.logger.warning("No resource samples were collected.")
            return summary

        self.logger.log(f"Resource usage ({summary['samples']} samples):")
        for key, label, unit in (
            ("memory", "Memory", "MB"),
            ("peak_memory", "Peak memory", "MB"),
            ("user_time", "User CPU", "s"),
            ("system_time", "System CPU", "s"),
        ):
            stats = summary[key]
            self.logger.log(
                f"  {label}: avg {stats['avg']}{unit} | median {stats['median']}{unit} "
                f"| min {stats['min']}{unit} | max {stats['max']}{unit}"
            )

        if compare_baseline:
            baseline = self.get_baseline(compare_baseline)
            if baseline is None:
                self.logger.warning(f"Resource baseline '{compare_baseline}' not found.")
            else:
                for stat in ("avg", "max"):
                    current = summary["memory"][stat]
                    previous = baseline.get("memory", {}).get(stat, 0)
                    change = round((current - previous) / previous * 100, 1) if previous else 0
                    indicator = "↓" if change <= 0 else "↑"
                    self.logger.log(
                        f"  Memory {stat} vs baseline: {previous}MB -> {current}MB "
                        f"({indicator} {abs(change)}%)"
                    )
        return summary

    def report_trends(self) -> Optional[Dict[str, Any]]:
        trends = self.analyze_trends()
        if trends is None:
            return None

        self.logger.log(
            f"Resource trends over {trends['time_span']}s ({trends['data_points']} samples):"
        )
        for metric, trend in trends["trends"].items():
            self.logger.log(
                f"  {metric}: slope {trend['slope']}/s | change {trend['change_percent']}% "
                f"| {trend['growth_pattern']}"
            )
        if trends["potentially_unbounded"]:
            self.logger.warning(
                "Memory shows continuous growth; possible leak or unbounded cache."
            )
        return trends

    def save_baseline(self, name: str, summary: Optional[Dict[str, Any]] = None) -> bool:
        if self.storage is None:
            return False
        data = summary if summary is not None else self.generate_summary()
        if not data:
            return False
        return self.storage.save(name, data, BASELINE_TTL_SECONDS)

    def get_baseline(self, name: str) -> Optional[Dict[str, Any]]:
        if self.storage is None:
            return None
        return self.storage.get(name)
