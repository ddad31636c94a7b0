"""Cache header tallying and reporting."""

from typing import Dict, Any, Mapping, Optional

from .log import Logger, NullLogger
from .presets import CACHE_HEADER_NAMES

CacheHeaderTally = Dict[str, Dict[str, int]]


def _to_int(value: str) -> int:
    """Leading-integer parse; anything unparseable counts as 0."""
    digits = ""
    for i, ch in enumerate(value.strip()):
        if ch.isdigit() or (i == 0 and ch in "+-"):
            digits += ch
        else:
            break
    try:
        return int(digits)
    except ValueError:
        return 0


class CacheAnalyzer:
    """Tallies cache-related response headers across a run."""

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger or NullLogger()
        self.tally: CacheHeaderTally = {}

    def collect(self, headers: Mapping[str, str]) -> None:
        """Count one response's allow-listed headers; others are ignored."""
        for name, value in headers.items():
            key = name.lower()
            if key not in CACHE_HEADER_NAMES:
                continue
            values = self.tally.setdefault(key, {})
            values[value] = values.get(value, 0) + 1

    def merge(self, tally: Mapping[str, Mapping[str, int]]) -> None:
        """Add a whole tally, e.g. one burst's worth from the request generator."""
        for name, values in tally.items():
            key = name.lower()
            if key not in CACHE_HEADER_NAMES:
                continue
            target = self.tally.setdefault(key, {})
            for value, count in values.items():
                target[value] = target.get(value, 0) + count

    def generate_report(self, total_requests: int) -> Dict[str, Any]:
        """Per-header value breakdown plus the weighted average age.

        Percentages are relative to the number of times that header was seen,
        not to ``total_requests``.
        """
        summary: Dict[str, Any] = {}

        for header, values in self.tally.items():
            header_total = sum(values.values())
            if header_total == 0:
                continue
            summary[f"{header}_breakdown"] = {
                value: {
                    "count": count,
                    "percentage": round(count / header_total * 100, 1),
                }
                for value, count in values.items()
            }

        ages = self.tally.get("age")
        if ages:
            observations = sum(ages.values())
            weighted = sum(_to_int(value) * count for value, count in ages.items())
            summary["average_cache_age"] = round(weighted / observations, 1)

        return {
            "headers": {header: dict(values) for header, values in self.tally.items()},
            "summary": summary,
            "total_requests": total_requests,
        }

    def report(self, total_requests: int) -> Dict[str, Any]:
        """Log the cache report and return it."""
        report = self.generate_report(total_requests)
        summary = report["summary"]
        if not summary:
            self.logger.log("No cache headers observed.")
            return report

        self.logger.log("Cache header analysis:")
        for header in CACHE_HEADER_NAMES:
            breakdown = summary.get(f"{header}_breakdown")
            if not breakdown:
                continue
            self.logger.log(f"  {header}:")
            for value, stats in breakdown.items():
                self.logger.log(
                    f"    {value}: {stats['count']} ({stats['percentage']}%)"
                )
        if "average_cache_age" in summary:
            self.logger.log(f"  Average cache age: {summary['average_cache_age']}s")
        return report

    def reset(self) -> None:
        self.tally = {}
