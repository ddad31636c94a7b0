"""Severity thresholds, calibration and named profiles."""

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional

from .log import Logger, NullLogger
from .presets import (
    THRESHOLD_DEFAULTS,
    CALIBRATION_FACTORS,
    MIN_CALIBRATION_ERROR_RATE,
    DEFAULT_MEMORY_LIMIT_MB,
    BASELINE_TTL_SECONDS,
)

module_logger = logging.getLogger(__name__)

METRIC_KINDS = ("response_time", "memory_usage", "error_rate")

_MEMORY_LIMIT = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*([KMG]?)B?\s*$", re.IGNORECASE)


class Severity(str, Enum):
    GOOD = "good"
    WARN = "warn"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Band:
    """Upper bounds for the good and warn levels; above ``critical`` is critical."""

    good: float
    warn: float
    critical: float

    def classify(self, value: float) -> Severity:
        if value <= self.good:
            return Severity.GOOD
        if value <= self.warn:
            return Severity.WARN
        return Severity.CRITICAL

    def to_dict(self) -> Dict[str, float]:
        return {"good": self.good, "warn": self.warn, "critical": self.critical}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Band":
        return cls(
            good=float(data.get("good", 0)),
            warn=float(data.get("warn", 0)),
            critical=float(data.get("critical", 0)),
        )


@dataclass
class ThresholdProfile:
    """Named set of bands per metric kind."""

    name: str
    bands: Dict[str, Band] = field(default_factory=dict)
    calibrated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "calibrated": self.calibrated,
            "bands": {kind: band.to_dict() for kind, band in self.bands.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThresholdProfile":
        return cls(
            name=data.get("name", "default"),
            calibrated=bool(data.get("calibrated", True)),
            bands={
                kind: Band.from_dict(band)
                for kind, band in data.get("bands", {}).items()
            },
        )


def default_band(metric_kind: str) -> Band:
    """Hard-coded band for ``metric_kind``; unknown kinds get all zeros."""
    values = THRESHOLD_DEFAULTS.get(metric_kind)
    if values is None:
        return Band(0.0, 0.0, 0.0)
    return Band(values["good"], values["warn"], values["critical"])


def parse_memory_limit_mb(limit: Optional[str]) -> float:
    """Parse a limit such as '256M', '1G', '512K' or a byte count into MB.

    Unlimited (-1), empty, unparseable or non-positive limits fall back to
    128 MB.
    """
    if limit is None:
        return DEFAULT_MEMORY_LIMIT_MB
    match = _MEMORY_LIMIT.match(str(limit))
    if not match:
        return DEFAULT_MEMORY_LIMIT_MB

    amount = float(match.group(1))
    unit = match.group(2).upper()
    if unit == "G":
        megabytes = amount * 1024
    elif unit == "M":
        megabytes = amount
    elif unit == "K":
        megabytes = amount / 1024
    else:
        megabytes = amount / 1048576

    if megabytes <= 0:
        return DEFAULT_MEMORY_LIMIT_MB
    return megabytes


def memory_usage_percent(memory_mb: float, limit_mb: float) -> float:
    if limit_mb <= 0:
        limit_mb = DEFAULT_MEMORY_LIMIT_MB
    return round(memory_mb / limit_mb * 100, 1)


def response_time_histogram(times: List[float], buckets: int = 5) -> List[Dict[str, Any]]:
    """Bucket response times into ``buckets`` equal-width ranges."""
    if not times:
        return []
    low = min(times)
    high = max(times)
    span = high - low
    if span == 0:
        span = 0.1
    size = span / buckets

    counts = [0] * buckets
    for t in times:
        index = min(buckets - 1, int(math.floor((t - low) / size)))
        counts[index] += 1

    histogram = []
    for i, count in enumerate(counts):
        histogram.append(
            {
                "min": round(low + i * size, 4),
                "max": round(low + (i + 1) * size, 4),
                "count": count,
                "percentage": round(count / len(times) * 100, 1),
            }
        )
    return histogram


class ProfileStore:
    """In-process cache of threshold profiles, one per engine."""

    def __init__(self):
        self._profiles: Dict[str, ThresholdProfile] = {}

    def get(self, name: str) -> Optional[ThresholdProfile]:
        return self._profiles.get(name)

    def put(self, profile: ThresholdProfile) -> None:
        self._profiles[profile.name] = profile

    def clear(self) -> None:
        self._profiles.clear()


class ThresholdEngine:
    """Maps metrics to severities and derives profiles from completed runs."""

    def __init__(
        self,
        storage=None,
        logger: Optional[Logger] = None,
        store: Optional[ProfileStore] = None,
        memory_limit_mb: float = DEFAULT_MEMORY_LIMIT_MB,
    ):
        self.storage = storage
        self.logger = logger or NullLogger()
        self.store = store or ProfileStore()
        self.memory_limit_mb = memory_limit_mb

    def get_thresholds(
        self, metric_kind: str, profile: Optional[ThresholdProfile] = None
    ) -> Band:
        if profile is not None and profile.calibrated and metric_kind in profile.bands:
            return profile.bands[metric_kind]
        return default_band(metric_kind)

    def classify(
        self,
        value: float,
        metric_kind: str,
        profile: Optional[ThresholdProfile] = None,
    ) -> Severity:
        return self.get_thresholds(metric_kind, profile).classify(value)

    def memory_percent(self, memory_mb: float) -> float:
        return memory_usage_percent(memory_mb, self.memory_limit_mb)

    def calibrate(
        self,
        test_summary: Dict[str, Any],
        profile_name: str = "default",
        persist: bool = True,
        resource_summary: Optional[Dict[str, Any]] = None,
    ) -> ThresholdProfile:
        """Derive a profile as base metric x {1.0, 1.5, 2.0}.

        ``test_summary`` is a summary dict from the reporting engine; the
        memory band is only derived when ``resource_summary`` is given.
        """
        bands: Dict[str, Band] = {}

        avg_time = float(test_summary.get("timing", {}).get("avg", 0))
        bands["response_time"] = Band(
            *(round(avg_time * CALIBRATION_FACTORS[level], 2) for level in ("good", "warn", "critical"))
        )

        error_base = max(float(test_summary.get("error_rate", 0)), MIN_CALIBRATION_ERROR_RATE)
        bands["error_rate"] = Band(
            *(round(error_base * CALIBRATION_FACTORS[level], 1) for level in ("good", "warn", "critical"))
        )

        if resource_summary and "memory" in resource_summary:
            memory_base = self.memory_percent(resource_summary["memory"]["avg"])
            bands["memory_usage"] = Band(
                *(round(memory_base * CALIBRATION_FACTORS[level], 1) for level in ("good", "warn", "critical"))
            )

        profile = ThresholdProfile(name=profile_name, bands=bands, calibrated=True)
        self.store.put(profile)

        if persist:
            if self.storage is None:
                self.logger.warning("No storage configured; threshold profile kept in memory only.")
            elif self.storage.save(profile_name, profile.to_dict(), BASELINE_TTL_SECONDS):
                self.logger.success(f"Threshold profile '{profile_name}' saved.")
            else:
                self.logger.warning(f"Failed to save threshold profile '{profile_name}'.")

        return profile

    def load(self, profile_name: str) -> Optional[ThresholdProfile]:
        """Return the named profile, or None when it does not exist."""
        profile = self.store.get(profile_name)
        if profile is not None:
            return profile
        if self.storage is None:
            return None

        data = self.storage.get(profile_name)
        if not data:
            return None
        try:
            profile = ThresholdProfile.from_dict(data)
        except (AttributeError, TypeError, ValueError) as e:
            module_logger.warning(f"Ignoring unreadable threshold profile '{profile_name}': {e}")
            return None
        self.store.put(profile)
        return profile

    def describe(self, profile: Optional[ThresholdProfile] = None) -> List[str]:
        """One line per metric kind, e.g. 'response_time: Good <= 0.5 | ...'."""
        lines = []
        for kind in METRIC_KINDS:
            band = self.get_thresholds(kind, profile)
            lines.append(
                f"{kind}: Good <= {band.good} | Warning <= {band.warn} | Critical > {band.critical}"
            )
        return lines
