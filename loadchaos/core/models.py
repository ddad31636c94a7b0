"""Data models for load test runs."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Tuple, Union

from .presets import (
    LOADTEST_DEFAULTS,
    ERROR_STATUS,
    HTTP_OK,
    SECONDS_PER_HOUR,
    SECONDS_PER_DAY,
    SECONDS_PER_MONTH,
)


class RotationMode(str, Enum):
    """How request slots are spread over multiple endpoints."""

    SERIAL = "serial"
    RANDOM = "random"


@dataclass(frozen=True)
class InlineBody:
    """Request body given directly on the command line."""

    text: str


@dataclass(frozen=True)
class FileBody:
    """Request body read from a file when the configuration is resolved."""

    path: str


BodySource = Union[InlineBody, FileBody]


@dataclass(frozen=True)
class SingleSession:
    """One flat cookie set sent with every request."""

    cookies: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MultiSession:
    """Several per-user cookie sets; one is picked at random per request."""

    sessions: Tuple[Dict[str, str], ...] = ()


CookieSource = Union[SingleSession, MultiSession]


@dataclass(frozen=True)
class TestConfig:
    """Configuration for a single load test run.

    Built once before the run starts. Normalization produces a new copy
    instead of mutating this one.
    """

    base_url: str = "http://localhost:8000"

    # Targets
    endpoint: Optional[str] = None
    endpoints: Tuple[str, ...] = ()
    rotation_mode: RotationMode = RotationMode.SERIAL

    # Request shape
    method: str = LOADTEST_DEFAULTS["method"]
    body: Optional[BodySource] = None
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)
    user_agent: Optional[str] = None
    graphql: bool = False

    # Scheduling
    count: int = LOADTEST_DEFAULTS["count"]
    duration_minutes: Optional[float] = None
    burst: int = LOADTEST_DEFAULTS["burst"]
    delay: float = LOADTEST_DEFAULTS["delay"]
    rampup: bool = False
    warm_cache: bool = False
    flush_between: bool = False

    # Authentication
    auth_user: Optional[str] = None
    multi_auth: Tuple[str, ...] = ()

    # Collection
    cache_headers: bool = False
    resource_logging: bool = False
    resource_trends: bool = False
    memory_limit: str = "-1"

    # Baselines and thresholds
    save_baseline: Optional[str] = None
    compare_baseline: Optional[str] = None
    auto_thresholds: bool = False
    auto_thresholds_profile: str = LOADTEST_DEFAULTS["threshold_profile"]
    use_thresholds: Optional[str] = None

    # Outputs
    monitoring_integration: bool = False
    monitoring_test_id: Optional[str] = None
    log_to: Optional[str] = None
    export_format: Optional[str] = None
    export_path: Optional[str] = None
    chart_path: Optional[str] = None

    @property
    def run_by_duration(self) -> bool:
        """Duration takes precedence over count when both are given."""
        return self.duration_minutes is not None

    @property
    def duration_seconds(self) -> float:
        return (self.duration_minutes or 0) * 60


@dataclass(frozen=True)
class RequestResult:
    """Outcome of one fired request."""

    elapsed: float
    status: Union[int, str]
    url: str = ""
    method: str = "GET"
    protocol_errors: Optional[int] = None
    error: Optional[str] = None
    cache_headers: Dict[str, str] = field(default_factory=dict)

    @property
    def is_transport_error(self) -> bool:
        return self.status == ERROR_STATUS

    @property
    def is_http_error(self) -> bool:
        return self.status != HTTP_OK

    @property
    def has_protocol_errors(self) -> bool:
        return bool(self.protocol_errors)

    @property
    def is_success(self) -> bool:
        return self.status == HTTP_OK and not self.has_protocol_errors

    def to_dict(self) -> Dict[str, Any]:
        data = {"time": self.elapsed, "code": self.status}
        if self.protocol_errors is not None:
            data["graphql_errors"] = self.protocol_errors
        if self.error:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class ResourceSample:
    """One observation of process memory and CPU usage.

    Memory is in MB and CPU time in seconds. ``timestamp`` and ``elapsed``
    are only populated when trend tracking is on.
    """

    memory_usage: float
    peak_memory: float
    user_time: float
    system_time: float
    timestamp: Optional[float] = None
    elapsed: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "memory_usage": self.memory_usage,
            "peak_memory": self.peak_memory,
            "user_time": self.user_time,
            "system_time": self.system_time,
        }
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp
            data["elapsed"] = self.elapsed
        return data


def format_duration(seconds: float) -> str:
    """Format seconds as '5m 15s' or '42s'."""
    seconds = int(seconds)
    minutes, secs = divmod(seconds, 60)
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


@dataclass(frozen=True)
class ExecutionMetrics:
    """Throughput derived from the start/end of a run.

    Capacity figures are a linear extrapolation of the measured throughput
    and are only an approximation.
    """

    start_time: float
    end_time: float
    duration: float
    completed: int
    requests_per_second: float
    capacity_per_hour: int
    capacity_per_day: int
    capacity_per_month: int

    CAPACITY_NOTE = (
        "Assumes sustained throughput; actual capacity varies with traffic "
        "patterns and caching (approximate)"
    )

    @classmethod
    def from_run(
        cls, start_time: float, end_time: float, completed: int
    ) -> "ExecutionMetrics":
        duration = round(end_time - start_time, 2)
        rps = round(completed / duration, 2) if duration > 0 else 0
        return cls(
            start_time=start_time,
            end_time=end_time,
            duration=duration,
            completed=completed,
            requests_per_second=rps,
            capacity_per_hour=int(rps * SECONDS_PER_HOUR),
            capacity_per_day=int(rps * SECONDS_PER_DAY),
            capacity_per_month=int(rps * SECONDS_PER_MONTH),
        )

    @property
    def formatted_duration(self) -> str:
        return format_duration(self.duration)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": datetime.fromtimestamp(self.start_time).isoformat(),
            "end_time": datetime.fromtimestamp(self.end_time).isoformat(),
            "duration": self.duration,
            "duration_formatted": self.formatted_duration,
            "total_requests": self.completed,
            "requests_per_second": self.requests_per_second,
            "capacity": {
                "per_hour": self.capacity_per_hour,
                "per_day": self.capacity_per_day,
                "per_month": self.capacity_per_month,
                "note": self.CAPACITY_NOTE,
            },
        }


@dataclass
class LoadTestOutcome:
    """Everything a finished run produced, handed to the presentation layer."""

    completed: int
    count: int
    run_by_duration: bool
    actual_minutes: float
    burst_sizes: List[int]
    summary: Any
    execution_metrics: ExecutionMetrics
    resource_summary: Optional[Dict[str, Any]] = None
    trends: Optional[Dict[str, Any]] = None
    cache_report: Optional[Dict[str, Any]] = None
    threshold_profile: Any = None
    baseline_comparison: Optional[Dict[str, Any]] = None
