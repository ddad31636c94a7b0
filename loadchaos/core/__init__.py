"""Core load testing components."""

from .models import TestConfig, RequestResult, ResourceSample, ExecutionMetrics
from .exceptions import LoadTestError, ConfigurationError, FatalError

__all__ = [
    "TestConfig",
    "RequestResult",
    "ResourceSample",
    "ExecutionMetrics",
    "LoadTestError",
    "ConfigurationError",
    "FatalError",
]
