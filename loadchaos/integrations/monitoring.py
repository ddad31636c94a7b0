"""Line-oriented monitoring events for external log scrapers.

Each event is one log line ``LOADCHAOS_METRICS|<event>|<json>`` on the
``loadchaos.metrics`` logger. Emission is fire-and-forget.
"""

import json
import logging
import time
import uuid
from typing import Dict, Any, Optional

from ..core.models import RequestResult, ResourceSample, ExecutionMetrics
from ..core.presets import MONITORING_LOG_PREFIX

METRICS_LOGGER_NAME = "loadchaos.metrics"


def generate_test_id() -> str:
    return f"lc_{uuid.uuid4().hex[:13]}"


class MonitoringSink:
    """Serializes run events with a test id, timestamp and site url."""

    def __init__(
        self,
        site_url: str,
        test_id: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
        clock=time.time,
    ):
        self.site_url = site_url
        self.test_id = test_id or generate_test_id()
        self.logger = logger or logging.getLogger(METRICS_LOGGER_NAME)
        self._clock = clock

    def emit(self, event: str, data: Optional[Dict[str, Any]] = None) -> str:
        payload = {
            "test_id": self.test_id,
            "timestamp": self._clock(),
            "site_url": self.site_url,
        }
        if data:
            payload.update(data)
        line = f"{MONITORING_LOG_PREFIX}|{event}|{json.dumps(payload, default=str)}"
        self.logger.info(line)
        return line

    def test_start(self, config: Dict[str, Any]) -> str:
        return self.emit("test_start", {"config": config})

    def request(self, result: RequestResult, burst: int) -> str:
        data = {
            "burst": burst,
            "url": result.url,
            "method": result.method,
            "status": result.status,
            "time": result.elapsed,
        }
        if result.protocol_errors is not None:
            data["graphql_errors"] = result.protocol_errors
        return self.emit("request", data)

    def resource_snapshot(self, sample: ResourceSample) -> str:
        return self.emit("resource_snapshot", sample.to_dict())

    def burst_complete(self, burst: int, size: int, completed: int) -> str:
        return self.emit(
            "burst_complete", {"burst": burst, "size": size, "completed": completed}
        )

    def metric(self, name: str, value: Any) -> str:
        return self.emit("metric", {"name": name, "value": value})

    def test_complete(
        self, summary: Dict[str, Any], execution_metrics: ExecutionMetrics
    ) -> str:
        return self.emit(
            "test_complete",
            {"summary": summary, "execution_metrics": execution_metrics.to_dict()},
        )
