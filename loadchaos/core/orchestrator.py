"""Load test orchestration: configuration, burst scheduling and reporting."""

import asyncio
import dataclasses
import logging
import os
import random
import time
from enum import Enum
from typing import Callable, Dict, Any, List, Optional

import aiofiles
import aiohttp

from .auth import AuthenticationManager, Authenticator
from .cache_analyzer import CacheAnalyzer
from .exceptions import ConfigurationError
from .log import Logger, NullLogger
from .models import (
    TestConfig,
    InlineBody,
    FileBody,
    RotationMode,
    CookieSource,
    ExecutionMetrics,
    LoadTestOutcome,
    RequestResult,
)
from .presets import (
    RESOURCE_BASELINE_PREFIX,
    THRESHOLD_PROFILE_PREFIX,
    BODY_FILE_PREFIX,
)
from .request_generator import RequestGenerator, resolve_endpoint
from .resource_monitor import ResourceMonitor
from .thresholds import ThresholdEngine, ThresholdProfile, parse_memory_limit_mb
from ..integrations.monitoring import MonitoringSink
from ..results.reporting import ReportingEngine

INVALID_ENDPOINT_MESSAGE = (
    "Invalid endpoint. Use 'home', 'shop', 'cart', 'checkout', or 'custom:/your/path'."
)


class OrchestratorState(str, Enum):
    CONFIGURING = "configuring"
    RESOLVING_ENDPOINTS = "resolving_endpoints"
    SETTING_UP_AUTH = "setting_up_auth"
    WARMING_CACHE = "warming_cache"
    RUNNING = "running"
    REPORTING = "reporting"
    DONE = "done"


def parse_body_option(value: Optional[str]):
    """Turn a raw --body value into an InlineBody or FileBody."""
    if value is None:
        return None
    if value.startswith(BODY_FILE_PREFIX):
        return FileBody(value[len(BODY_FILE_PREFIX):])
    return InlineBody(value)


def normalize_config(config: TestConfig) -> TestConfig:
    """Return a copy with defaults filled in and values coerced."""
    endpoint = config.endpoint
    if endpoint is None and not config.endpoints:
        endpoint = "custom:/graphql" if config.graphql else "home"

    rotation_mode = config.rotation_mode
    if not isinstance(rotation_mode, RotationMode):
        try:
            rotation_mode = RotationMode(str(rotation_mode).lower())
        except ValueError:
            raise ConfigurationError(
                f"Invalid rotation mode '{rotation_mode}'. Use 'serial' or 'random'."
            )

    return dataclasses.replace(
        config,
        endpoint=endpoint,
        endpoints=tuple(e.strip() for e in config.endpoints if e.strip()),
        method=config.method.upper(),
        rotation_mode=rotation_mode,
        burst=max(1, int(config.burst)),
        count=max(0, int(config.count)),
        delay=max(0.0, float(config.delay)),
        resource_logging=config.resource_logging or config.resource_trends,
    )


class LoadTestOrchestrator:
    """
    Drives one load test run.

    The run moves through configuring, endpoint resolution and auth setup,
    an optional sequential cache warm-up, the burst loop, and reporting.
    Any configuration problem is reported through ``Logger.error`` before a
    single request is fired.
    """

    def __init__(
        self,
        config: TestConfig,
        logger: Optional[Logger] = None,
        storage=None,
        resource_storage=None,
        threshold_storage=None,
        authenticator: Optional[Authenticator] = None,
        cache_flusher: Optional[Callable[[], Any]] = None,
        session: Optional[aiohttp.ClientSession] = None,
        sleep: Callable = asyncio.sleep,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
        process=None,
        print_report: bool = True,
    ):
        self.config = config
        self.logger = logger or NullLogger()
        self.storage = storage
        if resource_storage is None and hasattr(storage, "with_prefix"):
            resource_storage = storage.with_prefix(RESOURCE_BASELINE_PREFIX)
        if threshold_storage is None and hasattr(storage, "with_prefix"):
            threshold_storage = storage.with_prefix(THRESHOLD_PROFILE_PREFIX)
        self.resource_storage = resource_storage
        self.threshold_storage = threshold_storage
        self.authenticator = authenticator
        self.cache_flusher = cache_flusher
        self.session = session
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.clock = clock
        self.process = process
        self.print_report = print_report
        self.module_logger = logging.getLogger(__name__)

        self.state = OrchestratorState.CONFIGURING
        self.body: Optional[str] = None
        self.urls: List[str] = []
        self.cookies: Optional[CookieSource] = None
        self.profile: Optional[ThresholdProfile] = None
        self.monitoring: Optional[MonitoringSink] = None
        self.rotation_index = 0
        self.burst_sizes: List[int] = []

        self.threshold_engine: Optional[ThresholdEngine] = None
        self.reporting: Optional[ReportingEngine] = None
        self.cache_analyzer: Optional[CacheAnalyzer] = None
        self.resource_monitor: Optional[ResourceMonitor] = None

    def _fatal(self, message: str) -> None:
        self.logger.error(message)
        raise ConfigurationError(message)

    async def _read_body(self) -> Optional[str]:
        body = self.config.body
        if body is None:
            return None
        if isinstance(body, InlineBody):
            return body.text
        if isinstance(body, FileBody):
            if not os.path.isfile(body.path):
                self._fatal(f"Body file not found: {body.path}")
            async with aiofiles.open(body.path, "r") as f:
                return await f.read()
        self._fatal(f"Unsupported body source: {body!r}")

    async def configure(self) -> None:
        """Normalize the config and build the per-run components."""
        self.state = OrchestratorState.CONFIGURING
        try:
            self.config = normalize_config(self.config)
        except ConfigurationError as e:
            self._fatal(str(e))
        self.body = await self._read_body()

        self.threshold_engine = ThresholdEngine(
            storage=self.threshold_storage,
            logger=self.logger,
            memory_limit_mb=parse_memory_limit_mb(self.config.memory_limit),
        )
        self.reporting = ReportingEngine(
            storage=self.storage,
            logger=self.logger,
            threshold_engine=self.threshold_engine,
        )
        self.cache_analyzer = CacheAnalyzer(logger=self.logger)
        if self.config.resource_logging:
            self.resource_monitor = ResourceMonitor(
                track_trends=self.config.resource_trends,
                storage=self.resource_storage,
                logger=self.logger,
                process=self.process,
                clock=self.clock,
            )

        if self.config.monitoring_integration:
            self.monitoring = MonitoringSink(
                site_url=self.config.base_url,
                test_id=self.config.monitoring_test_id,
                clock=self.clock,
            )

        if self.config.use_thresholds:
            self.profile = self.threshold_engine.load(self.config.use_thresholds)
            if self.profile is None:
                self.logger.warning(
                    f"Threshold profile '{self.config.use_thresholds}' not found. Using defaults."
                )
            else:
                self.logger.log(f"Using threshold profile '{self.config.use_thresholds}':")
                for line in self.threshold_engine.describe(self.profile):
                    self.logger.log(f"  {line}")

    def resolve_endpoints(self) -> List[str]:
        self.state = OrchestratorState.RESOLVING_ENDPOINTS
        base_url = self.config.base_url

        if self.config.endpoints:
            urls = []
            for slug in self.config.endpoints:
                url = resolve_endpoint(slug, base_url)
                if url is None:
                    self.logger.warning(f"Invalid endpoint '{slug}' skipped.")
                    continue
                urls.append(url)
            if not urls:
                self._fatal("No valid endpoints provided.")
        else:
            url = resolve_endpoint(self.config.endpoint, base_url)
            if url is None:
                self._fatal(INVALID_ENDPOINT_MESSAGE)
            urls = [url]

        self.urls = urls
        return urls

    def setup_auth(self) -> CookieSource:
        self.state = OrchestratorState.SETTING_UP_AUTH
        manager = AuthenticationManager(self.authenticator, logger=self.logger)
        self.cookies = manager.build_cookie_source(
            auth_user=self.config.auth_user,
            multi_auth=self.config.multi_auth,
            custom_cookies=self.config.cookies,
        )
        return self.cookies

    def select_urls(self, size: int) -> List[str]:
        """Endpoints for one burst's request slots."""
        if self.config.rotation_mode == RotationMode.RANDOM:
            return [self.rng.choice(self.urls) for _ in range(size)]

        selected = []
        for _ in range(size):
            selected.append(self.urls[self.rotation_index % len(self.urls)])
            self.rotation_index += 1
        return selected

    def next_delay(self) -> int:
        """Jittered whole-second pause in [0.5, 1.5] x the configured delay."""
        delay = self.config.delay
        return int(self.rng.uniform(delay * 0.5, delay * 1.5))

    async def _fire(self, generator: RequestGenerator, urls: List[str]) -> List[RequestResult]:
        return await generator.fire_burst(
            urls,
            method=self.config.method,
            body=self.body,
            cookies=self.cookies,
            headers=self.config.headers,
        )

    async def warm_cache(self, generator: RequestGenerator) -> None:
        self.state = OrchestratorState.WARMING_CACHE
        self.logger.log("Warming cache...")
        for url in self.urls:
            result = await generator.fire_request(
                url,
                method=self.config.method,
                body=self.body,
                cookies=self.cookies,
                headers=self.config.headers,
            )
            self.logger.log(f"  {url} {generator.describe_result(result)}")
        generator.reset_cache_headers()

    async def run_bursts(self, generator: RequestGenerator, start_time: float) -> int:
        """The burst loop. Returns the number of requests fired."""
        self.state = OrchestratorState.RUNNING
        config = self.config
        completed = 0
        ramp_level = 0
        burst_number = 0

        while True:
            if config.run_by_duration:
                elapsed = self.clock() - start_time
                if elapsed >= config.duration_seconds:
                    break
            elif completed >= config.count:
                break

            if self.resource_monitor is not None:
                sample = self.resource_monitor.sample()
                if self.monitoring:
                    self.monitoring.resource_snapshot(sample)

            if config.rampup:
                ramp_level = min(ramp_level + 1, config.burst)
                size = ramp_level
            else:
                size = config.burst
            if not config.run_by_duration:
                size = min(size, config.count - completed)

            if config.flush_between and self.cache_flusher is not None:
                await asyncio.get_running_loop().run_in_executor(None, self.cache_flusher)

            burst_number += 1
            self.logger.log(f"Burst {burst_number}: firing {size} requests")
            results = await self._fire(generator, self.select_urls(size))
            self.reporting.add_results(results)
            for result in results:
                self.logger.debug(generator.describe_result(result))
                if self.monitoring:
                    self.monitoring.request(result, burst_number)

            if config.cache_headers:
                self.cache_analyzer.merge(generator.cache_header_tally)
                generator.reset_cache_headers()

            completed += size
            self.burst_sizes.append(size)
            if self.monitoring:
                self.monitoring.burst_complete(burst_number, size, completed)

            if config.run_by_duration:
                self.logger.log(
                    f"Progress: {completed} requests, "
                    f"{round(self.clock() - start_time, 1)}s of {config.duration_seconds:g}s"
                )
            elif completed >= config.count:
                break

            if config.delay > 0:
                await self.sleep(self.next_delay())

        return completed

    def _config_snapshot(self) -> Dict[str, Any]:
        config = self.config
        return {
            "endpoints": self.urls,
            "method": config.method,
            "count": None if config.run_by_duration else config.count,
            "duration_minutes": config.duration_minutes,
            "burst": config.burst,
            "delay": config.delay,
            "rampup": config.rampup,
            "rotation_mode": config.rotation_mode.value,
        }

    def report(self, completed: int, start_time: float, end_time: float) -> LoadTestOutcome:
        self.state = OrchestratorState.REPORTING
        config = self.config

        summary = self.reporting.generate_summary()
        metrics = ExecutionMetrics.from_run(start_time, end_time, completed)
        actual_minutes = round((end_time - start_time) / 60, 1)

        resource_summary = trends = cache_report = comparison = None
        if self.resource_monitor is not None:
            resource_summary = self.resource_monitor.report_summary(config.compare_baseline)
            if config.resource_trends:
                trends = self.resource_monitor.report_trends()
        if config.cache_headers:
            cache_report = self.cache_analyzer.report(summary.count)
        if config.compare_baseline:
            comparison = self.reporting.compare_to_baseline(config.compare_baseline, summary)

        if config.save_baseline:
            self.reporting.save_baseline(config.save_baseline, summary)
            if self.resource_monitor is not None:
                self.resource_monitor.save_baseline(config.save_baseline, resource_summary)

        if config.auto_thresholds:
            self.profile = self.threshold_engine.calibrate(
                summary.to_dict(),
                config.auto_thresholds_profile,
                persist=True,
                resource_summary=resource_summary,
            )
            self.logger.log(f"Calibrated threshold profile '{self.profile.name}':")
            for line in self.threshold_engine.describe(self.profile):
                self.logger.log(f"  {line}")

        if config.export_format:
            path = config.export_path or f"loadtest_results.{config.export_format}"
            self.reporting.export(config.export_format, path)

        if config.chart_path:
            from ..results.charts import generate_charts

            generate_charts(
                self.reporting.response_times(),
                self.resource_monitor.samples if self.resource_monitor else None,
                output_path=config.chart_path,
            )

        if self.monitoring:
            self.monitoring.metric("requests_per_second", metrics.requests_per_second)
            self.monitoring.metric("error_rate", summary.error_rate)
            self.monitoring.metric("avg_response_time", summary.timing.avg)
            self.monitoring.test_complete(summary.to_dict(), metrics)

        if self.print_report:
            self.reporting.print_summary(summary, self.profile, comparison, metrics)

        message = f"Load test complete: {completed} requests fired"
        if config.run_by_duration:
            message += f" (over {actual_minutes} minutes)"
        self.logger.success(message)

        return LoadTestOutcome(
            completed=completed,
            count=config.count,
            run_by_duration=config.run_by_duration,
            actual_minutes=actual_minutes,
            burst_sizes=list(self.burst_sizes),
            summary=summary,
            execution_metrics=metrics,
            resource_summary=resource_summary,
            trends=trends,
            cache_report=cache_report,
            threshold_profile=self.profile,
            baseline_comparison=comparison,
        )

    async def execute(self) -> LoadTestOutcome:
        """Run the whole load test and return its outcome."""
        await self.configure()
        self.resolve_endpoints()
        self.setup_auth()

        generator = RequestGenerator(
            session=self.session,
            collect_cache_headers=self.config.cache_headers,
            inspect_protocol_errors=self.config.graphql,
            user_agent=self.config.user_agent,
            logger=self.logger,
            rng=self.rng,
        )

        async with generator:
            if self.config.warm_cache:
                await self.warm_cache(generator)

            if self.config.run_by_duration:
                self.logger.log(
                    f"Running load test for {self.config.duration_minutes:g} minutes "
                    f"in bursts of {self.config.burst}"
                )
            else:
                self.logger.log(
                    f"Firing {self.config.count} requests in bursts of {self.config.burst}"
                )
            if self.monitoring:
                self.monitoring.test_start(self._config_snapshot())

            start_time = self.clock()
            if self.resource_monitor is not None:
                self.resource_monitor.start_time = start_time
            completed = await self.run_bursts(generator, start_time)
            end_time = self.clock()

        outcome = self.report(completed, start_time, end_time)
        self.state = OrchestratorState.DONE
        return outcome
