"""CLI for load test runs."""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from ..core.auth import (
    SessionFileAuthenticator,
    parse_auth_string,
    parse_basic_auth_option,
    parse_pairs,
)
from ..core.exceptions import LoadTestError
from ..core.log import StdLogger, setup_logging, configure_request_log
from ..core.models import TestConfig, RotationMode
from ..core.orchestrator import LoadTestOrchestrator, parse_body_option
from ..core.presets import LOADTEST_DEFAULTS, DEFAULT_STORAGE_DIR, PERFORMANCE_BASELINE_PREFIX
from ..integrations.cache_flush import CommandCacheFlusher
from ..storage.baseline_storage import LayeredBaselineStorage


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="loadchaos loadtest",
        description="Fire bursts of HTTP requests at your own site and report how it holds up",
    )

    target = parser.add_argument_group("targets")
    target.add_argument(
        "--base-url",
        type=str,
        default=None,
        help="Site base URL (default: $LOADCHAOS_BASE_URL or http://localhost:8000)",
    )
    target.add_argument(
        "--endpoint",
        type=str,
        default=None,
        help="home, shop, cart, checkout or custom:/your/path (default: home)",
    )
    target.add_argument(
        "--endpoints",
        type=str,
        default=None,
        help="Comma-separated endpoints to rotate through",
    )
    target.add_argument(
        "--rotation-mode",
        choices=[m.value for m in RotationMode],
        default=LOADTEST_DEFAULTS["rotation_mode"],
        help="How requests are spread over --endpoints (default: serial)",
    )

    request = parser.add_argument_group("requests")
    request.add_argument("--method", type=str, default=None, help="HTTP method (default: GET)")
    request.add_argument(
        "--body",
        type=str,
        default=None,
        help="Request body; JSON is sent as application/json; file:PATH reads it from disk",
    )
    request.add_argument("--header", type=str, default=None, help="Custom headers: Name=value,Other=value")
    request.add_argument("--cookie", type=str, default=None, help="Custom cookies: name=value,other=value")
    request.add_argument("--user-agent", type=str, default=None, help="Fixed User-Agent instead of a random browser one")
    request.add_argument("--basic-auth", type=str, default=None, metavar="USER[:PASSWORD]", help="Send HTTP basic auth")
    request.add_argument(
        "--graphql",
        action="store_true",
        help="Shorthand for POST custom:/graphql and count GraphQL errors in responses",
    )

    schedule = parser.add_argument_group("scheduling")
    schedule.add_argument(
        "--count",
        type=int,
        default=LOADTEST_DEFAULTS["count"],
        help=f"Total requests to fire (default: {LOADTEST_DEFAULTS['count']})",
    )
    schedule.add_argument(
        "--duration",
        type=float,
        default=None,
        metavar="MINUTES",
        help="Run for this many minutes instead of a fixed count",
    )
    schedule.add_argument(
        "--burst",
        type=int,
        default=LOADTEST_DEFAULTS["burst"],
        help=f"Concurrent requests per burst (default: {LOADTEST_DEFAULTS['burst']})",
    )
    schedule.add_argument(
        "--delay",
        type=float,
        default=LOADTEST_DEFAULTS["delay"],
        help=f"Seconds between bursts, jittered +/-50%% (default: {LOADTEST_DEFAULTS['delay']})",
    )
    schedule.add_argument("--rampup", action="store_true", help="Grow burst size from 1 up to --burst")
    schedule.add_argument("--warm-cache", action="store_true", help="Hit each endpoint once before the run")
    schedule.add_argument("--flush-between", action="store_true", help="Flush caches before every burst")
    schedule.add_argument(
        "--flush-command",
        type=str,
        default=None,
        help="Command used by --flush-between, e.g. 'redis-cli FLUSHALL'",
    )

    auth = parser.add_argument_group("authentication")
    auth.add_argument("--auth", type=str, default=None, metavar="EMAIL", help="Run as this user")
    auth.add_argument(
        "--multi-auth",
        type=str,
        default=None,
        metavar="EMAILS",
        help="Comma-separated users; each request picks one session at random",
    )
    auth.add_argument(
        "--sessions-file",
        type=str,
        default=None,
        help="JSON file mapping user emails to session cookies (default: $LOADCHAOS_SESSIONS_FILE)",
    )

    analysis = parser.add_argument_group("analysis")
    analysis.add_argument("--cache-headers", action="store_true", help="Tally cache-related response headers")
    analysis.add_argument("--resource-logging", action="store_true", help="Sample memory and CPU between bursts")
    analysis.add_argument("--resource-trends", action="store_true", help="Detect memory/CPU growth trends")
    analysis.add_argument(
        "--memory-limit",
        type=str,
        default=None,
        help="Memory ceiling for memory thresholds, e.g. 256M (default: $LOADCHAOS_MEMORY_LIMIT or 128M)",
    )
    analysis.add_argument(
        "--save-baseline", nargs="?", const="default", default=None, metavar="NAME",
        help="Save this run as a baseline",
    )
    analysis.add_argument(
        "--compare-baseline", nargs="?", const="default", default=None, metavar="NAME",
        help="Compare this run with a saved baseline",
    )
    analysis.add_argument(
        "--auto-thresholds", action="store_true", help="Calibrate thresholds from this run"
    )
    analysis.add_argument(
        "--auto-thresholds-profile",
        type=str,
        default=LOADTEST_DEFAULTS["threshold_profile"],
        help="Profile name for --auto-thresholds (default: default)",
    )
    analysis.add_argument("--use-thresholds", type=str, default=None, metavar="PROFILE", help="Use a saved threshold profile")
    analysis.add_argument(
        "--storage-dir",
        type=str,
        default=None,
        help=f"Where baselines are kept (default: $LOADCHAOS_STORAGE_DIR or {DEFAULT_STORAGE_DIR})",
    )

    output = parser.add_argument_group("output")
    output.add_argument("--monitoring-integration", action="store_true", help="Emit LOADCHAOS_METRICS log lines")
    output.add_argument("--monitoring-test-id", type=str, default=None, help="Test id for monitoring lines")
    output.add_argument("--log-to", type=str, default=None, metavar="FILE", help="Also log every request to FILE")
    output.add_argument("--export-format", choices=["json", "csv"], default=None, help="Export raw results")
    output.add_argument("--export-path", type=str, default=None, help="Export destination")
    output.add_argument("--chart", type=str, default=None, metavar="PATH", help="Save a PNG chart of the run")
    output.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)",
    )

    return parser


def validate_args(args: argparse.Namespace) -> List[str]:
    """Problems that make the arguments unusable."""
    errors = []
    if args.count <= 0:
        errors.append("count must be positive")
    if args.burst <= 0:
        errors.append("burst must be positive")
    if args.delay < 0:
        errors.append("delay cannot be negative")
    if args.duration is not None and args.duration < 0:
        errors.append("duration cannot be negative")
    if args.flush_between and not args.flush_command:
        errors.append("--flush-between requires --flush-command")
    if args.auth and parse_auth_string(args.auth) is None:
        errors.append("--auth expects an email address")
    if (args.auth or args.multi_auth) and not args.sessions_file:
        errors.append("--auth/--multi-auth require --sessions-file or $LOADCHAOS_SESSIONS_FILE")
    return errors


def build_config(args: argparse.Namespace) -> TestConfig:
    """Map parsed arguments onto a TestConfig."""
    method = args.method
    endpoint = args.endpoint
    if args.graphql:
        method = method or "POST"
        if endpoint is None and not args.endpoints:
            endpoint = "custom:/graphql"

    headers = parse_pairs(args.header)
    if args.basic_auth:
        headers.update(parse_basic_auth_option(args.basic_auth))

    return TestConfig(
        base_url=args.base_url,
        endpoint=endpoint,
        endpoints=tuple(e.strip() for e in args.endpoints.split(",")) if args.endpoints else (),
        rotation_mode=RotationMode(args.rotation_mode),
        method=method or LOADTEST_DEFAULTS["method"],
        body=parse_body_option(args.body),
        headers=headers,
        cookies=parse_pairs(args.cookie),
        user_agent=args.user_agent,
        graphql=args.graphql,
        count=args.count,
        duration_minutes=args.duration,
        burst=args.burst,
        delay=args.delay,
        rampup=args.rampup,
        warm_cache=args.warm_cache,
        flush_between=args.flush_between,
        auth_user=args.auth,
        multi_auth=tuple(e.strip() for e in args.multi_auth.split(",") if e.strip()) if args.multi_auth else (),
        cache_headers=args.cache_headers,
        resource_logging=args.resource_logging,
        resource_trends=args.resource_trends,
        memory_limit=args.memory_limit,
        save_baseline=args.save_baseline,
        compare_baseline=args.compare_baseline,
        auto_thresholds=args.auto_thresholds,
        auto_thresholds_profile=args.auto_thresholds_profile,
        use_thresholds=args.use_thresholds,
        monitoring_integration=args.monitoring_integration,
        monitoring_test_id=args.monitoring_test_id,
        log_to=args.log_to,
        export_format=args.export_format,
        export_path=args.export_path,
        chart_path=args.chart,
    )


def apply_environment(args: argparse.Namespace) -> None:
    """Fill unset options from LOADCHAOS_* environment variables."""
    args.base_url = args.base_url or os.environ.get("LOADCHAOS_BASE_URL", "http://localhost:8000")
    args.storage_dir = args.storage_dir or os.environ.get("LOADCHAOS_STORAGE_DIR", DEFAULT_STORAGE_DIR)
    args.memory_limit = args.memory_limit or os.environ.get("LOADCHAOS_MEMORY_LIMIT", "-1")
    args.sessions_file = args.sessions_file or os.environ.get("LOADCHAOS_SESSIONS_FILE")


def main(argv: Optional[List[str]] = None):
    """Main entry point for the loadtest CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    apply_environment(args)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}")
        sys.exit(1)

    setup_logging(getattr(logging, args.log_level))
    if args.log_to:
        configure_request_log(args.log_to)

    config = build_config(args)
    orchestrator = LoadTestOrchestrator(
        config,
        logger=StdLogger(),
        storage=LayeredBaselineStorage(args.storage_dir, prefix=PERFORMANCE_BASELINE_PREFIX),
        authenticator=SessionFileAuthenticator(args.sessions_file) if args.sessions_file else None,
        cache_flusher=CommandCacheFlusher(args.flush_command) if args.flush_command else None,
    )

    try:
        asyncio.run(orchestrator.execute())
    except KeyboardInterrupt:
        print("\nTest interrupted by user")
        sys.exit(130)
    except LoadTestError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
