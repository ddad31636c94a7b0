"""Main entry point for the loadchaos package.

Usage:
    python -m loadchaos loadtest --count 100 --burst 10
    python -m loadchaos loadtest --duration 5 --burst 20 --rampup --resource-trends
    python -m loadchaos loadtest --endpoints home,shop,cart --rotation-mode random
"""

import sys


def main():
    """Main entry point that dispatches to subcommands."""
    if len(sys.argv) < 2:
        print_help()
        sys.exit(1)

    command = sys.argv[1]

    if command in ["-h", "--help", "help"]:
        print_help()
        sys.exit(0)

    # Remove the command from argv so subcommand parsers see correct args
    sys.argv = [sys.argv[0]] + sys.argv[2:]

    if command == "loadtest":
        from .cli.loadtest import main as loadtest_main

        loadtest_main()
    else:
        print(f"Unknown command: {command}")
        print_help()
        sys.exit(1)


def print_help():
    """Print help message."""
    print(
        """loadchaos - burst load testing for your own site

Usage: python -m loadchaos <command> [options]

Commands:
    loadtest      Fire request bursts at one or more endpoints and report

Examples:
    # 100 requests to the home page in bursts of 10
    python -m loadchaos loadtest --count 100 --burst 10

    # Five minutes of ramping load with resource trend detection
    python -m loadchaos loadtest --duration 5 --burst 20 --rampup --resource-trends

    # Rotate over several endpoints and compare with a saved baseline
    python -m loadchaos loadtest --endpoints home,shop,cart --compare-baseline nightly

    # Calibrate thresholds from this run, use them next time
    python -m loadchaos loadtest --auto-thresholds --auto-thresholds-profile prod
    python -m loadchaos loadtest --use-thresholds prod

For command-specific help:
    python -m loadchaos loadtest --help
"""
    )


if __name__ == "__main__":
    main()
