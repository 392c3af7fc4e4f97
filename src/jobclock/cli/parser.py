"""CLI argument parser."""

from __future__ import annotations

import argparse

from .. import __version__


def _add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-c",
        "--config",
        default="jobs.yaml",
        help="Path to configuration file (default: jobs.yaml)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser.

    Returns:
        ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        prog="jobclock",
        description="jobclock - run commands on a schedule, with retries",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the jobs declared in a config file
  jobclock run -c jobs.yaml

  # Show the next five runs of "every 2 weeks on Sunday at 12:00"
  jobclock next --every 2 --unit weeks --on sun --at 12:00

  # Check a config file without running anything
  jobclock validate -c jobs.yaml

  # Write an example config
  jobclock init -o jobs.yaml
        """,
    )

    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s v{__version__}",
        help="Show program's version number and exit",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Run the configured jobs")
    _add_config_argument(run_parser)
    run_parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    # Next command
    next_parser = subparsers.add_parser("next", help="Preview upcoming run times")
    next_parser.add_argument("--each", help="Duration string, e.g. 2h3m or 300ms")
    next_parser.add_argument("--every", type=int, help="Interval count")
    next_parser.add_argument(
        "--unit", default="seconds", help="Interval unit (ms, seconds, minutes, hours, days, weeks)"
    )
    next_parser.add_argument("--on", help="Day of week, e.g. sun")
    next_parser.add_argument("--at", help="Clock time pattern HH:MM, digits may be '*'")
    next_parser.add_argument("--last-run", help="Anchor time in ISO format (default: now)")
    next_parser.add_argument(
        "-n", "--count", type=int, default=5, help="Number of runs to show (default: 5)"
    )

    # Validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a configuration file")
    _add_config_argument(validate_parser)

    # Init command
    init_parser = subparsers.add_parser("init", help="Generate an example configuration")
    init_parser.add_argument(
        "-o",
        "--output",
        default="jobs.yaml",
        help="Output config file path (default: jobs.yaml)",
    )
    init_parser.add_argument(
        "-f", "--force", action="store_true", help="Overwrite an existing file"
    )

    return parser
