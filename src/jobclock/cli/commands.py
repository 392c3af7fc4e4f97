"""CLI command handlers."""

from __future__ import annotations

import argparse
from datetime import datetime
from pathlib import Path

import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from ..core.config import AppConfig, LoggingConfig
from ..core.exceptions import SchedulerError
from ..core.logger import get_logger, setup_logging
from ..scheduler import (
    Every,
    RecurrenceSpec,
    Scheduler,
    align_to,
    format_duration,
    upcoming,
    validate,
)

logger = get_logger("cli")

EXAMPLE_CONFIG = {
    "logging": {"level": "INFO", "log_file": None},
    "scheduler": {"default_retry_count": 1},
    "jobs": [
        {
            "name": "heartbeat",
            "command": "echo still alive",
            "every": 30,
            "unit": "seconds",
        },
        {
            "name": "nightly-backup",
            "command": ["tar", "czf", "/tmp/backup.tgz", "${HOME}/data"],
            "every": 1,
            "unit": "days",
            "at": "02:30",
            "retry_count": 3,
        },
        {
            "name": "weekly-report",
            "command": "python -m reports.weekly",
            "every": 1,
            "unit": "weeks",
            "on": "sun",
            "at": "12:00",
        },
        {
            "name": "warmup",
            "command": "echo warming caches",
            "each": "90s",
        },
    ],
}


def _load_config(path_value: str, console: Console) -> AppConfig | None:
    config_path = Path(path_value)
    if not config_path.exists():
        console.print(f"[red]Config file not found:[/] {config_path}")
        return None
    try:
        return AppConfig.load(config_path)
    except (ValidationError, ValueError) as e:
        console.print(f"[red]Invalid configuration:[/] {e}")
        return None


def cmd_run(args: argparse.Namespace) -> int:
    """Handle run command.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    console = Console()
    config = _load_config(args.config, console)
    if config is None:
        return 1

    logging_config = config.logging
    if args.debug:
        logging_config = LoggingConfig(**{**logging_config.model_dump(), "level": "DEBUG"})
    setup_logging(logging_config)

    scheduler = Scheduler(config.scheduler)
    jobs = config.enabled_jobs()
    for job_config in jobs:
        try:
            scheduler.schedule_with_options(
                job_config.name, job_config.build_job(), job_config.to_options()
            )
        except (SchedulerError, ValueError) as e:
            logger.error(f"Cannot schedule job '{job_config.name}': {e}")
            return 1

    if not jobs:
        console.print("[yellow]No enabled jobs in configuration.[/]")
        return 0

    console.print(f"[bold]Running {len(jobs)} job(s).[/] Press Ctrl+C to stop.")
    scheduler.start(wait=False)
    try:
        while not scheduler.wait(timeout=1.0):
            pass
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping, waiting for running jobs to finish...[/]")
        scheduler.shutdown(wait=True)
    return 0


def cmd_next(args: argparse.Namespace) -> int:
    """Handle next command: print upcoming fire times for a recurrence."""
    console = Console()
    try:
        last_run = datetime.fromisoformat(args.last_run) if args.last_run else None
        spec = RecurrenceSpec(
            last_run=last_run,
            each=args.each,
            every=Every(args.unit, args.every) if args.every is not None else None,
            on=args.on,
            at=args.at,
        )
        validate(spec)
    except (SchedulerError, ValueError) as e:
        console.print(f"[red]Invalid schedule:[/] {e}")
        return 1

    now = align_to(datetime.now(), last_run)
    runs = upcoming(spec, count=max(args.count, 1), start=last_run or now)

    table = Table(title=f"Next runs: {spec}")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Time", style="cyan")
    table.add_column("Weekday", style="magenta")
    table.add_column("From now", style="green")
    for index, fire in enumerate(runs, start=1):
        wait = fire - now
        table.add_row(
            str(index),
            fire.isoformat(sep=" ", timespec="seconds"),
            fire.strftime("%a"),
            format_duration(wait) if wait.total_seconds() > 0 else "overdue",
        )
    console.print(table)
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Handle validate command."""
    console = Console()
    config = _load_config(args.config, console)
    if config is None:
        return 1

    table = Table(title=f"Jobs in {args.config}")
    table.add_column("Name", style="cyan")
    table.add_column("Schedule")
    table.add_column("Enabled")
    table.add_column("Status")

    failures = 0
    for job_config in config.jobs:
        spec = job_config.to_recurrence()
        try:
            validate(spec)
            job_config.build_job()
            status = "[green]ok[/]"
        except (SchedulerError, ValueError, TypeError) as e:
            failures += 1
            status = f"[red]{e}[/]"
        table.add_row(job_config.name, str(spec), str(job_config.enabled), status)

    console.print(table)
    if failures:
        console.print(f"[red]{failures} job(s) failed validation.[/]")
        return 1
    console.print(f"[green]✓ {len(config.jobs)} job(s) valid.[/]")
    return 0


def cmd_init(args: argparse.Namespace) -> int:
    """Handle init command.

    Args:
        args: Parsed arguments

    Returns:
        Exit code
    """
    output_path = Path(args.output)

    if output_path.exists() and not args.force:
        response = input(f"{output_path} already exists. Overwrite? (y/N): ")
        if response.lower() != "y":
            print("Cancelled.")
            return 0

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        yaml.safe_dump(EXAMPLE_CONFIG, f, default_flow_style=False, sort_keys=False)

    print(f"✓ Configuration file created: {output_path}")
    print("\nNext steps:")
    print(f"1. Edit the jobs in {output_path}")
    print(f"2. Check it: jobclock validate -c {output_path}")
    print(f"3. Run it:   jobclock run -c {output_path}")

    return 0
