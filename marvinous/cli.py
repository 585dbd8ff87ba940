#!/usr/bin/env python3
"""
Marvinous CLI — hourly hardware reports, daily rollups and the dashboard.

Usage:
    marvinous run [--dry-run]     Collect, generate and write one hourly report
    marvinous run --show-prompt   Collect and print the prompt, skip the LLM
    marvinous daily [--date D]    Summarize and archive a day (default yesterday, UTC)
    marvinous serve               Start the web dashboard
    marvinous reports [-n N]      List recent reports with severity
    marvinous status              Ask a running dashboard whether a collection is running
"""

import argparse
import asyncio
import logging
import re
from typing import Optional

import aiohttp
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from marvinous import __version__
from marvinous.core.config import MarvinousConfig
from marvinous.core.errors import MarvinousError, NoReportsForDate
from marvinous.core.guard import AppContext
from marvinous.core.pipeline import CollectionPipeline, bundle_json
from marvinous.core.schemas import FIELD_LAST_RUN, FIELD_RUNNING

console = Console()
logger = logging.getLogger("marvinous.cli")

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

SEVERITY_STYLES = {
    "critical": "red bold",
    "concern": "bright_red",
    "watch": "yellow",
    "ok": "green",
    "unknown": "dim",
}


def _date_arg(value: str) -> str:
    if not DATE_RE.match(value):
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}")
    return value


def _severity_text(severity: str) -> str:
    style = SEVERITY_STYLES.get(severity.lower(), "")
    return f"[{style}]{severity.upper()}[/]" if style else severity.upper()


def cmd_run(ctx: AppContext, args) -> int:
    """One hourly collection under the guard."""
    pipeline = CollectionPipeline(ctx.config)
    with ctx.guard.hold():
        result = asyncio.run(pipeline.run(dry_run=args.dry_run, show_prompt=args.show_prompt))

    if args.dry_run:
        console.print(bundle_json(result.bundle), highlight=False, markup=False)
        return 0
    if args.show_prompt:
        console.print(result.prompt, highlight=False, markup=False)
        return 0

    ctx.guard.mark_completed(result.timestamp)
    console.print(f"Report written to {result.report_path} ({_severity_text(result.severity.value)})")
    if not result.state_saved:
        console.print("[yellow]State was not saved; the next run will have no trend data[/]")
    return 0


def cmd_daily(ctx: AppContext, args) -> int:
    """Roll yesterday's (or --date's) hourly reports into one summary."""
    from marvinous.core.daily import run_daily

    try:
        result = asyncio.run(run_daily(ctx.config, date=args.date))
    except NoReportsForDate as e:
        console.print(f"[dim]{e}[/]")
        return 0

    table = Table(box=box.ROUNDED, show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold", min_width=14)
    table.add_column("Value")
    table.add_row("Date", result.date)
    table.add_row("Severity", _severity_text(result.severity.value))
    table.add_row("Summary", str(result.summary_path))
    table.add_row("Archive", f"{result.archive_path} ({len(result.archived)} reports)")
    table.add_row("Removed", str(len(result.deleted)))
    if result.delete_failures:
        table.add_row("Left in place", f"[yellow]{', '.join(result.delete_failures)}[/]")
    console.print(table)
    return 0


def cmd_serve(ctx: AppContext, args) -> int:
    from marvinous.web.dashboard import serve

    serve(ctx)
    return 0


def cmd_reports(ctx: AppContext, args) -> int:
    """Table of the newest reports in the report directory."""
    from marvinous.web.dashboard import list_reports

    report_dir = ctx.config.general.report_path
    reports = list_reports(report_dir)
    if not reports:
        console.print(f"[dim]No reports in {report_dir}[/]")
        return 0

    table = Table(title=f"Reports ({len(reports)} total)", box=box.SIMPLE_HEAVY)
    table.add_column("Timestamp", style="dim")
    table.add_column("Severity")
    table.add_column("File")
    table.add_column("Size", justify="right")
    for meta in reports[:args.count]:
        table.add_row(
            meta["timestamp"].replace("+00:00", "Z"),
            _severity_text(meta["severity"]),
            meta["filename"],
            f"{meta['size_bytes']:,}",
        )
    console.print(table)
    return 0


async def _fetch_status(url: str) -> dict:
    timeout = aiohttp.ClientTimeout(total=5)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        async with session.get(url) as resp:
            resp.raise_for_status()
            return await resp.json()


def cmd_status(ctx: AppContext, args) -> int:
    """Collection status from a running dashboard."""
    web_cfg = ctx.config.web
    host = "127.0.0.1" if web_cfg.bind_address in ("0.0.0.0", "::") else web_cfg.bind_address
    url = f"http://{host}:{web_cfg.port}/api/status"

    try:
        data = asyncio.run(_fetch_status(url))
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        console.print(f"[red bold]● dashboard unreachable[/] at {url} ({e})")
        return 1

    running = data.get(FIELD_RUNNING, False)
    last_run = data.get(FIELD_LAST_RUN) or "[dim]never[/]"
    state = "[yellow bold]● collecting[/]" if running else "[green bold]● idle[/]"
    console.print(Panel(f"{state}\nLast run: {last_run}", title="Marvinous", box=box.ROUNDED, expand=False))
    return 0


COMMANDS = {
    "run": cmd_run,
    "daily": cmd_daily,
    "serve": cmd_serve,
    "reports": cmd_reports,
    "status": cmd_status,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="marvinous",
        description="Marvinous — hardware monitoring reports written by a local LLM",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", help="Path to marvinous.yaml")
    parser.add_argument("--no-color", action="store_true", help="Disable colors")
    parser.add_argument("--version", action="version", version=f"marvinous {__version__}")

    sub = parser.add_subparsers(dest="command")

    # run
    p = sub.add_parser("run", help="Run one hourly collection")
    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--dry-run", action="store_true", help="Collect and print data as JSON; skip the LLM")
    mode.add_argument("--show-prompt", action="store_true", help="Print the prompt; skip the LLM")

    # daily
    p = sub.add_parser("daily", help="Summarize and archive a day's hourly reports")
    p.add_argument("--date", type=_date_arg, help="Day to summarize (YYYY-MM-DD, default yesterday UTC)")

    # serve
    sub.add_parser("serve", help="Start the web dashboard")

    # reports
    p = sub.add_parser("reports", help="List recent reports")
    p.add_argument("-n", "--count", type=int, default=24, help="Number of entries")

    # status
    sub.add_parser("status", help="Collection status from the dashboard")

    return parser


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.no_color:
        console.no_color = True

    fn = COMMANDS.get(args.command)
    if fn is None:
        parser.print_help()
        return 0

    try:
        config = MarvinousConfig.load(args.config)
    except MarvinousError as e:
        console.print(f"[red bold]Configuration error:[/] {e}", highlight=False)
        return e.exit_code

    from marvinous.__main__ import setup_logging
    setup_logging(config)

    ctx = AppContext.from_config(config)
    try:
        return fn(ctx, args)
    except MarvinousError as e:
        logger.error(
            f"{e.category} error: {e}",
            extra={"event": "exit", "category": e.category, "exit_code": e.exit_code},
        )
        console.print(f"[red bold]{e.category} error:[/] {e}", highlight=False)
        return e.exit_code
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
