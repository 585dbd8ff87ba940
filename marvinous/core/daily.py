"""
Daily rollup — summarize a day's hourly reports, then archive them.

Order matters and is never reshuffled:

1. write <date>-DAILY.md
2. write archive/<date>.zip (merging any earlier archive of that date) and
   confirm it holds every hourly file
3. only then delete the hourly files (best effort, one at a time)

A failure at any step leaves every report reachable either in the report
directory or in the archive.
"""

import logging
import os
import tempfile
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from marvinous.core.config import MarvinousConfig
from marvinous.core.errors import ArchiveError, NoReportsForDate, WriteError
from marvinous.llm.ollama import OllamaClient
from marvinous.llm.prompt import build_daily_prompt
from marvinous.output.report import (
    Severity,
    classify_report,
    daily_filename,
    is_hourly_for,
    write_text,
)

logger = logging.getLogger("marvinous.daily")

ARCHIVE_DIR = "archive"


@dataclass
class DailyResult:
    date: str
    summary_path: Path
    archive_path: Path
    severity: Severity
    archived: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    delete_failures: List[str] = field(default_factory=list)


def yesterday(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return (now - timedelta(days=1)).strftime("%Y-%m-%d")


def find_hourly_reports(report_dir: Path, date: str) -> List[Path]:
    """Hourly reports for `date`, in chronological (= lexicographic) order."""
    report_dir = Path(report_dir)
    if not report_dir.is_dir():
        return []
    return sorted(
        p for p in report_dir.iterdir()
        if p.is_file() and is_hourly_for(p.name, date)
    )


def archive_hourly_reports(report_dir: Path, date: str, reports: List[Path]) -> Path:
    """Zip `reports` into archive/<date>.zip and verify the result.

    An archive left by an earlier rollup of the same date is merged: its
    entries are carried over unless a report of the same name replaces them.
    """
    archive_dir = Path(report_dir) / ARCHIVE_DIR
    archive_path = archive_dir / f"{date}.zip"
    new_names = {p.name for p in reports}
    expected = set(new_names)

    try:
        archive_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=archive_dir, prefix=f".{date}.", suffix=".zip.tmp")
        os.close(fd)
        try:
            with zipfile.ZipFile(tmp_name, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                if archive_path.exists():
                    with zipfile.ZipFile(archive_path) as old:
                        for info in old.infolist():
                            if info.filename in new_names:
                                continue
                            zf.writestr(info, old.read(info.filename))
                            expected.add(info.filename)
                    logger.info(f"Merging into existing archive {archive_path}")
                for report in reports:
                    zf.write(report, arcname=report.name)
            os.replace(tmp_name, archive_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveError(f"Failed to create archive {archive_path}: {e}") from e

    try:
        with zipfile.ZipFile(archive_path) as zf:
            bad = zf.testzip()
            names = set(zf.namelist())
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveError(f"Archive {archive_path} unreadable after write: {e}") from e

    missing = sorted(expected - names)
    if bad is not None or missing:
        raise ArchiveError(f"Archive {archive_path} incomplete (corrupt={bad}, missing={missing})")

    return archive_path


def delete_originals(reports: List[Path]):
    """Remove archived hourly files; failures are logged and skipped."""
    deleted, failed = [], []
    for report in reports:
        try:
            report.unlink()
            deleted.append(report.name)
        except OSError as e:
            logger.warning(f"Failed to delete {report}: {e}")
            failed.append(report.name)
    return deleted, failed


async def summarize_day(report_dir: Path, date: str, client: OllamaClient) -> DailyResult:
    """Roll the hourly reports for `date` into one summary and one archive."""
    report_dir = Path(report_dir)
    reports = find_hourly_reports(report_dir, date)
    if not reports:
        raise NoReportsForDate(date)

    logger.info(f"Found {len(reports)} hourly reports for {date}")

    contents = [p.read_text(encoding="utf-8", errors="replace") for p in reports]
    hours = [p.name[11:13] for p in reports]
    prompt = build_daily_prompt(contents, hours, date)

    logger.info(f"Sending daily summary prompt to LLM ({len(prompt)} chars)")
    summary = await client.generate(prompt)

    summary_name = daily_filename(date)
    try:
        summary_path = write_text(report_dir / summary_name, summary)
    except OSError as e:
        raise WriteError(f"Failed to write daily summary: {e}") from e
    severity = classify_report(summary_name, summary)
    logger.info(f"Daily summary written to: {summary_path} (severity {severity})")

    archive_path = archive_hourly_reports(report_dir, date, reports)
    logger.info(f"Hourly reports archived to: {archive_path}")

    deleted, failed = delete_originals(reports)
    logger.info(f"Daily summary complete for {date} ({len(deleted)} removed, {len(failed)} left in place)")

    return DailyResult(
        date=date,
        summary_path=summary_path,
        archive_path=archive_path,
        severity=severity,
        archived=[p.name for p in reports],
        deleted=deleted,
        delete_failures=failed,
    )


async def run_daily(config: MarvinousConfig, date: Optional[str] = None,
                    client: Optional[OllamaClient] = None) -> DailyResult:
    """Scheduled entry point: yesterday (UTC) unless a date is given."""
    date = date or yesterday()
    logger.info(f"Generating daily summary for {date}")
    owns_client = client is None
    client = client or OllamaClient.from_config(config.ollama)
    try:
        return await summarize_day(config.general.report_path, date, client)
    finally:
        if owns_client:
            await client.close()
