"""
Report artifacts and severity parsing.

Severity is never stored. It is recomputed from the report text each time,
and only from the report's Summary section: the narrator's commentary
elsewhere is full of words like "critical" that mean nothing.
"""

import logging
import re
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

logger = logging.getLogger("marvinous.report")

REPORT_EXT = ".md"
HOURLY_FORMAT = "%Y-%m-%d-%H"
DAILY_SUFFIX = "-DAILY"
SUMMARY_SECTION = "Summary"
DAY_OVERVIEW_SECTION = "Day Overview"

# YYYY-MM-DD-HH.md: 16 chars, '-' at 10, '.' at 13
HOURLY_NAME_LEN = len("2025-01-01-00") + len(REPORT_EXT)
_HOURLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}-\d{2}\.md$")


class Severity(str, Enum):
    OK = "OK"
    WATCH = "WATCH"
    CONCERN = "CONCERN"
    CRITICAL = "CRITICAL"
    UNKNOWN = "UNKNOWN"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def __str__(self) -> str:
        return self.value


_RANK = {
    Severity.UNKNOWN: 0,
    Severity.OK: 1,
    Severity.WATCH: 2,
    Severity.CONCERN: 3,
    Severity.CRITICAL: 4,
}

# Checked in this order; first hit wins
_PRECEDENCE = (Severity.CRITICAL, Severity.CONCERN, Severity.WATCH, Severity.OK)


def extract_section(content: str, title: str = SUMMARY_SECTION) -> str:
    """Text from the `## <title>` header up to the next `##` header (or EOF)."""
    header = f"## {title}"
    start = content.find(header)
    if start == -1:
        return ""
    after_header = start + len(header)
    end = content.find("\n##", after_header)
    if end == -1:
        end = len(content)
    return content[start:end]


def classify(content: str, section: str = SUMMARY_SECTION) -> Severity:
    """Severity marker (e.g. `WATCH:` or `[CONCERN]`) from the report's summary section."""
    upper = extract_section(content, section).upper()
    for severity in _PRECEDENCE:
        if f"{severity.value}:" in upper or f"{severity.value}]" in upper:
            return severity
    return Severity.UNKNOWN


def classify_report(filename: str, content: str) -> Severity:
    """Daily summaries carry their severity line under `## Day Overview`."""
    if Path(filename).stem.endswith(DAILY_SUFFIX):
        return classify(content, DAY_OVERVIEW_SECTION)
    return classify(content)


def hourly_filename(timestamp: datetime) -> str:
    return f"{timestamp.strftime(HOURLY_FORMAT)}{REPORT_EXT}"


def daily_filename(date: str) -> str:
    return f"{date}{DAILY_SUFFIX}{REPORT_EXT}"


def is_hourly_for(filename: str, date: str) -> bool:
    """True for `<date>-HH.md` and nothing else (not DAILY, not stray files)."""
    return (
        filename.startswith(date)
        and len(filename) == HOURLY_NAME_LEN
        and filename[10] == "-"
        and filename[13] == "."
        and _HOURLY_RE.match(filename) is not None
    )


def parse_filename_timestamp(filename: str) -> datetime:
    """Report time from its file name; DAILY → midnight, unparseable → epoch."""
    name = filename[:-len(REPORT_EXT)] if filename.endswith(REPORT_EXT) else filename
    try:
        if name.endswith(DAILY_SUFFIX):
            parsed = datetime.strptime(name[:-len(DAILY_SUFFIX)], "%Y-%m-%d")
        else:
            parsed = datetime.strptime(name, HOURLY_FORMAT)
    except ValueError:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    return parsed.replace(tzinfo=timezone.utc)


def write_text(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def write_report(report_dir: Path, timestamp: datetime, content: str) -> Path:
    """Write the hour's report, replacing any earlier one from the same hour."""
    path = write_text(Path(report_dir) / hourly_filename(timestamp), content)
    logger.info(f"Report written to {path}")
    return path
