"""
Journal collector — system and kernel log entries from journalctl.
"""

import json
import logging
from datetime import datetime, timezone
from typing import List, Optional

from marvinous.collectors.base import BaseCollector, CollectorFailed, LogEntry

logger = logging.getLogger("marvinous.collectors.journal")


def parse_journal_line(line: str) -> Optional[LogEntry]:
    """Turn one `journalctl --output=json` line into a LogEntry (None if unusable)."""
    try:
        entry = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(entry, dict):
        return None

    try:
        micros = int(entry["__REALTIME_TIMESTAMP"])
    except (KeyError, TypeError, ValueError):
        return None
    timestamp = datetime.fromtimestamp(micros / 1_000_000, tz=timezone.utc)

    try:
        priority = int(entry.get("PRIORITY", 6))
    except (TypeError, ValueError):
        priority = 6

    unit = entry.get("_SYSTEMD_UNIT") or entry.get("SYSLOG_IDENTIFIER")

    message = entry.get("MESSAGE")
    if isinstance(message, list):
        # Non-UTF-8 payloads arrive as a byte array
        message = bytes(b for b in message if isinstance(b, int) and 0 <= b < 256).decode(
            "utf-8", errors="replace"
        )
    if not isinstance(message, str):
        return None

    return LogEntry(timestamp=timestamp, priority=priority, unit=unit, message=message)


def parse_journal_output(stdout: str, max_entries: int) -> List[LogEntry]:
    entries = []
    for line in stdout.splitlines():
        if not line.strip():
            continue
        parsed = parse_journal_line(line)
        if parsed is not None:
            entries.append(parsed)
    return entries[:max_entries]


class JournalCollector(BaseCollector):
    """System logs (`journalctl --priority`) or kernel ring buffer (`journalctl -k`)."""
    tool = "journalctl"

    def __init__(self, since: str, max_priority: int, max_entries: int, kernel: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.since = since
        self.max_priority = max_priority
        self.max_entries = max_entries
        self.kernel = kernel
        self.name = "kernel_logs" if kernel else "system_logs"

    async def collect(self) -> List[LogEntry]:
        if self.kernel:
            args = ["-k", "--since", self.since, "--output=json", "--no-pager"]
        else:
            args = [
                "--since", self.since,
                f"--priority=0..{self.max_priority}",
                "--output=json",
                "--no-pager",
            ]

        returncode, stdout, stderr = await self.run_tool(*args)
        if returncode != 0:
            raise CollectorFailed(f"journalctl{' -k' if self.kernel else ''} failed: {stderr.strip()[:200]}")

        entries = parse_journal_output(stdout, self.max_entries)
        logger.debug(f"{self.name}: {len(entries)} entries")
        return entries
