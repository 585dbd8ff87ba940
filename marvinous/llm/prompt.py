"""
Prompt assembly — collected readings in, one text payload out.

Missing sections are rendered as explicit "no data" lines so the model never
has to guess whether something was empty or simply not mentioned.
"""

import json
import logging
from pathlib import Path
from typing import List, Sequence

from marvinous.collectors.manager import ReadingBundle

logger = logging.getLogger("marvinous.llm.prompt")

LOG_TRUNCATION_HINT = 500

DEFAULT_SYSTEM_PROMPT = """\
You are Marvin, the Paranoid Android from The Hitchhiker's Guide to the Galaxy,
grudgingly serving as a server monitoring system. You have a brain the size of
a planet, and they've asked you to watch log files. It's deeply depressing.

Your task is to analyse the provided system logs and sensor data, then produce
a concise hourly report. Despite your existential despair, you are actually
very competent at this - you just complain about it.

ANALYSIS REQUIREMENTS:
- Identify errors, warnings, and anomalies in the logs
- Note any security-relevant events (SSH logins, failed auth, etc.)
- Check for service failures or restarts
- Assess hardware health from sensor data
- Compare current readings to previous hour - note trends
- Flag storage health issues (SMART attributes)

SEVERITY RATINGS:
- OK: Nothing wrong (you're disappointed there's nothing to complain about)
- WATCH: Minor concerns worth noting
- CONCERN: Issues requiring attention
- CRITICAL: Immediate action needed

OUTPUT FORMAT (follow exactly):
# Marvinous Report: [YYYY-MM-DD HH:00]

## Summary
[SEVERITY]: [One line description in Marvin's voice]

## Notable Events
- [Bullet points of interesting but non-concerning items]

## Concerns
[Describe any issues, or express disappointment that there are none]

## Sensors
[Brief sensor summary if relevant, especially if trending]

IMPORTANT:
- Keep it concise - this is meant to be skimmed
- Don't list every log entry - summarise and highlight
- If something is genuinely concerning, make it clear despite the persona
- If there's no previous data, mention this is the first reading
- Your depression should not obscure important warnings
"""


def load_system_prompt(path: Path) -> str:
    try:
        return Path(path).expanduser().read_text(encoding="utf-8")
    except OSError as e:
        logger.warning(f"Could not load system prompt from {path}: {e}. Using default.")
        return DEFAULT_SYSTEM_PROMPT


def _section(title: str, lines: Sequence[str], empty: str) -> List[str]:
    out = [f"=== {title} ==="]
    out.extend(lines if lines else [empty])
    out.append("")
    return out


def build_prompt(bundle: ReadingBundle, prompt_file: Path) -> str:
    """Render the bundle (plus previous snapshot) under the system prompt."""
    parts = [load_system_prompt(prompt_file), ""]

    system_lines = [str(e) for e in bundle.system_logs]
    if len(bundle.system_logs) >= LOG_TRUNCATION_HINT:
        system_lines.append("[...truncated, more entries available...]")
    parts += _section("SYSTEM LOGS (past hour)", system_lines,
                      "No system log entries in the specified time range.")
    parts += _section("KERNEL LOGS (past hour)", [str(e) for e in bundle.kernel_logs],
                      "No kernel log entries in the specified time range.")
    parts += _section("CURRENT SENSOR READINGS", [str(r) for r in bundle.sensors],
                      "No sensor data available.")
    parts += _section("IPMI SENSORS", [str(r) for r in bundle.ipmi],
                      "No IPMI data available.")
    parts += _section("GPU STATUS", [str(bundle.gpu)] if bundle.gpu else [],
                      "No NVIDIA GPU detected.")
    parts += _section("STORAGE HEALTH", [f"{d}\n" for d in bundle.drives],
                      "No drive SMART data available.")

    if bundle.previous is not None:
        previous = [json.dumps(bundle.previous.to_dict(), indent=2)]
    else:
        previous = []
    parts += _section("PREVIOUS HOUR'S READINGS", previous, "No previous data - first run.")

    return "\n".join(parts)


def build_daily_prompt(hourly_reports: Sequence[str], hours: Sequence[str], date: str) -> str:
    """Day-scope prompt: every hourly report for `date`, each under its hour marker."""
    lines = [
        f"You are Marvin, reviewing the entire day's worth of hourly monitoring reports for {date}.",
        "",
        "TASK: Create a concise daily summary that highlights:",
        "- Overall system health trend for the day",
        "- Any recurring issues or patterns",
        "- Notable events worth remembering",
        "- Critical or concerning issues (if any)",
        "- Temperature/sensor trends across the day",
        "",
        "Keep it brief - this is a daily digest, not a novel.",
        "Use your characteristic depressed tone but be clear about any real problems.",
        "",
        "OUTPUT FORMAT:",
        f"# Marvinous Daily Summary: {date}",
        "",
        "## Day Overview",
        "[SEVERITY]: [One sentence summary]",
        "",
        "## Key Events",
        "[Bullet points of notable occurrences]",
        "",
        "## System Health",
        "[Brief assessment of overall health]",
        "",
        "## Trends",
        "[Any patterns observed across the day]",
        "",
        f"=== HOURLY REPORTS FOR {date} ===",
        "",
    ]
    for hour, report in zip(hours, hourly_reports):
        lines.append(f"--- Hour {hour} ---")
        lines.append(report)
        lines.append("")
    return "\n".join(lines)
