"""
Shared response schemas — single source of truth for the dashboard API and CLI.

Using TypedDicts so both web/dashboard.py and cli.py reference the same field names.
"""

from typing import List, Optional, TypedDict


class ReportMeta(TypedDict):
    filename: str
    timestamp: str
    severity: str
    size_bytes: int


class ReportListResponse(TypedDict):
    reports: List[ReportMeta]
    total: int


class ReportContent(TypedDict):
    filename: str
    timestamp: str
    content: str
    severity: str


class CollectResponse(TypedDict):
    status: str  # "started" | "already_running"
    message: str


class StatusResponse(TypedDict):
    running: bool
    last_run: Optional[str]


class HealthResponse(TypedDict):
    status: str
    version: str


class ErrorResponse(TypedDict):
    error: str


# Field name constants; use these instead of string literals
STATUS_STARTED = "started"
STATUS_ALREADY_RUNNING = "already_running"
FIELD_RUNNING = "running"
FIELD_LAST_RUN = "last_run"
