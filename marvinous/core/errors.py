"""
Error categories surfaced by the pipeline.

Each fatal category carries the process exit code the CLI maps it to, so the
scheduler wrapper (systemd timer / cron) can tell failures apart.
"""


class MarvinousError(Exception):
    """Base class for every error the pipeline reports to its caller."""

    exit_code: int = 1
    category: str = "error"


class ConfigError(MarvinousError):
    exit_code = 1
    category = "config"


class CollectionError(MarvinousError):
    """A required collector failed; generation is never attempted."""

    exit_code = 2
    category = "collection"


class BackendError(MarvinousError):
    """Model backend could not produce a report."""

    exit_code = 3
    category = "backend"


class BackendUnreachable(BackendError):
    """Health check failed before any generation attempt."""

    category = "backend_unreachable"


class GenerationError(BackendError):
    """Terminal generation failure (non-retryable or retries exhausted)."""

    category = "generation"

    def __init__(self, message: str, attempts: int = 1, status: int | None = None):
        super().__init__(message)
        self.attempts = attempts
        self.status = status


class WriteError(MarvinousError):
    """The hourly report could not be persisted."""

    exit_code = 4
    category = "write"


class NoReportsForDate(MarvinousError):
    """Expected rollup outcome when the pipeline did not run that day."""

    exit_code = 0
    category = "no_reports"

    def __init__(self, date: str):
        super().__init__(f"No reports found for date: {date}")
        self.date = date


class ArchiveError(MarvinousError):
    exit_code = 4
    category = "archive"


class AlreadyRunning(MarvinousError):
    """Collection guard is held by another pipeline."""

    exit_code = 5
    category = "already_running"
