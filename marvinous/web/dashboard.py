"""
Dashboard — small HTTP API over the report directory.

GET  /api/reports            → report list, newest first, with severity
GET  /api/reports/{filename} → one report's content
POST /api/collect            → start a collection in the background
GET  /api/status             → is a collection running, when did one last finish
GET  /health                 → liveness

Reports are read straight from disk while the pipeline may be writing them,
so read errors are treated as transient (skipped or 404), never fatal.
"""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Set

from aiohttp import web

from marvinous import __version__
from marvinous.core.guard import AppContext
from marvinous.core.pipeline import CollectionPipeline
from marvinous.core.schemas import (
    STATUS_ALREADY_RUNNING,
    STATUS_STARTED,
    CollectResponse,
    ErrorResponse,
    HealthResponse,
    ReportContent,
    ReportListResponse,
    ReportMeta,
    StatusResponse,
)
from marvinous.output.report import REPORT_EXT, classify_report, parse_filename_timestamp

logger = logging.getLogger("marvinous.web")

CollectRunner = Callable[[AppContext], Awaitable[object]]


def _error(message: str, status: int) -> web.Response:
    body: ErrorResponse = {"error": message}
    return web.json_response(body, status=status)


async def run_collection(ctx: AppContext):
    return await CollectionPipeline(ctx.config).run()


def _read_text(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def list_reports(report_dir: Path) -> List[ReportMeta]:
    reports: List[ReportMeta] = []
    try:
        entries = list(report_dir.iterdir())
    except FileNotFoundError:
        return reports

    for path in entries:
        if not path.is_file() or path.suffix != REPORT_EXT:
            continue
        content = _read_text(path)
        try:
            size = path.stat().st_size
        except OSError:
            size = 0
        severity = classify_report(path.name, content).value.lower() if content is not None else "unknown"
        reports.append({
            "filename": path.name,
            "timestamp": parse_filename_timestamp(path.name).isoformat(),
            "severity": severity,
            "size_bytes": size,
        })

    reports.sort(key=lambda r: r["timestamp"], reverse=True)
    return reports


class Dashboard:
    """aiohttp app around a shared AppContext."""

    def __init__(self, ctx: AppContext, runner: CollectRunner = run_collection):
        self.ctx = ctx
        self._runner = runner
        self._tasks: Set[asyncio.Task] = set()
        self.app = web.Application()
        self.app.router.add_get("/api/reports", self._handle_list)
        self.app.router.add_get("/api/reports/{filename}", self._handle_get)
        self.app.router.add_post("/api/collect", self._handle_collect)
        self.app.router.add_get("/api/status", self._handle_status)
        self.app.router.add_get("/health", self._handle_health)
        self.app.on_cleanup.append(self._on_cleanup)

    @property
    def report_dir(self) -> Path:
        return self.ctx.config.general.report_path

    async def _handle_list(self, request: web.Request) -> web.Response:
        try:
            reports = list_reports(self.report_dir)
        except OSError as e:
            logger.error(f"Failed to read report directory: {e}")
            return _error(f"Failed to read reports: {e}", 500)
        body: ReportListResponse = {"reports": reports, "total": len(reports)}
        return web.json_response(body)

    async def _handle_get(self, request: web.Request) -> web.Response:
        filename = request.match_info["filename"]
        if ".." in filename or "/" in filename or "\\" in filename:
            logger.warning(f"Invalid filename requested: {filename}")
            return _error("Invalid filename", 400)
        if not filename.endswith(REPORT_EXT):
            return _error(f"Only {REPORT_EXT} files allowed", 400)

        content = _read_text(self.report_dir / filename)
        if content is None:
            return _error(f"Report not found: {filename}", 404)

        body: ReportContent = {
            "filename": filename,
            "timestamp": parse_filename_timestamp(filename).isoformat(),
            "content": content,
            "severity": classify_report(filename, content).value.lower(),
        }
        return web.json_response(body)

    async def _handle_collect(self, request: web.Request) -> web.Response:
        guard = self.ctx.guard
        if not guard.try_acquire():
            logger.info("Collection already running, request ignored")
            body: CollectResponse = {
                "status": STATUS_ALREADY_RUNNING,
                "message": "A collection is already in progress",
            }
            return web.json_response(body)

        logger.info("Manual collection triggered via web API")
        task = asyncio.create_task(self._collect_in_background())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        body = {"status": STATUS_STARTED, "message": "Collection started in background"}
        return web.json_response(body)

    async def _collect_in_background(self):
        """Runs with the guard already held; always releases it."""
        try:
            await self._runner(self.ctx)
        except Exception as e:
            logger.error(f"Background collection failed: {e}", exc_info=True)
        else:
            self.ctx.guard.mark_completed()
            logger.info("Background collection completed successfully")
        finally:
            self.ctx.guard.release()

    async def _handle_status(self, request: web.Request) -> web.Response:
        last_run = self.ctx.guard.last_run
        body: StatusResponse = {
            "running": self.ctx.guard.is_running,
            "last_run": last_run.isoformat() if last_run else None,
        }
        return web.json_response(body)

    async def _handle_health(self, request: web.Request) -> web.Response:
        body: HealthResponse = {"status": "ok", "version": __version__}
        return web.json_response(body)

    async def _on_cleanup(self, app: web.Application):
        if self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} background collection(s) to finish")
            await asyncio.gather(*self._tasks, return_exceptions=True)


def serve(ctx: AppContext):
    """Run the dashboard until interrupted."""
    web_cfg = ctx.config.web
    logger.info(f"Starting Marvinous web dashboard on {web_cfg.bind_address}:{web_cfg.port}")
    dashboard = Dashboard(ctx)
    web.run_app(dashboard.app, host=web_cfg.bind_address, port=web_cfg.port, print=None)
