"""
Collection Pipeline — COLLECT → PROMPT → GENERATE → CLASSIFY → PERSIST.

One run produces one hourly report. The caller must hold the collection
guard; nothing here writes state or reports until generation has reached a
terminal outcome.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from marvinous.collectors.manager import CollectorManager, ReadingBundle
from marvinous.core.config import MarvinousConfig
from marvinous.core.errors import WriteError
from marvinous.llm.ollama import OllamaClient
from marvinous.llm.prompt import build_prompt
from marvinous.output.report import Severity, classify, write_report
from marvinous.output.state import StateError, load_previous, save_current

logger = logging.getLogger("marvinous.pipeline")


@dataclass
class RunResult:
    """What a run produced. Dry runs carry only the bundle/prompt."""
    bundle: ReadingBundle
    prompt: str = ""
    report_path: Optional[Path] = None
    severity: Severity = Severity.UNKNOWN
    state_saved: bool = False
    timestamp: Optional[datetime] = None


class CollectionPipeline:
    """Wires collectors, prompt, generation client and the stores together."""

    def __init__(
        self,
        config: MarvinousConfig,
        collectors: Optional[CollectorManager] = None,
        client: Optional[OllamaClient] = None,
        clock=None,
    ):
        self.config = config
        self.collectors = collectors or CollectorManager(config)
        self.client = client
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _load_previous(self):
        try:
            return load_previous(self.config.general.state_path)
        except StateError as e:
            # Monitoring beats trend accuracy: carry on as a first run
            logger.warning(f"Failed to load previous state: {e}")
            return None

    async def collect(self) -> ReadingBundle:
        logger.info("Starting collection")
        previous = self._load_previous()
        return await self.collectors.collect(previous=previous)

    async def run(self, dry_run: bool = False, show_prompt: bool = False) -> RunResult:
        bundle = await self.collect()

        if dry_run:
            return RunResult(bundle=bundle)

        prompt = build_prompt(bundle, Path(self.config.general.prompt_file))
        if show_prompt:
            return RunResult(bundle=bundle, prompt=prompt)

        owns_client = self.client is None
        client = self.client or OllamaClient.from_config(self.config.ollama)
        try:
            await client.health_check()
            logger.info(f"Sending prompt to Ollama ({len(prompt)} chars)")
            report = await client.generate(prompt)
        finally:
            if owns_client:
                await client.close()
        logger.info(f"Response received ({len(report)} chars)")

        severity = classify(report)
        logger.info(
            f"Report severity: {severity}",
            extra={"event": "report", "severity": str(severity)},
        )

        timestamp = self._clock()
        try:
            report_path = write_report(self.config.general.report_path, timestamp, report)
        except OSError as e:
            raise WriteError(f"Failed to write report: {e}") from e

        state_saved = True
        try:
            save_current(self.config.general.state_path, bundle.snapshot())
        except StateError as e:
            state_saved = False
            logger.warning(f"Failed to save state: {e}")

        return RunResult(
            bundle=bundle,
            prompt=prompt,
            report_path=report_path,
            severity=severity,
            state_saved=state_saved,
            timestamp=timestamp,
        )


def bundle_json(bundle: ReadingBundle) -> str:
    return json.dumps(bundle.to_dict(), indent=2, default=str)
