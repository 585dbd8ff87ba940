"""
Collector Manager — runs every enabled collector and assembles the bundle.

Collectors are independent and read-only, so they run concurrently. The
bundle is only built after all of them have finished; a required collector
that failed aborts the run before anything is sent to the model.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from marvinous.collectors.base import (
    BaseCollector,
    CollectorUnavailable,
    DriveHealth,
    GpuStatus,
    IpmiReading,
    LogEntry,
    SensorReading,
    to_dict,
)
from marvinous.collectors.gpu import GpuCollector
from marvinous.collectors.ipmi import IpmiCollector
from marvinous.collectors.journal import JournalCollector
from marvinous.collectors.sensors import SensorsCollector
from marvinous.collectors.smart import SmartCollector
from marvinous.core.config import MarvinousConfig
from marvinous.core.errors import CollectionError
from marvinous.output.state import PreviousSnapshot

logger = logging.getLogger("marvinous.collectors")


@dataclass(frozen=True)
class ReadingBundle:
    """Everything one pipeline run collected."""
    system_logs: List[LogEntry] = field(default_factory=list)
    kernel_logs: List[LogEntry] = field(default_factory=list)
    sensors: List[SensorReading] = field(default_factory=list)
    ipmi: List[IpmiReading] = field(default_factory=list)
    gpu: Optional[GpuStatus] = None
    drives: List[DriveHealth] = field(default_factory=list)
    previous: Optional[PreviousSnapshot] = None

    def snapshot(self) -> PreviousSnapshot:
        """Readings to carry over to the next run."""
        return PreviousSnapshot.now(sensors=self.sensors, gpu=self.gpu, drives=self.drives)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "system_logs": [to_dict(e) for e in self.system_logs],
            "kernel_logs": [to_dict(e) for e in self.kernel_logs],
            "sensors": [to_dict(r) for r in self.sensors],
            "ipmi": [to_dict(r) for r in self.ipmi],
            "gpu": to_dict(self.gpu) if self.gpu else None,
            "drives": [to_dict(d) for d in self.drives],
            "previous": self.previous.to_dict() if self.previous else None,
        }


class CollectorManager:
    """Coordinates all collectors."""

    def __init__(self, config: MarvinousConfig, collectors: Optional[List[BaseCollector]] = None):
        self.config = config
        self.collectors: List[BaseCollector] = collectors if collectors is not None else self._from_config(config)

    @staticmethod
    def _from_config(config: MarvinousConfig) -> List[BaseCollector]:
        c = config.collection
        collectors: List[BaseCollector] = [
            JournalCollector(c.log_since, c.log_priority_max, c.max_log_entries),
        ]
        if c.include_kernel:
            collectors.append(JournalCollector(c.log_since, c.log_priority_max, c.max_log_entries, kernel=True))
        if config.sensors.enabled:
            collectors.append(SensorsCollector())
        if config.ipmi.enabled:
            collectors.append(IpmiCollector(config.baseline, optional=config.ipmi.optional))
        if config.gpu.enabled:
            collectors.append(GpuCollector(optional=config.gpu.optional))
        collectors.append(SmartCollector(config.storage.devices))
        return collectors

    async def _run_one(self, collector: BaseCollector):
        try:
            result = await collector.collect()
        except CollectorUnavailable as e:
            logger.info(f"Collector '{collector.name}' unavailable: {e}")
            return collector.empty()
        except Exception as e:
            if collector.required:
                raise CollectionError(f"{collector.name} collection failed: {e}") from e
            logger.warning(f"Failed to collect {collector.name} (optional): {e}")
            return collector.empty()

        size = len(result) if isinstance(result, list) else int(result is not None)
        logger.info(f"Collected {size} {collector.name} record(s)")
        return result

    async def collect(self, previous: Optional[PreviousSnapshot] = None) -> ReadingBundle:
        """Run every collector to completion, then assemble the bundle."""
        results = await asyncio.gather(
            *(self._run_one(c) for c in self.collectors),
            return_exceptions=True,
        )

        readings: Dict[str, Any] = {}
        for collector, result in zip(self.collectors, results):
            if isinstance(result, CollectionError):
                raise result
            if isinstance(result, BaseException):
                raise CollectionError(f"{collector.name} collection crashed: {result}") from result
            readings[collector.name] = result

        return ReadingBundle(
            system_logs=readings.get("system_logs", []),
            kernel_logs=readings.get("kernel_logs", []),
            sensors=readings.get("sensors", []),
            ipmi=readings.get("ipmi", []),
            gpu=readings.get("gpu"),
            drives=readings.get("drives", []),
            previous=previous,
        )
