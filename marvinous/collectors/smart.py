"""
SMART collector — drive health via smartctl's JSON output.

smartctl reports NVMe and ATA drives with different schemas. The payload is
resolved into one of three shapes by which sections are present:

    NvmeHealthLog   nvme_smart_health_information_log
    AtaAttributes   ata_smart_attributes.table
    GenericTemp     neither, only the top-level temperature block
"""

import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from marvinous.collectors.base import (
    BaseCollector,
    CollectorError,
    CollectorFailed,
    DriveHealth,
)

logger = logging.getLogger("marvinous.collectors.smart")

# ATA attribute ids we care about
ATA_REALLOCATED = 5
ATA_POWER_ON_HOURS = 9
ATA_TEMPERATURE = 194
ATA_PENDING = 197


@dataclass(frozen=True)
class NvmeHealthLog:
    temperature: Optional[float]
    power_on_hours: int


@dataclass(frozen=True)
class AtaAttributes:
    reallocated_sectors: int
    pending_sectors: int
    temperature: Optional[float]
    power_on_hours: int


@dataclass(frozen=True)
class GenericTemp:
    temperature: Optional[float]


SmartShape = Union[NvmeHealthLog, AtaAttributes, GenericTemp]


def _current_temperature(data: dict) -> Optional[float]:
    temp = data.get("temperature")
    if isinstance(temp, dict) and isinstance(temp.get("current"), (int, float)):
        return float(temp["current"])
    return None


def resolve_shape(data: dict) -> SmartShape:
    """Pick the schema variant from the sections smartctl emitted."""
    nvme = data.get("nvme_smart_health_information_log")
    if isinstance(nvme, dict):
        temp = nvme.get("temperature")
        return NvmeHealthLog(
            temperature=float(temp) if isinstance(temp, (int, float)) else None,
            power_on_hours=int(nvme.get("power_on_hours") or 0),
        )

    ata = data.get("ata_smart_attributes")
    table = ata.get("table") if isinstance(ata, dict) else None
    if isinstance(table, list):
        values = {}
        for attr in table:
            if not isinstance(attr, dict):
                continue
            raw = attr.get("raw") or {}
            values[attr.get("id")] = int(raw.get("value") or 0)
        temperature = values.get(ATA_TEMPERATURE)
        return AtaAttributes(
            reallocated_sectors=values.get(ATA_REALLOCATED, 0),
            pending_sectors=values.get(ATA_PENDING, 0),
            temperature=float(temperature) if temperature is not None else _current_temperature(data),
            power_on_hours=values.get(ATA_POWER_ON_HOURS, 0),
        )

    return GenericTemp(temperature=_current_temperature(data))


def to_drive_health(device: str, model: str, shape: SmartShape) -> DriveHealth:
    if isinstance(shape, NvmeHealthLog):
        # NVMe has no reallocated/pending sector counters
        return DriveHealth(device, model, 0, 0, shape.temperature, shape.power_on_hours)
    if isinstance(shape, AtaAttributes):
        return DriveHealth(
            device, model,
            shape.reallocated_sectors, shape.pending_sectors,
            shape.temperature, shape.power_on_hours,
        )
    return DriveHealth(device, model, 0, 0, shape.temperature, 0)


def parse_smartctl_json(device: str, stdout: str) -> DriveHealth:
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise CollectorFailed(f"JSON parse error for {device}: {e}") from e
    if not isinstance(data, dict):
        raise CollectorFailed(f"Unexpected smartctl output for {device}")
    model = data.get("model_name") or "Unknown"
    return to_drive_health(device, model, resolve_shape(data))


def parse_scan_json(stdout: str) -> List[str]:
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise CollectorFailed(f"Failed to parse scan output: {e}") from e
    return [d["name"] for d in data.get("devices") or [] if isinstance(d, dict) and d.get("name")]


def parse_scan_text(stdout: str) -> List[str]:
    devices = []
    for line in stdout.splitlines():
        parts = line.split()
        if parts and parts[0].startswith("/dev/"):
            devices.append(parts[0])
    return devices


class SmartCollector(BaseCollector):
    name = "drives"
    tool = "smartctl"

    def __init__(self, devices: Optional[List[str]] = None, **kwargs):
        super().__init__(**kwargs)
        self.devices = list(devices or [])

    async def detect_drives(self) -> List[str]:
        returncode, stdout, _ = await self.run_tool("--scan", "--json")
        if returncode == 0:
            return parse_scan_json(stdout)
        # Older smartctl without --json
        returncode, stdout, _ = await self.run_tool("--scan")
        if returncode != 0:
            return []
        return parse_scan_text(stdout)

    async def collect(self) -> List[DriveHealth]:
        devices = self.devices or await self.detect_drives()
        results = []
        for device in devices:
            try:
                # smartctl uses its exit status as a bitmask, parse regardless
                _, stdout, _ = await self.run_tool("-A", "--json", device)
                results.append(parse_smartctl_json(device, stdout))
            except CollectorError as e:
                logger.warning(f"Failed to get SMART data for {device}: {e}")
        return results
