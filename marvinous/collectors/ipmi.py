"""
IPMI collector — BMC sensor data via `ipmitool sdr list`.
"""

import logging
from typing import List

from marvinous.collectors.base import BaseCollector, CollectorFailed, IpmiReading
from marvinous.core.config import BaselineConfig

logger = logging.getLogger("marvinous.collectors.ipmi")

NO_DEVICE_MARKERS = ("Could not open device", "open failed")


def parse_sdr_list(stdout: str) -> List[IpmiReading]:
    """Rows look like `SENSOR | VALUE | STATUS`."""
    readings = []
    for line in stdout.splitlines():
        parts = [p.strip() for p in line.split("|")]
        if len(parts) >= 3:
            readings.append(IpmiReading(sensor=parts[0], value=parts[1], status=parts[2]))
    return readings


def filter_readings(readings: List[IpmiReading], baseline: BaselineConfig) -> List[IpmiReading]:
    """Drop "no reading" rows for hardware that isn't installed.

    An empty DIMM slot or fan header reports "no reading" forever; the same
    row for an installed part means it died, so those are kept and warned on.
    """
    kept = []
    for reading in readings:
        if reading.value != "no reading" and reading.status != "ns":
            kept.append(reading)
            continue

        name = reading.sensor
        if name.startswith("DIMM_"):
            if name in baseline.installed_slots:
                logger.warning(f"Installed DIMM {name} has no reading - possible hardware failure!")
                kept.append(reading)
            continue
        if "_FAN" in name:
            if name in baseline.installed_fans:
                logger.warning(f"Installed fan {name} has no reading - possible hardware failure!")
                kept.append(reading)
            continue

        kept.append(reading)

    logger.info(
        f"IPMI filtering: {len(readings)} -> {len(kept)} sensors "
        f"({len(readings) - len(kept)} filtered)"
    )
    return kept


class IpmiCollector(BaseCollector):
    name = "ipmi"
    tool = "ipmitool"

    def __init__(self, baseline: BaselineConfig, optional: bool = True, **kwargs):
        super().__init__(**kwargs)
        self.baseline = baseline
        self.required = not optional

    async def collect(self) -> List[IpmiReading]:
        returncode, stdout, stderr = await self.run_tool("sdr", "list")
        if returncode != 0:
            if any(marker in stderr for marker in NO_DEVICE_MARKERS):
                raise CollectorFailed("IPMI modules not loaded")
            return []
        return filter_readings(parse_sdr_list(stdout), self.baseline)
