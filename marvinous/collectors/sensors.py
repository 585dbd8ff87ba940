"""
Sensors collector — lm-sensors readings via `sensors -j`.
"""

import json
from typing import List

from marvinous.collectors.base import BaseCollector, CollectorFailed, CollectorUnavailable, SensorReading

UNIT_PREFIXES = (
    ("temp", "°C"),
    ("fan", "RPM"),
    ("in", "V"),
    ("power", "W"),
)


def unit_for(key: str) -> str:
    for prefix, unit in UNIT_PREFIXES:
        if key.startswith(prefix):
            return unit
    return ""


def parse_sensors_json(stdout: str) -> List[SensorReading]:
    """Flatten `sensors -j` output: chip → sensor → *_input value."""
    try:
        data = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise CollectorFailed(f"JSON parse error: {e}") from e
    if not isinstance(data, dict):
        raise CollectorFailed("sensors -j did not return an object")

    readings = []
    for chip, chip_data in data.items():
        if not isinstance(chip_data, dict):
            continue
        for sensor, sensor_data in chip_data.items():
            if sensor == "Adapter" or not isinstance(sensor_data, dict):
                continue
            for key, value in sensor_data.items():
                if "_input" not in key or isinstance(value, bool):
                    continue
                if isinstance(value, (int, float)):
                    readings.append(SensorReading(
                        chip=chip,
                        sensor=sensor,
                        value=float(value),
                        unit=unit_for(key),
                    ))
    return readings


class SensorsCollector(BaseCollector):
    name = "sensors"
    tool = "sensors"

    async def collect(self) -> List[SensorReading]:
        returncode, stdout, stderr = await self.run_tool("-j")
        if returncode != 0:
            if "not found" in stderr or "No such file" in stderr or "No sensors found" in stderr:
                raise CollectorUnavailable("sensors command not found - is lm-sensors installed?")
            raise CollectorFailed(f"sensors failed: {stderr.strip()[:200]}")
        return parse_sensors_json(stdout)
