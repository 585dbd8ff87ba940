"""
Collector base — records and the shared "run a tool, parse its output" plumbing.

Collectors never call the model. They shell out to a hardware tool, turn its
output into flat records, and report one of two failure kinds:

- CollectorUnavailable: tool missing or hardware not present (never fatal)
- CollectorFailed: tool present but broke (fatal only for required collectors)
"""

import asyncio
import shutil
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Optional, Tuple

DEFAULT_TOOL_TIMEOUT = 30.0


class CollectorError(Exception):
    pass


class CollectorUnavailable(CollectorError):
    """Tool absent or not configured; yields an empty result."""


class CollectorFailed(CollectorError):
    """Tool present but failed."""


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    priority: int
    unit: Optional[str]
    message: str

    def __str__(self) -> str:
        return (
            f"{self.timestamp.strftime('%b %d %H:%M:%S')} [{self.priority}] "
            f"{self.unit or 'unknown'}: {self.message}"
        )


@dataclass(frozen=True)
class SensorReading:
    chip: str
    sensor: str
    value: float
    unit: str

    def __str__(self) -> str:
        return f"{self.chip}/{self.sensor}: {self.value:.1f}{self.unit}"

    @classmethod
    def from_dict(cls, data: dict) -> "SensorReading":
        return cls(
            chip=data["chip"],
            sensor=data["sensor"],
            value=float(data["value"]),
            unit=data.get("unit", ""),
        )


@dataclass(frozen=True)
class GpuStatus:
    name: str
    temperature: float
    memory_used: int
    memory_total: int
    utilisation: int
    power_draw: float

    def __str__(self) -> str:
        mem_pct = int(self.memory_used / self.memory_total * 100) if self.memory_total else 0
        return (
            f"{self.name}\n"
            f"Temperature: {self.temperature:g}°C\n"
            f"Memory: {self.memory_used} MiB / {self.memory_total} MiB ({mem_pct}%)\n"
            f"Utilisation: {self.utilisation}%\n"
            f"Power: {self.power_draw:.1f}W"
        )

    @classmethod
    def from_dict(cls, data: dict) -> "GpuStatus":
        return cls(
            name=data["name"],
            temperature=float(data["temperature"]),
            memory_used=int(data["memory_used"]),
            memory_total=int(data["memory_total"]),
            utilisation=int(data["utilisation"]),
            power_draw=float(data.get("power_draw", 0.0)),
        )


@dataclass(frozen=True)
class DriveHealth:
    device: str
    model: str
    reallocated_sectors: int
    pending_sectors: int
    temperature: Optional[float]
    power_on_hours: int

    def __str__(self) -> str:
        temp = f"{self.temperature:.0f}" if self.temperature is not None else "N/A"
        return (
            f"{self.device} - {self.model}\n"
            f"  Reallocated Sectors: {self.reallocated_sectors}\n"
            f"  Pending Sectors: {self.pending_sectors}\n"
            f"  Temperature: {temp}°C\n"
            f"  Power On Hours: {self.power_on_hours}"
        )

    @classmethod
    def from_dict(cls, data: dict) -> "DriveHealth":
        temp = data.get("temperature")
        return cls(
            device=data["device"],
            model=data.get("model", "Unknown"),
            reallocated_sectors=int(data.get("reallocated_sectors", 0)),
            pending_sectors=int(data.get("pending_sectors", 0)),
            temperature=float(temp) if temp is not None else None,
            power_on_hours=int(data.get("power_on_hours", 0)),
        )


@dataclass(frozen=True)
class IpmiReading:
    sensor: str
    value: str
    status: str

    def __str__(self) -> str:
        return f"{self.sensor}: {self.value} ({self.status})"


def to_dict(record) -> dict:
    """JSON-friendly dict for any record (datetimes become ISO strings)."""
    data = asdict(record)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
    return data


class BaseCollector:
    """Base class for collectors."""
    name: str = "base"
    tool: str = ""
    required: bool = False

    def __init__(self, timeout: float = DEFAULT_TOOL_TIMEOUT):
        self.timeout = timeout

    async def collect(self):
        raise NotImplementedError

    def empty(self):
        """Result substituted when the collector is unavailable or optional-failed."""
        return []

    async def run_tool(self, *args: str) -> Tuple[int, str, str]:
        """Run the collector's tool; returns (returncode, stdout, stderr)."""
        if shutil.which(self.tool) is None:
            raise CollectorUnavailable(f"{self.tool} not found, is it installed?")
        return await run_command(self.tool, *args, timeout=self.timeout)


async def run_command(program: str, *args: str, timeout: float = DEFAULT_TOOL_TIMEOUT) -> Tuple[int, str, str]:
    """Run an external command with a timeout using an async subprocess."""
    try:
        proc = await asyncio.create_subprocess_exec(
            program, *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise CollectorUnavailable(f"{program} not found") from e
    except OSError as e:
        raise CollectorFailed(f"Failed to execute {program}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise CollectorFailed(f"{program} timed out after {timeout:g}s") from e

    return (
        proc.returncode,
        stdout.decode("utf-8", errors="replace"),
        stderr.decode("utf-8", errors="replace"),
    )
