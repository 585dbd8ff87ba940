"""
Collectors — thin adapters over journalctl, lm-sensors, nvidia-smi, smartctl and ipmitool.
"""

from marvinous.collectors.base import (
    CollectorFailed,
    CollectorUnavailable,
    DriveHealth,
    GpuStatus,
    IpmiReading,
    LogEntry,
    SensorReading,
)

__all__ = [
    "CollectorFailed",
    "CollectorUnavailable",
    "DriveHealth",
    "GpuStatus",
    "IpmiReading",
    "LogEntry",
    "SensorReading",
]
