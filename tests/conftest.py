"""Shared fixtures — configs pointed at tmp_path, canned readings."""

from datetime import datetime, timezone

import pytest

from marvinous.collectors.base import DriveHealth, GpuStatus, SensorReading
from marvinous.core.config import MarvinousConfig


@pytest.fixture
def config(tmp_path):
    """Default config with every writable path inside tmp_path."""
    cfg = MarvinousConfig()
    cfg.general.report_dir = str(tmp_path / "reports")
    cfg.general.state_file = str(tmp_path / "state" / "previous.json")
    cfg.general.prompt_file = str(tmp_path / "system-prompt.txt")
    cfg.ollama.endpoint = "http://127.0.0.1:1"
    cfg.ollama.retry_delay_secs = 0
    return cfg


@pytest.fixture
def sensor_readings():
    return [
        SensorReading(chip="coretemp-isa-0000", sensor="Package id 0", value=45.0, unit="°C"),
        SensorReading(chip="nct6798-isa-0290", sensor="fan2", value=1100.0, unit="RPM"),
    ]


@pytest.fixture
def gpu_status():
    return GpuStatus(
        name="NVIDIA GeForce RTX 3090",
        temperature=52.0,
        memory_used=6000,
        memory_total=24576,
        utilisation=35,
        power_draw=180.5,
    )


@pytest.fixture
def drive_health():
    return [
        DriveHealth(
            device="/dev/nvme0",
            model="Samsung SSD 980 PRO 2TB",
            reallocated_sectors=0,
            pending_sectors=0,
            temperature=41.0,
            power_on_hours=8123,
        ),
    ]


@pytest.fixture
def fixed_now():
    return datetime(2025, 1, 15, 14, 5, tzinfo=timezone.utc)
