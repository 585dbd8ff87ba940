"""Tests for collector parsers and the collector manager."""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from marvinous.collectors.base import (
    BaseCollector,
    CollectorFailed,
    CollectorUnavailable,
    DriveHealth,
    IpmiReading,
    SensorReading,
    run_command,
)
from marvinous.collectors.gpu import GpuCollector, parse_nvidia_csv
from marvinous.collectors.ipmi import IpmiCollector, filter_readings, parse_sdr_list
from marvinous.collectors.journal import JournalCollector, parse_journal_line, parse_journal_output
from marvinous.collectors.manager import CollectorManager
from marvinous.collectors.sensors import SensorsCollector, parse_sensors_json
from marvinous.collectors.smart import (
    AtaAttributes,
    GenericTemp,
    NvmeHealthLog,
    SmartCollector,
    parse_scan_json,
    parse_scan_text,
    parse_smartctl_json,
    resolve_shape,
)
from marvinous.core.config import BaselineConfig
from marvinous.core.errors import CollectionError


# ─── Fixtures ────────────────────────────────────────────────────────────────

def _journal_line(message="Started Session 4 of user root.", priority="6", unit="systemd-logind.service"):
    return json.dumps({
        "__REALTIME_TIMESTAMP": "1736949600000000",
        "PRIORITY": priority,
        "_SYSTEMD_UNIT": unit,
        "MESSAGE": message,
    })


SENSORS_JSON = json.dumps({
    "coretemp-isa-0000": {
        "Adapter": "ISA adapter",
        "Package id 0": {"temp1_input": 45.0, "temp1_max": 80.0, "temp1_crit": 100.0},
        "Core 0": {"temp2_input": 43.0},
    },
    "nct6798-isa-0290": {
        "Adapter": "ISA adapter",
        "fan2": {"fan2_input": 1100, "fan2_min": 0},
        "in0": {"in0_input": 1.02},
    },
})

NVME_JSON = json.dumps({
    "model_name": "Samsung SSD 980 PRO 2TB",
    "temperature": {"current": 40},
    "nvme_smart_health_information_log": {"temperature": 41, "power_on_hours": 8123},
})

ATA_JSON = json.dumps({
    "model_name": "WDC WD80EFAX",
    "temperature": {"current": 33},
    "ata_smart_attributes": {"table": [
        {"id": 5, "name": "Reallocated_Sector_Ct", "raw": {"value": 8}},
        {"id": 9, "name": "Power_On_Hours", "raw": {"value": 31000}},
        {"id": 194, "name": "Temperature_Celsius", "raw": {"value": 35}},
        {"id": 197, "name": "Current_Pending_Sector", "raw": {"value": 2}},
    ]},
})


class StaticCollector(BaseCollector):
    def __init__(self, name, result=None, error=None, required=False):
        super().__init__()
        self.name = name
        self._result = result if result is not None else []
        self._error = error
        self.required = required

    async def collect(self):
        if self._error:
            raise self._error
        return self._result


# ─── Parsers ─────────────────────────────────────────────────────────────────

class TestJournal:
    def test_parse_line(self):
        entry = parse_journal_line(_journal_line())
        assert entry.priority == 6
        assert entry.unit == "systemd-logind.service"
        assert entry.message == "Started Session 4 of user root."
        assert entry.timestamp.year == 2025

    def test_falls_back_to_syslog_identifier(self):
        line = json.dumps({"__REALTIME_TIMESTAMP": "1736949600000000", "SYSLOG_IDENTIFIER": "sshd", "MESSAGE": "x"})
        assert parse_journal_line(line).unit == "sshd"

    def test_byte_array_message(self):
        line = json.dumps({"__REALTIME_TIMESTAMP": "1736949600000000", "MESSAGE": [104, 105]})
        assert parse_journal_line(line).message == "hi"

    def test_unusable_lines_skipped(self):
        stdout = "\n".join([
            "not json",
            json.dumps({"MESSAGE": "no timestamp"}),
            _journal_line("kept"),
            "",
        ])
        entries = parse_journal_output(stdout, max_entries=10)
        assert [e.message for e in entries] == ["kept"]

    def test_max_entries(self):
        stdout = "\n".join(_journal_line(f"m{i}") for i in range(5))
        assert len(parse_journal_output(stdout, max_entries=3)) == 3

    def test_names(self):
        assert JournalCollector("1 hour ago", 5, 100).name == "system_logs"
        assert JournalCollector("1 hour ago", 5, 100, kernel=True).name == "kernel_logs"

    def test_nonzero_exit_fails(self):
        collector = JournalCollector("1 hour ago", 5, 100)
        with patch.object(collector, "run_tool", AsyncMock(return_value=(1, "", "Failed to open journal"))):
            with pytest.raises(CollectorFailed):
                asyncio.run(collector.collect())

    def test_priority_argument(self):
        collector = JournalCollector("2 hours ago", 4, 100)
        run_tool = AsyncMock(return_value=(0, _journal_line(), ""))
        with patch.object(collector, "run_tool", run_tool):
            asyncio.run(collector.collect())
        args = run_tool.await_args.args
        assert "--priority=0..4" in args
        assert "2 hours ago" in args


class TestSensors:
    def test_parse(self):
        readings = parse_sensors_json(SENSORS_JSON)
        assert SensorReading("coretemp-isa-0000", "Package id 0", 45.0, "°C") in readings
        assert SensorReading("nct6798-isa-0290", "fan2", 1100.0, "RPM") in readings
        assert SensorReading("nct6798-isa-0290", "in0", 1.02, "V") in readings
        assert len(readings) == 4

    def test_invalid_json_fails(self):
        with pytest.raises(CollectorFailed):
            parse_sensors_json("{")

    def test_no_sensors_is_unavailable(self):
        collector = SensorsCollector()
        with patch.object(collector, "run_tool", AsyncMock(return_value=(1, "", "No sensors found!"))):
            with pytest.raises(CollectorUnavailable):
                asyncio.run(collector.collect())


class TestGpu:
    def test_parse(self):
        gpu = parse_nvidia_csv("NVIDIA GeForce RTX 3090, 52, 6000, 24576, 35, 180.50\n")
        assert gpu.name == "NVIDIA GeForce RTX 3090"
        assert gpu.temperature == 52.0
        assert gpu.memory_total == 24576
        assert gpu.power_draw == 180.5

    def test_power_not_available(self):
        gpu = parse_nvidia_csv("Tesla P4, 40, 100, 7611, 0, [N/A]")
        assert gpu.power_draw == 0.0

    def test_too_few_fields(self):
        with pytest.raises(CollectorFailed):
            parse_nvidia_csv("Tesla P4, 40")

    def test_empty_output_is_no_gpu(self):
        assert parse_nvidia_csv("") is None

    def test_no_devices_is_no_gpu(self):
        collector = GpuCollector()
        with patch.object(collector, "run_tool", AsyncMock(return_value=(6, "No devices were found", ""))):
            assert asyncio.run(collector.collect()) is None

    def test_required_flag_follows_optional(self):
        assert GpuCollector(optional=True).required is False
        assert GpuCollector(optional=False).required is True
        assert GpuCollector().empty() is None


class TestSmart:
    def test_nvme_shape(self):
        assert isinstance(resolve_shape(json.loads(NVME_JSON)), NvmeHealthLog)
        drive = parse_smartctl_json("/dev/nvme0", NVME_JSON)
        assert drive == DriveHealth("/dev/nvme0", "Samsung SSD 980 PRO 2TB", 0, 0, 41.0, 8123)

    def test_ata_shape(self):
        assert isinstance(resolve_shape(json.loads(ATA_JSON)), AtaAttributes)
        drive = parse_smartctl_json("/dev/sda", ATA_JSON)
        assert drive.reallocated_sectors == 8
        assert drive.pending_sectors == 2
        assert drive.temperature == 35.0
        assert drive.power_on_hours == 31000

    def test_generic_shape(self):
        data = {"model_name": "USB bridge", "temperature": {"current": 29}}
        assert resolve_shape(data) == GenericTemp(temperature=29.0)
        drive = parse_smartctl_json("/dev/sdb", json.dumps(data))
        assert drive.temperature == 29.0
        assert drive.power_on_hours == 0

    def test_no_temperature_anywhere(self):
        drive = parse_smartctl_json("/dev/sdc", json.dumps({}))
        assert drive.model == "Unknown"
        assert drive.temperature is None

    def test_scan_parsers(self):
        assert parse_scan_json(json.dumps({"devices": [{"name": "/dev/sda"}, {"name": "/dev/nvme0"}]})) == [
            "/dev/sda", "/dev/nvme0",
        ]
        assert parse_scan_text("/dev/sda -d sat # /dev/sda, ATA device\n/dev/nvme0 -d nvme\n") == [
            "/dev/sda", "/dev/nvme0",
        ]

    def test_bad_device_is_skipped(self):
        collector = SmartCollector(["/dev/sda", "/dev/sdz"])

        async def fake_run_tool(*args):
            return (0, ATA_JSON, "") if args[-1] == "/dev/sda" else (2, "garbage", "")

        with patch.object(collector, "run_tool", side_effect=fake_run_tool):
            drives = asyncio.run(collector.collect())
        assert [d.device for d in drives] == ["/dev/sda"]


class TestIpmi:
    SDR = (
        "CPU Temp         | 45 degrees C      | ok\n"
        "DIMM_A1          | no reading        | ns\n"
        "DIMM_B1          | no reading        | ns\n"
        "SYS_FAN1         | no reading        | ns\n"
        "CPU_FAN1         | 1200 RPM          | ok\n"
        "PSU Status       | no reading        | ns\n"
        "garbage line\n"
    )

    def test_parse(self):
        readings = parse_sdr_list(self.SDR)
        assert len(readings) == 6
        assert readings[0] == IpmiReading("CPU Temp", "45 degrees C", "ok")

    def test_filter_drops_empty_slots_keeps_installed(self):
        baseline = BaselineConfig(installed_slots=["DIMM_A1"], installed_fans=[])
        kept = [r.sensor for r in filter_readings(parse_sdr_list(self.SDR), baseline)]
        assert kept == ["CPU Temp", "DIMM_A1", "CPU_FAN1", "PSU Status"]

    def test_cannot_open_device_fails(self):
        collector = IpmiCollector(BaselineConfig(), optional=False)
        stderr = "Could not open device at /dev/ipmi0: No such file or directory"
        with patch.object(collector, "run_tool", AsyncMock(return_value=(1, "", stderr))):
            with pytest.raises(CollectorFailed):
                asyncio.run(collector.collect())

    def test_other_failure_is_empty(self):
        collector = IpmiCollector(BaselineConfig())
        with patch.object(collector, "run_tool", AsyncMock(return_value=(1, "", "Get SDR failed"))):
            assert asyncio.run(collector.collect()) == []


class TestRunCommand:
    def test_missing_binary_is_unavailable(self):
        with pytest.raises(CollectorUnavailable):
            asyncio.run(run_command("marvinous-no-such-tool-xyz"))

    def test_missing_tool_on_path_is_unavailable(self):
        collector = SensorsCollector()
        collector.tool = "marvinous-no-such-tool-xyz"
        with pytest.raises(CollectorUnavailable):
            asyncio.run(collector.collect())

    def test_captures_output(self):
        rc, stdout, _ = asyncio.run(run_command("echo", "hello"))
        assert rc == 0
        assert stdout.strip() == "hello"

    def test_timeout_fails(self):
        with pytest.raises(CollectorFailed):
            asyncio.run(run_command("sleep", "5", timeout=0.2))


# ─── Manager ─────────────────────────────────────────────────────────────────

class TestCollectorManager:
    def test_assembles_bundle(self, config, sensor_readings, gpu_status):
        manager = CollectorManager(config, collectors=[
            StaticCollector("sensors", sensor_readings),
            StaticCollector("gpu", gpu_status),
            StaticCollector("drives", []),
        ])
        bundle = asyncio.run(manager.collect())
        assert bundle.sensors == sensor_readings
        assert bundle.gpu == gpu_status
        assert bundle.system_logs == []
        assert bundle.previous is None

    def test_unavailable_is_empty_even_if_required(self, config):
        manager = CollectorManager(config, collectors=[
            StaticCollector("ipmi", error=CollectorUnavailable("ipmitool not found"), required=True),
        ])
        assert asyncio.run(manager.collect()).ipmi == []

    def test_optional_failure_is_empty(self, config):
        manager = CollectorManager(config, collectors=[
            StaticCollector("ipmi", error=CollectorFailed("IPMI modules not loaded")),
            StaticCollector("sensors", [SensorReading("c", "s", 1.0, "V")]),
        ])
        bundle = asyncio.run(manager.collect())
        assert bundle.ipmi == []
        assert len(bundle.sensors) == 1

    def test_required_failure_raises(self, config):
        manager = CollectorManager(config, collectors=[
            StaticCollector("sensors", []),
            StaticCollector("ipmi", error=CollectorFailed("IPMI modules not loaded"), required=True),
        ])
        with pytest.raises(CollectionError) as exc:
            asyncio.run(manager.collect())
        assert "ipmi" in str(exc.value)
        assert exc.value.exit_code == 2

    def test_from_config(self, config):
        config.collection.include_kernel = False
        config.ipmi.optional = False
        config.gpu.enabled = False
        names = [c.name for c in CollectorManager(config).collectors]
        assert names == ["system_logs", "sensors", "ipmi", "drives"]
        ipmi = next(c for c in CollectorManager(config).collectors if c.name == "ipmi")
        assert ipmi.required is True

    def test_bundle_snapshot_and_dict(self, config, sensor_readings, drive_health):
        manager = CollectorManager(config, collectors=[
            StaticCollector("sensors", sensor_readings),
            StaticCollector("drives", drive_health),
        ])
        bundle = asyncio.run(manager.collect())
        snapshot = bundle.snapshot()
        assert snapshot.sensors == sensor_readings
        assert snapshot.drives == drive_health
        assert snapshot.gpu is None
        data = bundle.to_dict()
        assert data["drives"][0]["device"] == "/dev/nvme0"
        assert data["gpu"] is None
