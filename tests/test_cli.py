"""Tests for the marvinous CLI: command dispatch and exit codes."""

import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import yaml

from marvinous import cli
from marvinous.__main__ import StructuredFormatter, setup_logging
from marvinous.collectors.manager import ReadingBundle
from marvinous.core.errors import BackendUnreachable, CollectionError, NoReportsForDate
from marvinous.core.pipeline import RunResult
from marvinous.output.report import Severity


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "marvinous.yaml"
    path.write_text(yaml.safe_dump({
        "general": {
            "report_dir": str(tmp_path / "reports"),
            "state_file": str(tmp_path / "state" / "previous.json"),
        },
    }))
    return str(path)


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("marvinous.__main__.setup_logging"):
        yield


def _pipeline_returning(result=None, error=None):
    pipeline = MagicMock()
    pipeline.run = AsyncMock(return_value=result, side_effect=error)
    return pipeline


class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 0
        assert "usage: marvinous" in capsys.readouterr().out

    def test_bad_config_exits_1(self, tmp_path):
        path = tmp_path / "marvinous.yaml"
        path.write_text(yaml.safe_dump({"ollama": {"endpoint": "nope"}}))
        assert cli.main(["--config", str(path), "reports"]) == 1

    def test_missing_config_exits_1(self, tmp_path):
        assert cli.main(["--config", str(tmp_path / "absent.yaml"), "reports"]) == 1

    def test_bad_date_rejected(self, config_file):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--config", config_file, "daily", "--date", "15/01/2025"])
        assert exc.value.code == 2


class TestRunCommand:
    def test_success(self, config_file, tmp_path):
        result = RunResult(
            bundle=ReadingBundle(),
            prompt="p",
            report_path=tmp_path / "reports" / "2025-01-15-14.md",
            severity=Severity.OK,
            state_saved=True,
        )
        with patch("marvinous.cli.CollectionPipeline", return_value=_pipeline_returning(result)):
            assert cli.main(["--config", config_file, "run"]) == 0

    def test_dry_run_prints_bundle(self, config_file, capsys):
        pipeline = _pipeline_returning(RunResult(bundle=ReadingBundle()))
        with patch("marvinous.cli.CollectionPipeline", return_value=pipeline):
            assert cli.main(["--config", config_file, "run", "--dry-run"]) == 0
        pipeline.run.assert_awaited_once_with(dry_run=True, show_prompt=False)
        assert '"system_logs": []' in capsys.readouterr().out

    def test_collection_error_exits_2(self, config_file):
        pipeline = _pipeline_returning(error=CollectionError("ipmi collection failed"))
        with patch("marvinous.cli.CollectionPipeline", return_value=pipeline):
            assert cli.main(["--config", config_file, "run"]) == 2

    def test_backend_error_exits_3(self, config_file):
        pipeline = _pipeline_returning(error=BackendUnreachable("connection refused"))
        with patch("marvinous.cli.CollectionPipeline", return_value=pipeline):
            assert cli.main(["--config", config_file, "run"]) == 3

    def test_dry_run_and_show_prompt_are_exclusive(self, config_file):
        with pytest.raises(SystemExit):
            cli.main(["--config", config_file, "run", "--dry-run", "--show-prompt"])


class TestDailyCommand:
    def test_no_reports_is_success(self, config_file, capsys):
        with patch("marvinous.core.daily.run_daily", AsyncMock(side_effect=NoReportsForDate("2025-01-14"))):
            assert cli.main(["--config", config_file, "daily", "--date", "2025-01-14"]) == 0
        assert "No reports found for date: 2025-01-14" in capsys.readouterr().out

    def test_real_rollup_without_reports(self, config_file):
        assert cli.main(["--config", config_file, "daily", "--date", "2025-01-14"]) == 0


class TestReportsCommand:
    def test_empty(self, config_file, capsys):
        assert cli.main(["--config", config_file, "reports"]) == 0
        assert "No reports" in capsys.readouterr().out

    def test_lists_reports(self, config_file, tmp_path, capsys):
        report_dir = tmp_path / "reports"
        report_dir.mkdir()
        (report_dir / "2025-01-15-14.md").write_text("## Summary\nCONCERN: fan2\n")
        assert cli.main(["--config", config_file, "reports", "-n", "5"]) == 0
        out = capsys.readouterr().out
        assert "2025-01-15-14.md" in out
        assert "CONCERN" in out


class TestStatusCommand:
    def test_unreachable_dashboard(self, tmp_path):
        path = tmp_path / "marvinous.yaml"
        path.write_text(yaml.safe_dump({"web": {"bind_address": "127.0.0.1", "port": 1}}))
        assert cli.main(["--config", str(path), "status"]) == 1


class TestLogging:
    def test_structured_fields_appended(self):
        formatter = StructuredFormatter(fmt="%(message)s")
        record = logging.LogRecord("marvinous.pipeline", logging.INFO, __file__, 1, "Report severity: OK", None, None)
        record.event = "report"
        record.severity = "OK"
        assert formatter.format(record) == 'Report severity: OK | {"event": "report", "severity": "OK"}'

    def test_plain_records_unchanged(self):
        formatter = StructuredFormatter(fmt="%(message)s")
        record = logging.LogRecord("marvinous", logging.INFO, __file__, 1, "hello", None, None)
        assert formatter.format(record) == "hello"

    def test_setup_logging_writes_file(self, config, tmp_path):
        config.general.log_file = str(tmp_path / "logs" / "marvinous.log")
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            setup_logging(config)
            logging.getLogger("marvinous.test").warning("disk is sulking")
            for handler in root.handlers:
                handler.flush()
            assert "disk is sulking" in (tmp_path / "logs" / "marvinous.log").read_text()
        finally:
            for handler in root.handlers:
                if handler not in saved_handlers:
                    handler.close()
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
