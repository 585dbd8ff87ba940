"""Tests for report artifacts and severity classification."""

from datetime import datetime, timezone

from marvinous.output.report import (
    Severity,
    classify,
    classify_report,
    daily_filename,
    extract_section,
    hourly_filename,
    is_hourly_for,
    parse_filename_timestamp,
    write_report,
)


def _report(summary_line: str, body: str = "") -> str:
    return (
        "# Marvinous Report: 2025-01-15 14:00\n\n"
        "## Summary\n"
        f"{summary_line}\n\n"
        "## Notable Events\n"
        f"{body}\n"
    )


class TestClassify:
    def test_colon_marker(self):
        assert classify(_report("WATCH: fan2 is slower than it was")) == Severity.WATCH

    def test_bracket_marker(self):
        assert classify(_report("[CONCERN] the pool is degraded")) == Severity.CONCERN

    def test_lowercase_marker_matches(self):
        assert classify(_report("ok: nothing to complain about, sadly")) == Severity.OK

    def test_only_summary_section_counts(self):
        """Words in the narrative below the summary never raise severity."""
        content = _report(
            "OK: Everything is fine. Depressingly fine.",
            body="- I considered declaring it CRITICAL: but it isn't",
        )
        assert classify(content) == Severity.OK

    def test_highest_marker_wins(self):
        assert classify(_report("WATCH: temps rising, CRITICAL: sda failing")) == Severity.CRITICAL

    def test_concern_beats_watch(self):
        assert classify(_report("[WATCH] fan noise [CONCERN] pending sectors")) == Severity.CONCERN

    def test_no_summary_section_is_unknown(self):
        assert classify("# Report\n\nCRITICAL: everything is on fire\n") == Severity.UNKNOWN

    def test_summary_without_marker_is_unknown(self):
        assert classify(_report("Life. Don't talk to me about life.")) == Severity.UNKNOWN

    def test_bare_word_without_marker_is_unknown(self):
        assert classify(_report("Nothing critical happened")) == Severity.UNKNOWN

    def test_summary_at_end_of_file(self):
        assert classify("# Report\n\n## Summary\nCONCERN: disk filling up") == Severity.CONCERN

    def test_daily_report_uses_day_overview(self):
        content = (
            "# Marvinous Daily Summary: 2025-01-15\n\n"
            "## Day Overview\n"
            "WATCH: a long, dull day\n\n"
            "## Key Events\n"
            "- CRITICAL: nothing, I was being dramatic\n"
        )
        assert classify_report("2025-01-15-DAILY.md", content) == Severity.WATCH
        assert classify_report("2025-01-15-14.md", content) == Severity.UNKNOWN

    def test_severity_ranks_are_ordered(self):
        ranks = [s.rank for s in (Severity.UNKNOWN, Severity.OK, Severity.WATCH,
                                  Severity.CONCERN, Severity.CRITICAL)]
        assert ranks == sorted(ranks)
        assert len(set(ranks)) == 5


class TestExtractSection:
    def test_stops_at_next_header(self):
        section = extract_section(_report("OK: fine", body="- something"))
        assert "OK: fine" in section
        assert "Notable Events" not in section

    def test_missing_section_is_empty(self):
        assert extract_section("no headers here") == ""


class TestFilenames:
    def test_hourly_filename(self):
        ts = datetime(2025, 1, 15, 9, 59, tzinfo=timezone.utc)
        assert hourly_filename(ts) == "2025-01-15-09.md"

    def test_daily_filename(self):
        assert daily_filename("2025-01-15") == "2025-01-15-DAILY.md"

    def test_is_hourly_for(self):
        assert is_hourly_for("2025-01-15-00.md", "2025-01-15")
        assert is_hourly_for("2025-01-15-23.md", "2025-01-15")
        assert not is_hourly_for("2025-01-15-DAILY.md", "2025-01-15")
        assert not is_hourly_for("2025-01-16-00.md", "2025-01-15")
        assert not is_hourly_for("2025-01-15-00.md.bak", "2025-01-15")
        assert not is_hourly_for("2025-01-15-xx.md", "2025-01-15")
        assert not is_hourly_for("2025-01-15-00.txt", "2025-01-15")

    def test_parse_hourly_timestamp(self):
        assert parse_filename_timestamp("2025-01-15-14.md") == datetime(2025, 1, 15, 14, tzinfo=timezone.utc)

    def test_parse_daily_timestamp_is_midnight(self):
        assert parse_filename_timestamp("2025-01-15-DAILY.md") == datetime(2025, 1, 15, tzinfo=timezone.utc)

    def test_parse_malformed_is_epoch(self):
        assert parse_filename_timestamp("notes.md") == datetime(1970, 1, 1, tzinfo=timezone.utc)


class TestWriteReport:
    def test_creates_directory(self, tmp_path, fixed_now):
        report_dir = tmp_path / "nested" / "reports"
        path = write_report(report_dir, fixed_now, "## Summary\nOK: fine\n")
        assert path == report_dir / "2025-01-15-14.md"
        assert path.read_text() == "## Summary\nOK: fine\n"

    def test_same_hour_overwrites(self, tmp_path, fixed_now):
        write_report(tmp_path, fixed_now, "first")
        path = write_report(tmp_path, fixed_now.replace(minute=55), "second")
        assert path.read_text() == "second"
        assert len(list(tmp_path.iterdir())) == 1
