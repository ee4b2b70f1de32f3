"""Tests for report rendering."""

import csv
import json
from datetime import UTC, datetime
from pathlib import Path
from unittest.mock import patch

import pytest

from linkhealth.aggregate import build_report, empty_report
from linkhealth.models import CheckError, CheckOutcome, Health, Record, RecordOutcome, UrlType
from linkhealth.reporter import CSV_HEADER, format_console_report, write_csv_report, write_json_report

NOW = datetime(2024, 3, 5, 14, 30, 15, tzinfo=UTC)


@pytest.fixture
def report():
    healthy = RecordOutcome(
        Record("a1", "Alpha"),
        tuple(
            CheckOutcome(url=f"https://example.com/a1/{t.label}", url_type=t, is_healthy=True, status_code=200)
            for t in UrlType
        ),
        Health.HEALTHY,
    )
    partial = RecordOutcome(
        Record("b2", "Beta"),
        (
            CheckOutcome(
                url="https://example.com/b2/component.png",
                url_type=UrlType.COMPONENT_SCREENSHOT,
                is_healthy=True,
                status_code=200,
                response_time_ms=12,
            ),
            CheckOutcome(
                url="https://store.example.com/download?filename=x.html&runID=9",
                url_type=UrlType.HTML_SOURCE,
                is_healthy=False,
                error=CheckError.TOOL_MISSING,
                error_message="absctl command not found - please install it",
            ),
            CheckOutcome.not_available(UrlType.SCREENSHOT),
        ),
        Health.PARTIAL,
    )
    broken = RecordOutcome(Record("c3", "Gamma"), (), Health.BROKEN)
    return build_report([healthy, partial, broken])


class TestFormatConsoleReport:
    """Tests for format_console_report function."""

    def test_contains_sections(self, report) -> None:
        """All sections are rendered for a report with results."""
        text = format_console_report(report)

        assert "EXECUTIVE SUMMARY" in text
        assert "URL TYPE SUMMARY" in text
        assert "RECORDS WITH ISSUES" in text
        assert "RECOMMENDATIONS" in text
        assert "Quick summary: 1 healthy, 1 partial, 1 broken of 3 records" in text

    def test_lists_issues(self, report) -> None:
        """Unhealthy records and their failing checks are listed."""
        text = format_console_report(report)

        assert "[PARTIAL] Beta (b2)" in text
        assert "[BROKEN] Gamma (c3)" in text
        assert "record could not be processed" in text
        assert "Screenshot_URL: not available" in text
        assert "ToolMissing" in text
        assert "Alpha" not in text

    def test_recommends_installing_tool(self, report) -> None:
        """A missing download tool produces an install recommendation."""
        assert "Install the artifact download tool" in format_console_report(report)

    def test_empty_report(self) -> None:
        """An empty report skips issue listing and needs no action."""
        text = format_console_report(empty_report())

        assert "RECORDS WITH ISSUES" not in text
        assert "No action needed" in text
        assert "Quick summary: 0 healthy, 0 partial, 0 broken of 0 records" in text


class TestWriteJsonReport:
    """Tests for write_json_report function."""

    def test_writes_timestamped_file(self, report, tmp_path: Path) -> None:
        """The JSON report is named after the run time and holds the full report."""
        path = write_json_report(report, tmp_path, now=NOW)

        assert path == tmp_path / "url-monitoring-report-2024-03-05T14-30-15.json"
        data = json.loads(path.read_text())
        assert data["generated_at"] == NOW.isoformat()
        assert data["summary"]["total_records"] == 3
        assert data["url_type_summary"]["HTML_Source__c"]["broken"] == 1
        assert [result["id"] for result in data["results"]] == ["a1", "b2", "c3"]

    def test_creates_directory(self, report, tmp_path: Path) -> None:
        """Missing output directories are created."""
        path = write_json_report(report, tmp_path / "nested" / "out", now=NOW)
        assert path.exists()

    def test_filename_and_generated_at_share_one_clock_read(self, report, tmp_path: Path) -> None:
        """Without an explicit time, the clock is read once for both stamps."""
        later = datetime(2024, 3, 5, 14, 30, 16, tzinfo=UTC)
        with patch("linkhealth.reporter.datetime") as mock_datetime:
            mock_datetime.now.side_effect = [NOW, later]
            path = write_json_report(report, tmp_path)

        assert path.name == "url-monitoring-report-2024-03-05T14-30-15.json"
        assert json.loads(path.read_text())["generated_at"] == NOW.isoformat()
        mock_datetime.now.assert_called_once_with(UTC)


class TestWriteCsvReport:
    """Tests for write_csv_report function."""

    def test_one_row_per_check(self, report, tmp_path: Path) -> None:
        """Each URL check becomes one row below the header."""
        path = write_csv_report(report, tmp_path, now=NOW)

        assert path.name == "url-monitoring-report-2024-03-05T14-30-15.csv"
        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))

        assert tuple(rows[0]) == CSV_HEADER
        assert len(rows) == 1 + 3 + 3
        beta_html = rows[5]
        assert beta_html[0] == "b2"
        assert beta_html[2] == "partial"
        assert beta_html[3] == "HTML_Source__c"
        assert beta_html[5] == "No"
        assert beta_html[7].startswith("ToolMissing")
        assert rows[4][8] == "12"
