"""Rendering of monitoring reports to text, JSON and CSV."""

import csv
import json
import logging
from datetime import UTC, datetime
from pathlib import Path

from .models import CheckError, Health, MonitoringReport

logger = logging.getLogger(__name__)

REPORT_PREFIX = "url-monitoring-report"

CSV_HEADER = (
    "Record ID",
    "Record Name",
    "Overall Health",
    "URL Type",
    "URL",
    "Is Healthy",
    "Status Code",
    "Error",
    "Response Time (ms)",
)


def _timestamp(now: datetime | None) -> str:
    now = now or datetime.now(UTC)
    return now.strftime("%Y-%m-%dT%H-%M-%S")


def _summary_lines(report: MonitoringReport) -> list[str]:
    lines = ["EXECUTIVE SUMMARY", "-" * 50]
    lines.append(f"{'Total Records':<20}{report.total_records:>8}   100.0%")
    for label, count in (
        ("Healthy Records", report.healthy_records),
        ("Partial Records", report.partial_records),
        ("Broken Records", report.broken_records),
    ):
        lines.append(f"{label:<20}{count:>8}   {report.percent(count):5.1f}%")
    return lines


def _url_type_lines(report: MonitoringReport) -> list[str]:
    lines = ["URL TYPE SUMMARY", "-" * 50]
    lines.append(f"{'URL Type':<28}{'Total':>7}{'Healthy':>9}{'Broken':>8}{'N/A':>6}{'Health %':>10}")
    for url_type, stats in report.url_type_summary.items():
        if stats.total == 0:
            continue
        lines.append(
            f"{url_type.label:<28}{stats.total:>7}{stats.healthy:>9}{stats.broken:>8}"
            f"{stats.not_available:>6}{stats.health_percent:>9.1f}%"
        )
    return lines


def _issue_lines(report: MonitoringReport) -> list[str]:
    lines = ["RECORDS WITH ISSUES", "-" * 50]
    issues = [result for result in report.results if result.health is not Health.HEALTHY]
    if not issues:
        lines.append("None")
        return lines

    for result in issues:
        lines.append(f"[{result.health.value.upper()}] {result.record.name} ({result.record.id})")
        if not result.checks:
            lines.append("    record could not be processed")
        for check in result.checks:
            if check.is_healthy:
                continue
            if check.error is CheckError.NOT_AVAILABLE:
                lines.append(f"    {check.url_type.label}: not available")
            else:
                lines.append(f"    {check.url_type.label}: {check.describe_error()}")
                lines.append(f"        {check.url}")
    return lines


def _recommendation_lines(report: MonitoringReport) -> list[str]:
    lines = ["RECOMMENDATIONS", "-" * 50]
    errors = {check.error for result in report.results for check in result.checks if check.error}

    if report.broken_records:
        lines.append(f"- Investigate {report.broken_records} broken record(s) first")
    if report.partial_records:
        lines.append(f"- Review {report.partial_records} partially healthy record(s)")
    if CheckError.TOOL_MISSING in errors:
        lines.append("- Install the artifact download tool to check managed-store URLs")
    if errors & {CheckError.AUTH_FAILED, CheckError.AUTH_FAILED_AFTER_REFRESH}:
        lines.append("- Log in to the credential tool again; managed-store authentication failed")
    if errors & {CheckError.TIMEOUT, CheckError.NETWORK_UNREACHABLE}:
        lines.append("- Check network connectivity or raise the request timeout")
    if len(lines) == 2:
        lines.append("- No action needed, all URLs are healthy")
    return lines


def format_console_report(report: MonitoringReport) -> str:
    """Render a report as plain text for the terminal."""
    sections = [
        ["=" * 80, "URL MONITORING REPORT", "=" * 80],
        _summary_lines(report),
        _url_type_lines(report),
    ]
    if report.results:
        sections.append(_issue_lines(report))
    sections.append(_recommendation_lines(report))
    sections.append(
        [
            f"Quick summary: {report.healthy_records} healthy, {report.partial_records} partial, "
            f"{report.broken_records} broken of {report.total_records} records",
            "=" * 80,
        ]
    )
    return "\n\n".join("\n".join(section) for section in sections)


def write_json_report(report: MonitoringReport, directory: str | Path, now: datetime | None = None) -> Path:
    """Write the report as JSON and return the file path."""
    now = now or datetime.now(UTC)
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{REPORT_PREFIX}-{_timestamp(now)}.json"

    payload = {"generated_at": now.isoformat(), **report.to_dict()}
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    logger.info("JSON report saved to %s", path)
    return path


def write_csv_report(report: MonitoringReport, directory: str | Path, now: datetime | None = None) -> Path:
    """Write one CSV row per URL check and return the file path."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{REPORT_PREFIX}-{_timestamp(now)}.csv"

    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for result in report.results:
            for check in result.checks:
                writer.writerow(
                    (
                        result.record.id,
                        result.record.name,
                        result.health.value,
                        check.url_type.value,
                        check.url,
                        "Yes" if check.is_healthy else "No",
                        check.status_code if check.status_code is not None else "",
                        check.describe_error(),
                        check.response_time_ms if check.response_time_ms is not None else "",
                    )
                )

    logger.info("CSV report saved to %s", path)
    return path
