"""Record health classification and report aggregation."""

from collections.abc import Iterable, Sequence

from .models import CheckOutcome, Health, MonitoringReport, RecordOutcome, UrlType, UrlTypeStats


def classify_health(checks: Sequence[CheckOutcome]) -> Health:
    """Derive a record's health from its per-URL outcomes.

    - broken: no outcomes, no available URL, or no healthy available URL.
    - partial: some available URLs unhealthy, or a field is missing.
    - healthy: every field present and healthy.
    """
    if not checks:
        return Health.BROKEN

    available = [check for check in checks if check.is_available]
    healthy_count = sum(1 for check in available if check.is_healthy)

    if not available or healthy_count == 0:
        return Health.BROKEN
    if healthy_count < len(available):
        return Health.PARTIAL
    if len(available) < len(checks):
        return Health.PARTIAL
    return Health.HEALTHY


def _empty_summary() -> dict[UrlType, UrlTypeStats]:
    return {url_type: UrlTypeStats() for url_type in UrlType}


def build_report(results: Iterable[RecordOutcome]) -> MonitoringReport:
    """Fold record outcomes into a MonitoringReport."""
    results = tuple(results)
    counts = {health: 0 for health in Health}
    totals = {url_type: [0, 0, 0, 0] for url_type in UrlType}  # total, healthy, broken, not_available

    for result in results:
        counts[result.health] += 1
        for check in result.checks:
            counters = totals[check.url_type]
            counters[0] += 1
            if check.is_healthy:
                counters[1] += 1
            elif not check.is_available:
                counters[3] += 1
            else:
                counters[2] += 1

    return MonitoringReport(
        total_records=len(results),
        healthy_records=counts[Health.HEALTHY],
        partial_records=counts[Health.PARTIAL],
        broken_records=counts[Health.BROKEN],
        url_type_summary={url_type: UrlTypeStats(*counters) for url_type, counters in totals.items()},
        results=results,
    )


def empty_report() -> MonitoringReport:
    """Report for a run that had no records to check."""
    return MonitoringReport(
        total_records=0,
        healthy_records=0,
        partial_records=0,
        broken_records=0,
        url_type_summary=_empty_summary(),
        results=(),
    )
