"""Batched, concurrent checking of records."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from .aggregate import build_report, classify_health, empty_report
from .checker import RetryPolicy
from .models import CheckError, CheckOutcome, Health, MonitoringReport, Record, RecordOutcome, UrlType

logger = logging.getLogger(__name__)

# Pause between batches, in seconds, to throttle load on upstream systems.
DEFAULT_BATCH_DELAY = 1.0


def partition(records: Sequence[Record], size: int) -> list[list[Record]]:
    """Split records into consecutive batches of at most size records."""
    if size < 1:
        raise ValueError(f"Batch size must be at least 1, got {size}")
    return [list(records[i : i + size]) for i in range(0, len(records), size)]


class BatchScheduler:
    """Runs record checks with bounded concurrency.

    Two throttling strategies are supported:

    - "batch": records are processed in consecutive batches of
      max_concurrent_checks, with a fixed pause between batches.
    - "pool": all records are scheduled at once and a semaphore keeps at
      most max_concurrent_checks records in flight, without pauses.

    A record whose task raises is reported as broken with no checks; it never
    aborts the batch or the run.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        max_concurrent_checks: int,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        strategy: str = "batch",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_concurrent_checks < 1:
            raise ValueError(f"max_concurrent_checks must be at least 1, got {max_concurrent_checks}")
        if strategy not in ("batch", "pool"):
            raise ValueError(f"Unknown strategy: {strategy}")
        self._policy = policy
        self._max_concurrent = max_concurrent_checks
        self._batch_delay = batch_delay
        self._strategy = strategy
        self._sleep = sleep

    async def run(self, records: Sequence[Record]) -> MonitoringReport:
        """Check every record and aggregate the results into a report."""
        if not records:
            logger.warning("No records found with URLs")
            return empty_report()

        logger.info("Processing %d records", len(records))

        if self._strategy == "pool":
            results = await self._run_pool(records)
        else:
            results = await self._run_batches(records)

        return build_report(results)

    async def _run_batches(self, records: Sequence[Record]) -> list[RecordOutcome]:
        batches = partition(records, self._max_concurrent)
        results: list[RecordOutcome] = []

        for index, batch in enumerate(batches, start=1):
            logger.info("Processing batch %d/%d...", index, len(batches))
            settled = await asyncio.gather(
                *(self.check_record(record) for record in batch),
                return_exceptions=True,
            )
            results.extend(self._settle(record, result) for record, result in zip(batch, settled))

            if index < len(batches):
                await self._sleep(self._batch_delay)

        return results

    async def _run_pool(self, records: Sequence[Record]) -> list[RecordOutcome]:
        semaphore = asyncio.Semaphore(self._max_concurrent)

        async def guarded(record: Record) -> RecordOutcome:
            async with semaphore:
                return await self.check_record(record)

        settled = await asyncio.gather(*(guarded(record) for record in records), return_exceptions=True)
        return [self._settle(record, result) for record, result in zip(records, settled)]

    @staticmethod
    def _settle(record: Record, result: RecordOutcome | BaseException) -> RecordOutcome:
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.error("Error processing record %s: %s", record.name, result)
            return RecordOutcome(record=record, checks=(), health=Health.BROKEN)
        return result

    async def _check_field(self, record: Record, url_type: UrlType) -> CheckOutcome:
        url = record.url_for(url_type)
        if url is None:
            return CheckOutcome.not_available(url_type)
        return await self._policy.check_with_retry(url, url_type)

    async def check_record(self, record: Record) -> RecordOutcome:
        """Check all URL fields of a record concurrently."""
        url_types = list(UrlType)
        settled = await asyncio.gather(
            *(self._check_field(record, url_type) for url_type in url_types),
            return_exceptions=True,
        )

        checks: list[CheckOutcome] = []
        for url_type, result in zip(url_types, settled):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error("Unexpected error during %s check of %s: %s", url_type.label, record.name, result)
                result = CheckOutcome(
                    url=record.url_for(url_type) or "",
                    url_type=url_type,
                    is_healthy=False,
                    error=CheckError.UNEXPECTED_FAILURE,
                    error_message="Unexpected error during URL check",
                    response_time_ms=0,
                )
            checks.append(result)

        health = classify_health(checks)
        logger.info(
            "Processed %s: %s (%d/%d URLs healthy, %d available)",
            record.name,
            health.value,
            sum(1 for check in checks if check.is_healthy),
            len(checks),
            sum(1 for check in checks if check.is_available),
        )
        return RecordOutcome(record=record, checks=tuple(checks), health=health)
