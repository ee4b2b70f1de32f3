"""Monitoring run: wires the checking engine together and runs it once."""

import logging

import aiohttp

from .auth import AuthTokenCache
from .checker import HealthChecker, RetryPolicy
from .config import Config
from .models import MonitoringReport
from .scheduler import BatchScheduler
from .sources import RecordSource
from .store import ManagedStoreClient

logger = logging.getLogger(__name__)


class Monitor:
    """Fetches records from a source and checks all of their URLs.

    Example:
        monitor = Monitor(config, FileRecordSource("records.yaml"))
        report = await monitor.run()
    """

    def __init__(
        self,
        config: Config,
        source: RecordSource,
        token_cache: AuthTokenCache | None = None,
    ) -> None:
        """Initialize the monitor.

        Args:
            config: Application configuration.
            source: Where to fetch records from.
            token_cache: Token cache to use; created from config when auto
                auth is enabled and none is given.
        """
        self._config = config
        self._source = source
        if token_cache is None and config.auth.use_auto_auth:
            token_cache = AuthTokenCache(config.auth.credential_tool)
        self._token_cache = token_cache

    @property
    def token_cache(self) -> AuthTokenCache | None:
        return self._token_cache

    async def run(self) -> MonitoringReport:
        """Run one monitoring pass and return the report.

        Raises:
            SourceError: If the record source fails.
        """
        records = await self._source.fetch_records()
        checker_config = self._config.checker

        store = ManagedStoreClient(
            self._config.auth,
            timeout=checker_config.request_timeout_seconds,
            token_cache=self._token_cache,
        )

        async with aiohttp.ClientSession() as session:
            checker = HealthChecker(checker_config, session, store)
            policy = RetryPolicy(checker, checker_config.retry_attempts)
            scheduler = BatchScheduler(
                policy,
                checker_config.max_concurrent_checks,
                batch_delay=checker_config.batch_delay_seconds,
                strategy=checker_config.strategy,
            )
            report = await scheduler.run(records)

        logger.info(
            "Monitoring finished: %d healthy, %d partial, %d broken",
            report.healthy_records,
            report.partial_records,
            report.broken_records,
        )
        return report
