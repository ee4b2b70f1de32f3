"""URL health checks with bounded retries."""

import asyncio
import logging
import socket
import time
from collections.abc import Awaitable, Callable

import aiohttp

from .config import CheckerConfig
from .models import CheckError, CheckOutcome, UrlType
from .store import ManagedStoreClient, is_managed_store_url

logger = logging.getLogger(__name__)

# Redirect hops followed by a generic HTTP check before giving up.
MAX_REDIRECTS = 5


def _is_success_status(status_code: int) -> bool:
    """2xx and 3xx responses count as healthy."""
    return 200 <= status_code < 400


class HealthChecker:
    """Checks a single URL, dispatching managed-store URLs to the store client.

    Generic URLs are checked with a HEAD request. Every failure is returned as
    an unhealthy CheckOutcome with a classified error instead of being raised.
    """

    def __init__(
        self,
        config: CheckerConfig,
        session: aiohttp.ClientSession,
        store: ManagedStoreClient,
    ) -> None:
        self._config = config
        self._session = session
        self._store = store

    async def check_url(self, url: str, url_type: UrlType) -> CheckOutcome:
        """Check one URL and return its outcome."""
        if is_managed_store_url(url):
            logger.debug("Checking %s via managed store", url)
            return await self._store.check(url, url_type)
        return await self._check_http(url, url_type)

    async def _check_http(self, url: str, url_type: UrlType) -> CheckOutcome:
        start = time.monotonic()

        def outcome(
            is_healthy: bool,
            error: CheckError | None = None,
            message: str | None = None,
            status_code: int | None = None,
        ) -> CheckOutcome:
            return CheckOutcome(
                url=url,
                url_type=url_type,
                is_healthy=is_healthy,
                status_code=status_code,
                error=error,
                error_message=message,
                response_time_ms=int((time.monotonic() - start) * 1000),
            )

        try:
            async with self._session.head(
                url,
                timeout=aiohttp.ClientTimeout(total=self._config.request_timeout_seconds),
                headers={"User-Agent": self._config.user_agent},
                allow_redirects=True,
                max_redirects=MAX_REDIRECTS,
            ) as response:
                status = response.status
        # TimeoutError is an OSError subclass, so it must be matched first.
        except asyncio.TimeoutError:
            return outcome(False, CheckError.TIMEOUT, "Request timeout")
        except (aiohttp.ClientConnectorError, socket.gaierror, ConnectionRefusedError) as e:
            return outcome(
                False,
                CheckError.NETWORK_UNREACHABLE,
                f"DNS resolution failed or connection refused: {e}",
            )
        except aiohttp.ClientResponseError as e:
            return outcome(False, CheckError.HTTP_ERROR, f"HTTP {e.status}", status_code=e.status)
        # Malformed URLs surface as aiohttp.InvalidURL or a bare ValueError.
        except (aiohttp.ClientError, OSError, ValueError) as e:
            return outcome(False, CheckError.TRANSPORT_ERROR, str(e) or type(e).__name__)

        if _is_success_status(status):
            return outcome(True, status_code=status)
        return outcome(False, CheckError.HTTP_ERROR, f"HTTP {status}", status_code=status)


class RetryPolicy:
    """Retries unhealthy checks with exponential backoff.

    Attempt n (1-based) that is not the last is followed by a wait of
    backoff_base ** n seconds. The first healthy outcome is returned at once.
    """

    def __init__(
        self,
        checker: HealthChecker,
        retry_attempts: int,
        backoff_base: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if retry_attempts < 1:
            raise ValueError(f"retry_attempts must be at least 1, got {retry_attempts}")
        self._checker = checker
        self._retry_attempts = retry_attempts
        self._backoff_base = backoff_base
        self._sleep = sleep

    @property
    def retry_attempts(self) -> int:
        return self._retry_attempts

    async def check_with_retry(self, url: str, url_type: UrlType) -> CheckOutcome:
        """Check a URL up to retry_attempts times and return the final outcome."""
        last: CheckOutcome | None = None

        for attempt in range(1, self._retry_attempts + 1):
            try:
                result = await self._checker.check_url(url, url_type)
            except Exception as e:
                logger.warning("Unexpected error checking %s (attempt %d): %s", url, attempt, e)
                result = CheckOutcome(
                    url=url,
                    url_type=url_type,
                    is_healthy=False,
                    error=CheckError.UNEXPECTED_FAILURE,
                    error_message=str(e) or type(e).__name__,
                    response_time_ms=0,
                )

            if result.is_healthy:
                return result
            last = result

            if attempt < self._retry_attempts:
                delay = self._backoff_base**attempt
                logger.debug(
                    "%s unhealthy (%s), retrying in %gs (attempt %d/%d)",
                    url,
                    result.describe_error(),
                    delay,
                    attempt,
                    self._retry_attempts,
                )
                await self._sleep(delay)

        if last is None:
            return CheckOutcome(
                url=url,
                url_type=url_type,
                is_healthy=False,
                error=CheckError.ALL_RETRIES_FAILED,
                error_message="All retry attempts failed",
                response_time_ms=0,
            )
        return last
