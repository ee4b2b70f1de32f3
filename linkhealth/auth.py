"""Authentication token cache backed by an external credential tool.

The credential tool prints a bearer token when the user is logged in. The
token is cached with an assumed lifetime and refreshed proactively shortly
before that lifetime runs out, or on demand after a downstream
authentication failure.
"""

import asyncio
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass

from .tools import ToolTimeoutError, find_tool, run_tool

logger = logging.getLogger(__name__)

# Refresh the token this long before its assumed expiry.
TOKEN_REFRESH_THRESHOLD_MS = 5 * 60 * 1000

# Real expiry is never parsed from the token; most tokens live an hour.
ASSUMED_TOKEN_TTL_MS = 55 * 60 * 1000

# Maximum age of a token whose TTL is unknown.
UNKNOWN_TTL_MAX_AGE_MS = 30 * 60 * 1000

CREDENTIAL_TOOL_TIMEOUT = 30

TOKEN_PREFIX = "eyJ"
_TOKEN_PATTERN = re.compile(r"eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+")


class AuthError(Exception):
    """Raised when a token cannot be obtained from the credential tool."""

    pass


class ToolMissingError(AuthError):
    """The credential tool is not installed or not on PATH."""


class TokenNotFoundError(AuthError):
    """The credential tool ran but printed nothing that looks like a token."""


class NotAuthenticatedError(AuthError):
    """The user is not logged in to the credential tool."""


class AuthTimeoutError(AuthError):
    """The credential tool did not answer in time."""


@dataclass(frozen=True)
class AuthToken:
    """A cached credential.

    Attributes:
        value: Opaque token string.
        retrieved_at: Clock reading (seconds) when the token was retrieved.
        ttl_ms: Assumed time-to-live in milliseconds, or None if unknown.
    """

    value: str
    retrieved_at: float
    ttl_ms: int | None = None

    def is_stale(self, now: float) -> bool:
        """Check whether the token should be refreshed before use."""
        age_ms = (now - self.retrieved_at) * 1000
        if self.ttl_ms is None:
            return age_ms > UNKNOWN_TTL_MAX_AGE_MS
        return self.ttl_ms - age_ms <= TOKEN_REFRESH_THRESHOLD_MS


def extract_token(output: str) -> str | None:
    """Find a bearer token in credential tool output.

    Prefers a line that starts with the token prefix and falls back to a
    three-segment, dot-delimited pattern anywhere in the output.
    """
    for line in output.splitlines():
        line = line.strip()
        if line.startswith(TOKEN_PREFIX):
            return line

    match = _TOKEN_PATTERN.search(output)
    if match:
        return match.group(0)
    return None


def format_as_cookie(token: str) -> str:
    """Format a token as the cookie string expected by the download tool."""
    return f"jwt={token}"


def _mask_token(token: str, visible_chars: int = 6) -> str:
    """Mask a token for logging, keeping only the first few characters."""
    if len(token) <= visible_chars:
        return "***"
    return f"{token[:visible_chars]}...({len(token)} chars)"


class AuthTokenCache:
    """Single-slot token cache with proactive expiry and forced refresh.

    Concurrent callers are coalesced: while one retrieval is running, other
    callers wait on the same lock and then reuse its result instead of
    invoking the credential tool again.

    Example:
        cache = AuthTokenCache("absctl")
        token = await cache.get_token()
        cookie = format_as_cookie(token)
    """

    def __init__(
        self,
        tool: str = "absctl",
        timeout: float = CREDENTIAL_TOOL_TIMEOUT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            tool: Name or path of the credential tool.
            timeout: Seconds to wait for the credential tool.
            clock: Monotonic clock returning seconds, injectable for tests.
        """
        self._tool = tool
        self._timeout = timeout
        self._clock = clock
        self._token: AuthToken | None = None
        self._lock = asyncio.Lock()
        # Bumped on every successful retrieval so waiting refreshers can
        # tell that someone else already refreshed.
        self._generation = 0

    @property
    def tool(self) -> str:
        return self._tool

    @property
    def cached_token(self) -> AuthToken | None:
        return self._token

    def _fresh_cached_value(self) -> str | None:
        token = self._token
        if token is not None and not token.is_stale(self._clock()):
            return token.value
        return None

    async def get_token(self) -> str:
        """Return a usable token, retrieving a new one if needed.

        Raises:
            AuthError: If no token can be retrieved.
        """
        cached = self._fresh_cached_value()
        if cached is not None:
            return cached

        async with self._lock:
            cached = self._fresh_cached_value()
            if cached is not None:
                return cached
            return await self._retrieve_and_store()

    async def refresh_token(self, stale: str | None = None) -> str:
        """Drop the cached token and retrieve a new one.

        Callers that were waiting while another refresh completed get that
        refreshed token instead of triggering another retrieval. Passing the
        token that was rejected as stale also skips the retrieval when the
        cache already holds a different one.
        """
        generation = self._generation
        async with self._lock:
            if self._token is not None:
                if self._generation != generation:
                    return self._token.value
                if stale is not None and self._token.value != stale:
                    logger.debug("Auth token already refreshed by another check")
                    return self._token.value
            logger.info("Force refreshing auth token")
            self.clear_cache()
            return await self._retrieve_and_store()

    def clear_cache(self) -> None:
        """Drop the cached token unconditionally."""
        self._token = None

    async def _retrieve_and_store(self) -> str:
        logger.info("Retrieving auth token from %s", self._tool)
        try:
            value = await self.retrieve_fresh()
        except AuthError as e:
            logger.error("Failed to retrieve auth token: %s", e)
            raise

        self._token = AuthToken(value=value, retrieved_at=self._clock(), ttl_ms=ASSUMED_TOKEN_TTL_MS)
        self._generation += 1
        logger.info("Auth token retrieved (%s)", _mask_token(value))
        return value

    async def retrieve_fresh(self) -> str:
        """Invoke the credential tool and extract a token from its output.

        Raises:
            ToolMissingError: If the tool is not installed.
            NotAuthenticatedError: If the tool reports that nobody is logged in.
            AuthTimeoutError: If the tool times out.
            TokenNotFoundError: If the output contains no token.
            AuthError: For any other tool failure.
        """
        tool_path = find_tool(self._tool)
        if not tool_path:
            raise ToolMissingError(f"{self._tool} command not found - install it and ensure it is in PATH")

        try:
            result = await run_tool([tool_path, "auth:login", "--show"], timeout=self._timeout)
        except ToolTimeoutError as e:
            raise AuthTimeoutError(f"Timeout while retrieving token from {self._tool}") from e
        except OSError as e:
            raise AuthError(f"{self._tool} command failed: {e}") from e

        if result.returncode != 0:
            message = result.output.strip()
            lowered = message.lower()
            if "not logged in" in lowered or "authentication required" in lowered:
                raise NotAuthenticatedError(
                    f"Not logged in to {self._tool}. Run '{self._tool} auth:login' first to authenticate"
                )
            if "timeout" in lowered or "timed out" in lowered:
                raise AuthTimeoutError(f"Timeout while retrieving token from {self._tool}")
            raise AuthError(f"{self._tool} command failed (exit {result.returncode}): {message}")

        if result.stderr.strip():
            logger.warning("%s stderr: %s", self._tool, result.stderr.strip())

        if not result.output.strip():
            raise TokenNotFoundError(f"No output returned from {self._tool} auth:login --show")

        token = extract_token(result.output)
        if not token:
            raise TokenNotFoundError(f"No token found in {self._tool} output")
        return token
