"""Health checks for managed artifact store URLs.

A managed-store URL carries ``filename`` and ``runID`` query parameters. It
cannot be fetched directly: the artifact is retrieved out of band by an
external download tool, authenticated with a cookie derived from the auth
token cache. A check is healthy when the tool produces a non-empty file.
"""

import asyncio
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from urllib.parse import parse_qs, urlparse

from .auth import AuthError, AuthTokenCache, format_as_cookie
from .config import AuthConfig
from .models import CheckError, CheckOutcome, UrlType
from .tools import ToolTimeoutError, find_tool, run_tool

logger = logging.getLogger(__name__)

# Phrases (lower-case) the download tool prints when there is nothing to fetch.
NOT_FOUND_PHRASES = (
    "no logs found",
    "logs not found",
    "no files found",
    "file not found",
    "nothing to download",
    "no such file",
    "failed to find",
    "download failed",
)

# Markers (lower-case) of a credential problem in download tool errors.
AUTH_FAILURE_MARKERS = ("auth", "unauthorized", "forbidden", "invalid token", "token expired")

FILENAME_PARAM = "filename"
RUN_ID_PARAM = "runID"


class AttemptPhase(Enum):
    """Attempts of one managed-store check, in order.

    A check starts in NORMAL. An authentication failure there refreshes the
    token and moves to AUTH_RETRY; any result of AUTH_RETRY is terminal.
    """

    NORMAL = "normal"
    AUTH_RETRY = "auth_retry"


@dataclass(frozen=True)
class StoreTarget:
    """Parameters identifying an artifact in the managed store."""

    run_id: str
    filename: str


@dataclass(frozen=True)
class _AuthFailure:
    message: str


def _query_params(url: str) -> dict[str, list[str]] | None:
    try:
        return parse_qs(urlparse(url).query, keep_blank_values=True)
    except ValueError:
        return None


def is_managed_store_url(url: str) -> bool:
    """Check whether a URL carries both the filename and runID parameters."""
    params = _query_params(url)
    if params is None:
        return False
    return FILENAME_PARAM in params and RUN_ID_PARAM in params


def _is_safe_filename(filename: str) -> bool:
    """A filename must stay inside the directory it is downloaded to."""
    path = PurePosixPath(filename.replace("\\", "/"))
    return not path.is_absolute() and ".." not in path.parts


def parse_store_target(url: str) -> StoreTarget | None:
    """Extract the store target.

    Returns None if a parameter is missing or blank, or if the filename is
    absolute or climbs out of the download directory.
    """
    params = _query_params(url) or {}
    filename = (params.get(FILENAME_PARAM) or [""])[0].strip()
    run_id = (params.get(RUN_ID_PARAM) or [""])[0].strip()
    if not filename or not run_id:
        return None
    if not _is_safe_filename(filename):
        logger.warning("Rejecting unsafe managed-store filename %r", filename)
        return None
    return StoreTarget(run_id=run_id, filename=filename)


def is_auth_failure(text: str) -> bool:
    lowered = text.lower()
    return any(marker in lowered for marker in AUTH_FAILURE_MARKERS)


def _artifact_size(scratch: str, filename: str) -> int | None:
    """Size of the downloaded file, or None if it is missing or outside scratch."""
    root = Path(scratch).resolve()
    path = (root / filename).resolve()
    if not path.is_relative_to(root):
        return None
    try:
        return path.stat().st_size
    except FileNotFoundError:
        return None


class ManagedStoreClient:
    """Checks managed-store URLs through the external download tool."""

    def __init__(
        self,
        auth_config: AuthConfig,
        timeout: float,
        token_cache: AuthTokenCache | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            auth_config: Download tool name and static cookie fallback.
            timeout: Seconds to wait for each download tool invocation.
            token_cache: Token cache for automatic authentication, or None
                to always use the static cookie from auth_config.
        """
        self._config = auth_config
        self._timeout = timeout
        self._token_cache = token_cache

    async def check(self, url: str, url_type: UrlType) -> CheckOutcome:
        """Check that the artifact behind a managed-store URL can be downloaded.

        Never raises for classified failures; every path returns an outcome.
        """
        start = time.monotonic()

        def outcome(is_healthy: bool, error: CheckError | None = None, message: str | None = None) -> CheckOutcome:
            return CheckOutcome(
                url=url,
                url_type=url_type,
                is_healthy=is_healthy,
                error=error,
                error_message=message,
                response_time_ms=int((time.monotonic() - start) * 1000),
            )

        target = parse_store_target(url)
        if target is None:
            return outcome(False, CheckError.MISSING_PARAMETERS, "Missing or invalid filename or runID parameters")

        tool_path = find_tool(self._config.download_tool)
        if not tool_path:
            return outcome(
                False,
                CheckError.TOOL_MISSING,
                f"{self._config.download_tool} command not found - please install it",
            )

        token: str | None = None
        for phase in AttemptPhase:
            if phase is AttemptPhase.AUTH_RETRY:
                try:
                    await self._token_cache.refresh_token(stale=token)  # type: ignore[union-attr]
                except AuthError as e:
                    return outcome(False, CheckError.AUTH_FAILED, f"Token refresh failed: {e}")

            cookie, token = await self._credential()
            result = await self._attempt(tool_path, target, cookie)
            if not isinstance(result, _AuthFailure):
                error, message = result
                return outcome(error is None, error, message)

            if phase is AttemptPhase.AUTH_RETRY:
                return outcome(False, CheckError.AUTH_FAILED_AFTER_REFRESH, result.message)
            if self._token_cache is None:
                return outcome(
                    False,
                    CheckError.AUTH_FAILED,
                    f"{result.message} (check the configured data store cookies)",
                )
            logger.warning("Authentication failed for run %s, refreshing token and retrying", target.run_id)

        raise AssertionError("unreachable")

    async def _credential(self) -> tuple[str, str | None]:
        """Return the cookie string for the download tool and the token behind it.

        The cookie is empty when no credential is available. With auto auth a
        failed token retrieval leaves the cookie empty; the static cookies
        are only used when auto auth is off.
        """
        if self._token_cache is None:
            if not self._config.cookies:
                logger.debug("No data store cookies configured")
            return self._config.cookies, None

        try:
            token = await self._token_cache.get_token()
        except AuthError as e:
            logger.warning("Continuing without auth token: %s", e)
            return "", None
        return format_as_cookie(token), token

    async def _attempt(
        self,
        tool_path: str,
        target: StoreTarget,
        cookie: str,
    ) -> tuple[CheckError | None, str | None] | _AuthFailure:
        """Run the download tool once in a private scratch directory.

        Returns (error, message) with error None on success, or _AuthFailure
        when the tool failed with an authentication problem.
        """
        env = dict(os.environ)
        if cookie:
            env["COOKIE"] = cookie

        # Removed on every exit path, including unexpected exceptions.
        with tempfile.TemporaryDirectory(prefix="linkhealth-") as scratch:
            args = [
                tool_path,
                "autobuild:download-logs",
                "-r",
                target.run_id,
                "-f",
                target.filename,
                "-d",
                scratch,
            ]
            try:
                result = await run_tool(args, timeout=self._timeout, env=env)
            except ToolTimeoutError as e:
                return CheckError.TIMEOUT, str(e)
            except OSError as e:
                if is_auth_failure(str(e)):
                    return _AuthFailure(str(e))
                return CheckError.TOOL_FAILED, f"{self._config.download_tool} command failed: {e}"

            output = result.output.lower()
            if any(phrase in output for phrase in NOT_FOUND_PHRASES):
                return CheckError.ARTIFACT_NOT_FOUND, "No logs found for the specified filename and runID"

            if result.returncode != 0:
                detail = result.output.strip() or f"exit status {result.returncode}"
                if is_auth_failure(detail):
                    return _AuthFailure(f"{self._config.download_tool} authentication failed: {detail}")
                return CheckError.TOOL_FAILED, f"{self._config.download_tool} command failed: {detail}"

            size = await asyncio.to_thread(_artifact_size, scratch, target.filename)

        if size is None:
            return CheckError.DOWNLOAD_INCOMPLETE, "File download failed - file not found after command execution"
        if size == 0:
            return CheckError.EMPTY_ARTIFACT, "Downloaded file is empty - no content available"
        return None, None
