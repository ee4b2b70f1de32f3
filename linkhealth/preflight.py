"""Preflight check that the credential tool is installed and logged in."""

import logging
from dataclasses import dataclass

from .auth import AuthError, AuthTokenCache
from .tools import find_tool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreflightResult:
    """Outcome of the preflight authentication check."""

    tool_available: bool
    authenticated: bool
    message: str

    @property
    def ok(self) -> bool:
        return self.tool_available and self.authenticated


async def run_preflight(cache: AuthTokenCache) -> PreflightResult:
    """Verify that managed-store URLs can be authenticated. Never raises."""
    if not find_tool(cache.tool):
        return PreflightResult(
            tool_available=False,
            authenticated=False,
            message=f"{cache.tool} not found - managed-store URLs will not be accessible",
        )

    try:
        await cache.get_token()
    except AuthError as e:
        logger.debug("Preflight token retrieval failed: %s", e)
        return PreflightResult(tool_available=True, authenticated=False, message=str(e))

    return PreflightResult(
        tool_available=True,
        authenticated=True,
        message=f"Already authenticated with {cache.tool}",
    )
