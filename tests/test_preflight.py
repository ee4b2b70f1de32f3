"""Tests for the authentication preflight check."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from linkhealth.auth import AuthTokenCache, NotAuthenticatedError
from linkhealth.preflight import run_preflight


@pytest.fixture
def cache() -> MagicMock:
    cache = MagicMock(spec=AuthTokenCache)
    cache.tool = "absctl"
    cache.get_token = AsyncMock(return_value="eyJtoken")
    return cache


class TestRunPreflight:
    """Tests for run_preflight function."""

    @pytest.mark.asyncio
    async def test_authenticated(self, cache: MagicMock) -> None:
        """Installed tool and a retrievable token pass."""
        with patch("linkhealth.preflight.find_tool", return_value="/usr/bin/absctl"):
            result = await run_preflight(cache)

        assert result.ok is True
        assert result.message == "Already authenticated with absctl"

    @pytest.mark.asyncio
    async def test_tool_missing(self, cache: MagicMock) -> None:
        """A missing tool fails without trying to fetch a token."""
        with patch("linkhealth.preflight.find_tool", return_value=None):
            result = await run_preflight(cache)

        assert result.ok is False
        assert result.tool_available is False
        assert "not found" in result.message
        cache.get_token.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_authenticated(self, cache: MagicMock) -> None:
        """Token errors are reported, not raised."""
        cache.get_token.side_effect = NotAuthenticatedError("Not authenticated. Run 'absctl auth:login'")
        with patch("linkhealth.preflight.find_tool", return_value="/usr/bin/absctl"):
            result = await run_preflight(cache)

        assert result.ok is False
        assert result.tool_available is True
        assert result.authenticated is False
        assert "auth:login" in result.message
