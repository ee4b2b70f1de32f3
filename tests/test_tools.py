"""Tests for external tool helpers."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from linkhealth.tools import ToolResult, ToolTimeoutError, find_tool, run_tool


def _process(stdout: bytes = b"", stderr: bytes = b"", returncode: int = 0) -> MagicMock:
    process = MagicMock()
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    process.wait = AsyncMock(return_value=returncode)
    process.returncode = returncode
    return process


class TestFindTool:
    """Tests for find_tool function."""

    def test_returns_path(self) -> None:
        """Found executables are returned as paths."""
        with patch("linkhealth.tools.shutil.which", return_value="/usr/bin/absctl") as mock_which:
            assert find_tool("absctl") == "/usr/bin/absctl"
        mock_which.assert_called_once_with("absctl")

    def test_returns_none_when_missing(self) -> None:
        """Missing executables give None."""
        with patch("linkhealth.tools.shutil.which", return_value=None):
            assert find_tool("absctl") is None


class TestRunTool:
    """Tests for run_tool function."""

    @pytest.mark.asyncio
    async def test_collects_output(self) -> None:
        """Exit code and decoded output are returned."""
        process = _process(stdout=b"hello\n", stderr=b"warn\n", returncode=3)
        with patch("linkhealth.tools.asyncio.create_subprocess_exec", new_callable=AsyncMock, return_value=process):
            result = await run_tool(["absctl", "auth:login", "--show"], timeout=5)

        assert result == ToolResult(returncode=3, stdout="hello\n", stderr="warn\n")
        assert result.output == "hello\nwarn\n"

    @pytest.mark.asyncio
    async def test_passes_arguments_and_env(self) -> None:
        """Arguments are passed without a shell and env is forwarded."""
        process = _process()
        with patch(
            "linkhealth.tools.asyncio.create_subprocess_exec", new_callable=AsyncMock, return_value=process
        ) as mock_exec:
            await run_tool(["absctl", "-r", "run 1"], timeout=5, env={"COOKIE": "jwt=x"})

        args, kwargs = mock_exec.call_args
        assert args == ("absctl", "-r", "run 1")
        assert kwargs["env"] == {"COOKIE": "jwt=x"}

    @pytest.mark.asyncio
    async def test_replaces_undecodable_bytes(self) -> None:
        """Invalid UTF-8 does not raise."""
        process = _process(stdout=b"ok \xff")
        with patch("linkhealth.tools.asyncio.create_subprocess_exec", new_callable=AsyncMock, return_value=process):
            result = await run_tool(["absctl"], timeout=5)

        assert result.stdout.startswith("ok ")

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self) -> None:
        """A process exceeding the timeout is killed and reaped."""

        async def hang() -> tuple[bytes, bytes]:
            await asyncio.sleep(10)
            return b"", b""

        process = _process()
        process.returncode = None
        process.communicate = AsyncMock(side_effect=hang)
        with patch("linkhealth.tools.asyncio.create_subprocess_exec", new_callable=AsyncMock, return_value=process):
            with pytest.raises(ToolTimeoutError, match="timed out after 0.01s"):
                await run_tool(["absctl"], timeout=0.01)

        process.kill.assert_called_once()
        process.wait.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self) -> None:
        """A cancelled caller does not leave the child running."""
        started = asyncio.Event()

        async def hang() -> tuple[bytes, bytes]:
            started.set()
            await asyncio.sleep(10)
            return b"", b""

        process = _process()
        process.returncode = None
        process.communicate = AsyncMock(side_effect=hang)
        with patch("linkhealth.tools.asyncio.create_subprocess_exec", new_callable=AsyncMock, return_value=process):
            task = asyncio.create_task(run_tool(["absctl"], timeout=30))
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        process.kill.assert_called_once()
        process.wait.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_exited_process_is_not_killed(self) -> None:
        """A child that already exited is only reaped."""
        process = _process(returncode=0)
        process.communicate = AsyncMock(side_effect=RuntimeError("pipe broke"))
        with patch("linkhealth.tools.asyncio.create_subprocess_exec", new_callable=AsyncMock, return_value=process):
            with pytest.raises(RuntimeError):
                await run_tool(["absctl"], timeout=5)

        process.kill.assert_not_called()
        process.wait.assert_awaited_once()
