import asyncio
import shutil
import sys

import pytest

from usagebar.runner import CommandResult, WslCommandRunner, WslErrorType

needs_bash = pytest.mark.skipif(sys.platform == "win32" or shutil.which("bash") is None, reason="requires bash")


def test_build_argv_for_wsl() -> None:
    runner = WslCommandRunner(use_wsl=True)
    assert runner.build_argv("codexbar --version") == ["wsl", "--", "bash", "-ic", "codexbar --version"]

    runner = WslCommandRunner(use_wsl=True, distro="Ubuntu-24.04")
    assert runner.build_argv("which codexbar") == ["wsl", "-d", "Ubuntu-24.04", "--", "bash", "-ic", "which codexbar"]


def test_build_argv_inside_linux() -> None:
    runner = WslCommandRunner(use_wsl=False)
    assert runner.build_argv("which codexbar") == ["bash", "-ic", "which codexbar"]


@needs_bash
def test_execute_captures_output() -> None:
    runner = WslCommandRunner(use_wsl=False)
    result = asyncio.run(runner.execute("echo usagebar-ok"))
    assert result.success
    assert result.exit_code == 0
    assert "usagebar-ok" in result.stdout


@needs_bash
def test_execute_reports_exit_code_and_stderr() -> None:
    runner = WslCommandRunner(use_wsl=False)
    result = asyncio.run(runner.execute("echo nope >&2; exit 3"))
    assert not result.success
    assert result.exit_code == 3
    assert "nope" in result.stderr


@needs_bash
def test_execute_deadline_kills_process() -> None:
    runner = WslCommandRunner(timeout_seconds=0.3, use_wsl=False)

    async def timed() -> tuple[CommandResult, float]:
        loop = asyncio.get_running_loop()
        start = loop.time()
        result = await runner.execute("sleep 30")
        return result, loop.time() - start

    result, elapsed = asyncio.run(timed())
    assert not result.success
    assert result.exit_code == -1
    assert "timed out" in result.stderr
    assert elapsed < 10


@needs_bash
def test_execute_cancellation_propagates() -> None:
    runner = WslCommandRunner(use_wsl=False)

    async def scenario() -> None:
        task = asyncio.create_task(runner.execute("sleep 30"))
        await asyncio.sleep(0.3)
        task.cancel()
        await task

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(scenario())


def test_execute_spawn_failure_is_a_result() -> None:
    class MissingBinary(WslCommandRunner):
        def build_argv(self, command: str) -> list[str]:
            return ["/nonexistent/usagebar-binary", command]

    result = asyncio.run(MissingBinary(use_wsl=False).execute("anything"))
    assert not result.success
    assert result.exit_code == -1
    assert result.stderr


def test_local_status_checks() -> None:
    runner = WslCommandRunner(use_wsl=False)
    status = asyncio.run(runner.check_wsl_status())
    assert status.installed and status.running
    assert status.error is None
    assert asyncio.run(runner.list_distros()) == ["local"]


def test_wsl_error_values() -> None:
    assert {e.value for e in WslErrorType} == {"not_installed", "not_running", "timeout", "other"}
