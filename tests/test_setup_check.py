import asyncio

import pytest

from conftest import FakeRunner, make_config
from usagebar.cache import UsageCache
from usagebar.runner import WslCommandRunner, WslErrorType, WslStatus
from usagebar.service import UsageService
from usagebar.setup_check import SetupChecker, SetupStatus, SetupStep, is_compatible_version


@pytest.mark.parametrize(
    "version, expected",
    [
        (None, False),
        ("", False),
        ("codexbar 0.16.9", False),
        ("codexbar 0.17.0", True),
        ("CodexBar 1.2.3 (abc123)", True),
        ("codexbar unknown", True),
        ("codexbar dev-build", True),
    ],
)
def test_version_compatibility(version, expected: bool) -> None:
    assert is_compatible_version(version) is expected


def test_current_step() -> None:
    assert SetupStatus(wsl_error=WslErrorType.NOT_INSTALLED).current_step is SetupStep.INSTALL_WSL
    assert SetupStatus(wsl_installed=True, wsl_error=WslErrorType.NOT_RUNNING).current_step is SetupStep.START_WSL
    assert SetupStatus(wsl_installed=True, wsl_error=WslErrorType.TIMEOUT).current_step is SetupStep.FIX_WSL
    assert SetupStatus(wsl_installed=True, wsl_running=True).current_step is SetupStep.INSTALL_DISTRO
    assert SetupStatus(wsl_installed=True, wsl_running=True, distros=["Ubuntu"]).current_step is SetupStep.INSTALL_CODEXBAR
    ready = SetupStatus(wsl_installed=True, wsl_running=True, distros=["Ubuntu"], codexbar_installed=True)
    assert ready.current_step is SetupStep.READY
    assert ready.default_distro == "Ubuntu"


class StubWsl(WslCommandRunner):
    def __init__(self, status: WslStatus, distros: list[str]) -> None:
        super().__init__(use_wsl=True)
        self._status = status
        self._distros = distros

    async def check_wsl_status(self) -> WslStatus:
        return self._status

    async def list_distros(self) -> list[str]:
        return self._distros


def _checker(wsl: StubWsl, runner: FakeRunner) -> SetupChecker:
    return SetupChecker(wsl, UsageService(runner, UsageCache(), make_config()))


def test_check_ready() -> None:
    runner = FakeRunner()
    runner.set_output("which codexbar", "/usr/local/bin/codexbar\n")
    runner.set_output("codexbar --version", "codexbar 0.18.0\n")

    status = asyncio.run(_checker(StubWsl(WslStatus(installed=True, running=True), ["Ubuntu"]), runner).check())

    assert status.is_ready
    assert status.codexbar_version == "codexbar 0.18.0"
    assert status.current_step is SetupStep.READY


def test_check_old_version_is_not_ready() -> None:
    runner = FakeRunner()
    runner.set_output("which codexbar", "/usr/local/bin/codexbar\n")
    runner.set_output("codexbar --version", "codexbar 0.10.0\n")

    status = asyncio.run(_checker(StubWsl(WslStatus(installed=True, running=True), ["Ubuntu"]), runner).check())

    assert status.codexbar_installed
    assert not status.is_ready


def test_check_stops_at_first_missing_piece() -> None:
    runner = FakeRunner()

    missing = asyncio.run(_checker(StubWsl(WslStatus(installed=False, error=WslErrorType.NOT_INSTALLED), []), runner).check())
    assert missing.current_step is SetupStep.INSTALL_WSL

    stopped = asyncio.run(
        _checker(StubWsl(WslStatus(installed=True, error=WslErrorType.NOT_RUNNING), []), runner).check()
    )
    assert stopped.current_step is SetupStep.START_WSL

    no_distro = asyncio.run(_checker(StubWsl(WslStatus(installed=True, running=True), []), runner).check())
    assert no_distro.current_step is SetupStep.INSTALL_DISTRO

    no_tool = asyncio.run(_checker(StubWsl(WslStatus(installed=True, running=True), ["Ubuntu"]), runner).check())
    assert no_tool.current_step is SetupStep.INSTALL_CODEXBAR
    assert runner.commands == ["which codexbar"]
