from __future__ import annotations

import asyncio

import pytest

from usagebar.cache import UsageCache
from usagebar.config import Config, ProviderConfig
from usagebar.runner import CommandResult, CommandRunner
from usagebar.service import UsageService


class FakeRunner(CommandRunner):
    """Records commands and replays canned results."""

    def __init__(self) -> None:
        self.commands: list[str] = []
        self.cancelled: list[str] = []
        self._results: dict[str, CommandResult] = {}
        self._delays: dict[str, float] = {}
        self._errors: dict[str, BaseException] = {}

    def set_result(self, command: str, result: CommandResult, delay: float = 0.0) -> None:
        self._results[command] = result
        if delay:
            self._delays[command] = delay

    def set_output(self, command: str, stdout: str, delay: float = 0.0) -> None:
        self.set_result(command, CommandResult(success=True, stdout=stdout), delay)

    def set_error(self, command: str, exc: BaseException) -> None:
        self._errors[command] = exc

    async def execute(self, command: str) -> CommandResult:
        self.commands.append(command)
        try:
            if command in self._delays:
                await asyncio.sleep(self._delays[command])
        except asyncio.CancelledError:
            self.cancelled.append(command)
            raise
        if command in self._errors:
            raise self._errors[command]
        return self._results.get(command, CommandResult(success=False, stderr="command not found", exit_code=127))


def make_config(*providers: tuple[str, bool]) -> Config:
    return Config(providers=[ProviderConfig(id=pid, enabled=enabled, order=i) for i, (pid, enabled) in enumerate(providers)])


def usage_json(provider: str, used: float = 50.0, source: str = "oauth") -> str:
    return (
        '{"provider": "%s", "source": "%s", "usage": {"loginMethod": "Pro", '
        '"primary": {"usedPercent": %s, "windowMinutes": 300, "resetDescription": "in 2h"}}}'
        % (provider, source, used)
    )


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def cache() -> UsageCache:
    return UsageCache(expiry_minutes=5)


@pytest.fixture
def make_service(runner: FakeRunner, cache: UsageCache):
    def _make(cfg: Config | None = None, sample_loader=None) -> UsageService:
        return UsageService(runner, cache, cfg or make_config(("claude", True)), sample_loader)

    return _make
