from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from usagebar.cache import UsageCache
from usagebar.config import Config
from usagebar.runner import WslCommandRunner
from usagebar.samples import SampleDataLoader
from usagebar.service import UsageService
from usagebar.setup_check import SetupChecker


@dataclass
class Services:
    runner: WslCommandRunner
    cache: UsageCache
    usage: UsageService
    setup: SetupChecker


def build_services(cfg: Config) -> Services:
    runner = WslCommandRunner(
        timeout_seconds=cfg.timeouts.wsl_command,
        status_timeout_seconds=cfg.timeouts.wsl_status_check,
        distro=cfg.general.wsl_distro,
    )
    cache = UsageCache(expiry_minutes=cfg.general.cache_expiry_minutes, path=Path(cfg.general.cache_file))
    cache.load()
    usage = UsageService(runner, cache, cfg, SampleDataLoader(Path(cfg.general.samples_dir)))
    return Services(runner=runner, cache=cache, usage=usage, setup=SetupChecker(runner, usage))
