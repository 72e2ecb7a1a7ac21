from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from usagebar.runner import WslCommandRunner, WslErrorType
from usagebar.service import UsageService

logger = logging.getLogger(__name__)

MIN_CODEXBAR_VERSION = (0, 17, 0)
VERSION_RE = re.compile(r"(\d+)\.(\d+)\.(\d+)")


class SetupStep(str, Enum):
    INSTALL_WSL = "install_wsl"
    START_WSL = "start_wsl"
    FIX_WSL = "fix_wsl"
    INSTALL_DISTRO = "install_distro"
    INSTALL_CODEXBAR = "install_codexbar"
    READY = "ready"


@dataclass
class SetupStatus:
    wsl_installed: bool = False
    wsl_running: bool = False
    wsl_error: WslErrorType | None = None
    distros: list[str] = field(default_factory=list)
    codexbar_installed: bool = False
    codexbar_version: str | None = None
    is_ready: bool = False

    @property
    def default_distro(self) -> str | None:
        return self.distros[0] if self.distros else None

    @property
    def current_step(self) -> SetupStep:
        if self.wsl_error == WslErrorType.NOT_INSTALLED:
            return SetupStep.INSTALL_WSL
        if self.wsl_error == WslErrorType.NOT_RUNNING:
            return SetupStep.START_WSL
        if self.wsl_error is not None:
            return SetupStep.FIX_WSL
        if not self.wsl_installed:
            return SetupStep.INSTALL_WSL
        if not self.distros:
            return SetupStep.INSTALL_DISTRO
        if not self.codexbar_installed:
            return SetupStep.INSTALL_CODEXBAR
        return SetupStep.READY


def is_compatible_version(version: str | None) -> bool:
    """Check codexbar's ``--version`` output against the minimum.

    Development builds report "unknown" and unparseable strings are accepted.
    """
    if version is None or not version.strip():
        return False
    if "unknown" in version.lower():
        return True

    match = VERSION_RE.search(version)
    if match is None:
        return True
    return tuple(int(part) for part in match.groups()) >= MIN_CODEXBAR_VERSION


class SetupChecker:
    def __init__(self, runner: WslCommandRunner, service: UsageService) -> None:
        self._runner = runner
        self._service = service

    async def check(self) -> SetupStatus:
        logger.info("Checking setup status")

        wsl = await self._runner.check_wsl_status()
        if not wsl.installed:
            logger.warning("WSL is not installed")
            return SetupStatus(wsl_error=wsl.error or WslErrorType.NOT_INSTALLED)
        if not wsl.running:
            logger.warning("WSL is installed but not running: %s", wsl.message)
            return SetupStatus(wsl_installed=True, wsl_error=wsl.error)

        distros = await self._runner.list_distros()
        if not distros:
            logger.warning("No WSL distros found")
            return SetupStatus(wsl_installed=True, wsl_running=True)
        logger.info("Found WSL distros: %s", ", ".join(distros))

        if not await self._service.is_available():
            logger.warning("codexbar is not installed in WSL")
            return SetupStatus(wsl_installed=True, wsl_running=True, distros=distros)

        version = await self._service.get_version()
        compatible = is_compatible_version(version)
        if not compatible:
            logger.warning(
                "codexbar version %s is not compatible (minimum: %s)",
                version,
                ".".join(str(p) for p in MIN_CODEXBAR_VERSION),
            )

        return SetupStatus(
            wsl_installed=True,
            wsl_running=True,
            distros=distros,
            codexbar_installed=True,
            codexbar_version=version,
            is_ready=compatible,
        )
