"""Execution of shell commands inside WSL.

On Windows every command goes through ``wsl [-d DISTRO] -- bash -ic COMMAND``;
``-i`` makes bash read ``.bashrc`` so the user's PATH (where codexbar usually
lives) is set. When already running inside Linux the ``wsl`` prefix is dropped.

A spawned process never outlives the call: on deadline, caller cancellation or
any other exit path the whole process tree is killed.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

import psutil

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


@dataclass(frozen=True)
class CommandResult:
    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int = 0


class WslErrorType(str, Enum):
    NOT_INSTALLED = "not_installed"
    NOT_RUNNING = "not_running"
    TIMEOUT = "timeout"
    OTHER = "other"


@dataclass(frozen=True)
class WslStatus:
    installed: bool
    running: bool = False
    error: WslErrorType | None = None
    message: str | None = None


class CommandRunner(ABC):
    @abstractmethod
    async def execute(self, command: str) -> CommandResult:
        """Run ``command`` in the subsystem shell.

        Exit codes, spawn failures and the runner's own deadline are reported
        in the result. Cancelling the awaiting task kills the process and
        re-raises the cancellation.
        """
        raise NotImplementedError


def _kill_process_tree(pid: int) -> None:
    try:
        parent = psutil.Process(pid)
        victims = parent.children(recursive=True) + [parent]
    except psutil.NoSuchProcess:
        return
    for proc in victims:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass
        except psutil.Error:
            logger.debug("Failed to kill process %s", proc.pid, exc_info=True)


async def _reap(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    logger.debug("Killing process tree %s", process.pid)
    _kill_process_tree(process.pid)
    try:
        async with asyncio.timeout(5):
            await process.wait()
    except TimeoutError:
        logger.warning("Process %s did not exit after kill", process.pid)


async def run_argv(argv: list[str], timeout_seconds: float) -> tuple[int, bytes, bytes]:
    """Run ``argv`` to completion.

    Raises ``OSError`` if it cannot be spawned and ``TimeoutError`` when the
    deadline passes. The process tree is reaped on every exit path.
    """
    kwargs: dict[str, object] = {}
    if IS_WINDOWS:
        kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW
    else:
        kwargs["start_new_session"] = True

    process = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        **kwargs,
    )
    try:
        async with asyncio.timeout(timeout_seconds):
            stdout, stderr = await process.communicate()
    finally:
        await _reap(process)
    return process.returncode, stdout, stderr


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


class WslCommandRunner(CommandRunner):
    def __init__(
        self,
        timeout_seconds: float = 30,
        status_timeout_seconds: float = 10,
        distro: str | None = None,
        use_wsl: bool | None = None,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        self.status_timeout_seconds = status_timeout_seconds
        self.distro = distro
        self.use_wsl = IS_WINDOWS if use_wsl is None else use_wsl

    def build_argv(self, command: str) -> list[str]:
        argv: list[str] = []
        if self.use_wsl:
            argv.append("wsl")
            if self.distro:
                argv.extend(["-d", self.distro])
            argv.append("--")
        argv.extend(["bash", "-ic", command])
        return argv

    async def execute(self, command: str) -> CommandResult:
        logger.debug("Executing command: %s", command)
        try:
            exit_code, stdout, stderr = await run_argv(self.build_argv(command), self.timeout_seconds)
        except TimeoutError:
            logger.warning("Command timed out after %ss: %s", self.timeout_seconds, command)
            return CommandResult(
                success=False,
                stderr=f"Command timed out after {self.timeout_seconds} seconds",
                exit_code=-1,
            )
        except OSError as exc:
            logger.error("Failed to execute command: %s", command, exc_info=True)
            return CommandResult(success=False, stderr=str(exc), exit_code=-1)

        logger.debug("Command completed: %s, exit_code=%s", command, exit_code)
        return CommandResult(
            success=exit_code == 0,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            exit_code=exit_code,
        )

    async def check_wsl_status(self) -> WslStatus:
        if not self.use_wsl:
            return WslStatus(installed=True, running=True)

        try:
            exit_code, stdout, stderr = await run_argv(["wsl", "--status"], self.status_timeout_seconds)
        except FileNotFoundError:
            logger.debug("wsl executable not found")
            return WslStatus(installed=False, error=WslErrorType.NOT_INSTALLED)
        except TimeoutError:
            logger.warning("WSL status check timed out")
            return WslStatus(
                installed=True,
                error=WslErrorType.TIMEOUT,
                message="WSL status check timed out. WSL may be starting up.",
            )
        except OSError:
            logger.debug("WSL is not installed or not accessible", exc_info=True)
            return WslStatus(installed=False, error=WslErrorType.NOT_INSTALLED)

        if exit_code == 0:
            return WslStatus(installed=True, running=True)

        # wsl.exe writes UTF-16 on some builds; strip NULs before matching.
        combined = (_decode(stdout) + _decode(stderr)).replace("\0", "").lower()
        if "not running" in combined:
            logger.warning("WSL is installed but not running")
            return WslStatus(
                installed=True,
                error=WslErrorType.NOT_RUNNING,
                message="WSL is not running. Please restart WSL.",
            )
        return WslStatus(installed=True, error=WslErrorType.OTHER, message=_decode(stderr).replace("\0", "").strip())

    async def list_distros(self) -> list[str]:
        if not self.use_wsl:
            return ["local"]

        try:
            _, stdout, _ = await run_argv(["wsl", "-l", "-q"], self.status_timeout_seconds)
        except (OSError, TimeoutError):
            logger.debug("Failed to list WSL distros", exc_info=True)
            return []

        text = stdout.decode("utf-16-le", errors="ignore")
        return [name for name in (line.strip("\0 \r") for line in text.split("\n")) if name]
