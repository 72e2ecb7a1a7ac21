"""Usage acquisition through the codexbar CLI.

Two collection strategies share one per-provider fetch:

* ``get_all_usage`` fetches providers one after another, in configured order.
  WSL does not cope well with overlapping ``bash -ic`` sessions, so this is the
  path for background refreshes.
* ``get_all_usage_stream`` starts every fetch at once and yields each result
  as it completes, so a UI can fill in cards as they arrive.

The per-provider fetch never raises for expected failures: a non-zero exit,
empty output, a deadline or an unexpected exception all come back as a
``UsageData`` with ``error`` set. Only cancellation of the awaiting task
propagates.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import AsyncIterator

from usagebar.cache import UsageCache
from usagebar.config import Config
from usagebar.models import AcquisitionSource, UsageData, error_result
from usagebar.parser import parse_list, parse_one
from usagebar.providers import extra_args_for, normalize_provider, source_for
from usagebar.runner import CommandResult, CommandRunner
from usagebar.samples import SampleDataLoader

logger = logging.getLogger(__name__)

CODEXBAR = "codexbar"
VERSION_COMMAND = f"{CODEXBAR} --version"
AVAILABILITY_COMMAND = f"which {CODEXBAR}"

NO_DATA = "No data available"
TIMED_OUT = "Request timed out"
UNEXPECTED = "Unexpected error occurred"
NO_SAMPLE = "Sample data not available (Developer mode)"


def status_command(provider: str, source: AcquisitionSource) -> str:
    return f"{CODEXBAR} --provider {provider} --format json --source {source.value}"


def usage_command(provider: str, source: AcquisitionSource) -> str:
    parts = [CODEXBAR, "usage", "--provider", provider, "--format", "json", "--source", source.value]
    parts.extend(extra_args_for(provider))
    return " ".join(parts)


class UsageService:
    def __init__(
        self,
        runner: CommandRunner,
        cache: UsageCache,
        cfg: Config,
        sample_loader: SampleDataLoader | None = None,
    ) -> None:
        self._runner = runner
        self._cache = cache
        self._cfg = cfg
        self._sample_loader = sample_loader
        # Set until the first complete batch; read by concurrent fetches.
        self._first_fetch = threading.Event()
        self._first_fetch.set()

    @property
    def is_first_fetch(self) -> bool:
        return self._first_fetch.is_set()

    async def get_usage(self, provider: str) -> UsageData | None:
        """Fetch one provider, falling back to the cache on any failure.

        Returns fresh data, cached data, or ``None``; never raises except for
        cancellation.
        """
        try:
            normalized = normalize_provider(provider)
        except ValueError as exc:
            logger.warning("Rejected provider %r: %s", provider, exc)
            return None

        try:
            source = source_for(normalized)
            result = await self._runner.execute(status_command(normalized, source))

            if not result.success:
                logger.warning("codexbar command failed for %s: %s", normalized, result.stderr.strip())
                return self._cache.get(normalized)

            data = parse_one(result.stdout, normalized)
            if data is not None:
                self._cache.set(normalized, data)
                return data
            return self._cache.get(normalized)
        except Exception:
            logger.error("Failed to get usage for %s", normalized, exc_info=True)
            return self._cache.get(normalized)

    async def get_all_usage(self) -> list[UsageData]:
        providers = self._cfg.enabled_providers()
        if not providers:
            return []

        results: list[UsageData] = []
        for provider in providers:
            results.append(await self._fetch_provider(provider, source_for(provider)))

        self._first_fetch.clear()
        return results

    async def get_all_usage_stream(self) -> AsyncIterator[UsageData]:
        """Yield one result per enabled provider in completion order.

        Match results to providers by ``UsageData.provider``. Closing the
        generator early or cancelling the consumer cancels fetches still in
        flight.
        """
        providers = self._cfg.enabled_providers()
        if not providers:
            return

        tasks = [
            asyncio.create_task(self._fetch_provider(p, source_for(p)), name=f"usagebar-fetch-{p}")
            for p in providers
        ]
        try:
            for next_done in asyncio.as_completed(tasks):
                yield await next_done
        finally:
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        self._first_fetch.clear()

    async def get_version(self) -> str | None:
        try:
            result = await self._runner.execute(VERSION_COMMAND)
        except Exception:
            logger.error("Failed to get codexbar version", exc_info=True)
            return None
        return result.stdout.strip() if result.success else None

    async def is_available(self) -> bool:
        try:
            result = await self._runner.execute(AVAILABILITY_COMMAND)
        except Exception:
            logger.debug("codexbar availability check failed", exc_info=True)
            return False
        return result.success and bool(result.stdout.strip())

    def _select_timeout(self, source: AcquisitionSource) -> int:
        timeouts = self._cfg.timeouts
        first = self._first_fetch.is_set()
        if source is AcquisitionSource.CLI:
            return timeouts.cli_provider_first_fetch if first else timeouts.cli_provider
        return timeouts.standard_provider_first_fetch if first else timeouts.standard_provider

    async def _fetch_provider(self, provider: str, source: AcquisitionSource) -> UsageData:
        try:
            normalized = normalize_provider(provider)

            if self._cfg.general.developer_mode:
                return self._load_sample(normalized)

            command = usage_command(normalized, source)
            async with asyncio.timeout(self._select_timeout(source)):
                result = await self._runner.execute(command)
            return self._to_usage(normalized, result)
        except TimeoutError:
            logger.debug("%s timed out", provider)
            return error_result(provider, TIMED_OUT)
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            # Cancelled inside the runner rather than by our caller.
            logger.debug("%s was cancelled by the runner", provider)
            return error_result(provider, TIMED_OUT)
        except Exception:
            logger.warning("Failed to fetch %s", provider, exc_info=True)
            return error_result(provider, UNEXPECTED)

    def _to_usage(self, provider: str, result: CommandResult) -> UsageData:
        if result.success and result.stdout.strip():
            items = parse_list(result.stdout, provider)
            if items:
                data = items[0]
                self._cache.set(provider, data)
                logger.debug("Fetched %s successfully", provider)
                return data

            logger.debug("%s returned empty data", provider)
            return error_result(provider, NO_DATA)

        logger.debug("%s failed: %s", provider, result.stderr.strip())
        message = result.stderr.strip() or f"Command failed (exit code {result.exit_code})"
        return error_result(provider, message)

    def _load_sample(self, provider: str) -> UsageData:
        logger.debug("Developer mode: loading sample data for %s", provider)
        sample = self._sample_loader.load_sample_json(provider) if self._sample_loader else None
        if sample and sample.strip():
            items = parse_list(sample, provider)
            if items:
                self._cache.set(provider, items[0])
                return items[0]

        logger.warning("Sample data not available for %s (developer mode)", provider)
        return error_result(provider, NO_SAMPLE)
