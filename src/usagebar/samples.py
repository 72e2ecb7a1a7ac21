from __future__ import annotations

import logging
from pathlib import Path

from usagebar.providers import normalize_provider

logger = logging.getLogger(__name__)


class SampleDataLoader:
    """Loads recorded codexbar responses (``<provider>.json``) for developer mode."""

    def __init__(self, samples_dir: Path) -> None:
        self.samples_dir = Path(samples_dir)

    def load_sample_json(self, provider: str) -> str | None:
        try:
            normalized = normalize_provider(provider)
        except ValueError:
            logger.warning("Refusing to load sample data for invalid provider %r", provider)
            return None

        path = self.samples_dir / f"{normalized}.json"
        if not path.exists():
            logger.warning("Sample data file not found: %s", path)
            return None

        try:
            text = path.read_text(encoding="utf-8")
        except OSError:
            logger.error("Failed to load sample data for %s", normalized, exc_info=True)
            return None
        logger.info("Loaded sample data for %s from %s", normalized, path)
        return text
