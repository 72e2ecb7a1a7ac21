"""Conversion of codexbar JSON output into :class:`UsageData`.

codexbar prints either a single provider object or an array of them::

    {
      "provider": "claude",
      "source": "oauth",
      "usage": {
        "loginMethod": "Max",
        "primary":   {"usedPercent": 61.0, "windowMinutes": 300, "resetsAt": "...", "resetDescription": "in 3h"},
        "secondary": {"usedPercent": 22.0, "windowMinutes": 10080, ...},
        "tertiary":  {...}
      },
      "error": null
    }

Parsing is best effort: malformed input yields ``None`` / an empty list and is
never raised to the caller.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime

from usagebar.models import UsageData, UsageWindow, parse_dt, utcnow

logger = logging.getLogger(__name__)

# codexbar reports percentages, so every window is out of 100.
PERCENT_LIMIT = 100


class MalformedResponse(ValueError):
    pass


def _get(obj: dict, key: str):
    """Case-insensitive key lookup, exact match first."""
    if key in obj:
        return obj[key]
    lowered = key.lower()
    for k, v in obj.items():
        if isinstance(k, str) and k.lower() == lowered:
            return v
    return None


def _as_str(value) -> str | None:
    return value if isinstance(value, str) else None


def _as_float(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    try:
        number = float(value)
    except OverflowError:
        return 0.0
    return number if math.isfinite(number) else 0.0


def _as_int(value) -> int:
    number = _as_float(value)
    return int(number)


@dataclass
class UsageWindowDto:
    used_percent: float = 0.0
    window_minutes: int = 0
    resets_at: datetime | None = None
    reset_description: str | None = None

    @classmethod
    def from_json(cls, raw) -> UsageWindowDto | None:
        if not isinstance(raw, dict):
            return None
        return cls(
            used_percent=_as_float(_get(raw, "usedPercent")),
            window_minutes=_as_int(_get(raw, "windowMinutes")),
            resets_at=parse_dt(_as_str(_get(raw, "resetsAt"))),
            reset_description=_as_str(_get(raw, "resetDescription")),
        )

    def to_window(self) -> UsageWindow:
        return UsageWindow(
            used=int(self.used_percent),
            limit=PERCENT_LIMIT,
            reset_at=self.resets_at,
            reset_in=self.reset_description,
        )


@dataclass
class UsageDto:
    login_method: str | None = None
    primary: UsageWindowDto | None = None
    secondary: UsageWindowDto | None = None
    tertiary: UsageWindowDto | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_json(cls, raw) -> UsageDto | None:
        if not isinstance(raw, dict):
            return None
        return cls(
            login_method=_as_str(_get(raw, "loginMethod")),
            primary=UsageWindowDto.from_json(_get(raw, "primary")),
            secondary=UsageWindowDto.from_json(_get(raw, "secondary")),
            tertiary=UsageWindowDto.from_json(_get(raw, "tertiary")),
            updated_at=parse_dt(_as_str(_get(raw, "updatedAt"))),
        )


@dataclass
class UsageDataDto:
    provider: str = ""
    source: str | None = None
    usage: UsageDto | None = None
    error: str | None = None

    @classmethod
    def from_json(cls, raw) -> UsageDataDto:
        if not isinstance(raw, dict):
            raise MalformedResponse(f"expected a JSON object, got {type(raw).__name__}")
        return cls(
            provider=_as_str(_get(raw, "provider")) or "",
            source=_as_str(_get(raw, "source")),
            usage=UsageDto.from_json(_get(raw, "usage")),
            error=_as_str(_get(raw, "error")),
        )

    def to_usage_data(self, fallback_provider: str = "") -> UsageData:
        usage = self.usage
        return UsageData(
            provider=self.provider or fallback_provider,
            plan=usage.login_method if usage else None,
            session=usage.primary.to_window() if usage and usage.primary else None,
            weekly=usage.secondary.to_window() if usage and usage.secondary else None,
            tertiary=usage.tertiary.to_window() if usage and usage.tertiary else None,
            status=self.source,
            error=self.error,
            fetched_at=utcnow(),
        )


def parse_one(text: str | None, fallback_provider: str) -> UsageData | None:
    """Parse a single-object response.

    Returns ``None`` for blank or malformed input. Valid JSON without the
    expected fields still produces a minimal record for ``fallback_provider``.
    """
    if text is None or not text.strip():
        return None

    try:
        raw = json.loads(text)
        if raw is None:
            return UsageData(provider=fallback_provider)
        return UsageDataDto.from_json(raw).to_usage_data(fallback_provider)
    except (ValueError, RecursionError) as exc:
        logger.error("Failed to parse usage JSON for %s: %s", fallback_provider, exc)
        return None


def parse_list(text: str | None, fallback_provider: str = "") -> list[UsageData]:
    """Parse a response that is either a JSON array or a single object.

    The shape is chosen from the first non-whitespace character. Malformed
    input yields an empty list.
    """
    if text is None or not text.strip():
        return []

    stripped = text.lstrip()
    try:
        raw = json.loads(stripped)
        if stripped.startswith("["):
            if not isinstance(raw, list):
                raise MalformedResponse("expected a JSON array")
            dtos = [UsageDataDto.from_json(item) for item in raw if item is not None]
        else:
            if raw is None:
                return []
            dtos = [UsageDataDto.from_json(raw)]
    except (ValueError, RecursionError) as exc:
        logger.error("Failed to parse usage JSON array: %s", exc)
        return []

    return [dto.to_usage_data(fallback_provider) for dto in dtos]
