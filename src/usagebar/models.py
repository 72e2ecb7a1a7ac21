from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum


class ProviderName(str, Enum):
    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"


class AcquisitionSource(str, Enum):
    OAUTH = "oauth"
    CLI = "cli"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dt_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def parse_dt(value: str | None) -> datetime | None:
    """Parse an ISO timestamp, accepting a trailing ``Z``; naive values are taken as UTC."""
    if not value or not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class UsageWindow:
    used: int = 0
    limit: int = 0
    reset_at: datetime | None = None
    reset_in: str | None = None

    @property
    def percent(self) -> float:
        if self.limit <= 0:
            return 0.0
        return self.used / self.limit * 100

    @property
    def percent_text(self) -> str:
        return f"{self.percent:.0f}%"

    @property
    def time_until_reset(self) -> timedelta | None:
        if self.reset_at is None:
            return None
        return self.reset_at - utcnow()

    def to_dict(self) -> dict[str, object]:
        return {
            "used": self.used,
            "limit": self.limit,
            "reset_at": _dt_to_str(self.reset_at),
            "reset_in": self.reset_in,
        }

    @classmethod
    def from_dict(cls, raw: dict | None) -> UsageWindow | None:
        if not isinstance(raw, dict):
            return None
        return cls(
            used=int(raw.get("used", 0)),
            limit=int(raw.get("limit", 0)),
            reset_at=parse_dt(raw.get("reset_at")),
            reset_in=raw.get("reset_in"),
        )


@dataclass(frozen=True)
class UsageData:
    """Usage for one provider from a single acquisition attempt.

    A new instance is created for every attempt; instances are never mutated.
    An attempt either carries populated windows or an ``error`` string.
    """

    provider: str
    plan: str | None = None
    session: UsageWindow | None = None
    weekly: UsageWindow | None = None
    tertiary: UsageWindow | None = None
    fetched_at: datetime = field(default_factory=utcnow)
    status: str | None = None
    error: str | None = None
    is_loading: bool = False

    @property
    def has_error(self) -> bool:
        return bool(self.error)

    @property
    def has_tertiary(self) -> bool:
        return self.tertiary is not None

    def is_stale(self, expiry: timedelta = timedelta(minutes=5)) -> bool:
        return utcnow() - self.fetched_at > expiry

    @property
    def session_label(self) -> str:
        return "Pro" if self.provider.lower() == ProviderName.GEMINI.value else "Session"

    @property
    def weekly_label(self) -> str:
        return "Flash" if self.provider.lower() == ProviderName.GEMINI.value else "Weekly"

    @property
    def tertiary_label(self) -> str:
        if self.provider.lower() == ProviderName.CLAUDE.value:
            return "Current week (Sonnet)"
        return "Additional"

    def to_dict(self) -> dict[str, object]:
        return {
            "provider": self.provider,
            "plan": self.plan,
            "session": self.session.to_dict() if self.session else None,
            "weekly": self.weekly.to_dict() if self.weekly else None,
            "tertiary": self.tertiary.to_dict() if self.tertiary else None,
            "fetched_at": _dt_to_str(self.fetched_at),
            "status": self.status,
            "error": self.error,
            "is_loading": self.is_loading,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> UsageData:
        return cls(
            provider=str(raw.get("provider", "")),
            plan=raw.get("plan"),
            session=UsageWindow.from_dict(raw.get("session")),
            weekly=UsageWindow.from_dict(raw.get("weekly")),
            tertiary=UsageWindow.from_dict(raw.get("tertiary")),
            fetched_at=parse_dt(raw.get("fetched_at")) or utcnow(),
            status=raw.get("status"),
            error=raw.get("error"),
            is_loading=bool(raw.get("is_loading", False)),
        )


def error_result(provider: str, message: str) -> UsageData:
    return UsageData(provider=provider, error=message, fetched_at=utcnow())


@dataclass
class UsageSnapshot:
    generated_at: datetime
    providers: list[UsageData]
