from __future__ import annotations

from datetime import datetime
from pathlib import Path
import json
import logging

from usagebar.config import Config
from usagebar.models import UsageData, UsageSnapshot, parse_dt, utcnow
from usagebar.service import UsageService

logger = logging.getLogger(__name__)


async def build_snapshot(service: UsageService) -> UsageSnapshot:
    providers = await service.get_all_usage()
    return UsageSnapshot(generated_at=utcnow(), providers=providers)


def snapshot_to_json(snapshot: UsageSnapshot) -> str:
    payload = {
        "generated_at": snapshot.generated_at.isoformat(),
        "providers": [p.to_dict() for p in snapshot.providers],
    }
    return json.dumps(payload, indent=2)


def write_snapshot_files(cfg: Config, snapshot: UsageSnapshot) -> None:
    body = snapshot_to_json(snapshot)

    state_file = Path(cfg.general.state_file)
    state_file.parent.mkdir(parents=True, exist_ok=True)
    state_file.write_text(body)

    if cfg.general.windows_state_path:
        mirror = Path(cfg.general.windows_state_path)
        try:
            mirror.parent.mkdir(parents=True, exist_ok=True)
            mirror.write_text(body)
        except OSError as exc:
            logger.warning("Could not write Windows mirror %s: %s", mirror, exc)


def read_snapshot(path: str | Path) -> UsageSnapshot:
    raw = json.loads(Path(path).read_text())
    generated_at: datetime = parse_dt(raw.get("generated_at")) or utcnow()
    providers = [UsageData.from_dict(item) for item in raw.get("providers", []) if isinstance(item, dict)]
    return UsageSnapshot(generated_at=generated_at, providers=providers)


def summary_line(state_file: str) -> str:
    path = Path(state_file)
    if not path.exists():
        return "UsageBar: snapshot missing"

    snap = read_snapshot(path)
    parts: list[str] = []
    for p in snap.providers:
        if p.has_error:
            parts.append(f"{p.provider}:!")
            continue
        parts.append(f"{p.provider}:S{_fmt(p.session)} W{_fmt(p.weekly)}")
    return " | ".join(parts) if parts else "UsageBar: no providers"


def _fmt(window) -> str:
    if window is None:
        return "-"
    return window.percent_text
