from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import logging
import tomllib
import tomli_w

from usagebar.providers import is_valid_provider, normalize_provider

logger = logging.getLogger(__name__)

HOME = Path.home()
CONFIG_PATH = HOME / ".config/usagebar/config.toml"
PACKAGE_SAMPLES_DIR = Path(__file__).parent / "sample_data"


@dataclass
class ProviderConfig:
    id: str
    enabled: bool = True
    order: int = 0


@dataclass
class TimeoutConfig:
    wsl_command: int = 30
    wsl_status_check: int = 10
    cli_provider_first_fetch: int = 60
    cli_provider: int = 45
    standard_provider_first_fetch: int = 20
    standard_provider: int = 10


@dataclass
class GeneralConfig:
    refresh_seconds: int = 120
    cache_expiry_minutes: int = 5
    developer_mode: bool = False
    samples_dir: str = str(PACKAGE_SAMPLES_DIR)
    cache_file: str = str(HOME / ".cache/usagebar/cache.json")
    state_file: str = str(HOME / ".local/state/usagebar/latest.json")
    windows_state_path: str = "/mnt/c/Users/Public/AppData/Local/UsageBar/latest.json"
    wsl_distro: str | None = None


def _default_providers() -> list[ProviderConfig]:
    return [
        ProviderConfig(id="claude", enabled=True, order=0),
        ProviderConfig(id="codex", enabled=True, order=1),
        ProviderConfig(id="gemini", enabled=True, order=2),
    ]


@dataclass
class Config:
    general: GeneralConfig = field(default_factory=GeneralConfig)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    providers: list[ProviderConfig] = field(default_factory=_default_providers)

    def enabled_providers(self) -> list[str]:
        """Enabled, valid provider ids in configured order."""
        selected = [p for p in self.providers if p.enabled and is_valid_provider(p.id)]
        return [p.id for p in sorted(selected, key=lambda p: p.order)]

    def provider(self, provider_id: str) -> ProviderConfig | None:
        for p in self.providers:
            if p.id.strip().lower() == provider_id.strip().lower():
                return p
        return None


def _providers_from_list(raw: list) -> list[ProviderConfig]:
    providers: list[ProviderConfig] = []
    dropped = 0
    for index, item in enumerate(raw):
        if not isinstance(item, dict) or not is_valid_provider(item.get("id")):
            dropped += 1
            continue
        providers.append(
            ProviderConfig(
                id=normalize_provider(item["id"]),
                enabled=bool(item.get("enabled", True)),
                order=int(item.get("order", index)),
            )
        )
    if dropped:
        logger.warning("Filtered %d invalid provider(s) from settings", dropped)
    return providers


def _provider_to_dict(cfg: ProviderConfig) -> dict:
    return {"id": cfg.id, "enabled": cfg.enabled, "order": cfg.order}


def load_config(path: Path = CONFIG_PATH) -> Config:
    if not path.exists():
        logger.info("Settings file not found, writing defaults to %s", path)
        cfg = Config()
        save_config(cfg, path)
        return cfg

    raw = tomllib.loads(path.read_text())
    general_raw = raw.get("general", {})
    timeouts_raw = raw.get("timeouts", {})
    defaults = GeneralConfig()
    default_timeouts = TimeoutConfig()

    providers = (
        _providers_from_list(raw["providers"]) if isinstance(raw.get("providers"), list) else _default_providers()
    )

    cfg = Config(
        general=GeneralConfig(
            refresh_seconds=int(general_raw.get("refresh_seconds", defaults.refresh_seconds)),
            cache_expiry_minutes=int(general_raw.get("cache_expiry_minutes", defaults.cache_expiry_minutes)),
            developer_mode=bool(general_raw.get("developer_mode", defaults.developer_mode)),
            samples_dir=general_raw.get("samples_dir", defaults.samples_dir),
            cache_file=general_raw.get("cache_file", defaults.cache_file),
            state_file=general_raw.get("state_file", defaults.state_file),
            windows_state_path=general_raw.get("windows_state_path", defaults.windows_state_path),
            wsl_distro=general_raw.get("wsl_distro") or None,
        ),
        timeouts=TimeoutConfig(
            **{
                name: int(timeouts_raw.get(name, getattr(default_timeouts, name)))
                for name in TimeoutConfig.__dataclass_fields__
            }
        ),
        providers=providers,
    )
    logger.debug("Settings loaded from %s", path)
    return cfg


def save_config(cfg: Config, path: Path = CONFIG_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    general: dict[str, object] = {
        "refresh_seconds": cfg.general.refresh_seconds,
        "cache_expiry_minutes": cfg.general.cache_expiry_minutes,
        "developer_mode": cfg.general.developer_mode,
        "samples_dir": cfg.general.samples_dir,
        "cache_file": cfg.general.cache_file,
        "state_file": cfg.general.state_file,
        "windows_state_path": cfg.general.windows_state_path,
    }
    # TOML has no null
    if cfg.general.wsl_distro:
        general["wsl_distro"] = cfg.general.wsl_distro

    payload = {
        "general": general,
        "timeouts": {name: getattr(cfg.timeouts, name) for name in TimeoutConfig.__dataclass_fields__},
        "providers": [_provider_to_dict(p) for p in cfg.providers],
    }
    path.write_text(tomli_w.dumps(payload))


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"not a boolean: {value}")


def set_config_value(cfg: Config, dotted_key: str, value: str) -> None:
    keys = dotted_key.split(".")

    if len(keys) == 2 and keys[0] == "general":
        name = keys[1]
        if name in {"refresh_seconds", "cache_expiry_minutes"}:
            setattr(cfg.general, name, int(value))
            return
        if name == "developer_mode":
            cfg.general.developer_mode = _parse_bool(value)
            return
        if name in {"samples_dir", "cache_file", "state_file", "windows_state_path"}:
            setattr(cfg.general, name, value)
            return
        if name == "wsl_distro":
            cfg.general.wsl_distro = value or None
            return

    if len(keys) == 2 and keys[0] == "timeouts" and keys[1] in TimeoutConfig.__dataclass_fields__:
        seconds = int(value)
        if seconds <= 0:
            raise ValueError(f"timeout must be positive: {dotted_key}")
        setattr(cfg.timeouts, keys[1], seconds)
        return

    if len(keys) == 3 and keys[0] == "providers":
        provider = cfg.provider(keys[1])
        if provider is None:
            raise ValueError(f"unknown provider: {keys[1]}")
        if keys[2] == "enabled":
            provider.enabled = _parse_bool(value)
            return
        if keys[2] == "order":
            provider.order = int(value)
            return

    raise ValueError(f"unsupported key: {dotted_key}")
