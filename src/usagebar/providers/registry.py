from __future__ import annotations

from usagebar.models import AcquisitionSource, ProviderName

# Provider ids are interpolated into a shell command line; this set is the only
# allow-list.
ALLOWED_PROVIDERS: frozenset[str] = frozenset(p.value for p in ProviderName)

# Fixed by how the codexbar CLI authenticates each provider.
PROVIDER_SOURCES: dict[str, AcquisitionSource] = {
    ProviderName.CLAUDE.value: AcquisitionSource.OAUTH,
    ProviderName.CODEX.value: AcquisitionSource.CLI,
    ProviderName.GEMINI.value: AcquisitionSource.CLI,
}

# Extra arguments appended to the usage command for a provider.
# gemini: codexbar crashes without --verbose.
PROVIDER_EXTRA_ARGS: dict[str, tuple[str, ...]] = {
    ProviderName.GEMINI.value: ("--verbose",),
}


def is_valid_provider(provider_id: str | None) -> bool:
    if provider_id is None or not isinstance(provider_id, str):
        return False
    candidate = provider_id.strip().lower()
    return bool(candidate) and candidate in ALLOWED_PROVIDERS


def normalize_provider(provider_id: str | None) -> str:
    """Return the canonical lowercase id or raise ``ValueError``."""
    if provider_id is None or not isinstance(provider_id, str) or not provider_id.strip():
        raise ValueError("Provider ID cannot be null or empty.")

    normalized = provider_id.strip().lower()
    if normalized not in ALLOWED_PROVIDERS:
        raise ValueError(f"Invalid provider: '{provider_id}'")
    return normalized


def source_for(provider_id: str | None) -> AcquisitionSource:
    normalized = normalize_provider(provider_id)
    try:
        return PROVIDER_SOURCES[normalized]
    except KeyError:
        raise RuntimeError(f"Unhandled provider: {normalized}") from None


def extra_args_for(provider_id: str) -> tuple[str, ...]:
    return PROVIDER_EXTRA_ARGS.get(normalize_provider(provider_id), ())
