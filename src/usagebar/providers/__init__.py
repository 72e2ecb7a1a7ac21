from usagebar.providers.registry import (
    ALLOWED_PROVIDERS,
    extra_args_for,
    is_valid_provider,
    normalize_provider,
    source_for,
)

__all__ = ["ALLOWED_PROVIDERS", "extra_args_for", "is_valid_provider", "normalize_provider", "source_for"]
