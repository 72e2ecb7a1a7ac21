import pytest

from usagebar.models import AcquisitionSource
from usagebar.providers import extra_args_for, is_valid_provider, normalize_provider, source_for


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("claude", "claude"),
        ("CLAUDE", "claude"),
        ("  Codex ", "codex"),
        ("\tGeMiNi\n", "gemini"),
    ],
)
def test_normalize_returns_canonical_id(raw: str, expected: str) -> None:
    assert normalize_provider(raw) == expected
    assert is_valid_provider(raw)


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_normalize_rejects_blank(raw) -> None:
    with pytest.raises(ValueError, match="cannot be null or empty"):
        normalize_provider(raw)
    assert not is_valid_provider(raw)


@pytest.mark.parametrize("raw", ["openai", "claude; rm -rf ~", "claude codex", "copilot"])
def test_normalize_rejects_unknown(raw: str) -> None:
    with pytest.raises(ValueError, match="Invalid provider: '"):
        normalize_provider(raw)
    assert not is_valid_provider(raw)


def test_invalid_message_quotes_input_verbatim() -> None:
    with pytest.raises(ValueError) as excinfo:
        normalize_provider(" OpenAI ")
    assert str(excinfo.value) == "Invalid provider: ' OpenAI '"


def test_source_mapping() -> None:
    assert source_for("claude") is AcquisitionSource.OAUTH
    assert source_for("codex") is AcquisitionSource.CLI
    assert source_for("Gemini") is AcquisitionSource.CLI


def test_source_for_invalid_fails_before_lookup() -> None:
    with pytest.raises(ValueError):
        source_for("openai")


def test_only_gemini_gets_verbose_flag() -> None:
    assert extra_args_for("gemini") == ("--verbose",)
    assert extra_args_for("claude") == ()
    assert extra_args_for("codex") == ()
