"""Tests for pageturner.config and settings parsing."""

import pytest
from pydantic import ValidationError

from pageturner.config import (
    DEFAULT_LEDGER_PATH,
    DEFAULT_USD_RATE,
    FALLBACK_WINDOW_SIZE,
    RuntimeConfig,
    parse_rate,
    resolve_window_size,
    sanitize_slug,
)
from pageturner.models import CaptureSettings, Direction, OutputFormat, OutputStyle


class TestWindowSize:
    """Test sizing preset resolution."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("tablet", (1000, 1333)),
            ("KINDLE", (750, 1100)),
            ("spread", (1400, 900)),
            ("1024x768", (1024, 768)),
            ("unknown-preset", FALLBACK_WINDOW_SIZE),
            ("maximized", None),
            ("current", None),
        ],
    )
    def test_resolve_window_size(self, name, expected):
        """Should map names to pixel sizes."""
        assert resolve_window_size(name) == expected


class TestRate:
    """Test exchange rate parsing."""

    @pytest.mark.parametrize("raw", [None, "", "abc", "-3", "0"])
    def test_invalid_rates_use_default(self, raw):
        """Should fall back to the default rate."""
        assert parse_rate(raw) == DEFAULT_USD_RATE

    def test_valid_rate(self):
        """Should accept positive numbers."""
        assert parse_rate("142.5") == 142.5


class TestRuntimeConfig:
    """Test environment-driven configuration."""

    def test_from_env(self, monkeypatch, tmp_path):
        """Should read every override from the environment."""
        monkeypatch.setenv("PAGETURNER_DATA_DIR", str(tmp_path / "data"))
        monkeypatch.setenv("PAGETURNER_USD_RATE", "100")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        monkeypatch.delenv("OPENAI_BASE_URL", raising=False)

        config = RuntimeConfig.from_env("B00X")

        assert config.data_dir == tmp_path / "data"
        assert config.usd_rate == 100.0
        assert config.api_key == "sk-test"
        assert config.base_url is None

    def test_default_data_dir_uses_slug(self, monkeypatch, tmp_path):
        """Should place data under books/<slug> in the working directory."""
        monkeypatch.delenv("PAGETURNER_DATA_DIR", raising=False)
        monkeypatch.chdir(tmp_path)

        config = RuntimeConfig.from_env("my book/1")

        assert config.data_dir == tmp_path / "books" / "my-book-1"

    def test_ledger_path_is_independent_of_book(self, monkeypatch, tmp_path):
        """Should keep the ledger outside the per-book data directory."""
        monkeypatch.setenv("PAGETURNER_DATA_DIR", str(tmp_path / "data"))
        monkeypatch.delenv("PAGETURNER_LEDGER_PATH", raising=False)

        assert RuntimeConfig.from_env("B00X").ledger_path == DEFAULT_LEDGER_PATH

        monkeypatch.setenv("PAGETURNER_LEDGER_PATH", str(tmp_path / "spend.json"))

        assert RuntimeConfig.from_env("B00X").ledger_path == tmp_path / "spend.json"

    def test_sanitize_slug(self):
        """Should never return an empty slug."""
        assert sanitize_slug("///") == "book"


class TestCaptureSettings:
    """Test settings validation."""

    def test_validate_defaults(self):
        """Should fill defaults for missing keys."""
        settings = CaptureSettings.model_validate({})

        assert settings == CaptureSettings()
        assert not settings.transcribes

    def test_validate_reads_camel_case_and_credential(self):
        """Should accept wire names, including apiKey on the way in."""
        settings = CaptureSettings.model_validate(
            {"direction": "rtl", "outputStyle": "markdown", "costLimit": 5, "apiKey": "sk-x"}
        )

        assert settings.direction is Direction.RTL
        assert settings.output_style is OutputStyle.MARKDOWN
        assert settings.cost_limit == 5.0
        assert settings.api_key == "sk-x"

    def test_record_omits_credential(self):
        """Should serialize with camelCase keys and without the API key."""
        record = CaptureSettings(output_format=OutputFormat.ZIP, api_key="sk-x").to_record()

        assert record["outputFormat"] == "zip"
        assert record["appMode"] == "capture_only"
        assert "apiKey" not in record
        assert "api_key" not in record
        assert CaptureSettings.model_validate(record) == CaptureSettings(output_format=OutputFormat.ZIP)

    def test_blank_prompt_means_default(self):
        """Should store a whitespace-only prompt as no prompt."""
        assert CaptureSettings.model_validate({"prompt": "   "}).prompt is None

    @pytest.mark.parametrize(
        "payload",
        [
            "not a dict",
            {"direction": "up"},
            {"appMode": "transcribe_only"},
            {"costLimit": "lots"},
            {"costLimit": -1},
            {"sizing": 1024},
        ],
    )
    def test_validate_rejects_bad_values(self, payload):
        """Should raise ValidationError for invalid settings."""
        with pytest.raises(ValidationError):
            CaptureSettings.model_validate(payload)

    def test_settings_are_immutable(self):
        """Should refuse changes once built."""
        settings = CaptureSettings()

        with pytest.raises(ValidationError):
            settings.direction = Direction.RTL

    def test_repr_hides_credential(self):
        """Should not show the API key in repr."""
        assert "sk-hidden" not in repr(CaptureSettings(api_key="sk-hidden"))
