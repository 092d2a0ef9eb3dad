"""Tests for pageturner.costs."""

import asyncio

import pytest
from conftest import FakeTranscriber

from pageturner.config import RuntimeConfig
from pageturner.costs import DEFAULT_PRICING, PRICING, CostLedger, compute_cost, pricing_for
from pageturner.errors import PreflightError
from pageturner.models import AppMode, CaptureSettings
from pageturner.store import PageStore
from pageturner.transcription import preflight


class TestPricing:
    """Test per-model pricing lookups."""

    def test_known_model(self):
        """Should return the table entry, ignoring case and whitespace."""
        assert pricing_for(" GPT-4.1-nano ") == PRICING["gpt-4.1-nano"]

    def test_unknown_model_uses_default(self):
        """Should price unknown models with the default table entry."""
        assert pricing_for("some-future-model") == DEFAULT_PRICING

    def test_compute_cost(self):
        """Should convert per-million USD prices at the exchange rate."""
        cost = compute_cost("gpt-4.1-nano", 1000, 500, exchange_rate=150.0)

        assert cost == pytest.approx((1000 * 0.10 / 1_000_000 + 500 * 0.40 / 1_000_000) * 150.0)

    def test_compute_cost_default_pricing(self):
        """Should use default pricing for unknown models."""
        cost = compute_cost("mystery", 2_000_000, 0, exchange_rate=1.0)

        assert cost == pytest.approx(2 * DEFAULT_PRICING.input_per_million)


class TestCostLedger:
    """Test the persistent cumulative total."""

    def test_empty_ledger(self, ledger):
        """Should read 0 before anything is spent."""
        assert ledger.total() == 0.0
        assert not ledger.path.exists()

    def test_add_accumulates_and_persists(self, ledger):
        """Should add increments to the stored total."""
        ledger.add(1.5)

        total = CostLedger(ledger.path).add(2.25)

        assert total == pytest.approx(3.75)
        assert CostLedger(ledger.path).total() == pytest.approx(3.75)

    def test_negative_increment_rejected(self, ledger):
        """Should never let the total shrink through add()."""
        with pytest.raises(ValueError):
            ledger.add(-1.0)

    def test_reset(self, ledger):
        """Should zero the total."""
        ledger.add(9.0)

        ledger.reset()

        assert ledger.total() == 0.0

    def test_unreadable_ledger_reads_zero(self, ledger):
        """Should treat a corrupt ledger file as nothing spent."""
        ledger.path.parent.mkdir(parents=True)
        ledger.path.write_text("garbage", encoding="utf-8")

        assert ledger.total() == 0.0

    @pytest.mark.parametrize(
        "spent,limit,expected",
        [
            (5.0, 0.0, False),
            (5.0, 10.0, False),
            (10.0, 10.0, True),
            (12.0, 10.0, True),
        ],
    )
    def test_exceeds(self, ledger, spent, limit, expected):
        """Should treat a zero limit as no limit."""
        ledger.add(spent)

        assert ledger.exceeds(limit) is expected

    def test_clearing_a_book_keeps_the_total(self, ledger, store):
        """Should keep spending when a book's page store is cleared."""
        ledger.add(4.0)

        store.clear()

        assert ledger.total() == 4.0


class TestSharedLedger:
    """Test that one total covers every book."""

    def test_books_share_one_ledger(self, monkeypatch, tmp_path):
        """Should resolve the same ledger file for different books."""
        monkeypatch.delenv("PAGETURNER_DATA_DIR", raising=False)
        monkeypatch.setenv("PAGETURNER_LEDGER_PATH", str(tmp_path / "spend" / "ledger.json"))
        monkeypatch.chdir(tmp_path)

        book_a = RuntimeConfig.from_env("BOOKA")
        book_b = RuntimeConfig.from_env("BOOKB")

        assert book_a.data_dir != book_b.data_dir
        assert book_a.ledger_path == book_b.ledger_path

    def test_ceiling_counts_spend_from_other_books(self, monkeypatch, tmp_path):
        """Should refuse a new book once earlier books used up the ceiling."""
        monkeypatch.delenv("PAGETURNER_DATA_DIR", raising=False)
        monkeypatch.setenv("PAGETURNER_LEDGER_PATH", str(tmp_path / "spend" / "ledger.json"))
        monkeypatch.chdir(tmp_path)

        book_a = RuntimeConfig.from_env("BOOKA")
        PageStore(book_a.data_dir).record_page(0, b"a", 1.0)
        CostLedger(book_a.ledger_path).add(10.0)

        book_b = RuntimeConfig.from_env("BOOKB")
        PageStore(book_b.data_dir).clear()
        settings = CaptureSettings(
            app_mode=AppMode.CAPTURE_AND_TRANSCRIBE, api_key="sk-test", cost_limit=5.0
        )

        with pytest.raises(PreflightError, match="Cost limit reached"):
            asyncio.run(preflight(settings, CostLedger(book_b.ledger_path), FakeTranscriber()))
