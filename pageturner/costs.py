"""Per-model pricing and the cumulative transcription cost ledger."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .config import DEFAULT_USD_RATE
from .store import read_json, write_json

logger = logging.getLogger(__name__)

TOKENS_PER_PRICE_UNIT = 1_000_000


@dataclass(frozen=True)
class ModelPricing:
    """USD per million tokens."""

    input_per_million: float
    output_per_million: float


PRICING = {
    "gpt-4.1-nano": ModelPricing(0.10, 0.40),
    "gpt-4.1-mini": ModelPricing(0.40, 1.60),
    "gpt-4.1": ModelPricing(2.00, 8.00),
    "gpt-4o-mini": ModelPricing(0.15, 0.60),
    "gpt-4o": ModelPricing(2.50, 10.00),
    "gpt-5-nano": ModelPricing(0.05, 0.40),
    "gpt-5-mini": ModelPricing(0.25, 2.00),
    "gpt-5": ModelPricing(1.25, 10.00),
}
DEFAULT_PRICING = ModelPricing(1.25, 10.00)


def pricing_for(model: str) -> ModelPricing:
    return PRICING.get((model or "").strip().lower(), DEFAULT_PRICING)


def compute_cost(
    model: str,
    input_tokens: int,
    output_tokens: int,
    exchange_rate: float = DEFAULT_USD_RATE,
) -> float:
    """Cost of one request in the display currency."""
    pricing = pricing_for(model)
    usd = (
        input_tokens * pricing.input_per_million / TOKENS_PER_PRICE_UNIT
        + output_tokens * pricing.output_per_million / TOKENS_PER_PRICE_UNIT
    )
    return usd * exchange_rate


class CostLedger:
    """
    One running total for every book and session, kept in its own JSON file.

    The total only grows until the user resets it; clearing a book's page
    store never touches it.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def total(self) -> float:
        if not self.path.exists():
            return 0.0
        try:
            payload = read_json(self.path)
        except (OSError, ValueError):
            logger.warning("Unreadable %s; cumulative cost reads as 0", self.path)
            return 0.0
        value = payload.get("cumulativeCost") if isinstance(payload, dict) else None
        return float(value) if isinstance(value, (int, float)) else 0.0

    def _write(self, value: float) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        write_json(self.path, {"cumulativeCost": value})

    def add(self, amount: float) -> float:
        if amount < 0:
            raise ValueError("cost increments must be >= 0")
        new_total = self.total() + amount
        self._write(new_total)
        return new_total

    def reset(self) -> None:
        logger.info("Resetting cumulative cost (was %.4f)", self.total())
        self._write(0.0)

    def exceeds(self, limit: float) -> bool:
        return limit > 0 and self.total() >= limit
