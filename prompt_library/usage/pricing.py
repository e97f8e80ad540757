"""Model pricing table and cost calculation.

Prices are per token in USD. The table is loaded once from JSON (the bundled
``pricing.json`` or ``settings.pricing_file``) and is immutable afterwards.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from prompt_library.core.config import settings


logger = logging.getLogger(__name__)

DEFAULT_PRICING_FILE = Path(__file__).parent / "pricing.json"


@dataclass(frozen=True)
class ModelPrice:
    """Per-token prices for one model."""

    provider: str
    display_name: str
    input: Decimal
    output: Decimal


class PriceTable:
    """Read-only mapping of model id to ModelPrice."""

    def __init__(self, prices: Mapping[str, ModelPrice]):
        self._prices = MappingProxyType(dict(prices))

    def get(self, model: str) -> Optional[ModelPrice]:
        return self._prices.get(model)

    def __contains__(self, model: object) -> bool:
        return model in self._prices

    def __len__(self) -> int:
        return len(self._prices)

    def models(self) -> list[str]:
        return sorted(self._prices)

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, object]]) -> "PriceTable":
        """Build a table from the JSON layout used by pricing.json."""
        prices: dict[str, ModelPrice] = {}
        for model, entry in data.items():
            try:
                price = ModelPrice(
                    provider=str(entry["provider"]),
                    display_name=str(entry.get("display_name") or model),
                    input=Decimal(str(entry["input"])),
                    output=Decimal(str(entry["output"])),
                )
            except (KeyError, ArithmeticError) as exc:
                raise ValueError(f"Invalid pricing entry for model '{model}': {exc}") from exc
            if price.input < 0 or price.output < 0:
                raise ValueError(f"Negative price for model '{model}'")
            prices[model] = price
        return cls(prices)


def load_price_table(path: Optional[str | Path] = None) -> PriceTable:
    """Load a price table from a JSON file."""
    file = Path(path) if path else DEFAULT_PRICING_FILE
    data = json.loads(file.read_text(encoding="utf-8"))
    table = PriceTable.from_dict(data)
    logger.info(f"Loaded pricing for {len(table)} models from {file}")
    return table


@lru_cache()
def get_price_table() -> PriceTable:
    """Process-wide price table, loaded on first use."""
    return load_price_table(settings.pricing_file)


def _resolve(table: Optional[PriceTable]) -> PriceTable:
    return table if table is not None else get_price_table()


def calculate_cost(
    model: str,
    input_tokens: int,
    output_tokens: int,
    table: Optional[PriceTable] = None,
) -> Decimal:
    """
    Calculate the cost in USD for an LLM call.

    Unknown models cost ``Decimal("0")`` and log a warning so that an
    unpriced model never blocks an optimization.

    Raises:
        ValueError: If a token count is negative
    """
    if input_tokens < 0 or output_tokens < 0:
        raise ValueError("Token counts must be non-negative")

    price = _resolve(table).get(model)
    if price is None:
        logger.warning(f"Unknown model: {model}. Cannot calculate cost, using 0")
        return Decimal("0")

    return input_tokens * price.input + output_tokens * price.output


def estimate_cost(
    model: str,
    input_tokens: int,
    output_tokens: Optional[int] = None,
    table: Optional[PriceTable] = None,
) -> Decimal:
    """Estimate cost before a call; output defaults to twice the input."""
    if output_tokens is None:
        output_tokens = input_tokens * 2
    return calculate_cost(model, input_tokens, output_tokens, table=table)


def format_cost(cost: Decimal | float, decimals: int = 6) -> str:
    """Format a cost like ``$0.001234``."""
    return f"${Decimal(str(cost)):.{decimals}f}"


def cost_per_1k_tokens(model: str, table: Optional[PriceTable] = None) -> Optional[dict[str, str]]:
    price = _resolve(table).get(model)
    if price is None:
        return None
    return {
        "input": format_cost(price.input * 1000, 4),
        "output": format_cost(price.output * 1000, 4),
    }


def provider_for_model(model: str, table: Optional[PriceTable] = None) -> Optional[str]:
    price = _resolve(table).get(model)
    return price.provider if price else None


def model_display_name(model: str, table: Optional[PriceTable] = None) -> str:
    price = _resolve(table).get(model)
    return price.display_name if price else model
