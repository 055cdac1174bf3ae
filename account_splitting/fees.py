"""Gas price and gas limit policy plus unit conversion helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)

WEI_PER_ETHER = 10**18
WEI_PER_GWEI = 10**9
MULTIPLIER_SCALE = 10_000
DEFAULT_GAS_BUFFER_PERCENT = 20


def ether_to_wei(amount: Decimal | str | int) -> int:
    """Convert an ether-denominated amount to wei without float rounding."""

    try:
        value = Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {amount}") from exc
    if not value.is_finite():
        raise ValueError(f"invalid amount: {amount}")
    wei = value * WEI_PER_ETHER
    if wei != wei.to_integral_value():
        raise ValueError(f"amount {amount} has more precision than 1 wei")
    return int(wei)


def wei_to_ether(wei: int) -> Decimal:
    return Decimal(wei) / WEI_PER_ETHER


def wei_to_gwei(wei: int) -> Decimal:
    return Decimal(wei) / WEI_PER_GWEI


def scale_multiplier(multiplier: Decimal | str | float) -> int:
    """Return ``multiplier`` as an integer count of ``1 / MULTIPLIER_SCALE`` steps.

    Digits beyond the scale are truncated. Floats go through ``str`` first so
    ``1.0001`` scales to exactly 10001.
    """

    try:
        value = Decimal(str(multiplier))
    except InvalidOperation as exc:
        raise ValueError(f"invalid gas multiplier: {multiplier}") from exc
    if not value.is_finite() or value <= 0:
        raise ValueError(f"gas multiplier must be positive, got {multiplier}")
    return int(value * MULTIPLIER_SCALE)


def apply_gas_buffer(estimated: int, percent: int = DEFAULT_GAS_BUFFER_PERCENT) -> int:
    """Add ``percent`` head-room to a gas estimate (integer math, truncating).

    With the default of 20 this is ``estimated * 12 // 10``.
    """

    return estimated * (100 + percent) // 100


@dataclass(frozen=True)
class FeeQuote:
    """Gas price and optional fixed gas limit chosen once per run.

    ``gas_limit`` is ``None`` when every unit must be estimated.
    """

    suggested_price: int
    gas_price: int
    gas_limit: int | None
    multiplier: Decimal
    gas_buffer_percent: int = DEFAULT_GAS_BUFFER_PERCENT

    @property
    def estimates_gas(self) -> bool:
        return self.gas_limit is None

    def describe_limit(self) -> str:
        if self.gas_limit is None:
            return f"estimated per unit (+{self.gas_buffer_percent}% buffer)"
        return f"fixed {self.gas_limit}"


def compute_fee(
    suggested_price: int,
    multiplier: Decimal | str | float,
    fixed_gas_limit: int = 0,
    *,
    gas_buffer_percent: int = DEFAULT_GAS_BUFFER_PERCENT,
) -> FeeQuote:
    """Apply ``multiplier`` to the node's suggested gas price.

    A zero suggested price stays zero; dev chains report it and it is not an
    error. A positive ``fixed_gas_limit`` disables estimation for the run.
    """

    if suggested_price < 0:
        raise ValueError(f"suggested gas price must not be negative, got {suggested_price}")
    if fixed_gas_limit < 0:
        raise ValueError(f"fixed gas limit must not be negative, got {fixed_gas_limit}")

    scaled = scale_multiplier(multiplier)
    gas_price = suggested_price * scaled // MULTIPLIER_SCALE
    return FeeQuote(
        suggested_price=suggested_price,
        gas_price=gas_price,
        gas_limit=fixed_gas_limit if fixed_gas_limit > 0 else None,
        multiplier=Decimal(str(multiplier)),
        gas_buffer_percent=gas_buffer_percent,
    )


def resolve_gas_limit(
    quote: FeeQuote,
    estimate: Callable[[], int],
    *,
    label: str = "unit",
) -> int:
    """Return the gas limit for one unit, calling ``estimate`` only when needed."""

    if quote.gas_limit is not None:
        logger.info("%s: using fixed gas limit %d", label, quote.gas_limit)
        return quote.gas_limit

    estimated = estimate()
    buffered = apply_gas_buffer(estimated, quote.gas_buffer_percent)
    logger.info(
        "%s: estimated gas limit %d (%d + %d%% buffer)",
        label,
        buffered,
        estimated,
        quote.gas_buffer_percent,
    )
    return buffered


def format_quote_for_log(quote: FeeQuote) -> Dict[str, Any]:
    """Summarize a quote for user-facing logs and JSON reports."""

    return {
        "suggested_gas_price_gwei": f"{wei_to_gwei(quote.suggested_price):.4f}",
        "gas_price_gwei": f"{wei_to_gwei(quote.gas_price):.4f}",
        "multiplier": str(quote.multiplier),
        "gas_limit": quote.describe_limit(),
    }
