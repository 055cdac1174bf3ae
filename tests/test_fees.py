from __future__ import annotations

from decimal import Decimal

import pytest

from account_splitting.fees import (
    apply_gas_buffer,
    compute_fee,
    ether_to_wei,
    format_quote_for_log,
    resolve_gas_limit,
    scale_multiplier,
    wei_to_ether,
)

GWEI = 10**9


def test_multiplier_is_applied_in_fixed_point() -> None:
    quote = compute_fee(5 * GWEI, Decimal("1.0001"))
    assert quote.gas_price == 5_000_500_000
    assert quote.suggested_price == 5 * GWEI


def test_same_inputs_give_same_quote() -> None:
    assert compute_fee(3 * GWEI, "1.25", 0) == compute_fee(3 * GWEI, "1.25", 0)


def test_float_multiplier_scales_exactly() -> None:
    assert scale_multiplier(1.1) == 11000
    assert scale_multiplier("1.00019") == 10001


def test_zero_price_passes_through() -> None:
    assert compute_fee(0, Decimal("2")).gas_price == 0


@pytest.mark.parametrize("bad", [0, "-1", "abc"])
def test_invalid_multiplier_rejected(bad) -> None:
    with pytest.raises(ValueError):
        compute_fee(GWEI, bad)


def test_negative_price_rejected() -> None:
    with pytest.raises(ValueError):
        compute_fee(-1, Decimal("1"))


def test_fixed_limit_skips_estimate() -> None:
    quote = compute_fee(GWEI, Decimal("1"), fixed_gas_limit=90_000)

    def explode() -> int:  # pragma: no cover - must not run
        raise AssertionError("estimate should not be called")

    assert not quote.estimates_gas
    assert resolve_gas_limit(quote, explode) == 90_000


def test_estimated_limit_gets_twenty_percent_buffer() -> None:
    quote = compute_fee(GWEI, Decimal("1"))
    calls: list[int] = []

    def estimate() -> int:
        calls.append(1)
        return 21_000

    assert quote.estimates_gas
    assert resolve_gas_limit(quote, estimate) == 25_200
    assert calls == [1]


def test_buffer_truncates() -> None:
    assert apply_gas_buffer(21_001) == 21_001 * 12 // 10
    assert apply_gas_buffer(100, 0) == 100


def test_custom_buffer_flows_through_quote() -> None:
    quote = compute_fee(GWEI, Decimal("1"), gas_buffer_percent=50)
    assert resolve_gas_limit(quote, lambda: 1000) == 1500


def test_ether_conversions() -> None:
    assert ether_to_wei("0.1") == 10**17
    assert ether_to_wei("0.0001") == 10**14
    assert ether_to_wei(2) == 2 * 10**18
    assert wei_to_ether(10**17) == Decimal("0.1")


def test_sub_wei_amount_rejected() -> None:
    with pytest.raises(ValueError):
        ether_to_wei("0.0000000000000000001")
    with pytest.raises(ValueError):
        ether_to_wei("lots")


def test_quote_log_shape() -> None:
    summary = format_quote_for_log(compute_fee(5 * GWEI, "1.0001"))
    assert summary["gas_price_gwei"] == "5.0005"
    assert summary["multiplier"] == "1.0001"
    assert summary["gas_limit"].startswith("estimated")
