"""Tests for bonding-curve pricing."""

from __future__ import annotations

import pytest

from trendline.core.exceptions import InsufficientSupplyError, ValidationError
from trendline.pricing import (
    CurveParams,
    CurveType,
    buy_cost,
    curve_info,
    price_at_supply,
    quote_buy,
    quote_sell,
    sell_refund,
    total_value,
)

ALL_CURVES = [CurveType.LINEAR, CurveType.EXPONENTIAL, CurveType.LOGARITHMIC]


class TestPriceAtSupply:
    """Tests for spot price per curve family."""

    def test_linear(self) -> None:
        assert price_at_supply(0, CurveType.LINEAR) == 1_000_000
        assert price_at_supply(10, CurveType.LINEAR) == 1_001_000

    def test_exponential_floors(self) -> None:
        assert price_at_supply(0, CurveType.EXPONENTIAL) == 1_000_000
        assert price_at_supply(1, CurveType.EXPONENTIAL) == 1_000_100
        assert price_at_supply(3, "exponential") == 1_000_300

    def test_logarithmic(self) -> None:
        assert price_at_supply(0, CurveType.LOGARITHMIC) == 1_000_000
        assert price_at_supply(1, CurveType.LOGARITHMIC) == 1_001_000
        assert price_at_supply(3, CurveType.LOGARITHMIC) == 1_002_000

    def test_custom_params(self) -> None:
        params = CurveParams(base_price=10, slope=1)
        assert price_at_supply(5, CurveType.LINEAR, params) == 15

    @pytest.mark.parametrize("curve", ALL_CURVES)
    def test_monotonic(self, curve: CurveType) -> None:
        prices = [price_at_supply(s, curve) for s in range(0, 200, 7)]
        assert prices == sorted(prices)


class TestBuyCost:
    """Tests for buy_cost."""

    def test_linear_area(self) -> None:
        assert buy_cost(0, 10, CurveType.LINEAR) == 10_005_000

    def test_exponential_sum(self) -> None:
        assert buy_cost(0, 2, CurveType.EXPONENTIAL) == 2_000_100
        assert buy_cost(0, 3, CurveType.EXPONENTIAL) == 3_000_300

    def test_exponential_exact_at_ledger_scale_supply(self) -> None:
        supply = 10**13

        assert buy_cost(supply, 1, CurveType.EXPONENTIAL) == price_at_supply(
            supply, CurveType.EXPONENTIAL
        )
        assert buy_cost(supply, 2, CurveType.EXPONENTIAL) == 2_000_000_002_000_100
        assert sell_refund(supply, 2, CurveType.EXPONENTIAL) > 0

    def test_exponential_floors_each_unit_with_uneven_scale(self) -> None:
        params = CurveParams(base_price=7, scale_unit=3)
        # 7, floor(28/3)=9, floor(35/3)=11
        assert buy_cost(0, 3, CurveType.EXPONENTIAL, params) == 27

    def test_logarithmic_sum(self) -> None:
        assert buy_cost(0, 1, CurveType.LOGARITHMIC) == 1_000_000
        assert buy_cost(0, 3, CurveType.LOGARITHMIC) == 3_002_584

    def test_returns_python_int(self) -> None:
        assert type(buy_cost(0, 5, CurveType.EXPONENTIAL)) is int
        assert type(buy_cost(0, 5, CurveType.LOGARITHMIC)) is int

    @pytest.mark.parametrize("amount", [0, -1])
    def test_non_positive_amount_rejected(self, amount: int) -> None:
        with pytest.raises(ValidationError):
            buy_cost(0, amount, CurveType.LINEAR)

    def test_negative_supply_rejected(self) -> None:
        with pytest.raises(ValidationError):
            buy_cost(-1, 1, CurveType.LINEAR)

    def test_unknown_curve_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Unknown curve"):
            buy_cost(0, 1, "quadratic")

    @pytest.mark.parametrize("curve", ALL_CURVES)
    def test_cost_grows_with_supply(self, curve: CurveType) -> None:
        assert buy_cost(1_000, 10, curve) >= buy_cost(0, 10, curve)


class TestSellRefund:
    """Tests for sell_refund."""

    @pytest.mark.parametrize("curve", ALL_CURVES)
    def test_mirrors_buy(self, curve: CurveType) -> None:
        assert sell_refund(50, 20, curve) == buy_cost(30, 20, curve)

    @pytest.mark.parametrize("curve", ALL_CURVES)
    def test_buy_then_sell_is_free(self, curve: CurveType) -> None:
        supply = 123
        cost = buy_cost(supply, 17, curve)
        assert sell_refund(supply + 17, 17, curve) == cost

    def test_sell_entire_supply(self) -> None:
        assert sell_refund(10, 10, CurveType.LINEAR) == total_value(10, CurveType.LINEAR)

    def test_more_than_supply_rejected(self) -> None:
        with pytest.raises(InsufficientSupplyError, match="only 5 in circulation"):
            sell_refund(5, 6, CurveType.LINEAR)

    def test_insufficient_supply_is_validation_error(self) -> None:
        with pytest.raises(ValidationError):
            sell_refund(0, 1, CurveType.EXPONENTIAL)


class TestTotalValue:
    """Tests for total_value."""

    @pytest.mark.parametrize("curve", ALL_CURVES)
    def test_zero_supply(self, curve: CurveType) -> None:
        assert total_value(0, curve) == 0

    def test_equals_cost_from_zero(self) -> None:
        assert total_value(3, CurveType.LOGARITHMIC) == 3_002_584


class TestQuotes:
    """Tests for quote_buy / quote_sell / curve_info."""

    def test_quote_buy(self) -> None:
        quote = quote_buy(0, 10, CurveType.LINEAR)

        assert quote.side == "buy"
        assert quote.cost == 10_005_000
        assert quote.start_price == 1_000_000
        assert quote.end_price == 1_001_000
        assert quote.average_price == pytest.approx(1_000_500)

    def test_quote_sell_walks_down(self) -> None:
        quote = quote_sell(10, 10, CurveType.LINEAR)

        assert quote.side == "sell"
        assert quote.start_price == 1_001_000
        assert quote.end_price == 1_000_000
        assert quote.cost == 10_005_000

    def test_curve_info(self) -> None:
        info = curve_info("logarithmic")

        assert info["type"] == "logarithmic"
        assert "log2" in str(info["formula"])

    def test_from_ledger(self) -> None:
        assert CurveType.from_ledger(0) is CurveType.LINEAR
        assert CurveType.from_ledger(2) is CurveType.LOGARITHMIC
        with pytest.raises(ValidationError):
            CurveType.from_ledger(7)
