"""Tests for option leg, settlement, and position models."""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import TypeAdapter, ValidationError

from tradebook.models.enums import OptionType, PositionType
from tradebook.models.options import (
    BuyToOpen,
    OptionLeg,
    OptionPosition,
    OptionSettlement,
    SellToClose,
    extract_underlying,
)


class TestExtractUnderlying:
    @pytest.mark.parametrize(
        "symbol, underlying",
        [
            ("AAPL  250117C00150000", "AAPL"),
            ("AAPL Jan 17 2025 $150 Call", "AAPL"),
            ("SPY", "SPY"),
            ("", ""),
        ],
    )
    def test_forms(self, symbol, underlying):
        assert extract_underlying(symbol) == underlying


class TestLegs:
    def test_amount_defaults_to_price_times_contracts(self):
        leg = BuyToOpen(
            id="o-1",
            trade_date=date(2025, 3, 1),
            symbol="ACME 250620C00100000",
            option_type=OptionType.CALL,
            strike=Decimal("100"),
            quantity=Decimal("2"),
            price=Decimal("3.50"),
        )
        assert leg.amount == Decimal("700.00")
        assert leg.underlying == "ACME"
        assert leg.is_opening

    def test_explicit_underlying_wins(self):
        leg = SellToClose(
            id="c-1",
            trade_date=date(2025, 3, 1),
            symbol="weird-symbol",
            underlying="acme",
            option_type=OptionType.PUT,
            strike=Decimal("90"),
            quantity=Decimal("1"),
            price=Decimal("1"),
        )
        assert leg.underlying == "ACME"
        assert not leg.is_opening
        assert leg.contract_key() == ("ACME", Decimal("90"), OptionType.PUT)

    def test_discriminated_by_kind(self):
        leg = TypeAdapter(OptionLeg).validate_python(
            {
                "kind": "SELL_TO_CLOSE",
                "id": "c-1",
                "trade_date": "2025-03-01",
                "symbol": "ACME",
                "option_type": "CALL",
                "strike": "100",
                "quantity": "1",
                "price": "2",
            }
        )
        assert isinstance(leg, SellToClose)

    def test_unknown_action_rejected(self):
        with pytest.raises(ValidationError):
            TypeAdapter(OptionLeg).validate_python(
                {
                    "kind": "HOLD",
                    "id": "x",
                    "trade_date": "2025-03-01",
                    "symbol": "ACME",
                    "option_type": "CALL",
                    "strike": "100",
                    "quantity": "1",
                    "price": "2",
                }
            )

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationError):
            BuyToOpen(
                id="o-1",
                trade_date=date(2025, 3, 1),
                symbol="ACME",
                option_type=OptionType.CALL,
                strike=Decimal("100"),
                quantity=Decimal("0"),
                price=Decimal("1"),
            )


class TestSettlement:
    def test_bad_kind_rejected(self):
        with pytest.raises(ValidationError):
            OptionSettlement(
                id="s-1",
                trade_date=date(2025, 6, 20),
                symbol="ACME",
                option_type=OptionType.CALL,
                strike=Decimal("100"),
                kind="ROLL",
            )


class TestPosition:
    def _position(self, quantity="3", cost=10000) -> OptionPosition:
        return OptionPosition(
            id="p-1",
            user_id="user-1",
            symbol="ACME",
            underlying="ACME",
            option_type=OptionType.CALL,
            strike=Decimal("100"),
            position_type=PositionType.LONG,
            quantity=Decimal(quantity),
            remaining_quantity=Decimal(quantity),
            cost_basis=cost,
            open_price=Decimal("0.33"),
            open_date=date(2025, 3, 1),
        )

    def test_share_equivalents(self):
        assert self._position().share_equivalents == Decimal("300")

    def test_cost_consumed_through(self):
        position = self._position()
        assert position.cost_consumed_through(Decimal("3")) == 0
        assert position.cost_consumed_through(Decimal("2")) == 3333
        assert position.cost_consumed_through(Decimal("1")) == 6667
        assert position.cost_consumed_through(Decimal("0")) == 10000
