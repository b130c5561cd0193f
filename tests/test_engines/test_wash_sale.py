"""Tests for wash-sale detection and basis adjustment."""

from datetime import date
from decimal import Decimal

import pytest

from tradebook.engines.wash_sale import in_window
from tradebook.models.enums import OptionType, SecurityKind, WashSaleDirection
from tradebook.models.options import BuyToOpen, SellToClose, SellToOpen

USER = "user-1"
SALE_DATE = date(2025, 3, 1)


@pytest.fixture
def loss_sale(stocks):
    """100 ACME bought at $50 and sold at $40 on 2025-03-01: a $1,000 loss."""
    stocks.record_purchase(USER, "ACME", Decimal("100"), Decimal("50"), date(2025, 1, 1))
    return stocks.match_sale(USER, "ACME", Decimal("100"), Decimal("40"), SALE_DATE)


def _option(cls, leg_id, trade_date, price, quantity="1", option_type="CALL"):
    return cls(
        id=leg_id,
        trade_date=trade_date,
        symbol="ACME  250620C00050000",
        option_type=OptionType(option_type),
        strike=Decimal("50"),
        expiration=date(2025, 6, 20),
        quantity=Decimal(quantity),
        price=Decimal(price),
    )


class TestWindow:
    @pytest.mark.parametrize(
        "acquired, expected",
        [
            (date(2025, 3, 31), True),
            (date(2025, 4, 1), False),
            (date(2025, 1, 30), True),
            (date(2025, 1, 29), False),
            (SALE_DATE, True),
        ],
    )
    def test_thirty_days_each_side(self, acquired, expected):
        assert in_window(SALE_DATE, acquired) is expected


class TestStockToStock:
    def test_worked_example(self, loss_sale, stocks, detector, repo):
        replacement = stocks.record_purchase(
            USER, "ACME", Decimal("50"), Decimal("42"), date(2025, 3, 15)
        )
        report = detector.detect_wash_sales(USER)

        (violation,) = report.violations
        assert violation.trigger_kind == SecurityKind.STOCK
        assert violation.trigger_id == loss_sale.dispositions[0].id
        assert violation.replacement_id == replacement.id
        assert violation.realized_loss == -100000
        assert violation.shares_affected == Decimal("50")
        assert violation.disallowed_loss == 50000
        assert violation.original_cost_basis == 210000
        assert violation.adjusted_cost_basis == 260000
        assert violation.direction == WashSaleDirection.STOCK_TO_STOCK
        assert report.summary.total_disallowed_losses == 50000
        assert report.summary.symbols_affected == ["ACME"]
        assert report.summary.stock_to_stock_count == 1

        result = detector.apply_wash_sale_adjustments(USER, report.violations)
        assert result.updated == 1

        lot = repo.get_lot(USER, replacement.id)
        assert lot.total_cost_basis == 260000
        assert lot.cost_per_share == Decimal("5200")
        assert lot.wash_sale_adjustment == 50000
        assert lot.wash_sale_source_id == violation.trigger_id
        disposition = repo.get_disposition(USER, violation.trigger_id)
        assert disposition.is_wash_sale
        assert disposition.wash_sale_loss == 50000

    def test_partly_sold_replacement_carries_whole_adjustment(
        self, loss_sale, stocks, detector, repo
    ):
        replacement = stocks.record_purchase(
            USER, "ACME", Decimal("100"), Decimal("42"), date(2025, 3, 10)
        )
        stocks.match_sale(USER, "ACME", Decimal("60"), Decimal("45"), date(2025, 3, 12))
        report = detector.detect_wash_sales(USER)
        (violation,) = report.violations
        assert violation.disallowed_loss == 100000

        detector.apply_wash_sale_adjustments(USER, report.violations)
        lot = repo.get_lot(USER, replacement.id)
        assert lot.cost_per_share == Decimal("6700")
        assert lot.total_cost_basis == 520000

        sale = stocks.match_sale(USER, "ACME", Decimal("40"), Decimal("45"), date(2025, 3, 13))
        assert sale.total_cost_basis == 268000
        assert sale.dispositions[0].lot_id == replacement.id

    @pytest.mark.parametrize(
        "acquired, expected",
        [(date(2025, 3, 31), 1), (date(2025, 4, 1), 0)],
    )
    def test_window_after_sale(self, loss_sale, stocks, detector, acquired, expected):
        stocks.record_purchase(USER, "ACME", Decimal("10"), Decimal("42"), acquired)
        assert len(detector.detect_wash_sales(USER).violations) == expected

    @pytest.mark.parametrize(
        "acquired, expected",
        [(date(2025, 1, 30), 1), (date(2025, 1, 29), 0)],
    )
    def test_window_before_sale(self, stocks, detector, acquired, expected):
        stocks.record_purchase(USER, "ACME", Decimal("100"), Decimal("50"), date(2025, 1, 1))
        stocks.record_purchase(USER, "ACME", Decimal("10"), Decimal("42"), acquired)
        stocks.match_sale(USER, "ACME", Decimal("100"), Decimal("40"), SALE_DATE)
        assert len(detector.detect_wash_sales(USER).violations) == expected

    def test_disallowed_capped_at_loss(self, loss_sale, stocks, detector):
        stocks.record_purchase(USER, "ACME", Decimal("60"), Decimal("42"), date(2025, 3, 10))
        stocks.record_purchase(USER, "ACME", Decimal("60"), Decimal("42"), date(2025, 3, 20))
        report = detector.detect_wash_sales(USER)
        assert [v.disallowed_loss for v in report.violations] == [60000, 40000]
        assert report.summary.total_disallowed_losses == 100000

    def test_replacement_larger_than_sale(self, loss_sale, stocks, detector):
        stocks.record_purchase(USER, "ACME", Decimal("250"), Decimal("42"), date(2025, 3, 10))
        (violation,) = detector.detect_wash_sales(USER).violations
        assert violation.shares_affected == Decimal("100")
        assert violation.disallowed_loss == 100000

    def test_other_symbols_ignored(self, loss_sale, stocks, detector):
        stocks.record_purchase(USER, "OTHR", Decimal("50"), Decimal("42"), date(2025, 3, 15))
        assert detector.detect_wash_sales(USER).violations == []

    def test_gains_ignored(self, stocks, detector):
        stocks.record_purchase(USER, "ACME", Decimal("10"), Decimal("30"), date(2025, 1, 1))
        stocks.match_sale(USER, "ACME", Decimal("10"), Decimal("40"), SALE_DATE)
        stocks.record_purchase(USER, "ACME", Decimal("10"), Decimal("42"), date(2025, 3, 5))
        report = detector.detect_wash_sales(USER)
        assert report.violations == []
        assert report.summary.total_violations == 0

    def test_other_users_purchases_ignored(self, loss_sale, stocks, detector):
        stocks.record_purchase("user-2", "ACME", Decimal("50"), Decimal("42"), date(2025, 3, 15))
        assert detector.detect_wash_sales(USER).violations == []
        assert detector.detect_wash_sales("user-2").violations == []


class TestIdempotence:
    def test_detect_does_not_write(self, loss_sale, stocks, detector, repo):
        stocks.record_purchase(USER, "ACME", Decimal("50"), Decimal("42"), date(2025, 3, 15))
        first = detector.detect_wash_sales(USER)
        second = detector.detect_wash_sales(USER)
        assert first == second
        assert repo.get_wash_sale_adjustments(USER) == []

    def test_rescan_after_apply_reports_nothing(self, loss_sale, stocks, detector, repo):
        stocks.record_purchase(USER, "ACME", Decimal("50"), Decimal("42"), date(2025, 3, 15))
        report = detector.detect_wash_sales(USER)
        detector.apply_wash_sale_adjustments(USER, report.violations)

        assert detector.detect_wash_sales(USER).violations == []
        again = detector.apply_wash_sale_adjustments(USER, report.violations)
        assert (again.updated, again.skipped) == (0, 1)
        lot = repo.get_lot(USER, report.violations[0].replacement_id)
        assert lot.total_cost_basis == 260000

    def test_new_replacement_gets_only_remaining_loss(self, loss_sale, stocks, detector):
        stocks.record_purchase(USER, "ACME", Decimal("60"), Decimal("42"), date(2025, 3, 10))
        detector.apply_wash_sale_adjustments(USER, detector.detect_wash_sales(USER).violations)

        stocks.record_purchase(USER, "ACME", Decimal("60"), Decimal("42"), date(2025, 3, 20))
        (violation,) = detector.detect_wash_sales(USER).violations
        assert violation.disallowed_loss == 40000


class TestOptions:
    def test_option_loss_then_stock_purchase(self, options, stocks, detector, repo):
        options.open_leg(USER, _option(BuyToOpen, "o-1", date(2025, 3, 1), "5.00"))
        (closed,) = options.close_leg(USER, _option(SellToClose, "c-1", date(2025, 3, 10), "2.00"))
        assert closed.realized_pl == -30000
        lot = stocks.record_purchase(USER, "ACME", Decimal("100"), Decimal("10"), date(2025, 3, 20))

        (violation,) = detector.detect_wash_sales(USER).violations
        assert violation.trigger_kind == SecurityKind.OPTION
        assert violation.trigger_units == Decimal("100")
        assert violation.direction == WashSaleDirection.OPTION_TO_STOCK
        assert violation.disallowed_loss == 30000

        detector.apply_wash_sale_adjustments(USER, [violation])
        assert repo.get_lot(USER, lot.id).total_cost_basis == 130000

    def test_option_loss_then_long_option(self, options, detector):
        options.open_leg(USER, _option(BuyToOpen, "o-1", date(2025, 3, 1), "5.00"))
        (closed,) = options.close_leg(USER, _option(SellToClose, "c-1", date(2025, 3, 10), "2.00"))
        replacement = options.open_leg(
            USER, _option(BuyToOpen, "o-2", date(2025, 3, 15), "3.00", quantity="2")
        )
        options.open_leg(USER, _option(BuyToOpen, "o-3", date(2025, 3, 20), "3.00"))
        report = detector.detect_wash_sales(USER)

        (violation,) = report.violations
        assert violation.direction == WashSaleDirection.OPTION_TO_OPTION
        assert violation.trigger_id == closed.position.id
        assert violation.replacement_id == replacement.id
        assert violation.trigger_units == Decimal("100")
        assert violation.replacement_units == Decimal("200")
        assert violation.shares_affected == Decimal("100")
        assert violation.disallowed_loss == 30000
        assert report.summary.total_disallowed_losses == 30000
        assert report.summary.option_to_option_count == 1

    def test_stock_loss_then_long_call(self, loss_sale, options, detector, repo):
        position = options.open_leg(USER, _option(BuyToOpen, "o-1", date(2025, 3, 10), "3.00"))
        report = detector.detect_wash_sales(USER)

        (violation,) = report.violations
        assert violation.direction == WashSaleDirection.STOCK_TO_OPTION
        assert violation.replacement_units == Decimal("100")
        assert violation.disallowed_loss == 100000
        assert report.summary.stock_to_option_count == 1

        result = detector.apply_wash_sale_adjustments(USER, report.violations)
        assert result.updated == 1
        assert repo.get_position(USER, position.id).cost_basis == position.cost_basis
        assert len(repo.get_wash_sale_adjustments(USER)) == 1
        assert detector.detect_wash_sales(USER).violations == []

    def test_short_option_is_not_replacement(self, loss_sale, options, detector):
        options.open_leg(
            USER, _option(SellToOpen, "o-1", date(2025, 3, 10), "3.00", option_type="PUT")
        )
        assert detector.detect_wash_sales(USER).violations == []

    def test_contracts_measured_in_shares(self, stocks, options, detector):
        stocks.record_purchase(USER, "ACME", Decimal("200"), Decimal("50"), date(2025, 1, 1))
        stocks.match_sale(USER, "ACME", Decimal("200"), Decimal("40"), SALE_DATE)
        options.open_leg(USER, _option(BuyToOpen, "o-1", date(2025, 3, 10), "3.00"))
        (violation,) = detector.detect_wash_sales(USER).violations
        assert violation.shares_affected == Decimal("100")
        assert violation.disallowed_loss == 100000
