"""Tests for the double-entry ledger core."""

from datetime import date, datetime

import pytest
from pydantic import ValidationError

from tradebook.engines.ledger import credit, debit, signed_line
from tradebook.exceptions import (
    AccountNotFoundError,
    DataValidationError,
    StaleAccountError,
    UnbalancedEntryError,
)
from tradebook.models.enums import EntrySide
from tradebook.models.ledger import JournalLine, JournalTransaction, LedgerEntry

TODAY = date(2025, 1, 2)


class TestPostTransaction:
    def test_balanced_posting_updates_balances(self, ledger):
        txn = ledger.post_transaction(
            TODAY, "Buy stock", [debit("T-1100", 10000), credit("T-1010", 10000)]
        )
        assert txn.amount == 10000
        assert ledger.balance("T-1100") == 10000
        assert ledger.balance("T-1010") == -10000

    def test_credit_normal_account_increases_on_credit(self, ledger):
        ledger.post_transaction(TODAY, "Gain", [debit("T-1010", 500), credit("T-4010", 500)])
        assert ledger.balance("T-4010") == 500
        assert ledger.balance("T-1010") == 500

    def test_entries_persisted(self, ledger, repo):
        txn = ledger.post_transaction(
            TODAY,
            "Split",
            [debit("T-1100", 700), credit("T-1010", 500), credit("T-6010", 200)],
            trade_num="T-42",
        )
        entries = repo.get_ledger_entries(transaction_id=txn.id)
        assert [(e.account_code, e.amount, e.side) for e in entries] == [
            ("T-1100", 700, EntrySide.DEBIT),
            ("T-1010", 500, EntrySide.CREDIT),
            ("T-6010", 200, EntrySide.CREDIT),
        ]
        stored = repo.get_journal_transaction(txn.id)
        assert stored.trade_num == "T-42"
        assert stored.description == "Split"

    def test_unbalanced_raises_and_writes_nothing(self, ledger, repo):
        with pytest.raises(UnbalancedEntryError) as exc_info:
            ledger.post_transaction(
                TODAY, "Bad", [debit("T-1100", 10000), credit("T-1010", 9999)]
            )
        assert exc_info.value.debits == 10000
        assert exc_info.value.credits == 9999
        assert repo.list_journal_transactions() == []
        assert ledger.balance("T-1100") == 0

    def test_one_sided_rejected(self, ledger):
        with pytest.raises(DataValidationError):
            ledger.post_transaction(TODAY, "Debits only", [debit("T-1100", 100)])

    def test_empty_lines_rejected(self, ledger):
        with pytest.raises(DataValidationError):
            ledger.post_transaction(TODAY, "Nothing", [])

    def test_unknown_accounts_all_reported(self, ledger, repo):
        with pytest.raises(AccountNotFoundError) as exc_info:
            ledger.post_transaction(
                TODAY, "Typo", [debit("X-2", 100), debit("T-1100", 100), credit("X-1", 200)]
            )
        assert exc_info.value.codes == ["X-1", "X-2"]
        assert repo.list_journal_transactions() == []

    def test_non_positive_line_amount_rejected(self):
        with pytest.raises(ValidationError):
            JournalLine(account_code="T-1010", amount=0, side=EntrySide.DEBIT)
        with pytest.raises(ValidationError):
            JournalLine(account_code="T-1010", amount=-5, side=EntrySide.DEBIT)

    def test_version_bumped_once_per_posting(self, ledger, repo):
        ledger.post_transaction(
            TODAY,
            "Two lines same account",
            [debit("T-1100", 100), debit("T-1100", 50), credit("T-1010", 150)],
        )
        assert repo.get_account("T-1100").version == 1
        assert repo.get_account("T-1100").settled_balance == 150
        assert repo.get_account("T-4010").version == 0


class TestStaleAccount:
    def test_stale_version_rolls_back(self, ledger, repo):
        accounts = repo.get_accounts_by_codes(["T-1010", "T-1100"])
        ledger.post_transaction(TODAY, "First", [debit("T-1100", 100), credit("T-1010", 100)])

        txn = JournalTransaction(
            id="txn-stale",
            transaction_date=TODAY,
            description="Second",
            amount=100,
            posted_at=datetime(2025, 1, 2, 12, 0),
        )
        entries = [
            LedgerEntry(
                id="e-1",
                transaction_id=txn.id,
                account_id=accounts["T-1100"].id,
                account_code="T-1100",
                amount=100,
                side=EntrySide.DEBIT,
            ),
            LedgerEntry(
                id="e-2",
                transaction_id=txn.id,
                account_id=accounts["T-1010"].id,
                account_code="T-1010",
                amount=100,
                side=EntrySide.CREDIT,
            ),
        ]
        with pytest.raises(StaleAccountError) as exc_info:
            with repo.transaction():
                repo.record_posting(
                    txn, entries, {"T-1010": -100, "T-1100": 100}, accounts
                )
        assert exc_info.value.code == "T-1010"
        assert repo.get_journal_transaction("txn-stale") is None
        assert ledger.balance("T-1100") == 100
        assert ledger.verify_integrity().ok


class TestSignedLine:
    def test_positive_keeps_side(self):
        assert signed_line("T-1010", 10, EntrySide.DEBIT) == [debit("T-1010", 10)]

    def test_negative_flips_side(self):
        assert signed_line("T-1010", -10, EntrySide.DEBIT) == [credit("T-1010", 10)]

    def test_zero_is_omitted(self):
        assert signed_line("T-1010", 0, EntrySide.CREDIT) == []


class TestTrialBalance:
    def test_balances_agree_after_postings(self, ledger):
        ledger.post_transaction(TODAY, "A", [debit("T-1100", 10000), credit("T-1010", 10000)])
        ledger.post_transaction(
            TODAY,
            "B",
            [debit("T-1010", 12000), credit("T-1100", 10000), credit("T-4010", 2000)],
        )
        lines = {line.code: line for line in ledger.trial_balance()}
        assert lines["T-1010"].settled_balance == 2000
        assert lines["T-4010"].computed_balance == 2000
        assert all(line.in_agreement for line in lines.values())
        assert ledger.verify_integrity().ok

    def test_debits_equal_credits_overall(self, ledger, repo):
        ledger.post_transaction(TODAY, "A", [debit("T-1200", 3000), credit("T-1010", 3000)])
        ledger.post_transaction(TODAY, "B", [debit("T-1010", 800), credit("T-2100", 800)])
        totals = repo.entry_totals_by_account()
        assert sum(t["D"] for t in totals.values()) == sum(t["C"] for t in totals.values())

    def test_drifted_balance_reported(self, ledger, repo):
        ledger.post_transaction(TODAY, "A", [debit("T-1100", 100), credit("T-1010", 100)])
        repo.conn.execute("UPDATE accounts SET settled_balance = 999 WHERE code = 'T-1010'")
        report = ledger.verify_integrity()
        assert not report.ok
        assert report.mismatched_accounts == ["T-1010"]
        assert report.unbalanced_transactions == []

    def test_unknown_account_balance(self, ledger):
        with pytest.raises(AccountNotFoundError):
            ledger.balance("T-0000")
