"""Double-entry ledger core.

Every journal transaction must balance: the debit lines and the credit lines
carry the same total. Account balances are kept in each account's normal
direction, so a debit raises an asset or expense and lowers a liability,
equity, or revenue account.
"""

import logging
from collections.abc import Sequence
from datetime import date, datetime
from uuid import uuid4

from tradebook.db.repository import TradeRepository
from tradebook.exceptions import (
    AccountNotFoundError,
    DataValidationError,
    UnbalancedEntryError,
)
from tradebook.models.enums import EntrySide
from tradebook.models.ledger import (
    AccountBalanceLine,
    IntegrityReport,
    JournalLine,
    JournalTransaction,
    LedgerEntry,
)

logger = logging.getLogger(__name__)


def debit(account_code: str, amount: int) -> JournalLine:
    return JournalLine(account_code=account_code, amount=amount, side=EntrySide.DEBIT)


def credit(account_code: str, amount: int) -> JournalLine:
    return JournalLine(account_code=account_code, amount=amount, side=EntrySide.CREDIT)


def signed_line(account_code: str, amount: int, side: EntrySide) -> list[JournalLine]:
    """A line on ``side``, flipped when ``amount`` is negative, none when zero."""
    if amount == 0:
        return []
    if amount < 0:
        side = EntrySide.CREDIT if side == EntrySide.DEBIT else EntrySide.DEBIT
    return [JournalLine(account_code=account_code, amount=abs(amount), side=side)]


class LedgerService:
    """Posts balanced journal transactions and reports on account balances."""

    def __init__(self, repo: TradeRepository):
        self.repo = repo

    def post_transaction(
        self,
        transaction_date: date,
        description: str,
        lines: Sequence[JournalLine],
        external_ref: str | None = None,
        strategy: str | None = None,
        trade_num: str | None = None,
        amount: int | None = None,
    ) -> JournalTransaction:
        """Post a journal transaction and update the touched account balances.

        Args:
            transaction_date: Economic date of the transaction.
            description: Free-text memo.
            lines: Journal lines; amounts are positive cents.
            external_ref: Optional broker or feed reference.
            strategy: Optional options strategy label.
            trade_num: Optional identifier grouping multi-leg trades.
            amount: Headline amount; defaults to the debit total.

        Returns:
            The persisted journal transaction.

        Raises:
            DataValidationError: No debit line or no credit line.
            UnbalancedEntryError: Debit and credit totals differ.
            AccountNotFoundError: Some account codes are unknown.
            StaleAccountError: An account changed during the posting.
        """
        debits = sum(line.amount for line in lines if line.side == EntrySide.DEBIT)
        credits = sum(line.amount for line in lines if line.side == EntrySide.CREDIT)
        if debits == 0 or credits == 0:
            raise DataValidationError(
                "lines", "a journal transaction needs at least one debit and one credit line"
            )
        if debits != credits:
            raise UnbalancedEntryError(debits, credits)

        with self.repo.transaction():
            accounts = self.repo.get_accounts_by_codes([line.account_code for line in lines])
            missing = sorted({line.account_code for line in lines} - accounts.keys())
            if missing:
                raise AccountNotFoundError(missing)

            txn = JournalTransaction(
                id=str(uuid4()),
                transaction_date=transaction_date,
                description=description,
                external_ref=external_ref,
                strategy=strategy,
                trade_num=trade_num,
                amount=debits if amount is None else amount,
                posted_at=datetime.now(),
            )
            entries = []
            deltas: dict[str, int] = {}
            for line in lines:
                account = accounts[line.account_code]
                entries.append(
                    LedgerEntry(
                        id=str(uuid4()),
                        transaction_id=txn.id,
                        account_id=account.id,
                        account_code=account.code,
                        amount=line.amount,
                        side=line.side,
                    )
                )
                deltas[account.code] = deltas.get(account.code, 0) + account.signed_delta(
                    line.amount, line.side
                )
            self.repo.record_posting(txn, entries, deltas, accounts)

        logger.debug(
            "Posted %s '%s': %d lines, %d cents", txn.id, description, len(entries), debits
        )
        return txn

    def balance(self, code: str) -> int:
        """Settled balance of one account in its normal direction."""
        account = self.repo.get_account(code)
        if account is None:
            raise AccountNotFoundError([code])
        return account.settled_balance

    def trial_balance(self) -> list[AccountBalanceLine]:
        """Stored balance and entry-derived balance for every account."""
        totals = self.repo.entry_totals_by_account()
        lines = []
        for account in self.repo.list_accounts():
            sides = totals.get(account.code, {"D": 0, "C": 0})
            computed = sides["D"] - sides["C"]
            if account.balance_side == EntrySide.CREDIT:
                computed = -computed
            lines.append(
                AccountBalanceLine(
                    code=account.code,
                    name=account.name,
                    account_type=account.account_type,
                    balance_side=account.balance_side,
                    settled_balance=account.settled_balance,
                    computed_balance=computed,
                )
            )
        return lines

    def verify_integrity(self) -> IntegrityReport:
        """Find unbalanced journal transactions and drifted account balances."""
        unbalanced = [
            txn_id
            for txn_id, sides in self.repo.entry_totals_by_transaction().items()
            if sides["D"] != sides["C"] or sides["D"] == 0
        ]
        mismatched = [line.code for line in self.trial_balance() if not line.in_agreement]
        report = IntegrityReport(
            unbalanced_transactions=sorted(unbalanced),
            mismatched_accounts=mismatched,
        )
        if not report.ok:
            logger.warning(
                "Ledger integrity check failed: %d unbalanced transactions, %d mismatched accounts",
                len(report.unbalanced_transactions),
                len(report.mismatched_accounts),
            )
        return report
