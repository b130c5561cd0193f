"""Chart-of-accounts and double-entry journal models."""

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from tradebook.models.enums import AccountType, EntrySide


class Account(BaseModel):
    """A chart-of-accounts entry.

    Frozen: ``settled_balance`` and ``version`` only change when the ledger
    posts a journal transaction, which writes them through the repository.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    code: str
    name: str
    account_type: AccountType
    balance_side: EntrySide
    settled_balance: int = 0
    version: int = 0

    def signed_delta(self, amount: int, side: EntrySide) -> int:
        return amount if side == self.balance_side else -amount


class JournalLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    account_code: str
    amount: int = Field(gt=0, strict=True)
    side: EntrySide


class JournalTransaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    transaction_date: date
    description: str
    external_ref: str | None = None
    strategy: str | None = None
    trade_num: str | None = None
    amount: int
    posted_at: datetime


class LedgerEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    transaction_id: str
    account_id: str
    account_code: str
    amount: int = Field(gt=0)
    side: EntrySide


class AccountBalanceLine(BaseModel):
    """One row of a trial balance."""

    code: str
    name: str
    account_type: AccountType
    balance_side: EntrySide
    settled_balance: int
    computed_balance: int

    @property
    def in_agreement(self) -> bool:
        return self.settled_balance == self.computed_balance


class IntegrityReport(BaseModel):
    unbalanced_transactions: list[str] = Field(default_factory=list)
    mismatched_accounts: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.unbalanced_transactions and not self.mismatched_accounts
