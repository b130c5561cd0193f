"""Trading chart of accounts."""

import logging
from uuid import uuid4

from tradebook.db.repository import TradeRepository
from tradebook.models.enums import AccountType, EntrySide

logger = logging.getLogger(__name__)

# Account codes the engines post to.
TRADING_CASH = "T-1010"
STOCK_LONG = "T-1100"
LONG_CALLS = "T-1200"
LONG_PUTS = "T-1210"
SHORT_CALLS = "T-2100"
SHORT_PUTS = "T-2110"
STOCK_GAINS_ST = "T-4010"
STOCK_GAINS_LT = "T-4020"
OPTIONS_GAINS = "T-4140"
STOCK_LOSSES_ST = "T-5010"
STOCK_LOSSES_LT = "T-5020"
OPTIONS_LOSSES = "T-5140"

_A, _L, _E, _R, _X = (
    AccountType.ASSET,
    AccountType.LIABILITY,
    AccountType.EQUITY,
    AccountType.REVENUE,
    AccountType.EXPENSE,
)

TRADING_ACCOUNTS: list[tuple[str, str, AccountType]] = [
    (TRADING_CASH, "Trading Cash Account", _A),
    ("T-1020", "Margin Account Cash", _A),
    (STOCK_LONG, "Stock Positions - Long", _A),
    (LONG_CALLS, "Options Positions - Long Calls", _A),
    (LONG_PUTS, "Options Positions - Long Puts", _A),
    ("T-1220", "Options Positions - Call Spreads", _A),
    ("T-1230", "Options Positions - Put Spreads", _A),
    ("T-1240", "Options Positions - Iron Condors", _A),
    ("T-1250", "Options Positions - Straddles/Strangles", _A),
    ("T-1500", "Deferred Loss - Wash Sale", _A),
    ("T-2010", "Margin Loan Payable", _L),
    (SHORT_CALLS, "Options Positions - Short Calls", _L),
    (SHORT_PUTS, "Options Positions - Short Puts", _L),
    ("T-2200", "Stock Positions - Short", _L),
    ("T-3010", "Trading Capital", _E),
    ("T-3100", "Retained Earnings - Trading", _E),
    ("T-3200", "Capital Contributions - Trading", _E),
    ("T-3300", "Capital Withdrawals - Trading", _E),
    (STOCK_GAINS_ST, "Stock Trading Gains - Short Term", _R),
    (STOCK_GAINS_LT, "Stock Trading Gains - Long Term", _R),
    ("T-4100", "Options Income - Credit Spreads", _R),
    ("T-4110", "Options Income - Iron Condors", _R),
    ("T-4120", "Options Income - Covered Calls", _R),
    ("T-4130", "Options Income - Cash Secured Puts", _R),
    (OPTIONS_GAINS, "Options Income - Other Strategies", _R),
    ("T-4300", "Dividend Income - Trading", _R),
    ("T-4400", "Interest Income - Trading", _R),
    (STOCK_LOSSES_ST, "Stock Trading Losses - Short Term", _X),
    (STOCK_LOSSES_LT, "Stock Trading Losses - Long Term", _X),
    ("T-5100", "Options Losses - Debit Spreads", _X),
    ("T-5110", "Options Losses - Credit Spreads", _X),
    ("T-5120", "Options Losses - Iron Condors", _X),
    ("T-5130", "Options Losses - Straddles/Strangles", _X),
    (OPTIONS_LOSSES, "Options Losses - Other Strategies", _X),
    ("T-6010", "Brokerage Commissions", _X),
    ("T-6020", "Options Contract Fees", _X),
    ("T-6030", "Exchange Fees", _X),
    ("T-6040", "Regulatory Fees (SEC, FINRA)", _X),
    ("T-6050", "Margin Interest Expense", _X),
]

# Withdrawals reduce equity, so they carry a debit balance.
_DEBIT_EXCEPTIONS = {"T-3300"}


def normal_side(code: str, account_type: AccountType) -> EntrySide:
    """Normal balance side: debit for assets and expenses, credit otherwise."""
    if code in _DEBIT_EXCEPTIONS:
        return EntrySide.DEBIT
    if account_type in (AccountType.ASSET, AccountType.EXPENSE):
        return EntrySide.DEBIT
    return EntrySide.CREDIT


def seed_trading_accounts(repo: TradeRepository) -> int:
    """Install the trading chart of accounts. Returns the number inserted.

    Existing codes are left untouched, so seeding twice is harmless.
    """
    inserted = 0
    with repo.transaction():
        for code, name, account_type in TRADING_ACCOUNTS:
            if repo.upsert_account(
                str(uuid4()), code, name, account_type, normal_side(code, account_type)
            ):
                inserted += 1
    logger.info("Seeded %d of %d trading accounts", inserted, len(TRADING_ACCOUNTS))
    return inserted
