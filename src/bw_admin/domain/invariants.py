"""Ledger reconciliation checks.

wallets.balance is a cached projection; these queries recompute it from
ledger_entries and report every row that disagrees. Both lists are empty on
a healthy system.
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

_WALLET_DRIFT_SQL = text("""
    SELECT w.user_id, w.balance, COALESCE(SUM(l.amount), 0) AS ledger_sum
    FROM wallets w
    LEFT JOIN ledger_entries l ON l.user_id = w.user_id
    GROUP BY w.user_id, w.balance
    HAVING w.balance <> COALESCE(SUM(l.amount), 0)
    ORDER BY w.user_id
""")

_NEGATIVE_ENTRY_SQL = text("""
    SELECT id, user_id, kind, amount, balance_after
    FROM ledger_entries
    WHERE balance_after < 0
    ORDER BY id
""")


@dataclass(frozen=True)
class WalletDrift:
    user_id: str
    balance: int
    ledger_sum: int


@dataclass(frozen=True)
class NegativeEntry:
    entry_id: int
    user_id: str
    kind: str
    amount: int
    balance_after: int


@dataclass
class ReconciliationReport:
    wallet_drifts: list[WalletDrift] = field(default_factory=list)
    negative_entries: list[NegativeEntry] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.wallet_drifts and not self.negative_entries


async def reconcile_ledger(db: AsyncSession) -> ReconciliationReport:
    report = ReconciliationReport()
    for row in (await db.execute(_WALLET_DRIFT_SQL)).fetchall():
        drift = WalletDrift(
            user_id=row.user_id,
            balance=int(row.balance),
            ledger_sum=int(row.ledger_sum),
        )
        report.wallet_drifts.append(drift)
        logger.error(
            "wallet drift user=%s balance=%d ledger_sum=%d",
            drift.user_id,
            drift.balance,
            drift.ledger_sum,
        )
    for row in (await db.execute(_NEGATIVE_ENTRY_SQL)).fetchall():
        entry = NegativeEntry(
            entry_id=row.id,
            user_id=row.user_id,
            kind=row.kind,
            amount=row.amount,
            balance_after=row.balance_after,
        )
        report.negative_entries.append(entry)
        logger.error(
            "negative balance_after entry=%d user=%s balance_after=%d",
            entry.entry_id,
            entry.user_id,
            entry.balance_after,
        )
    return report
