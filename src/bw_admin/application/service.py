"""Admin application service — settlement, payment sweeps, reconciliation."""

from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_admin.domain.invariants import reconcile_ledger
from src.bw_common.enums import BetOutcome
from src.bw_payment.application.schemas import ExpireReport
from src.bw_payment.application.service import PaymentService
from src.bw_settlement.application.schemas import SettlementResponse
from src.bw_settlement.application.service import SettlementEngine


class AdminService:
    def __init__(
        self,
        settlement: SettlementEngine | None = None,
        payments: PaymentService | None = None,
    ) -> None:
        self._settlement = settlement or SettlementEngine()
        self._payments = payments or PaymentService()

    async def settle_bet(
        self, db: AsyncSession, bet_id: str, outcome: BetOutcome
    ) -> SettlementResponse:
        return await self._settlement.settle(db, bet_id, outcome)

    async def expire_payments(
        self, db: AsyncSession, now: datetime | None = None, limit: int = 200
    ) -> ExpireReport:
        return await self._payments.expire_stale(db, now=now, limit=limit)

    async def verify_ledger(self, db: AsyncSession) -> dict[str, Any]:
        report = await reconcile_ledger(db)
        return {
            "ok": report.ok,
            "wallet_drifts": [
                {
                    "user_id": d.user_id,
                    "balance_cents": d.balance,
                    "ledger_sum_cents": d.ledger_sum,
                    "difference_cents": d.balance - d.ledger_sum,
                }
                for d in report.wallet_drifts
            ],
            "negative_entries": [
                {
                    "entry_id": e.entry_id,
                    "user_id": e.user_id,
                    "kind": e.kind,
                    "amount_cents": e.amount,
                    "balance_after_cents": e.balance_after,
                }
                for e in report.negative_entries
            ],
        }
