"""Settlement engine — apply one leg's outcome and pay out a winning group.

The leg status change, the group resolution and the `bet_won` credit are one
transaction. Only the call that moves the group out of `active` credits, and
a repeated settle of the same leg stops at AlreadySettledError, so a group
is paid at most once.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_betting.domain.repository import BetRepositoryProtocol
from src.bw_betting.infrastructure.persistence import BetRepository
from src.bw_common.cents import cents_to_display
from src.bw_common.enums import BetOutcome, BetStatus, LedgerEntryKind
from src.bw_settlement.application.schemas import SettlementResponse
from src.bw_wallet.domain.models import NewLedgerEntry
from src.bw_wallet.domain.repository import LedgerStoreProtocol
from src.bw_wallet.infrastructure.persistence import LedgerStore

logger = logging.getLogger(__name__)


class SettlementEngine:
    def __init__(
        self,
        bets: BetRepositoryProtocol | None = None,
        ledger: LedgerStoreProtocol | None = None,
    ) -> None:
        self._bets: BetRepositoryProtocol = bets or BetRepository()
        self._ledger: LedgerStoreProtocol = ledger or LedgerStore()

    async def settle(
        self, db: AsyncSession, bet_id: str, outcome: BetOutcome
    ) -> SettlementResponse:
        """Raises BetNotFoundError, AlreadySettledError; nothing is written on error."""
        credited = 0
        balance_after: int | None = None
        try:
            result = await self._bets.settle(db, bet_id, outcome.value)
            group = result.group
            if result.group_resolved and group.status == BetStatus.WON.value:
                wallet, _ = await self._ledger.append(
                    db,
                    NewLedgerEntry(
                        user_id=group.user_id,
                        kind=LedgerEntryKind.BET_WON,
                        amount=group.potential_winnings,
                        related_bet_id=bet_id,
                        bet_group_id=group.id,
                        description=f"Winnings on {group.leg_count}-leg bet",
                    ),
                )
                credited = group.potential_winnings
                balance_after = wallet.balance
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "bet settled bet=%s outcome=%s group=%s group_status=%s credited=%d",
            bet_id,
            outcome.value,
            group.id,
            group.status,
            credited,
        )
        return SettlementResponse(
            bet_id=bet_id,
            bet_status=result.bet.status,
            group_id=group.id,
            group_status=group.status,
            group_resolved=result.group_resolved,
            credited_cents=credited,
            credited_display=cents_to_display(credited),
            balance_after_cents=balance_after,
        )
