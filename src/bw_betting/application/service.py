"""Stake reservation and bet queries.

`reserve` is the only way money leaves a wallet for a bet. Validation runs
first and raises before anything is written; the debit and the bet rows are
then written in ONE transaction, so a failed insert rolls the debit back with
it. There is no compensating refund path.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.bw_betting.application.schemas import BetGroupResponse, BetListResponse, BetResponse
from src.bw_betting.domain.models import LegRequest
from src.bw_betting.domain.repository import BetRepositoryProtocol
from src.bw_betting.domain.rules import build_group, validate_against_catalog, validate_slip
from src.bw_betting.infrastructure.persistence import BetRepository
from src.bw_catalog.domain.repository import CatalogRepositoryProtocol
from src.bw_catalog.infrastructure.persistence import CatalogRepository
from src.bw_common.enums import LedgerEntryKind
from src.bw_common.errors import BetNotFoundError, InternalError
from src.bw_common.id_generator import generate_id
from src.bw_wallet.domain.models import NewLedgerEntry
from src.bw_wallet.domain.repository import LedgerStoreProtocol
from src.bw_wallet.infrastructure.persistence import LedgerStore

logger = logging.getLogger(__name__)


class StakeReservationService:
    def __init__(
        self,
        ledger: LedgerStoreProtocol | None = None,
        bets: BetRepositoryProtocol | None = None,
        catalog: CatalogRepositoryProtocol | None = None,
        min_stake: int | None = None,
        max_legs: int | None = None,
    ) -> None:
        self._ledger: LedgerStoreProtocol = ledger or LedgerStore()
        self._bets: BetRepositoryProtocol = bets or BetRepository()
        self._catalog: CatalogRepositoryProtocol = catalog or CatalogRepository()
        self._min_stake = settings.MIN_STAKE_CENTS if min_stake is None else min_stake
        self._max_legs = settings.MAX_BET_LEGS if max_legs is None else max_legs

    async def reserve(
        self, db: AsyncSession, user_id: str, legs: list[LegRequest], stake: int
    ) -> BetGroupResponse:
        """Debit the stake and record the bet group, all or nothing.

        Raises NoLegsError, InvalidStakeError, InvalidLegsError, InvalidOddsError,
        GameNotFoundError, GameNotOpenError, MarketOptionNotFoundError before
        any write; InsufficientFundsError from the ledger append.
        """
        validate_slip(legs, stake, self._min_stake, self._max_legs)

        try:
            games = await self._catalog.get_games(db, sorted({leg.game_id for leg in legs}))
            options = await self._catalog.get_market_options(
                db, sorted({leg.market_option_id for leg in legs if leg.market_option_id})
            )
            validate_against_catalog(legs, games, options)

            group = build_group(
                group_id=generate_id("grp_"),
                leg_ids=[generate_id("bet_") for _ in legs],
                user_id=user_id,
                legs=legs,
                stake=stake,
            )
            wallet, _ = await self._ledger.append(
                db,
                NewLedgerEntry(
                    user_id=user_id,
                    kind=LedgerEntryKind.BET_PLACED,
                    amount=-stake,
                    related_bet_id=group.legs[0].id if group.leg_count == 1 else None,
                    bet_group_id=group.id,
                    description=f"Stake on {group.leg_count}-leg bet",
                ),
            )
            await self._bets.place(db, group)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(
            "bet placed user=%s group=%s legs=%d stake=%d potential=%d",
            user_id,
            group.id,
            group.leg_count,
            group.stake,
            group.potential_winnings,
        )
        return BetGroupResponse.from_group(group, balance_after=wallet.balance)

    async def get_bet(self, db: AsyncSession, user_id: str, bet_id: str) -> BetGroupResponse:
        """A leg together with its group; other users' bets look like missing ones."""
        bet = await self._bets.get_bet(db, bet_id)
        if bet is None or bet.user_id != user_id:
            raise BetNotFoundError(bet_id)
        group = await self._bets.get_group(db, bet.group_id)
        if group is None:
            raise InternalError(f"Bet {bet_id} has no group")
        return BetGroupResponse.from_group(group)

    async def list_bets(
        self,
        db: AsyncSession,
        user_id: str,
        status: str | None,
        search: str | None,
        sort: str,
        limit: int,
        offset: int,
    ) -> BetListResponse:
        bets = await self._bets.find_by_user(
            db, user_id, status, search, sort, limit + 1, offset
        )
        has_more = len(bets) > limit
        page = bets[:limit]
        return BetListResponse(
            items=[BetResponse.from_bet(b) for b in page],
            has_more=has_more,
            next_offset=offset + limit if has_more else None,
        )
