"""BetRepository — concrete implementation of BetRepositoryProtocol.

Owns bet_groups and bets. Status changes go through a compare-and-set
(`WHERE status = 'active'`) so a terminal status is never overwritten, and
concurrent settles of the same leg serialize on the row lock with exactly
one winner.

Transaction ownership: the CALLER commits or rolls back.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_betting.domain.models import Bet, BetGroup, SettlementResult
from src.bw_betting.domain.rules import resolve_group_status
from src.bw_common.cents import is_valid_odds
from src.bw_common.datetime_utils import utc_now
from src.bw_common.enums import BetSort, BetStatus
from src.bw_common.errors import (
    AlreadySettledError,
    BetNotFoundError,
    InternalError,
    InvalidOddsError,
    InvalidStakeError,
)

_BET_COLUMNS = (
    "id, group_id, user_id, game_id, market_id, market_option_id, label,"
    " stake, odds_bps, potential_winnings, status, placed_at, settled_at"
)
_GROUP_COLUMNS = (
    "id, user_id, stake, combined_odds_bps, potential_winnings, leg_count,"
    " status, placed_at, settled_at"
)

_INSERT_GROUP_SQL = text("""
    INSERT INTO bet_groups
        (id, user_id, stake, combined_odds_bps, potential_winnings, leg_count, status, placed_at)
    VALUES
        (:id, :user_id, :stake, :combined_odds_bps, :potential_winnings, :leg_count,
         :status, :placed_at)
""")

_INSERT_BET_SQL = text("""
    INSERT INTO bets
        (id, group_id, user_id, game_id, market_id, market_option_id, label,
         stake, odds_bps, potential_winnings, status, placed_at)
    VALUES
        (:id, :group_id, :user_id, :game_id, :market_id, :market_option_id, :label,
         :stake, :odds_bps, :potential_winnings, :status, :placed_at)
""")

_SETTLE_BET_SQL = text(f"""
    UPDATE bets
    SET status = :outcome, settled_at = NOW()
    WHERE id = :bet_id AND status = 'active'
    RETURNING {_BET_COLUMNS}
""")

_GET_BET_SQL = text(f"SELECT {_BET_COLUMNS} FROM bets WHERE id = :bet_id")

_GET_GROUP_SQL = text(f"SELECT {_GROUP_COLUMNS} FROM bet_groups WHERE id = :group_id")

_LOCK_GROUP_SQL = text(
    f"SELECT {_GROUP_COLUMNS} FROM bet_groups WHERE id = :group_id FOR UPDATE"
)

_GROUP_LEGS_SQL = text(
    f"SELECT {_BET_COLUMNS} FROM bets WHERE group_id = :group_id ORDER BY id"
)

_RESOLVE_GROUP_SQL = text(f"""
    UPDATE bet_groups
    SET status = :status, settled_at = NOW()
    WHERE id = :group_id AND status = 'active'
    RETURNING {_GROUP_COLUMNS}
""")

# ORDER BY cannot be a bind parameter; one statement per whitelisted sort key.
_ORDER_BY = {
    BetSort.RECENT.value: "placed_at DESC, id DESC",
    BetSort.STAKE.value: "stake DESC, placed_at DESC, id DESC",
    BetSort.POTENTIAL_WINNINGS.value: "potential_winnings DESC, placed_at DESC, id DESC",
}

_FIND_BY_USER_SQL = {
    key: text(f"""
        SELECT {_BET_COLUMNS}
        FROM bets
        WHERE user_id = :user_id
          AND (CAST(:status AS VARCHAR) IS NULL
               OR (:status = 'active' AND status = 'active')
               OR (:status = 'settled' AND status <> 'active'))
          AND (CAST(:pattern AS VARCHAR) IS NULL
               OR label ILIKE :pattern ESCAPE '\\'
               OR game_id = :search
               OR EXISTS (
                   SELECT 1 FROM games g
                   WHERE g.id = bets.game_id
                     AND (g.home_team ILIKE :pattern ESCAPE '\\'
                          OR g.away_team ILIKE :pattern ESCAPE '\\')))
        ORDER BY {order}
        LIMIT :limit OFFSET :offset
    """)
    for key, order in _ORDER_BY.items()
}


def _row_to_bet(row: object) -> Bet:
    return Bet(
        id=row.id,  # type: ignore[attr-defined]
        group_id=row.group_id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        game_id=row.game_id,  # type: ignore[attr-defined]
        market_id=row.market_id,  # type: ignore[attr-defined]
        market_option_id=row.market_option_id,  # type: ignore[attr-defined]
        label=row.label,  # type: ignore[attr-defined]
        stake=row.stake,  # type: ignore[attr-defined]
        odds_bps=row.odds_bps,  # type: ignore[attr-defined]
        potential_winnings=row.potential_winnings,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        placed_at=row.placed_at,  # type: ignore[attr-defined]
        settled_at=row.settled_at,  # type: ignore[attr-defined]
    )


def _row_to_group(row: object) -> BetGroup:
    return BetGroup(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        stake=row.stake,  # type: ignore[attr-defined]
        combined_odds_bps=row.combined_odds_bps,  # type: ignore[attr-defined]
        potential_winnings=row.potential_winnings,  # type: ignore[attr-defined]
        leg_count=row.leg_count,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        placed_at=row.placed_at,  # type: ignore[attr-defined]
        settled_at=row.settled_at,  # type: ignore[attr-defined]
    )


def _like_pattern(search: str) -> str:
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class BetRepository:
    async def place(self, db: AsyncSession, group: BetGroup) -> str:
        """Insert the group and all its legs as one batch in the caller's transaction."""
        if group.stake <= 0:
            raise InvalidStakeError(f"stake must be positive, got {group.stake}")
        if not group.legs:
            raise InternalError(f"Bet group {group.id} has no legs")
        for leg in group.legs:
            if not is_valid_odds(leg.odds_bps):
                raise InvalidOddsError(f"odds must be at least 1.00, got {leg.odds_bps} bps")

        placed_at = utc_now()
        group.placed_at = placed_at
        await db.execute(
            _INSERT_GROUP_SQL,
            {
                "id": group.id,
                "user_id": group.user_id,
                "stake": group.stake,
                "combined_odds_bps": group.combined_odds_bps,
                "potential_winnings": group.potential_winnings,
                "leg_count": group.leg_count,
                "status": group.status,
                "placed_at": placed_at,
            },
        )
        params = []
        for leg in group.legs:
            leg.placed_at = placed_at
            params.append(
                {
                    "id": leg.id,
                    "group_id": group.id,
                    "user_id": leg.user_id,
                    "game_id": leg.game_id,
                    "market_id": leg.market_id,
                    "market_option_id": leg.market_option_id,
                    "label": leg.label,
                    "stake": leg.stake,
                    "odds_bps": leg.odds_bps,
                    "potential_winnings": leg.potential_winnings,
                    "status": leg.status,
                    "placed_at": placed_at,
                }
            )
        await db.execute(_INSERT_BET_SQL, params)
        return group.id

    async def settle(self, db: AsyncSession, bet_id: str, outcome: str) -> SettlementResult:
        """Move one leg out of `active`, then re-derive its group's status under a row lock.

        Raises:
            BetNotFoundError: no such bet.
            AlreadySettledError: the leg is already won/lost (retries land here).
        """
        row = (
            await db.execute(_SETTLE_BET_SQL, {"bet_id": bet_id, "outcome": outcome})
        ).fetchone()
        if row is None:
            existing = (await db.execute(_GET_BET_SQL, {"bet_id": bet_id})).fetchone()
            if existing is None:
                raise BetNotFoundError(bet_id)
            raise AlreadySettledError(bet_id, existing.status)  # type: ignore[attr-defined]
        bet = _row_to_bet(row)

        group_row = (
            await db.execute(_LOCK_GROUP_SQL, {"group_id": bet.group_id})
        ).fetchone()
        if group_row is None:
            raise InternalError(f"Bet {bet_id} references missing group {bet.group_id}")
        group = _row_to_group(group_row)
        leg_rows = (
            await db.execute(_GROUP_LEGS_SQL, {"group_id": group.id})
        ).fetchall()
        group.legs = [_row_to_bet(r) for r in leg_rows]

        resolved = False
        if group.status == BetStatus.ACTIVE.value:
            new_status = resolve_group_status([leg.status for leg in group.legs])
            if new_status != BetStatus.ACTIVE.value:
                updated = (
                    await db.execute(
                        _RESOLVE_GROUP_SQL, {"group_id": group.id, "status": new_status}
                    )
                ).fetchone()
                if updated is not None:
                    legs = group.legs
                    group = _row_to_group(updated)
                    group.legs = legs
                    resolved = True
        return SettlementResult(bet=bet, group=group, group_resolved=resolved)

    async def get_bet(self, db: AsyncSession, bet_id: str) -> Bet | None:
        row = (await db.execute(_GET_BET_SQL, {"bet_id": bet_id})).fetchone()
        return _row_to_bet(row) if row else None

    async def get_group(self, db: AsyncSession, group_id: str) -> BetGroup | None:
        row = (await db.execute(_GET_GROUP_SQL, {"group_id": group_id})).fetchone()
        if row is None:
            return None
        group = _row_to_group(row)
        leg_rows = (await db.execute(_GROUP_LEGS_SQL, {"group_id": group_id})).fetchall()
        group.legs = [_row_to_bet(r) for r in leg_rows]
        return group

    async def find_by_user(
        self,
        db: AsyncSession,
        user_id: str,
        status: str | None,
        search: str | None,
        sort: str,
        limit: int,
        offset: int,
    ) -> list[Bet]:
        stmt = _FIND_BY_USER_SQL.get(sort)
        if stmt is None:
            raise ValueError(f"Unsupported sort key: {sort}")
        term = search.strip() if search else None
        result = await db.execute(
            stmt,
            {
                "user_id": user_id,
                "status": status,
                "pattern": _like_pattern(term) if term else None,
                "search": term,
                "limit": limit,
                "offset": offset,
            },
        )
        return [_row_to_bet(row) for row in result.fetchall()]
