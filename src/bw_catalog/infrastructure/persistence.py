"""CatalogRepository — batched read-only lookups used to validate bet selections."""

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_catalog.domain.models import Game, MarketOption

_GET_GAMES_SQL = text("""
    SELECT id, home_team, away_team, league, kick_off_at, status
    FROM games
    WHERE id IN :game_ids
""").bindparams(bindparam("game_ids", expanding=True))

_GET_OPTIONS_SQL = text("""
    SELECT o.id, o.market_id, m.game_id, m.name AS market_name,
           o.label, o.odds_bps, o.is_active
    FROM market_options o
    JOIN markets m ON m.id = o.market_id
    WHERE o.id IN :option_ids
""").bindparams(bindparam("option_ids", expanding=True))


class CatalogRepository:
    async def get_games(self, db: AsyncSession, game_ids: list[str]) -> dict[str, Game]:
        if not game_ids:
            return {}
        rows = (await db.execute(_GET_GAMES_SQL, {"game_ids": game_ids})).fetchall()
        return {
            r.id: Game(
                id=r.id,
                home_team=r.home_team,
                away_team=r.away_team,
                league=r.league,
                kick_off_at=r.kick_off_at,
                status=r.status,
            )
            for r in rows
        }

    async def get_market_options(
        self, db: AsyncSession, option_ids: list[str]
    ) -> dict[str, MarketOption]:
        if not option_ids:
            return {}
        rows = (await db.execute(_GET_OPTIONS_SQL, {"option_ids": option_ids})).fetchall()
        return {
            r.id: MarketOption(
                id=r.id,
                market_id=r.market_id,
                game_id=r.game_id,
                market_name=r.market_name,
                label=r.label,
                odds_bps=r.odds_bps,
                is_active=r.is_active,
            )
            for r in rows
        }
