from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_catalog.domain.models import Game, MarketOption


class CatalogRepositoryProtocol(Protocol):
    async def get_games(self, db: AsyncSession, game_ids: list[str]) -> dict[str, Game]: ...

    async def get_market_options(
        self, db: AsyncSession, option_ids: list[str]
    ) -> dict[str, MarketOption]: ...
