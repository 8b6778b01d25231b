"""Bet Repository Protocol — dependency inversion for testability."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_betting.domain.models import Bet, BetGroup, SettlementResult


class BetRepositoryProtocol(Protocol):
    async def place(self, db: AsyncSession, group: BetGroup) -> str: ...

    async def settle(self, db: AsyncSession, bet_id: str, outcome: str) -> SettlementResult: ...

    async def get_bet(self, db: AsyncSession, bet_id: str) -> Bet | None: ...

    async def get_group(self, db: AsyncSession, group_id: str) -> BetGroup | None: ...

    async def find_by_user(
        self,
        db: AsyncSession,
        user_id: str,
        status: str | None,
        search: str | None,
        sort: str,
        limit: int,
        offset: int,
    ) -> list[Bet]: ...
