"""Ledger Store Protocol — dependency inversion for testability.

Unit tests inject a mock that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_wallet.domain.models import LedgerEntry, NewLedgerEntry, Wallet


class LedgerStoreProtocol(Protocol):
    async def create_wallet(self, db: AsyncSession, user_id: str) -> Wallet: ...

    async def get_wallet(self, db: AsyncSession, user_id: str) -> Wallet | None: ...

    async def get_balance(self, db: AsyncSession, user_id: str) -> int: ...

    async def append(
        self, db: AsyncSession, entry: NewLedgerEntry
    ) -> tuple[Wallet, LedgerEntry]: ...

    async def history(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        kind: str | None,
    ) -> list[LedgerEntry]: ...
