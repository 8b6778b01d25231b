"""WalletApplicationService — read side of the Ledger Store.

Balance-changing operations live with their owners (stake reservation,
settlement, payments), which call LedgerStore.append inside their own
transaction. Everything here is read-only.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_common.pagination import cursor_decode, cursor_encode
from src.bw_wallet.application.schemas import BalanceResponse, LedgerEntryItem, LedgerResponse
from src.bw_wallet.domain.repository import LedgerStoreProtocol
from src.bw_wallet.infrastructure.persistence import LedgerStore


class WalletApplicationService:
    def __init__(self, store: LedgerStoreProtocol | None = None) -> None:
        self._store: LedgerStoreProtocol = store or LedgerStore()

    async def get_balance(self, db: AsyncSession, user_id: str) -> BalanceResponse:
        balance = await self._store.get_balance(db, user_id)
        return BalanceResponse.from_cents(user_id=user_id, balance=balance)

    async def list_ledger(
        self,
        db: AsyncSession,
        user_id: str,
        cursor: str | None,
        limit: int,
        kind: str | None,
    ) -> LedgerResponse:
        cursor_id = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        entries = await self._store.history(db, user_id, cursor_id, limit + 1, kind)
        has_more = len(entries) > limit
        page = entries[:limit]

        next_cursor = cursor_encode(page[-1].id) if has_more and page else None
        return LedgerResponse(
            items=[LedgerEntryItem.from_entry(e) for e in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )
