"""Payment Repository Protocol — dependency inversion for testability."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_payment.domain.models import Payment


class PaymentRepositoryProtocol(Protocol):
    async def insert(self, db: AsyncSession, payment: Payment) -> Payment: ...

    async def get_by_ref(self, db: AsyncSession, gateway_ref: str) -> Payment | None: ...

    async def lock_by_ref(self, db: AsyncSession, gateway_ref: str) -> Payment | None: ...

    async def mark_resolved(
        self, db: AsyncSession, payment_id: str, status: str, reason: str | None
    ) -> Payment | None: ...

    async def update_gateway_ref(
        self, db: AsyncSession, payment_id: str, gateway_ref: str
    ) -> None: ...

    async def list_stale(
        self, db: AsyncSession, cutoff: datetime, limit: int
    ) -> list[Payment]: ...

    async def grant_daily_access(
        self, db: AsyncSession, user_id: str, until: datetime
    ) -> datetime: ...
