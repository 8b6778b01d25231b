"""PaymentRepository — concrete implementation of PaymentRepositoryProtocol.

A payment leaves `pending` exactly once: `mark_resolved` is a
compare-and-set on the status, and callers lock the row first with
`lock_by_ref` so concurrent webhooks for one payment serialize.

Transaction ownership: the CALLER commits or rolls back.
"""

from datetime import datetime

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_common.errors import InternalError
from src.bw_payment.domain.models import Payment

_PAYMENT_COLUMNS = (
    "id, user_id, gateway, gateway_ref, amount, direction, status, phone_number,"
    " purpose, failure_reason, created_at, updated_at, resolved_at"
)

_INSERT_PAYMENT_SQL = text(f"""
    INSERT INTO payments
        (id, user_id, gateway, gateway_ref, amount, direction, status, phone_number, purpose)
    VALUES
        (:id, :user_id, :gateway, :gateway_ref, :amount, :direction, :status, :phone_number,
         :purpose)
    RETURNING {_PAYMENT_COLUMNS}
""")

_GET_BY_REF_SQL = text(f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE gateway_ref = :gateway_ref")

_LOCK_BY_REF_SQL = text(
    f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE gateway_ref = :gateway_ref FOR UPDATE"
)

_MARK_RESOLVED_SQL = text(f"""
    UPDATE payments
    SET status = :status,
        failure_reason = :reason,
        resolved_at = NOW(),
        updated_at = NOW()
    WHERE id = :payment_id AND status = 'pending'
    RETURNING {_PAYMENT_COLUMNS}
""")

_UPDATE_GATEWAY_REF_SQL = text("""
    UPDATE payments
    SET gateway_ref = :gateway_ref, updated_at = NOW()
    WHERE id = :payment_id
""")

# GREATEST skips NULL, so a first grant and an extension are the same statement
_GRANT_DAILY_ACCESS_SQL = text("""
    UPDATE users
    SET daily_access_granted_until = GREATEST(daily_access_granted_until, :until),
        updated_at = NOW()
    WHERE id = CAST(:user_id AS UUID)
    RETURNING daily_access_granted_until
""")

_LIST_STALE_SQL = text(f"""
    SELECT {_PAYMENT_COLUMNS}
    FROM payments
    WHERE status = 'pending' AND created_at < :cutoff
    ORDER BY created_at
    LIMIT :limit
""")


def _row_to_payment(row: object) -> Payment:
    return Payment(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        gateway=row.gateway,  # type: ignore[attr-defined]
        gateway_ref=row.gateway_ref,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        direction=row.direction,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        phone_number=row.phone_number,  # type: ignore[attr-defined]
        purpose=row.purpose,  # type: ignore[attr-defined]
        failure_reason=row.failure_reason,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
        resolved_at=row.resolved_at,  # type: ignore[attr-defined]
    )


class PaymentRepository:
    async def insert(self, db: AsyncSession, payment: Payment) -> Payment:
        row = (
            await db.execute(
                _INSERT_PAYMENT_SQL,
                {
                    "id": payment.id,
                    "user_id": payment.user_id,
                    "gateway": payment.gateway,
                    "gateway_ref": payment.gateway_ref,
                    "amount": payment.amount,
                    "direction": payment.direction,
                    "status": payment.status,
                    "phone_number": payment.phone_number,
                    "purpose": payment.purpose,
                },
            )
        ).fetchone()
        if row is None:
            raise InternalError("Payment insert returned no rows")
        return _row_to_payment(row)

    async def get_by_ref(self, db: AsyncSession, gateway_ref: str) -> Payment | None:
        row = (await db.execute(_GET_BY_REF_SQL, {"gateway_ref": gateway_ref})).fetchone()
        return _row_to_payment(row) if row else None

    async def lock_by_ref(self, db: AsyncSession, gateway_ref: str) -> Payment | None:
        row = (await db.execute(_LOCK_BY_REF_SQL, {"gateway_ref": gateway_ref})).fetchone()
        return _row_to_payment(row) if row else None

    async def mark_resolved(
        self, db: AsyncSession, payment_id: str, status: str, reason: str | None
    ) -> Payment | None:
        """None when the payment had already left `pending`."""
        row = (
            await db.execute(
                _MARK_RESOLVED_SQL,
                {"payment_id": payment_id, "status": status, "reason": reason},
            )
        ).fetchone()
        return _row_to_payment(row) if row else None

    async def update_gateway_ref(
        self, db: AsyncSession, payment_id: str, gateway_ref: str
    ) -> None:
        await db.execute(
            _UPDATE_GATEWAY_REF_SQL, {"payment_id": payment_id, "gateway_ref": gateway_ref}
        )

    async def list_stale(
        self, db: AsyncSession, cutoff: datetime, limit: int
    ) -> list[Payment]:
        result = await db.execute(_LIST_STALE_SQL, {"cutoff": cutoff, "limit": limit})
        return [_row_to_payment(row) for row in result.fetchall()]

    async def grant_daily_access(
        self, db: AsyncSession, user_id: str, until: datetime
    ) -> datetime:
        """Extend the user's access to at least `until`; never shortens it."""
        row = (
            await db.execute(_GRANT_DAILY_ACCESS_SQL, {"user_id": user_id, "until": until})
        ).fetchone()
        if row is None:
            raise InternalError(f"User {user_id} not found for daily access grant")
        return row.daily_access_granted_until  # type: ignore[no-any-return]
