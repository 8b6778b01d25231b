"""LedgerStore — concrete implementation of LedgerStoreProtocol.

Every balance change is one `append`: lock the wallet row, guard, move the
cached balance and insert the ledger row, all inside the caller's
transaction. Nothing else in the codebase updates `wallets.balance`, so the
balance is always the fold of the entries.

Transaction ownership: the CALLER (application service) commits or rolls back.
"""

import logging

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.bw_common.errors import (
    DuplicateExternalRefError,
    InsufficientFundsError,
    InternalError,
    WalletNotFoundError,
)
from src.bw_wallet.domain.models import LedgerEntry, NewLedgerEntry, Wallet

logger = logging.getLogger(__name__)

_WALLET_COLUMNS = "id, user_id, balance, version, created_at, updated_at"
_LEDGER_COLUMNS = (
    "id, user_id, kind, amount, balance_after, related_bet_id, bet_group_id,"
    " external_ref, description, created_at"
)

_CREATE_WALLET_SQL = text(f"""
    INSERT INTO wallets (user_id, balance, version)
    VALUES (:user_id, 0, 0)
    RETURNING {_WALLET_COLUMNS}
""")

_GET_WALLET_SQL = text(f"""
    SELECT {_WALLET_COLUMNS}
    FROM wallets
    WHERE user_id = :user_id
""")

_LOCK_WALLET_SQL = text(f"""
    SELECT {_WALLET_COLUMNS}
    FROM wallets
    WHERE user_id = :user_id
    FOR UPDATE
""")

_FIND_EXTERNAL_REF_SQL = text("""
    SELECT id FROM ledger_entries
    WHERE user_id = :user_id AND kind = :kind AND external_ref = :external_ref
""")

# The balance guard is repeated in SQL so a missing lock can never go negative.
_APPLY_AMOUNT_SQL = text(f"""
    UPDATE wallets
    SET balance = balance + :amount,
        version = version + 1,
        updated_at = NOW()
    WHERE user_id = :user_id AND balance + :amount >= 0
    RETURNING {_WALLET_COLUMNS}
""")

_INSERT_LEDGER_SQL = text(f"""
    INSERT INTO ledger_entries
        (user_id, kind, amount, balance_after,
         related_bet_id, bet_group_id, external_ref, description)
    VALUES
        (:user_id, :kind, :amount, :balance_after,
         :related_bet_id, :bet_group_id, :external_ref, :description)
    RETURNING {_LEDGER_COLUMNS}
""")

_LIST_LEDGER_SQL = text(f"""
    SELECT {_LEDGER_COLUMNS}
    FROM ledger_entries
    WHERE user_id = :user_id
      AND (CAST(:cursor_id AS BIGINT) IS NULL OR id < :cursor_id)
      AND (CAST(:kind AS VARCHAR) IS NULL OR kind = :kind)
    ORDER BY id DESC
    LIMIT :limit
""")


def _row_to_wallet(row: object) -> Wallet:
    return Wallet(
        id=str(row.id),  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        balance=row.balance,  # type: ignore[attr-defined]
        version=row.version,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_ledger(row: object) -> LedgerEntry:
    return LedgerEntry(
        id=row.id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        kind=row.kind,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        balance_after=row.balance_after,  # type: ignore[attr-defined]
        related_bet_id=row.related_bet_id,  # type: ignore[attr-defined]
        bet_group_id=row.bet_group_id,  # type: ignore[attr-defined]
        external_ref=row.external_ref,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
    )


class LedgerStore:
    """Owner of wallets and ledger_entries. Stateless; share one instance."""

    async def create_wallet(self, db: AsyncSession, user_id: str) -> Wallet:
        row = (await db.execute(_CREATE_WALLET_SQL, {"user_id": user_id})).fetchone()
        if row is None:
            raise InternalError("Wallet insert returned no rows — this should never happen")
        return _row_to_wallet(row)

    async def get_wallet(self, db: AsyncSession, user_id: str) -> Wallet | None:
        row = (await db.execute(_GET_WALLET_SQL, {"user_id": user_id})).fetchone()
        return _row_to_wallet(row) if row else None

    async def get_balance(self, db: AsyncSession, user_id: str) -> int:
        wallet = await self.get_wallet(db, user_id)
        if wallet is None:
            raise WalletNotFoundError(user_id)
        return wallet.balance

    async def append(
        self, db: AsyncSession, entry: NewLedgerEntry
    ) -> tuple[Wallet, LedgerEntry]:
        """Append one entry and move the cached balance in the same transaction.

        Raises:
            WalletNotFoundError: no wallet row for the user.
            DuplicateExternalRefError: (user, kind, external_ref) already recorded.
            InsufficientFundsError: a debit would take the balance below zero.
        """
        locked = (await db.execute(_LOCK_WALLET_SQL, {"user_id": entry.user_id})).fetchone()
        if locked is None:
            raise WalletNotFoundError(entry.user_id)

        if entry.external_ref is not None:
            dup = (
                await db.execute(
                    _FIND_EXTERNAL_REF_SQL,
                    {
                        "user_id": entry.user_id,
                        "kind": entry.kind.value,
                        "external_ref": entry.external_ref,
                    },
                )
            ).fetchone()
            if dup is not None:
                raise DuplicateExternalRefError(entry.external_ref)

        row = (
            await db.execute(
                _APPLY_AMOUNT_SQL, {"user_id": entry.user_id, "amount": entry.amount}
            )
        ).fetchone()
        if row is None:
            raise InsufficientFundsError(-entry.amount, locked.balance)  # type: ignore[attr-defined]
        wallet = _row_to_wallet(row)

        try:
            ledger_row = (
                await db.execute(
                    _INSERT_LEDGER_SQL,
                    {
                        "user_id": entry.user_id,
                        "kind": entry.kind.value,
                        "amount": entry.amount,
                        "balance_after": wallet.balance,
                        "related_bet_id": entry.related_bet_id,
                        "bet_group_id": entry.bet_group_id,
                        "external_ref": entry.external_ref,
                        "description": entry.description,
                    },
                )
            ).fetchone()
        except IntegrityError as exc:
            # Unique index on (user_id, kind, external_ref) lost a race with another txn
            if entry.external_ref is not None:
                raise DuplicateExternalRefError(entry.external_ref) from exc
            raise
        if ledger_row is None:
            raise InternalError("Ledger insert returned no rows — this should never happen")

        ledger = _row_to_ledger(ledger_row)
        logger.info(
            "ledger append user=%s kind=%s amount=%d balance_after=%d entry=%d",
            entry.user_id,
            entry.kind.value,
            entry.amount,
            wallet.balance,
            ledger.id,
        )
        return wallet, ledger

    async def history(
        self,
        db: AsyncSession,
        user_id: str,
        cursor_id: int | None,
        limit: int,
        kind: str | None,
    ) -> list[LedgerEntry]:
        result = await db.execute(
            _LIST_LEDGER_SQL,
            {
                "user_id": user_id,
                "cursor_id": cursor_id,
                "kind": kind,
                "limit": limit,
            },
        )
        return [_row_to_ledger(row) for row in result.fetchall()]
