"""Pydantic schemas for bw_wallet API."""

from pydantic import BaseModel

from src.bw_common.cents import cents_to_display
from src.bw_common.datetime_utils import to_iso
from src.bw_wallet.domain.models import LedgerEntry


class BalanceResponse(BaseModel):
    user_id: str
    balance_cents: int
    balance_display: str

    @classmethod
    def from_cents(cls, user_id: str, balance: int) -> "BalanceResponse":
        return cls(
            user_id=user_id,
            balance_cents=balance,
            balance_display=cents_to_display(balance),
        )


class LedgerEntryItem(BaseModel):
    id: int
    kind: str
    amount_cents: int
    amount_display: str
    balance_after_cents: int
    balance_after_display: str
    related_bet_id: str | None
    bet_group_id: str | None
    external_ref: str | None
    description: str | None
    created_at: str | None

    @classmethod
    def from_entry(cls, e: LedgerEntry) -> "LedgerEntryItem":
        return cls(
            id=e.id,
            kind=e.kind,
            amount_cents=e.amount,
            amount_display=cents_to_display(e.amount),
            balance_after_cents=e.balance_after,
            balance_after_display=cents_to_display(e.balance_after),
            related_bet_id=e.related_bet_id,
            bet_group_id=e.bet_group_id,
            external_ref=e.external_ref,
            description=e.description,
            created_at=to_iso(e.created_at),
        )


class LedgerResponse(BaseModel):
    items: list[LedgerEntryItem]
    next_cursor: str | None
    has_more: bool
