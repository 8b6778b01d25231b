"""Pydantic response model for leg settlement."""

from pydantic import BaseModel


class SettlementResponse(BaseModel):
    bet_id: str
    bet_status: str
    group_id: str
    group_status: str
    group_resolved: bool
    credited_cents: int
    credited_display: str
    balance_after_cents: int | None = None
