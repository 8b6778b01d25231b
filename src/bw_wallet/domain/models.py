"""Domain models for bw_wallet — pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass
from datetime import datetime

from src.bw_common.enums import LEDGER_KIND_SIGN, LedgerEntryKind


@dataclass
class Wallet:
    id: str
    user_id: str
    balance: int             # cents, cached projection of SUM(ledger_entries.amount)
    version: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class LedgerEntry:
    id: int                          # BIGSERIAL
    user_id: str
    kind: str                        # LedgerEntryKind value
    amount: int                      # cents, positive=credit negative=debit
    balance_after: int               # cents, wallet balance right after this entry
    related_bet_id: str | None = None
    bet_group_id: str | None = None
    external_ref: str | None = None
    description: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class NewLedgerEntry:
    """An entry not yet appended. Sign of `amount` must agree with `kind`."""

    user_id: str
    kind: LedgerEntryKind
    amount: int
    related_bet_id: str | None = None
    bet_group_id: str | None = None
    external_ref: str | None = None
    description: str | None = None

    def __post_init__(self) -> None:
        if self.amount == 0:
            raise ValueError("Ledger entries must move money: amount is 0")
        sign = LEDGER_KIND_SIGN[self.kind]
        if (self.amount > 0) != (sign > 0):
            raise ValueError(
                f"Ledger entry of kind {self.kind.value} must be "
                f"{'positive' if sign > 0 else 'negative'}, got {self.amount}"
            )
