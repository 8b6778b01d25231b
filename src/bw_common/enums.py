"""Global enums — must match DB CHECK constraints exactly."""

from enum import Enum


class LedgerEntryKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    BET_PLACED = "bet_placed"
    BET_WON = "bet_won"
    BET_REFUNDED = "bet_refunded"
    # Credit back a withdrawal the gateway never paid out
    WITHDRAWAL_REVERSED = "withdrawal_reversed"


# +1 credit, -1 debit. Amount signs are checked against this before insert.
LEDGER_KIND_SIGN: dict[LedgerEntryKind, int] = {
    LedgerEntryKind.DEPOSIT: 1,
    LedgerEntryKind.WITHDRAWAL: -1,
    LedgerEntryKind.BET_PLACED: -1,
    LedgerEntryKind.BET_WON: 1,
    LedgerEntryKind.BET_REFUNDED: 1,
    LedgerEntryKind.WITHDRAWAL_REVERSED: 1,
}


class BetStatus(str, Enum):
    ACTIVE = "active"
    WON = "won"
    LOST = "lost"


class BetOutcome(str, Enum):
    """Admin-supplied result for one leg."""
    WON = "won"
    LOST = "lost"


class BetStatusFilter(str, Enum):
    ACTIVE = "active"
    SETTLED = "settled"


class BetSort(str, Enum):
    RECENT = "recent"
    STAKE = "stake"
    POTENTIAL_WINNINGS = "potential_winnings"


class GameStatus(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINISHED = "finished"
    CANCELLED = "cancelled"


class PaymentGateway(str, Enum):
    MPESA = "mpesa"
    PAYPAL = "paypal"


class PaymentDirection(str, Enum):
    IN = "in"
    OUT = "out"


class PaymentPurpose(str, Enum):
    """What a payment buys. Only deposits and withdrawals touch the wallet."""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    DAILY_ACCESS = "daily_access"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"
