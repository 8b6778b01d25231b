"""Domain models for bw_betting — pure dataclasses, no SQLAlchemy dependency.

A BetGroup is the wager the user pays for (one stake, one combined price);
its Bets are the legs. A single bet is a group with one leg.
"""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class LegRequest:
    """One selection as submitted by the bettor, before validation."""

    game_id: str
    odds_bps: int
    label: str
    market_id: str | None = None
    market_option_id: str | None = None


@dataclass
class Bet:
    id: str
    group_id: str
    user_id: str
    game_id: str
    label: str
    stake: int                    # cents, the group stake
    odds_bps: int
    potential_winnings: int       # cents, stake * leg odds
    status: str                   # BetStatus value
    market_id: str | None = None
    market_option_id: str | None = None
    placed_at: datetime | None = None
    settled_at: datetime | None = None


@dataclass
class BetGroup:
    id: str
    user_id: str
    stake: int                    # cents, debited once
    combined_odds_bps: int
    potential_winnings: int       # cents, credited once if every leg wins
    leg_count: int
    status: str                   # BetStatus value
    placed_at: datetime | None = None
    settled_at: datetime | None = None
    legs: list[Bet] = field(default_factory=list)


@dataclass
class SettlementResult:
    bet: Bet
    group: BetGroup
    # True only for the call that moved the group out of `active`
    group_resolved: bool
