"""Pydantic schemas for bw_betting API.

Stake is in cents and odds in basis points (1.80 -> 18000); range checks
beyond basic typing are domain rules so they surface as AppError codes.
"""

from pydantic import BaseModel, Field

from src.bw_betting.domain.models import Bet, BetGroup, LegRequest
from src.bw_common.cents import cents_to_display, odds_to_display
from src.bw_common.datetime_utils import to_iso


class LegIn(BaseModel):
    game_id: str = Field(..., min_length=1, max_length=64)
    market_id: str | None = Field(None, max_length=64)
    market_option_id: str | None = Field(None, max_length=64)
    odds_bps: int = Field(..., description="Decimal odds x 10000, e.g. 1.80 -> 18000")
    label: str = Field(..., min_length=1, max_length=200)

    def to_domain(self) -> LegRequest:
        return LegRequest(
            game_id=self.game_id,
            market_id=self.market_id,
            market_option_id=self.market_option_id,
            odds_bps=self.odds_bps,
            label=self.label,
        )


class PlaceBetRequest(BaseModel):
    stake_cents: int
    legs: list[LegIn]


class BetResponse(BaseModel):
    id: str
    group_id: str
    game_id: str
    market_id: str | None
    market_option_id: str | None
    label: str
    stake_cents: int
    stake_display: str
    odds_bps: int
    odds_display: str
    potential_winnings_cents: int
    potential_winnings_display: str
    status: str
    placed_at: str | None
    settled_at: str | None

    @classmethod
    def from_bet(cls, b: Bet) -> "BetResponse":
        return cls(
            id=b.id,
            group_id=b.group_id,
            game_id=b.game_id,
            market_id=b.market_id,
            market_option_id=b.market_option_id,
            label=b.label,
            stake_cents=b.stake,
            stake_display=cents_to_display(b.stake),
            odds_bps=b.odds_bps,
            odds_display=odds_to_display(b.odds_bps),
            potential_winnings_cents=b.potential_winnings,
            potential_winnings_display=cents_to_display(b.potential_winnings),
            status=b.status,
            placed_at=to_iso(b.placed_at),
            settled_at=to_iso(b.settled_at),
        )


class BetGroupResponse(BaseModel):
    id: str
    stake_cents: int
    stake_display: str
    combined_odds_bps: int
    combined_odds_display: str
    potential_winnings_cents: int
    potential_winnings_display: str
    status: str
    placed_at: str | None
    settled_at: str | None
    legs: list[BetResponse]
    balance_after_cents: int | None = None

    @classmethod
    def from_group(cls, g: BetGroup, balance_after: int | None = None) -> "BetGroupResponse":
        return cls(
            id=g.id,
            stake_cents=g.stake,
            stake_display=cents_to_display(g.stake),
            combined_odds_bps=g.combined_odds_bps,
            combined_odds_display=odds_to_display(g.combined_odds_bps),
            potential_winnings_cents=g.potential_winnings,
            potential_winnings_display=cents_to_display(g.potential_winnings),
            status=g.status,
            placed_at=to_iso(g.placed_at),
            settled_at=to_iso(g.settled_at),
            legs=[BetResponse.from_bet(b) for b in g.legs],
            balance_after_cents=balance_after,
        )


class BetListResponse(BaseModel):
    items: list[BetResponse]
    has_more: bool
    next_offset: int | None
