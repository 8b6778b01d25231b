"""Stake reservation rules — pure functions, raise before anything is written."""

from src.bw_betting.domain.models import Bet, BetGroup, LegRequest
from src.bw_catalog.domain.models import Game, MarketOption
from src.bw_common.cents import calculate_payout, combine_odds, is_valid_odds, odds_to_display
from src.bw_common.enums import BetStatus
from src.bw_common.errors import (
    GameNotFoundError,
    GameNotOpenError,
    InvalidLegsError,
    InvalidOddsError,
    InvalidStakeError,
    MarketOptionNotFoundError,
    NoLegsError,
)


def validate_slip(legs: list[LegRequest], stake: int, min_stake: int, max_legs: int) -> None:
    """Shape checks on the bet slip. Order: legs, stake, slip size, odds."""
    if not legs:
        raise NoLegsError()
    if stake <= 0:
        raise InvalidStakeError(f"stake must be positive, got {stake}")
    if stake < min_stake:
        raise InvalidStakeError(f"minimum stake is {min_stake} cents, got {stake}")
    if len(legs) > max_legs:
        raise InvalidLegsError(f"at most {max_legs} selections per bet, got {len(legs)}")
    seen: set[str] = set()
    for leg in legs:
        if leg.game_id in seen:
            raise InvalidLegsError(f"game {leg.game_id} selected more than once")
        seen.add(leg.game_id)
        if not is_valid_odds(leg.odds_bps):
            raise InvalidOddsError(f"odds must be at least 1.00, got {leg.odds_bps} bps")


def validate_against_catalog(
    legs: list[LegRequest],
    games: dict[str, Game],
    options: dict[str, MarketOption],
) -> None:
    """Every leg must point at an open game and, if given, a live option at the quoted price."""
    for leg in legs:
        game = games.get(leg.game_id)
        if game is None:
            raise GameNotFoundError(leg.game_id)
        if not game.is_open:
            raise GameNotOpenError(leg.game_id, game.status)
        if leg.market_option_id is None:
            continue
        option = options.get(leg.market_option_id)
        if option is None or option.game_id != leg.game_id:
            raise MarketOptionNotFoundError(leg.market_option_id)
        if leg.market_id is not None and option.market_id != leg.market_id:
            raise MarketOptionNotFoundError(leg.market_option_id)
        if not option.is_active:
            raise InvalidOddsError(f"selection {option.label} is suspended")
        if option.odds_bps != leg.odds_bps:
            raise InvalidOddsError(
                f"odds changed for {option.label}: quoted {odds_to_display(leg.odds_bps)},"
                f" now {odds_to_display(option.odds_bps)}"
            )


def build_group(
    group_id: str,
    leg_ids: list[str],
    user_id: str,
    legs: list[LegRequest],
    stake: int,
) -> BetGroup:
    """Price the slip: combined odds = product of legs, payout floored to the cent."""
    combined = combine_odds(leg.odds_bps for leg in legs)
    group = BetGroup(
        id=group_id,
        user_id=user_id,
        stake=stake,
        combined_odds_bps=combined,
        potential_winnings=calculate_payout(stake, combined),
        leg_count=len(legs),
        status=BetStatus.ACTIVE.value,
    )
    group.legs = [
        Bet(
            id=bet_id,
            group_id=group_id,
            user_id=user_id,
            game_id=leg.game_id,
            market_id=leg.market_id,
            market_option_id=leg.market_option_id,
            label=leg.label,
            stake=stake,
            odds_bps=leg.odds_bps,
            potential_winnings=calculate_payout(stake, leg.odds_bps),
            status=BetStatus.ACTIVE.value,
        )
        for bet_id, leg in zip(leg_ids, legs, strict=True)
    ]
    return group


def resolve_group_status(leg_statuses: list[str]) -> str:
    """Group outcome from its legs: any loss loses, all wins win, else still active."""
    if any(s == BetStatus.LOST.value for s in leg_statuses):
        return BetStatus.LOST.value
    if leg_statuses and all(s == BetStatus.WON.value for s in leg_statuses):
        return BetStatus.WON.value
    return BetStatus.ACTIVE.value
