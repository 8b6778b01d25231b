"""Read-only catalog models. Games, markets and options are managed elsewhere."""

from dataclasses import dataclass
from datetime import datetime

from src.bw_common.enums import GameStatus

BETTABLE_GAME_STATUSES = frozenset({GameStatus.SCHEDULED.value, GameStatus.LIVE.value})


@dataclass
class Game:
    id: str
    home_team: str
    away_team: str
    league: str | None
    kick_off_at: datetime | None
    status: str

    @property
    def is_open(self) -> bool:
        return self.status in BETTABLE_GAME_STATUSES

    @property
    def title(self) -> str:
        return f"{self.home_team} vs {self.away_team}"


@dataclass
class MarketOption:
    id: str
    market_id: str
    game_id: str
    market_name: str
    label: str
    odds_bps: int
    is_active: bool
