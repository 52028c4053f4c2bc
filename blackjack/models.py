from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .cards import Card


class Phase(str, Enum):
    IDLE = "IDLE"
    DEALING = "DEALING"
    PLAYER_TURNS = "PLAYER_TURNS"
    DEALER_PLAY = "DEALER_PLAY"
    SETTLEMENT = "SETTLEMENT"
    PAUSED = "PAUSED"


class Result(str, Enum):
    NONE = "NONE"
    WIN = "WIN"
    LOSE = "LOSE"
    TIE = "TIE"


# Outbound event names.
SEATS_UPDATED = "seatsUpdated"
ROUND_STARTED = "roundStarted"
ROUND_SETTLED = "roundSettled"
MUST_WAIT = "mustWait"


@dataclass
class TableConfig:
    seats: int = 3
    deck_count: int = 6
    starting_stack: int = 1_000
    dealer_stands_on: int = 17
    deal_delay_ms: int = 2_000
    settle_pause_ms: int = 5_000


@dataclass
class Seat:
    seat: int
    identity: str
    nickname: str
    stack: int
    hand: List[Card] = field(default_factory=list)
    bet: int = 0
    active: bool = False
    done: bool = False
    result: Result = Result.NONE

    def reset_for_round(self) -> None:
        self.hand.clear()
        self.bet = 0
        self.active = False
        self.done = False
        self.result = Result.NONE


@dataclass
class Dealer:
    hand: List[Card] = field(default_factory=list)


@dataclass
class Event:
    ev: str
    data: Dict[str, object] = field(default_factory=dict)
    # None broadcasts to every viewer; an identity addresses one connection.
    target: Optional[str] = None
