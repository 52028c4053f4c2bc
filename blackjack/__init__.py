"""Blackjack round engine shared by the table server and its tests."""

from .actions import ActionHandlers
from .cards import Card, RANKS, SUITS, build_shoe, draw
from .errors import InvalidAction, SeatUnavailable, ShoeExhausted, TableError
from .evaluator import card_value, hand_value
from .game import RoundController
from .models import Event, Phase, Result, Seat, TableConfig
from .table import TableState

__all__ = [
    "ActionHandlers",
    "Card",
    "RANKS",
    "SUITS",
    "build_shoe",
    "draw",
    "InvalidAction",
    "SeatUnavailable",
    "ShoeExhausted",
    "TableError",
    "card_value",
    "hand_value",
    "RoundController",
    "Event",
    "Phase",
    "Result",
    "Seat",
    "TableConfig",
    "TableState",
]
