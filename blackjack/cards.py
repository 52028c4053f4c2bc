from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .errors import ShoeExhausted

RANKS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "jack", "queen", "king", "ace")
SUITS = ("hearts", "diamonds", "clubs", "spades")

_SHORT_RANKS = {"jack": "J", "queen": "Q", "king": "K", "ace": "A"}
_LONG_RANKS = {short: long for long, short in _SHORT_RANKS.items()}
_SHORT_SUITS = {suit: suit[0] for suit in SUITS}
_LONG_SUITS = {short: long for long, short in _SHORT_SUITS.items()}


@dataclass(frozen=True)
class Card:
    rank: str
    suit: str

    def __post_init__(self) -> None:
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")

    @property
    def label(self) -> str:
        return f"{_SHORT_RANKS.get(self.rank, self.rank)}{_SHORT_SUITS[self.suit]}"

    def to_dict(self) -> Dict[str, str]:
        return {"rank": self.rank, "suit": self.suit}


def build_shoe(deck_count: int = 6, rng: Optional[random.Random] = None) -> List[Card]:
    rng = rng or random.Random()
    shoe = [Card(rank, suit) for _ in range(deck_count) for suit in SUITS for rank in RANKS]
    rng.shuffle(shoe)
    return shoe


def draw(shoe: List[Card]) -> Card:
    # The end of the list is the top of the shoe.
    if not shoe:
        raise ShoeExhausted("SHOE_EXHAUSTED", "No cards left in the shoe")
    return shoe.pop()


def cards_to_labels(cards: Iterable[Card]) -> List[str]:
    return [card.label for card in cards]


def parse_label(label: str) -> Card:
    if len(label) < 2:
        raise ValueError(f"Invalid card label: {label}")
    rank, suit = label[:-1], label[-1]
    if suit not in _LONG_SUITS:
        raise ValueError(f"Invalid card label: {label}")
    return Card(_LONG_RANKS.get(rank.upper(), rank), _LONG_SUITS[suit])


def parse_cards(labels: Iterable[str]) -> List[Card]:
    return [parse_label(label) for label in labels]
