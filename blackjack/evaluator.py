from __future__ import annotations

from typing import Optional, Sequence, Tuple

from .cards import Card

BLACKJACK = 21

FACE_RANKS = ("jack", "queen", "king")


def card_value(card: Optional[Card]) -> int:
    # Missing positions (a partially dealt hand) count as nothing.
    if card is None:
        return 0
    if card.rank == "ace":
        return 11
    if card.rank in FACE_RANKS:
        return 10
    return int(card.rank)


def _score(hand: Sequence[Optional[Card]]) -> Tuple[int, int]:
    # Returns (total, aces still counted as 11).
    total = 0
    aces = 0
    for card in hand:
        total += card_value(card)
        if card is not None and card.rank == "ace":
            aces += 1
    while total > BLACKJACK and aces > 0:
        total -= 10
        aces -= 1
    return total, aces


def hand_value(hand: Sequence[Optional[Card]]) -> int:
    """Best total at or below 21 if one exists, otherwise the smallest bust total.

    Aces start at 11 and drop to 1 one at a time while the hand is over 21.
    """
    return _score(hand)[0]


def is_soft(hand: Sequence[Optional[Card]]) -> bool:
    return _score(hand)[1] > 0


def is_bust(hand: Sequence[Optional[Card]]) -> bool:
    return hand_value(hand) > BLACKJACK


def is_natural(hand: Sequence[Optional[Card]]) -> bool:
    return len(hand) == 2 and hand_value(hand) == BLACKJACK
