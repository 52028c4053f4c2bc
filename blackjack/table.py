from __future__ import annotations

import random
from typing import Dict, List, Optional

from .cards import Card, build_shoe, draw
from .errors import InvalidAction, SeatUnavailable
from .evaluator import hand_value, is_natural, is_soft
from .models import Dealer, Phase, Seat, TableConfig

# TableState is the single source of truth for one table. It knows nothing
# about turn order policy or payouts; the controller and the action handlers
# drive it through the methods below.

JOINABLE_PHASES = (Phase.IDLE, Phase.PAUSED)


class TableState:
    def __init__(self, config: TableConfig, seed: Optional[int] = None) -> None:
        self.config = config
        self.rng = random.Random(seed)
        self.seats: List[Optional[Seat]] = [None] * config.seats
        self.dealer = Dealer()
        self.shoe: List[Card] = []
        self.phase = Phase.IDLE
        self.round_no = 0

    # Seat management -------------------------------------------------

    def occupy(
        self,
        identity: str,
        nickname: str,
        stack: int,
        seat_index: Optional[int] = None,
    ) -> Seat:
        if self.phase not in JOINABLE_PHASES:
            raise SeatUnavailable("ROUND_IN_PROGRESS", "Wait for the next round")
        if self._find(identity) is not None:
            raise SeatUnavailable("ALREADY_SEATED", "Already seated at this table")
        if len(self.occupied()) >= self.config.seats:
            raise SeatUnavailable("TABLE_FULL", "No seats available")

        if seat_index is None:
            seat_index = next(idx for idx, seat in enumerate(self.seats) if seat is None)
        elif not 0 <= seat_index < self.config.seats:
            raise SeatUnavailable("BAD_SEAT", f"Seat {seat_index} does not exist")
        elif self.seats[seat_index] is not None:
            raise SeatUnavailable("SEAT_TAKEN", f"Seat {seat_index} is taken")

        seat = Seat(seat=seat_index, identity=identity, nickname=nickname, stack=stack)
        self.seats[seat_index] = seat
        return seat

    def vacate(self, identity: str) -> Seat:
        seat = self.find(identity)
        self.seats[seat.seat] = None
        return seat

    def find(self, identity: str) -> Seat:
        seat = self._find(identity)
        if seat is None:
            raise InvalidAction("UNKNOWN_SEAT", f"No seat for {identity}")
        return seat

    def _find(self, identity: str) -> Optional[Seat]:
        for seat in self.seats:
            if seat and seat.identity == identity:
                return seat
        return None

    def occupied(self) -> List[Seat]:
        return [seat for seat in self.seats if seat is not None]

    def active_seat(self) -> Optional[Seat]:
        for seat in self.occupied():
            if seat.active:
                return seat
        return None

    def next_pending_seat(self) -> Optional[Seat]:
        for seat in self.occupied():
            if not seat.done:
                return seat
        return None

    # Round bookkeeping -----------------------------------------------

    def reset_for_round(self) -> None:
        for seat in self.occupied():
            seat.reset_for_round()
        self.shoe = build_shoe(self.config.deck_count, self.rng)
        self.dealer.hand.clear()
        self.round_no += 1

    def clear_round(self) -> None:
        # Drop every trace of an abandoned round.
        for seat in self.occupied():
            seat.reset_for_round()
        self.dealer.hand.clear()
        self.shoe.clear()
        self.phase = Phase.IDLE

    def deal_to(self, hand: List[Card]) -> Card:
        card = draw(self.shoe)
        hand.append(card)
        return card

    # Snapshots -------------------------------------------------------

    def snapshot(self) -> Dict[str, object]:
        active = self.active_seat()
        return {
            "phase": self.phase.value,
            "round": self.round_no,
            "active_seat": active.seat if active else None,
            "seats": [self._seat_view(seat) for seat in self.occupied()],
            "dealer": {
                "hand": [card.to_dict() for card in self.dealer.hand],
                "value": hand_value(self.dealer.hand),
            },
            "shoe_remaining": len(self.shoe),
        }

    def _seat_view(self, seat: Seat) -> Dict[str, object]:
        return {
            "seat": seat.seat,
            "id": seat.identity,
            "nickname": seat.nickname,
            "stack": seat.stack,
            "bet": seat.bet,
            "hand": [card.to_dict() for card in seat.hand],
            "value": hand_value(seat.hand),
            "soft": is_soft(seat.hand),
            "blackjack": is_natural(seat.hand),
            "turn": seat.active,
            "result": seat.result.value,
        }
