from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from .errors import ShoeExhausted
from .evaluator import BLACKJACK, hand_value
from .models import (
    ROUND_SETTLED,
    ROUND_STARTED,
    SEATS_UPDATED,
    Event,
    Phase,
    Result,
    Seat,
)
from .table import JOINABLE_PHASES, TableState

# RoundController owns the round lifecycle. No networking and no timers live
# here: every step runs to completion and hands back the events the server
# should broadcast. Timed steps take the round number they were scheduled for
# so a late timer cannot act on a newer round.

LOGGER = logging.getLogger(__name__)


def settle_hand(player_value: int, dealer_value: int) -> Result:
    if player_value > BLACKJACK:
        return Result.LOSE
    if dealer_value > BLACKJACK or player_value > dealer_value:
        return Result.WIN
    if player_value < dealer_value:
        return Result.LOSE
    return Result.TIE


def payout(result: Result, bet: int) -> int:
    if result == Result.WIN:
        return bet
    if result == Result.LOSE:
        return -bet
    return 0


class RoundController:
    """Blackjack round state machine for a single table."""

    def __init__(self, table: TableState) -> None:
        self.table = table

    # Round lifecycle -------------------------------------------------

    def can_start_round(self) -> bool:
        return self.table.phase in JOINABLE_PHASES and bool(self.table.occupied())

    def begin_round(self) -> List[Event]:
        # Refuses while a round is running, so concurrent triggers coalesce.
        if not self.can_start_round():
            return []
        table = self.table
        table.reset_for_round()
        table.phase = Phase.DEALING
        LOGGER.info(
            "Round %s dealing to seats %s",
            table.round_no,
            [seat.seat for seat in table.occupied()],
        )
        return [self.seats_updated()]

    def finish_dealing(self, round_no: Optional[int] = None) -> List[Event]:
        table = self.table
        if table.phase != Phase.DEALING or not self._current(round_no):
            return []
        seats = table.occupied()
        try:
            for _ in range(2):
                for seat in seats:
                    table.deal_to(seat.hand)
            # Single up-card; the dealer draws the rest on its own turn.
            table.deal_to(table.dealer.hand)
        except ShoeExhausted:
            return self.abort_round()

        table.phase = Phase.PLAYER_TURNS
        seats[0].active = True
        return [self._event(ROUND_STARTED)]

    def end_turn(self, seat: Seat) -> List[Event]:
        seat.active = False
        seat.done = True
        return self._advance()

    def _advance(self) -> List[Event]:
        upcoming = self.table.next_pending_seat()
        if upcoming is not None:
            upcoming.active = True
            return [self.seats_updated()]
        events = [self.seats_updated()]
        events.extend(self._play_dealer())
        return events

    def _play_dealer(self) -> List[Event]:
        table = self.table
        table.phase = Phase.DEALER_PLAY
        try:
            while hand_value(table.dealer.hand) < table.config.dealer_stands_on:
                table.deal_to(table.dealer.hand)
        except ShoeExhausted:
            LOGGER.warning("Shoe ran out during dealer play in round %s", table.round_no)
        return self.settle()

    def settle(self) -> List[Event]:
        table = self.table
        table.phase = Phase.SETTLEMENT
        dealer_value = hand_value(table.dealer.hand)
        outcomes: List[Tuple[int, str, int]] = []
        for seat in table.occupied():
            seat.active = False
            seat.done = True
            seat.result = settle_hand(hand_value(seat.hand), dealer_value)
            # The only place a stack moves, once per seat per round.
            seat.stack = max(seat.stack + payout(seat.result, seat.bet), 0)
            outcomes.append((seat.seat, seat.result.value, seat.stack))

        LOGGER.info(
            "Round %s settled; dealer=%s results=%s",
            table.round_no,
            dealer_value,
            outcomes,
        )
        events = [self._event(ROUND_SETTLED)]
        table.phase = Phase.PAUSED
        return events

    def resume_after_pause(self, round_no: Optional[int] = None) -> List[Event]:
        table = self.table
        if table.phase != Phase.PAUSED or not self._current(round_no):
            return []
        table.phase = Phase.IDLE
        # An empty table simply stays idle until someone joins.
        return self.begin_round()

    def abort_round(self) -> List[Event]:
        # Shoe ran dry: nobody else acts, hands are settled as they stand.
        LOGGER.warning("Shoe exhausted in round %s; settling early", self.table.round_no)
        for seat in self.table.occupied():
            seat.active = False
            seat.done = True
        return self.settle()

    # Seat departures -------------------------------------------------

    def release_seat(self, identity: str) -> List[Event]:
        table = self.table
        seat = table.vacate(identity)
        LOGGER.info("Seat %s (%s) released", seat.seat, seat.nickname)

        if not table.occupied():
            if table.phase != Phase.IDLE:
                LOGGER.info("Table empty; abandoning round %s", table.round_no)
                table.clear_round()
            return [self.seats_updated()]

        if table.phase == Phase.PLAYER_TURNS and seat.active:
            return self._advance()
        return [self.seats_updated()]

    # Helpers ---------------------------------------------------------

    def seats_updated(self) -> Event:
        return self._event(SEATS_UPDATED)

    def _event(self, ev: str) -> Event:
        return Event(ev=ev, data=self.table.snapshot())

    def _current(self, round_no: Optional[int]) -> bool:
        return round_no is None or round_no == self.table.round_no
