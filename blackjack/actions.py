from __future__ import annotations

import functools
import logging
from typing import Callable, List, Optional

from .errors import InvalidAction, SeatUnavailable, ShoeExhausted
from .evaluator import is_bust
from .game import RoundController
from .models import MUST_WAIT, Event, Phase, Seat

LOGGER = logging.getLogger(__name__)

Handler = Callable[..., List[Event]]


def _ignore_invalid(handler: Handler) -> Handler:
    # Invalid actions are dropped at the handler boundary: no state change,
    # no broadcast, nothing raised to the caller.
    @functools.wraps(handler)
    def wrapper(self: "ActionHandlers", *args, **kwargs) -> List[Event]:
        try:
            return handler(self, *args, **kwargs)
        except InvalidAction as exc:
            LOGGER.debug("Ignored %s: %s (%s)", handler.__name__, exc.msg, exc.code)
            return []

    return wrapper


def _is_amount(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


class ActionHandlers:
    """Validates seated players' actions and applies them to the table."""

    def __init__(self, controller: RoundController) -> None:
        self.controller = controller
        self.table = controller.table

    @_ignore_invalid
    def join(
        self,
        identity: str,
        nickname: str,
        stack: Optional[int] = None,
        seat_index: Optional[int] = None,
    ) -> List[Event]:
        if stack is None:
            stack = self.table.config.starting_stack
        if not _is_amount(stack):
            raise InvalidAction("BAD_STACK", "Stack must be a non-negative integer")

        try:
            seat = self.table.occupy(identity, nickname, stack, seat_index)
        except SeatUnavailable as exc:
            LOGGER.info("Join rejected for %s: %s", nickname, exc.code)
            return [Event(ev=MUST_WAIT, data={"code": exc.code, "msg": exc.msg}, target=identity)]

        LOGGER.info("Seat %s claimed by %s (stack=%s)", seat.seat, nickname, seat.stack)
        events = [self.controller.seats_updated()]
        if self.table.phase == Phase.IDLE:
            events.extend(self.controller.begin_round())
        return events

    @_ignore_invalid
    def place_bet(self, identity: str, amount: int) -> List[Event]:
        seat = self.table.find(identity)
        if self.table.phase != Phase.DEALING:
            raise InvalidAction("BETTING_CLOSED", "Bets are taken before the cards are dealt")
        if not _is_amount(amount):
            raise InvalidAction("BAD_AMOUNT", "Bet must be a non-negative integer")
        seat.bet = amount
        return [self.controller.seats_updated()]

    @_ignore_invalid
    def hit(self, identity: str) -> List[Event]:
        seat = self._acting_seat(identity)
        try:
            self.table.deal_to(seat.hand)
        except ShoeExhausted:
            return self.controller.abort_round()
        if is_bust(seat.hand):
            return self.controller.end_turn(seat)
        return [self.controller.seats_updated()]

    @_ignore_invalid
    def stand(self, identity: str) -> List[Event]:
        seat = self._acting_seat(identity)
        return self.controller.end_turn(seat)

    @_ignore_invalid
    def double_down(self, identity: str) -> List[Event]:
        seat = self._acting_seat(identity)
        seat.bet *= 2
        try:
            self.table.deal_to(seat.hand)
        except ShoeExhausted:
            return self.controller.abort_round()
        # One card only, bust or not.
        return self.controller.end_turn(seat)

    @_ignore_invalid
    def leave(self, identity: str) -> List[Event]:
        return self.controller.release_seat(identity)

    def request_new_round(self) -> List[Event]:
        return self.controller.begin_round()

    def _acting_seat(self, identity: str) -> Seat:
        seat = self.table.find(identity)
        if self.table.phase != Phase.PLAYER_TURNS or not seat.active:
            raise InvalidAction("OUT_OF_TURN", "Not your turn")
        return seat
