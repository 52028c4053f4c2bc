from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from blackjack.actions import ActionHandlers
from blackjack.cards import parse_cards
from blackjack.game import RoundController
from blackjack.models import Event, TableConfig
from blackjack.table import TableState


def create_engine(
    *,
    players: int = 1,
    seats: int = 3,
    deck_count: int = 6,
    starting_stack: int = 1_000,
    seed: int = 42,
) -> ActionHandlers:
    """Build a table with `players` seated while idle; no round started yet."""
    table = TableState(
        TableConfig(
            seats=seats,
            deck_count=deck_count,
            starting_stack=starting_stack,
            deal_delay_ms=0,
            settle_pause_ms=0,
        ),
        seed=seed,
    )
    handlers = ActionHandlers(RoundController(table))
    for idx in range(players):
        table.occupy(f"P{idx}", f"Player{idx}", starting_stack)
    return handlers


def stack_shoe(table: TableState, labels: Iterable[str]) -> None:
    """Replace the shoe so cards come out in the order given."""
    table.shoe = list(reversed(parse_cards(labels)))


def start_round(
    handlers: ActionHandlers,
    *,
    bets: Optional[Dict[str, int]] = None,
    deal: Optional[List[str]] = None,
) -> List[Event]:
    """Begin a round, optionally stack the shoe and take bets, then deal."""
    events = handlers.controller.begin_round()
    if deal is not None:
        stack_shoe(handlers.table, deal)
    for identity, amount in (bets or {}).items():
        events.extend(handlers.place_bet(identity, amount))
    events.extend(handlers.controller.finish_dealing())
    return events


def event_names(events: Iterable[Event]) -> List[str]:
    return [event.ev for event in events]
