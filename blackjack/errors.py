from __future__ import annotations


class TableError(Exception):
    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code
        self.msg = msg


class InvalidAction(TableError):
    """Action from an unknown seat, out of turn, or outside its phase."""


class SeatUnavailable(TableError):
    """Join rejected: seat taken, table full, or a round is under way."""


class ShoeExhausted(TableError):
    """Draw attempted on an empty shoe."""
