"""Table host package: wraps the blackjack engine with networking."""

from .server import TableServer

__all__ = ["TableServer"]
