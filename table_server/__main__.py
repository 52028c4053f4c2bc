import argparse
import asyncio
import logging

from blackjack.models import TableConfig
from .server import TableServer


def main() -> None:
    parser = argparse.ArgumentParser(description="Multiplayer blackjack table server")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=4001)
    parser.add_argument("--seats", type=int, default=3)
    parser.add_argument("--deck-count", type=int, default=6)
    parser.add_argument("--starting-stack", type=int, default=1_000)
    parser.add_argument(
        "--deal-delay",
        type=int,
        default=2_000,
        help="Betting window before cards are dealt (milliseconds)",
    )
    parser.add_argument(
        "--pause",
        type=int,
        default=5_000,
        help="Pause after settlement before the next round starts (milliseconds)",
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed the shuffle for reproducible shoes")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper())

    config = TableConfig(
        seats=args.seats,
        deck_count=args.deck_count,
        starting_stack=args.starting_stack,
        deal_delay_ms=args.deal_delay,
        settle_pause_ms=args.pause,
    )

    server = TableServer(config, seed=args.seed)
    asyncio.run(server.start(host=args.host, port=args.port))


if __name__ == "__main__":
    main()
