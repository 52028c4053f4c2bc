import asyncio
import json
from http import HTTPStatus
from types import SimpleNamespace

import pytest

from blackjack.models import Phase, Result, TableConfig
from table_server.server import (
    DEAL_COMPLETE,
    HIT,
    JOIN_GAME,
    LEAVE_GAME,
    PAUSE_ELAPSED,
    PLACE_BET,
    REQUEST_NEW_ROUND,
    STAND,
    InboundMessage,
    ProtocolError,
    TableServer,
    Viewer,
    _process_request,
    parse_inbound,
)

from .helpers import stack_shoe


# Fake sockets so we can exercise async paths without opening real connections.
class DummyWebSocket:
    def __init__(self, incoming=None) -> None:
        self.sent: list[str] = []
        self.incoming = list(incoming or [])

    async def send(self, message: str) -> None:
        self.sent.append(message)

    def __aiter__(self):
        return self._messages()

    async def _messages(self):
        for raw in self.incoming:
            yield raw

    def messages(self) -> list[dict]:
        return [json.loads(raw) for raw in self.sent]

    def types(self) -> list[str]:
        return [message["type"] for message in self.messages()]


def setup_server(
    num_viewers: int = 1,
    *,
    deal_delay_ms: int = 100,
    settle_pause_ms: int = 100,
) -> tuple[TableServer, list[DummyWebSocket]]:
    server = TableServer(
        TableConfig(
            seats=3,
            starting_stack=100,
            deal_delay_ms=deal_delay_ms,
            settle_pause_ms=settle_pause_ms,
        ),
        seed=7,
    )
    sockets: list[DummyWebSocket] = []
    for idx in range(1, num_viewers + 1):
        websocket = DummyWebSocket()
        identity = f"P-{idx}"
        server.viewers[identity] = Viewer(identity=identity, websocket=websocket)
        sockets.append(websocket)
    return server, sockets


async def wait_for(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not reached in time")
        await asyncio.sleep(0.01)


def test_parse_inbound_accepts_player_messages():
    join = parse_inbound("P-1", {"type": "joinGame", "nickname": " Ann ", "stack": 50, "seatIndex": 2})
    assert join == InboundMessage(
        kind=JOIN_GAME,
        identity="P-1",
        payload={"nickname": "Ann", "stack": 50, "seatIndex": 2},
    )
    bet = parse_inbound("P-1", {"type": "placeBet", "amount": 10, "seatId": "ignored"})
    assert bet.payload == {"amount": 10}
    assert parse_inbound("P-1", {"type": "doubleDown"}).kind == "doubleDown"


@pytest.mark.parametrize(
    ("message", "code"),
    [
        ({"type": "joinGame"}, "BAD_SCHEMA"),
        ({"type": "joinGame", "nickname": "   "}, "BAD_SCHEMA"),
        ({"type": "joinGame", "nickname": "Ann", "stack": "100"}, "BAD_SCHEMA"),
        ({"type": "joinGame", "nickname": "Ann", "seatIndex": True}, "BAD_SCHEMA"),
        ({"type": "placeBet"}, "BAD_SCHEMA"),
        ({"type": "placeBet", "amount": 2.5}, "BAD_SCHEMA"),
        ({"type": "fold"}, "UNKNOWN_TYPE"),
        ({"type": PAUSE_ELAPSED, "round": 1}, "UNKNOWN_TYPE"),
        ({}, "UNKNOWN_TYPE"),
    ],
)
def test_parse_inbound_rejects_bad_messages(message, code):
    with pytest.raises(ProtocolError) as excinfo:
        parse_inbound("P-1", message)
    assert excinfo.value.code == code


def test_join_broadcasts_to_every_viewer_and_arms_deal_timer():
    server, sockets = setup_server(2)

    async def scenario():
        await server.dispatch(InboundMessage(kind=JOIN_GAME, identity="P-1", payload={"nickname": "Ann"}))
        assert server.scheduled is not None
        assert server.scheduled.kind == DEAL_COMPLETE
        assert server.scheduled.round_no == 1
        await server.stop()

    asyncio.run(scenario())

    for websocket in sockets:
        assert websocket.types() == ["seatsUpdated", "seatsUpdated"]
        last = websocket.messages()[-1]
        assert last["v"] == 1
        assert last["phase"] == "DEALING"
        assert last["seats"][0]["nickname"] == "Ann"


def test_must_wait_goes_only_to_rejected_joiner():
    server, (first, second) = setup_server(2)

    async def scenario():
        await server.dispatch(InboundMessage(kind=JOIN_GAME, identity="P-1", payload={"nickname": "Ann"}))
        await server.dispatch(InboundMessage(kind=JOIN_GAME, identity="P-2", payload={"nickname": "Bob"}))
        await server.stop()

    asyncio.run(scenario())

    assert "mustWait" not in first.types()
    assert second.types()[-1] == "mustWait"
    assert second.messages()[-1]["code"] == "ROUND_IN_PROGRESS"
    assert len(server.table.occupied()) == 1


def test_full_round_with_pause_driven_restart():
    server, (websocket,) = setup_server(1, deal_delay_ms=100, settle_pause_ms=100)

    async def scenario():
        server.start_dispatcher()
        await server.inbox.put(
            InboundMessage(kind=JOIN_GAME, identity="P-1", payload={"nickname": "Ann", "stack": 100, "seatIndex": 0})
        )
        await server.inbox.put(InboundMessage(kind=PLACE_BET, identity="P-1", payload={"amount": 10}))
        await server.inbox.join()
        assert server.table.phase == Phase.DEALING
        # 10 + 5 against a 9; hit 3 for 18; dealer draws 8 and stands on 17.
        stack_shoe(server.table, ["10h", "5d", "9c", "3s", "8h"])

        await wait_for(lambda: server.table.phase == Phase.PLAYER_TURNS)
        seat = server.table.seats[0]
        assert seat is not None
        assert seat.bet == 10
        assert len(seat.hand) == 2
        assert len(server.table.dealer.hand) == 1

        await server.inbox.put(InboundMessage(kind=HIT, identity="P-1"))
        await server.inbox.put(InboundMessage(kind=STAND, identity="P-1"))
        await server.inbox.join()
        assert server.table.phase == Phase.PAUSED
        assert seat.result == Result.WIN
        assert seat.stack == 110

        await wait_for(lambda: server.table.round_no == 2)
        assert seat.hand == []
        assert seat.bet == 0
        assert seat.result == Result.NONE
        assert seat.stack == 110
        await server.stop()

    asyncio.run(scenario())

    types = websocket.types()
    assert types[:3] == ["seatsUpdated", "seatsUpdated", "seatsUpdated"]
    assert types.index("roundStarted") < types.index("roundSettled")
    settled = next(message for message in websocket.messages() if message["type"] == "roundSettled")
    assert settled["phase"] == "SETTLEMENT"
    assert settled["dealer"]["value"] == 17
    assert settled["seats"][0]["value"] == 18
    assert settled["seats"][0]["result"] == "WIN"
    assert settled["seats"][0]["stack"] == 110


def test_manual_restart_during_pause_cancels_timer_and_starts_once():
    server, _ = setup_server(1, deal_delay_ms=0, settle_pause_ms=200)

    async def scenario():
        server.start_dispatcher()
        await server.inbox.put(InboundMessage(kind=JOIN_GAME, identity="P-1", payload={"nickname": "Ann"}))
        await wait_for(lambda: server.table.phase == Phase.PLAYER_TURNS)

        await server.inbox.put(InboundMessage(kind=STAND, identity="P-1"))
        await server.inbox.join()
        assert server.table.phase == Phase.PAUSED
        pause_step = server.scheduled
        assert pause_step is not None and pause_step.kind == PAUSE_ELAPSED

        await server.inbox.put(InboundMessage(kind=REQUEST_NEW_ROUND, identity="P-1"))
        await server.inbox.put(InboundMessage(kind=REQUEST_NEW_ROUND, identity="P-1"))
        await server.inbox.join()
        assert server.table.round_no == 2
        await asyncio.sleep(0)
        assert pause_step.task is not None and pause_step.task.cancelled()

        await asyncio.sleep(0.3)
        assert server.table.round_no == 2
        await server.stop()

    asyncio.run(scenario())


def test_stale_timer_messages_change_nothing():
    server, (websocket,) = setup_server(1)

    async def scenario():
        server.table.occupy("P-1", "Ann", 100)
        await server.dispatch(InboundMessage(kind=REQUEST_NEW_ROUND, identity="P-1"))
        sent_before = len(websocket.sent)
        await server.dispatch(InboundMessage(kind=DEAL_COMPLETE, payload={"round": 0}))
        await server.dispatch(InboundMessage(kind=PAUSE_ELAPSED, payload={"round": 1}))
        assert server.table.phase == Phase.DEALING
        assert len(websocket.sent) == sent_before
        await server.stop()

    asyncio.run(scenario())


def test_leaving_mid_turn_hands_turn_to_next_seat():
    server, (first, second) = setup_server(2)

    async def scenario():
        server.table.occupy("P-1", "Ann", 100)
        server.table.occupy("P-2", "Bob", 100)
        await server.dispatch(InboundMessage(kind=REQUEST_NEW_ROUND, identity="P-1"))
        await server.dispatch(InboundMessage(kind=DEAL_COMPLETE, payload={"round": 1}))
        assert server.table.active_seat() is server.table.seats[0]

        server.viewers.pop("P-1")
        await server.dispatch(InboundMessage(kind=LEAVE_GAME, identity="P-1"))
        assert server.table.seats[0] is None
        assert server.table.active_seat() is server.table.seats[1]
        await server.stop()

    asyncio.run(scenario())

    last = second.messages()[-1]
    assert last["type"] == "seatsUpdated"
    assert last["active_seat"] == 1
    assert [seat["id"] for seat in last["seats"]] == ["P-2"]


def test_connection_lifecycle_seats_then_releases_player():
    server, _ = setup_server(0)
    websocket = DummyWebSocket([json.dumps({"type": "joinGame", "nickname": "Ann"})])

    async def scenario():
        server.start_dispatcher()
        await server._handle_connection(websocket)
        await server.inbox.join()
        await server.stop()

    asyncio.run(scenario())

    types = websocket.types()
    assert types[0] == "welcome"
    assert websocket.messages()[0]["id"] == "P-1"
    assert websocket.messages()[0]["config"]["seats"] == 3
    assert server.table.occupied() == []
    assert server.table.phase == Phase.IDLE
    assert server.scheduled is None
    assert server.viewers == {}


def test_connection_reports_protocol_errors_and_queues_leave():
    server, _ = setup_server(0)
    websocket = DummyWebSocket(
        [
            "not json",
            json.dumps({"type": "bogus"}),
            json.dumps({"type": "placeBet", "amount": "x"}),
        ]
    )

    asyncio.run(server._handle_connection(websocket))

    errors = [message for message in websocket.messages() if message["type"] == "error"]
    assert [error["code"] for error in errors] == ["UNKNOWN_TYPE", "UNKNOWN_TYPE", "BAD_SCHEMA"]
    assert server.inbox.qsize() == 1
    assert server.inbox.get_nowait().kind == LEAVE_GAME


def test_dispatcher_keeps_running_after_handler_crash(monkeypatch):
    server, _ = setup_server(0)

    def explode(identity):
        raise RuntimeError("boom")

    monkeypatch.setattr(server.handlers, "hit", explode)

    async def scenario():
        server.start_dispatcher()
        await server.inbox.put(InboundMessage(kind=HIT, identity="P-1"))
        await server.inbox.put(InboundMessage(kind=JOIN_GAME, identity="P-1", payload={"nickname": "Ann"}))
        await server.inbox.join()
        assert server.dispatcher is not None and not server.dispatcher.done()
        await server.stop()

    asyncio.run(scenario())
    assert [seat.identity for seat in server.table.occupied()] == ["P-1"]


def test_process_request_serves_health_checks():
    connection = SimpleNamespace(respond=lambda status, text: (status, text))

    upgrade = SimpleNamespace(path="/", headers={"Upgrade": "websocket"})
    assert _process_request(connection, upgrade) is None

    health = SimpleNamespace(path="/healthz", headers={})
    assert _process_request(connection, health) == (HTTPStatus.OK, "blackjack table running\n")

    missing = SimpleNamespace(path="/nope", headers={})
    status, _ = _process_request(connection, missing)
    assert status == HTTPStatus.NOT_FOUND
