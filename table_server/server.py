from __future__ import annotations

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, List, Optional

import websockets
from websockets.asyncio.server import ServerConnection, serve

from blackjack.actions import ActionHandlers
from blackjack.game import RoundController
from blackjack.models import Event, Phase, TableConfig
from blackjack.table import TableState

LOGGER = logging.getLogger("blackjack_table")

# TableServer glues the round engine to WebSocket viewers. Connections only
# enqueue messages; a single dispatcher task drains the inbox and is the only
# code that touches table state. Timed steps re-enter through the same inbox.

JOIN_GAME = "joinGame"
PLACE_BET = "placeBet"
HIT = "hit"
STAND = "stand"
DOUBLE_DOWN = "doubleDown"
LEAVE_GAME = "leaveGame"
REQUEST_NEW_ROUND = "requestNewRound"

PLAYER_MESSAGES = (JOIN_GAME, PLACE_BET, HIT, STAND, DOUBLE_DOWN, LEAVE_GAME, REQUEST_NEW_ROUND)

# Internal timer messages, never accepted from the wire.
DEAL_COMPLETE = "dealComplete"
PAUSE_ELAPSED = "pauseElapsed"


class ProtocolError(Exception):
    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code
        self.msg = msg


@dataclass
class Viewer:
    identity: str
    websocket: ServerConnection


@dataclass
class InboundMessage:
    kind: str
    identity: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ScheduledStep:
    kind: str
    round_no: int
    task: Optional[asyncio.Task] = None

    def cancel(self) -> None:
        if self.task and not self.task.done():
            self.task.cancel()


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def parse_inbound(identity: str, message: Dict[str, Any]) -> InboundMessage:
    """Check a decoded wire message and turn it into an inbox entry."""
    kind = message.get("type")
    if kind not in PLAYER_MESSAGES:
        raise ProtocolError("UNKNOWN_TYPE", "Unsupported message type")

    payload: Dict[str, Any] = {}
    if kind == JOIN_GAME:
        nickname = message.get("nickname")
        if not isinstance(nickname, str) or not nickname.strip():
            raise ProtocolError("BAD_SCHEMA", "nickname required")
        payload["nickname"] = nickname.strip()
        for key in ("stack", "seatIndex"):
            value = message.get(key)
            if value is not None and not _is_int(value):
                raise ProtocolError("BAD_SCHEMA", f"{key} must be an integer")
            payload[key] = value
    elif kind == PLACE_BET:
        amount = message.get("amount")
        if not _is_int(amount):
            raise ProtocolError("BAD_SCHEMA", "amount must be an integer")
        payload["amount"] = amount

    return InboundMessage(kind=kind, identity=identity, payload=payload)


def _config_payload(config: TableConfig) -> Dict[str, Any]:
    return {
        "seats": config.seats,
        "deck_count": config.deck_count,
        "starting_stack": config.starting_stack,
        "dealer_stands_on": config.dealer_stands_on,
        "deal_delay_ms": config.deal_delay_ms,
        "settle_pause_ms": config.settle_pause_ms,
    }


def _process_request(connection: ServerConnection, request):
    """Answer plain HTTP health checks; let WebSocket upgrades through."""
    if request.headers.get("Upgrade", "").lower() == "websocket":
        return None
    if request.path in {"/", "/health", "/healthz"}:
        return connection.respond(HTTPStatus.OK, "blackjack table running\n")
    return connection.respond(HTTPStatus.NOT_FOUND, "not found\n")


class TableServer:
    def __init__(self, config: TableConfig, seed: Optional[int] = None) -> None:
        self.config = config
        self.table = TableState(config, seed=seed)
        self.controller = RoundController(self.table)
        self.handlers = ActionHandlers(self.controller)
        self.viewers: Dict[str, Viewer] = {}
        self.inbox: asyncio.Queue[InboundMessage] = asyncio.Queue()
        self.scheduled: Optional[ScheduledStep] = None
        self.dispatcher: Optional[asyncio.Task] = None
        self._ids = itertools.count(1)

    async def start(self, host: str = "0.0.0.0", port: int = 4001) -> None:
        self.start_dispatcher()
        async with serve(self._handle_connection, host, port, process_request=_process_request):
            LOGGER.info("Blackjack table listening on %s:%s", host, port)
            await asyncio.Future()

    def start_dispatcher(self) -> asyncio.Task:
        if self.dispatcher is None or self.dispatcher.done():
            self.dispatcher = asyncio.create_task(self.run_dispatcher())
        return self.dispatcher

    async def stop(self) -> None:
        if self.scheduled:
            self.scheduled.cancel()
            self.scheduled = None
        if self.dispatcher:
            self.dispatcher.cancel()
            try:
                await self.dispatcher
            except asyncio.CancelledError:
                pass
            self.dispatcher = None

    # Connections -----------------------------------------------------

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        identity = f"P-{next(self._ids)}"
        self.viewers[identity] = Viewer(identity=identity, websocket=websocket)
        LOGGER.info("Viewer %s connected", identity)

        await self._send_json(websocket, "welcome", {
            "id": identity,
            "config": _config_payload(self.config),
            "table": self.table.snapshot(),
        })

        try:
            async for raw in websocket:
                message = self._decode(raw)
                try:
                    inbound = parse_inbound(identity, message)
                except ProtocolError as exc:
                    await self._send_error(websocket, exc.code, exc.msg)
                    continue
                await self.inbox.put(inbound)
        except websockets.ConnectionClosed:
            pass
        finally:
            self.viewers.pop(identity, None)
            # A dropped connection gives up its seat like an explicit leave.
            await self.inbox.put(InboundMessage(kind=LEAVE_GAME, identity=identity))
            LOGGER.info("Viewer %s disconnected", identity)

    # Dispatch --------------------------------------------------------

    async def run_dispatcher(self) -> None:
        while True:
            message = await self.inbox.get()
            try:
                await self.dispatch(message)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Failed to process %s from %s", message.kind, message.identity)
            finally:
                self.inbox.task_done()

    async def dispatch(self, message: InboundMessage) -> None:
        events = self._apply(message)
        LOGGER.debug(
            "Applied %s from %s -> %s",
            message.kind,
            message.identity,
            [event.ev for event in events],
        )
        self._arm_timer()
        await self._publish(events)

    def _apply(self, message: InboundMessage) -> List[Event]:
        kind = message.kind
        identity = message.identity or ""
        payload = message.payload

        if kind == DEAL_COMPLETE:
            return self.controller.finish_dealing(payload["round"])
        if kind == PAUSE_ELAPSED:
            return self.controller.resume_after_pause(payload["round"])
        if kind == JOIN_GAME:
            return self.handlers.join(
                identity,
                payload["nickname"],
                stack=payload.get("stack"),
                seat_index=payload.get("seatIndex"),
            )
        if kind == PLACE_BET:
            return self.handlers.place_bet(identity, payload["amount"])
        if kind == HIT:
            return self.handlers.hit(identity)
        if kind == STAND:
            return self.handlers.stand(identity)
        if kind == DOUBLE_DOWN:
            return self.handlers.double_down(identity)
        if kind == LEAVE_GAME:
            return self.handlers.leave(identity)
        if kind == REQUEST_NEW_ROUND:
            return self.handlers.request_new_round()
        LOGGER.warning("Dropping unknown inbox message %s", kind)
        return []

    # Timers ----------------------------------------------------------

    def _arm_timer(self) -> None:
        phase = self.table.phase
        round_no = self.table.round_no
        if phase == Phase.DEALING:
            kind: Optional[str] = DEAL_COMPLETE
            delay_ms = self.config.deal_delay_ms
        elif phase == Phase.PAUSED:
            kind = PAUSE_ELAPSED
            delay_ms = self.config.settle_pause_ms
        else:
            kind = None
            delay_ms = 0

        current = self.scheduled
        if current and (current.kind != kind or current.round_no != round_no):
            current.cancel()
            self.scheduled = None
        if kind is None or self.scheduled is not None:
            return

        step = ScheduledStep(kind=kind, round_no=round_no)
        step.task = asyncio.create_task(self._fire_later(step, delay_ms))
        self.scheduled = step

    async def _fire_later(self, step: ScheduledStep, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)
        await self.inbox.put(InboundMessage(kind=step.kind, payload={"round": step.round_no}))

    # Outbound --------------------------------------------------------

    async def _publish(self, events: List[Event]) -> None:
        for event in events:
            if event.target is None:
                await self._broadcast(event.ev, event.data)
                continue
            viewer = self.viewers.get(event.target)
            if viewer:
                await self._send_json(viewer.websocket, event.ev, event.data)

    async def _broadcast(self, msg_type: str, payload: Dict[str, object]) -> None:
        targets = [viewer.websocket for viewer in self.viewers.values()]
        if not targets:
            return
        message = self._envelope(msg_type, payload)
        await asyncio.gather(*(socket.send(message) for socket in targets), return_exceptions=True)

    async def _send_json(self, websocket: ServerConnection, msg_type: str, payload: Dict[str, object]) -> None:
        try:
            await websocket.send(self._envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            pass

    async def _send_error(self, websocket: ServerConnection, code: str, msg: str) -> None:
        await self._send_json(websocket, "error", {"code": code, "msg": msg})

    def _envelope(self, msg_type: str, payload: Dict[str, object]) -> str:
        body = {"type": msg_type, "v": 1, "ts": datetime.now(timezone.utc).isoformat()}
        body.update(payload)
        return json.dumps(body)

    def _decode(self, raw: str) -> Dict[str, Any]:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return message if isinstance(message, dict) else {}
