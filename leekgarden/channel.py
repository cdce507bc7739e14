"""Auto-reconnecting push channel and its event handlers."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import websockets
from websockets.exceptions import WebSocketException

from .config import (
    JOIN_DELAY,
    LUCKY_DELAY,
    RECONNECT_DELAY,
    RESUBSCRIBE_INTERVAL,
    GardenConfig,
)
from .errors import AuthError, ChannelTransportError, DurableStoreError, HttpError
from .gate import JoinGate
from .protocol import (
    AnyEvent,
    BossSquadsEvent,
    LuckyEvent,
    MessageType,
    Squad,
    UnrecognizedEvent,
    decode_frame,
    encode_frame,
)
from .session import GardenSession, Sleep, with_relogin

logger = logging.getLogger(__name__)

Connector = Callable[[str, Dict[str, str]], Awaitable[Any]]


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


async def websocket_connector(url: str, headers: Dict[str, str]) -> Any:
    return await websockets.connect(url, additional_headers=headers)


class EventChannel:
    """Keeps the push channel open and reacts to garden events.

    Frames are handled one at a time in arrival order.  The resubscription
    timer runs beside the frame loop for the lifetime of :meth:`run` and
    survives reconnects.
    """

    def __init__(
        self,
        session: GardenSession,
        gate: JoinGate,
        config: GardenConfig,
        *,
        connector: Connector = websocket_connector,
        sleep: Sleep = asyncio.sleep,
        resubscribe_interval: float = RESUBSCRIBE_INTERVAL,
    ) -> None:
        self.session = session
        self.gate = gate
        self.config = config
        self.state = ConnectionState.DISCONNECTED
        self.resubscribe_interval = resubscribe_interval
        self._connector = connector
        self._sleep = sleep
        self._socket: Optional[Any] = None
        self._resubscribe_task: Optional[asyncio.Task] = None

    async def connect(self) -> None:
        """Log in again and open a fresh socket with the new cookies."""

        self.state = ConnectionState.CONNECTING
        await self.session.login()
        headers = {"Cookie": self.session.cookie_header()}
        try:
            self._socket = await self._connector(self.config.ws_url, headers)
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            self.state = ConnectionState.CLOSED
            raise ChannelTransportError(f"Cannot open {self.config.ws_url}: {exc}") from exc
        self.state = ConnectionState.OPEN
        logger.info("Push channel open")
        await self.subscribe()

    async def subscribe(self) -> None:
        await self.send(MessageType.BATTLE_ROYALE_REGISTER, self.config.battle_royale_id)
        await self.send(MessageType.GARDEN_BOSS_LISTEN)

    async def run(self) -> None:
        """Connect, read, and reconnect after every close, forever.

        Refused credentials are fatal only before the first successful open;
        afterwards every failure, login included, is followed by a retry.
        """

        self._resubscribe_task = asyncio.create_task(self._resubscribe_loop())
        opened = False
        try:
            while True:
                try:
                    await self.connect()
                    opened = True
                    await self._read_frames()
                except ChannelTransportError as exc:
                    logger.error("Push channel error: %s", exc)
                except AuthError as exc:
                    if not opened:
                        raise
                    logger.error("Login refused while reconnecting: %s", exc)
                except HttpError as exc:
                    logger.error("Login failed while reconnecting: %s", exc)
                await self._close_socket()
                self.state = ConnectionState.CLOSED
                logger.info("Push channel closed, reconnecting in %.0fs", RECONNECT_DELAY)
                await self._sleep(RECONNECT_DELAY)
                self.state = ConnectionState.DISCONNECTED
        finally:
            self._resubscribe_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._resubscribe_task
            self._resubscribe_task = None

    async def send(self, message_type: MessageType, *args: Any) -> bool:
        frame = encode_frame(message_type, *args)
        if self._socket is None or self.state is not ConnectionState.OPEN:
            logger.warning("Socket not open, dropping %s", frame)
            return False
        logger.info("→ %s", frame)
        try:
            await self._socket.send(frame)
        except (OSError, WebSocketException) as exc:
            logger.error("Could not send %s: %s", frame, exc)
            return False
        return True

    async def handle_frame(self, raw: Any) -> Optional[AnyEvent]:
        try:
            event = decode_frame(raw)
        except ValueError as exc:
            logger.warning("Dropping undecodable frame: %s", exc)
            return None

        if isinstance(event, BossSquadsEvent):
            await self._on_boss_squads(event)
        elif isinstance(event, LuckyEvent):
            await self._on_lucky()
        elif isinstance(event, UnrecognizedEvent):
            logger.info(
                "Unrecognized frame %s",
                json.dumps({"type": event.raw_type, "data": event.payload, "requestId": event.correlation_id}),
            )
        else:
            logger.info(
                json.dumps({"type": event.type.name, "data": event.payload, "requestId": event.correlation_id})
            )
        return event

    async def remaining_fights(self) -> Optional[int]:
        identity = await with_relogin(self.session, lambda: self.session.get("farmer/get-from-token"))
        if not isinstance(identity, dict):
            return None
        fights = identity.get("fights")
        if fights is None and isinstance(identity.get("farmer"), dict):
            fights = identity["farmer"].get("fights")
        if fights is None:
            return None
        try:
            return int(fights)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Unexpected fights count {fights!r}") from exc

    async def _on_boss_squads(self, event: BossSquadsEvent) -> None:
        for squad in event.squads(self.config.boss_id):
            if squad.joinable:
                await self._join(squad)
                return

    async def _join(self, squad: Squad) -> bool:
        # at most one join per window, across restarts and processes
        if await asyncio.to_thread(self.gate.count_recent_joins) > 0:
            return False

        fights = await self.remaining_fights()
        logger.info("Fights available: %s", fights)
        if fights is None or fights <= 0:
            logger.info("Not joining because we have no fights")
            return False

        logger.info('Joining boss fight "%s"', squad.id)
        await asyncio.to_thread(self.gate.record_join, str(squad.id))
        await self._sleep(JOIN_DELAY)
        return await self.send(MessageType.GARDEN_BOSS_JOIN_SQUAD, squad.id)

    async def _on_lucky(self) -> None:
        await self._sleep(LUCKY_DELAY)
        await self.send(MessageType.GET_LUCKY)

    async def _read_frames(self) -> None:
        try:
            async for raw in self._socket:
                try:
                    await self.handle_frame(raw)
                except (DurableStoreError, HttpError) as exc:
                    logger.error("Frame handling failed: %s", exc)
                except ValueError as exc:
                    logger.warning("Skipping malformed frame: %s", exc)
        except (OSError, WebSocketException) as exc:
            raise ChannelTransportError(f"Push channel read failed: {exc}") from exc

    async def _resubscribe_loop(self) -> None:
        while True:
            await asyncio.sleep(self.resubscribe_interval)
            if self.state is ConnectionState.OPEN:
                await self.subscribe()
            else:
                logger.info("Skipping resubscription, channel is %s", self.state.value)

    async def _close_socket(self) -> None:
        socket, self._socket = self._socket, None
        if socket is not None:
            with contextlib.suppress(OSError, WebSocketException):
                await socket.close()


__all__ = ["ConnectionState", "EventChannel", "websocket_connector"]
