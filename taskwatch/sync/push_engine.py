"""Push engine: receive completion events over a live WebSocket.

The engine keeps one connection open, sends ``{"type": "ping"}`` on open and
on a fixed keepalive period, and delivers ``task_complete`` events through
the deduper. Any drop schedules a reconnect after the backoff delay. Unlike
polling there is no attempt ceiling: the engine retries until stopped.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

import websockets
from websockets.exceptions import ConnectionClosed, InvalidURI, WebSocketException
from websockets.uri import parse_uri

from ..config import Config
from ..errors import ConfigurationInvalid, InvalidResponse, TransportDropped
from .backoff import BackoffPolicy
from .base import CompletionCallback, ErrorCallback, SyncEngine
from .dedup import CompletionDeduper
from .messages import (
    PING_FRAME,
    CompletionEvent,
    InboundMessage,
    PongMessage,
    UnknownMessage,
    describe_close,
    parse_message,
)

logger = logging.getLogger(__name__)

Connector = Callable[..., Any]


class ConnectionState(Enum):
    """State of the WebSocket connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass(frozen=True)
class PushStatus:
    """Snapshot of a PushSyncEngine."""

    running: bool
    state: ConnectionState
    reconnect_count: int
    last_error: str | None = None
    next_delay: float | None = None  # Seconds until the scheduled reconnect


class PushSyncEngine(SyncEngine):
    """Event-driven completion sync with indefinite reconnects."""

    transport = "push"

    def __init__(
        self,
        url: str,
        keepalive_interval: float = 30.0,
        open_timeout: float = 10.0,
        backoff: BackoffPolicy | None = None,
        deduper: CompletionDeduper | None = None,
        on_completed: CompletionCallback | None = None,
        on_error: ErrorCallback | None = None,
        connect: Connector | None = None,
    ):
        """Initialize the push engine.

        Args:
            url: WebSocket URL (ws:// or wss://).
            keepalive_interval: Seconds between keepalive pings.
            open_timeout: Seconds allowed for the opening handshake.
            backoff: Delay schedule applied before each reconnect.
            deduper: Deduper to share with another engine.
            on_completed: Called with each newly completed item.
            on_error: Called with each surfaced error message.
            connect: Connection factory, ``websockets.connect`` by default.

        Raises:
            ConfigurationInvalid: If ``url`` is not a valid WebSocket URL.
        """
        super().__init__(backoff, deduper, on_completed, on_error)
        try:
            parse_uri(url)
        except InvalidURI as e:
            raise ConfigurationInvalid(f"Invalid WebSocket URL: {url!r}") from e

        self.url = url
        self.keepalive_interval = keepalive_interval
        self.open_timeout = open_timeout
        self._connect = connect or websockets.connect

        self._running = False
        self._generation = 0
        self._state = ConnectionState.DISCONNECTED
        self._reconnect_count = 0
        self._next_delay: float | None = None
        self._task: asyncio.Task | None = None
        self._ws: Any = None

    @classmethod
    def from_config(
        cls,
        config: Config,
        deduper: CompletionDeduper | None = None,
    ) -> "PushSyncEngine":
        return cls(
            url=config.server.websocket_url,
            keepalive_interval=config.push.keepalive_interval_seconds,
            open_timeout=config.push.open_timeout_seconds,
            backoff=BackoffPolicy.from_config(config.backoff),
            deduper=deduper,
        )

    @property
    def running(self) -> bool:
        return self._running

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_count(self) -> int:
        return self._reconnect_count

    def start(self) -> None:
        """Open the connection in the background. No-op while running."""
        if self._running:
            logger.debug("Push sync already running")
            return

        self._running = True
        self._generation += 1
        self._task = self._spawn(self._run(self._generation), name="push-connection")

    def stop(self) -> None:
        """Close the connection and cancel any pending reconnect."""
        if self._running:
            logger.info("Stopping push sync")
        self._running = False
        self._generation += 1
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._ws = None
        self._state = ConnectionState.DISCONNECTED
        self._next_delay = None

    def reset(self) -> None:
        """Clear the reconnect count and error, then start again."""
        self.stop()
        self._reconnect_count = 0
        self._last_error = None
        self.start()

    def reconnect(self) -> None:
        """Force-close the live connection; the drop handler reconnects."""
        if self._ws is None:
            logger.debug("No live connection to close")
            return
        logger.info("Forcing WebSocket reconnect")
        self._spawn(self._ws.close(), name="push-force-close")

    def status(self) -> PushStatus:
        return PushStatus(
            running=self._running,
            state=self._state,
            reconnect_count=self._reconnect_count,
            last_error=self._last_error,
            next_delay=self._next_delay,
        )

    def _is_current(self, generation: int) -> bool:
        return self._running and generation == self._generation

    async def _run(self, generation: int) -> None:
        while self._is_current(generation):
            self._state = ConnectionState.CONNECTING
            logger.info(f"Connecting to {self.url}")

            try:
                await self._session(generation)
            except TransportDropped as e:
                drop = e
            except Exception as e:
                logger.error(f"Unexpected WebSocket error: {e}", exc_info=True)
                drop = TransportDropped(f"Transport error: {e}")
            else:
                return

            if not self._is_current(generation):
                return

            self._state = ConnectionState.DISCONNECTED
            self._reconnect_count += 1
            delay = self.backoff.compute_delay(self._reconnect_count)
            logger.warning(
                f"WebSocket dropped: {drop.message}. "
                f"Reconnect {self._reconnect_count} in {delay:.1f} seconds"
            )
            self._report_error(f"{drop.message}. Retrying in {delay:.0f} seconds...")

            self._next_delay = delay
            await asyncio.sleep(delay)
            self._next_delay = None

    async def _session(self, generation: int) -> None:
        """Run one connection until it drops.

        Returns normally only when the engine was stopped meanwhile.

        Raises:
            TransportDropped: Whenever the connection ends or cannot open.
        """
        try:
            ws = await self._connect(self.url, open_timeout=self.open_timeout)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            detail = str(e) or type(e).__name__
            raise TransportDropped(f"Failed to connect: {detail}") from e

        try:
            if not self._is_current(generation):
                return

            self._ws = ws
            self._state = ConnectionState.CONNECTED
            self._reconnect_count = 0
            self._last_error = None
            logger.info("WebSocket connection established")

            await ws.send(PING_FRAME)

            reader = asyncio.create_task(self._read_frames(ws))
            pinger = asyncio.create_task(self._keepalive(ws))
            try:
                done, _ = await asyncio.wait(
                    {reader, pinger}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                reader.cancel()
                pinger.cancel()
                await asyncio.gather(reader, pinger, return_exceptions=True)

            for task in done:
                task.result()

            if not self._is_current(generation):
                return
            raise TransportDropped(
                describe_close(
                    getattr(ws, "close_code", None),
                    getattr(ws, "close_reason", None) or "",
                )
            )
        except ConnectionClosed as e:
            code = e.rcvd.code if e.rcvd is not None else None
            reason = e.rcvd.reason if e.rcvd is not None else ""
            raise TransportDropped(describe_close(code, reason)) from e
        except (OSError, WebSocketException) as e:
            raise TransportDropped(f"Transport error: {e}") from e
        finally:
            if self._ws is ws:
                self._ws = None
            await ws.close()

    async def _keepalive(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self.keepalive_interval)
            await ws.send(PING_FRAME)
            logger.debug("Sent keepalive ping")

    async def _read_frames(self, ws: Any) -> None:
        async for frame in ws:
            try:
                message = parse_message(frame)
            except InvalidResponse as e:
                logger.warning(f"Ignoring malformed frame: {e.message}")
                continue
            self._dispatch(message)

    def _dispatch(self, message: InboundMessage) -> None:
        if isinstance(message, CompletionEvent):
            self._deliver(message.item)
        elif isinstance(message, PongMessage):
            logger.debug("Received pong")
        elif isinstance(message, UnknownMessage):
            logger.debug(f"Ignoring message of type {message.type!r}")
