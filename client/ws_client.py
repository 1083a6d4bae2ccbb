from __future__ import annotations
import asyncio
from contextlib import suppress
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError, InvalidURI

from client.backoff import ReconnectState
from client.config import ClientConfig
from client.events import EventDispatcher, Handler
from shared.envelope import ParseError, decode, encode
from shared.log import get_logger, log_chat_event
from shared.message_types import ABNORMAL_CLOSURE, NORMAL_CLOSURE, ConnectionState, EventKind
from shared.utils import build_ws_url

logger = get_logger(__name__)


Connector = Callable[[str], Awaitable[Any]]

# Raised before any dial happens: bad URI or settings. Not retried.
_OPEN_FAILURES = (InvalidURI, ValueError)


class ChatConnection:
    """
    Client side of one room chat session over a WebSocket.

    Drives DISCONNECTED -> CONNECTING -> CONNECTED and reconnects with bounded
    exponential backoff after unclean closes. Every open attempt gets a new
    generation number; events from older transports are ignored.
    """

    CLOSE_REASON = "Intentional disconnect"

    def __init__(
        self,
        room_address: str,
        user_id: int,
        config: Optional[ClientConfig] = None,
        *,
        connector: Optional[Connector] = None,
        events: Optional[EventDispatcher] = None,
    ) -> None:
        self.room_address = room_address
        self.user_id = user_id
        self.config = config or ClientConfig()
        self.events = events or EventDispatcher()
        self.reconnect_state = ReconnectState(
            max_attempts=self.config.max_attempts,
            base_delay_ms=self.config.base_delay_ms,
        )
        self.websocket: Optional[websockets.ClientConnection] = None
        self._connector: Connector = connector or self._open_websocket
        self._state = ConnectionState.DISCONNECTED
        self._generation = 0
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

    async def __aenter__(self) -> ChatConnection:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def url(self) -> str:
        return build_ws_url(
            self.config.scheme,
            self.config.host,
            self.config.port,
            self.config.path,
            self.room_address,
            self.user_id,
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self.reconnect_state.attempts

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def get_status(self) -> bool:
        """True only while the transport is open"""
        return self._state is ConnectionState.CONNECTED

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on_open(self, handler: Handler) -> Handler:
        return self.events.on_open(handler)

    def on_message(self, handler: Handler) -> Handler:
        return self.events.on_message(handler)

    def on_close(self, handler: Handler) -> Handler:
        return self.events.on_close(handler)

    def on_error(self, handler: Handler) -> Handler:
        return self.events.on_error(handler)

    def on_connection_change(self, handler: Handler) -> Handler:
        return self.events.on_connection_change(handler)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """
        Open the transport. Only valid while DISCONNECTED.

        Returns True once the connection is open. Failures are reported through
        the connection_change/error/close events, never raised.
        """
        if self._state is not ConnectionState.DISCONNECTED:
            logger.warning("connect() ignored while %s", self._state.value, extra=self._log_context())
            return False
        # An explicit connect starts a fresh retry episode
        self.reconnect_state.reset()
        return await self._open()

    async def send_message(self, text: str) -> bool:
        """Encode and transmit one chat line. Returns False instead of raising."""
        websocket = self.websocket
        if self._state is not ConnectionState.CONNECTED or websocket is None:
            logger.error("Cannot send: WebSocket is not connected", extra=self._log_context())
            return False
        try:
            envelope = encode(text, self.user_id, self.room_address)
            await websocket.send(envelope.to_json())
        except Exception as e:
            logger.error("Error sending message: %s", e, extra=self._log_context())
            return False
        log_chat_event(logger, "debug", "Sent message", envelope=envelope.to_dict(), state=self._state.value)
        return True

    async def disconnect(self) -> None:
        """Close with code 1000 and cancel any pending reconnect."""
        self._cancel_reconnect()
        # Everything the old transport emits from here on is stale
        self._generation += 1
        websocket, self.websocket = self.websocket, None
        reader, self._reader_task = self._reader_task, None
        previous = self._state
        self._state = ConnectionState.DISCONNECTED

        if websocket is None:
            if previous is not ConnectionState.DISCONNECTED:
                logger.info("Disconnected while %s", previous.value, extra=self._log_context())
            return

        try:
            await websocket.close(code=NORMAL_CLOSURE, reason=self.CLOSE_REASON)
        except Exception as e:
            logger.error("Error closing connection: %s", e, extra=self._log_context())
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            with suppress(asyncio.CancelledError):
                await reader

        logger.info("Disconnected", extra=self._log_context())
        self.events.emit(EventKind.CLOSE, NORMAL_CLOSURE, self.CLOSE_REASON)
        self.events.emit(EventKind.CONNECTION_CHANGE, False)

    # ------------------------------------------------------------------
    # Transport lifecycle
    # ------------------------------------------------------------------

    async def _open_websocket(self, url: str) -> websockets.ClientConnection:
        return await websockets.connect(
            url,
            open_timeout=self.config.open_timeout,
            ping_interval=self.config.ping_interval,
            ping_timeout=self.config.ping_timeout,
        )

    async def _open(self) -> bool:
        self._generation += 1
        generation = self._generation
        self._state = ConnectionState.CONNECTING
        url = self.url
        logger.info("Connecting to %s", url, extra=self._log_context())

        try:
            websocket = await self._connector(url)
        except _OPEN_FAILURES as e:
            if generation != self._generation:
                return False
            # Never dialed, so there is no close to recover from
            logger.error("Cannot open WebSocket to %s: %s", url, e, extra=self._log_context())
            self._state = ConnectionState.DISCONNECTED
            self.events.emit(EventKind.CONNECTION_CHANGE, False)
            return False
        except Exception as e:
            if generation != self._generation:
                return False
            logger.warning("WebSocket dial to %s failed: %s", url, e, extra=self._log_context())
            self.events.emit(EventKind.ERROR, e)
            self._handle_close(generation, ABNORMAL_CLOSURE, str(e))
            return False

        if generation != self._generation:
            logger.debug("Discarding transport opened after disconnect", extra=self._log_context())
            with suppress(Exception):
                await websocket.close(code=NORMAL_CLOSURE, reason=self.CLOSE_REASON)
            return False

        self.websocket = websocket
        self._state = ConnectionState.CONNECTED
        self.reconnect_state.reset()
        logger.info("WebSocket connected", extra=self._log_context())
        self.events.emit(EventKind.OPEN)
        self.events.emit(EventKind.CONNECTION_CHANGE, True)
        self._reader_task = asyncio.create_task(self._read_loop(websocket, generation))
        return True

    async def _read_loop(self, websocket: Any, generation: int) -> None:
        """Feed inbound frames to the codec until the transport closes."""
        try:
            async for raw in websocket:
                if generation != self._generation:
                    return
                self._handle_frame(raw)
            code, reason = _close_info(websocket)
        except ConnectionClosed as e:
            code, reason = _closed_exception_info(e)
            # Abnormal closes surface as an error first, like a browser WebSocket
            if isinstance(e, ConnectionClosedError) and generation == self._generation:
                self.events.emit(EventKind.ERROR, e)
        except Exception as e:
            # Transport failures only; frame handling drops its own errors
            if generation != self._generation:
                return
            logger.error("Error on WebSocket reader: %s", e, extra=self._log_context())
            self.events.emit(EventKind.ERROR, e)
            with suppress(Exception):
                await websocket.close(code=1011, reason="client reader failure")
            code, reason = ABNORMAL_CLOSURE, str(e)
        self._handle_close(generation, code, reason)

    def _handle_frame(self, raw: Any) -> None:
        try:
            decoded = decode(raw)
        except ParseError as e:
            logger.error("Dropping malformed payload: %s", e, extra=self._log_context())
            return
        except Exception:
            logger.exception("Dropping payload the codec could not handle", extra=self._log_context())
            return
        if decoded.valid:
            log_chat_event(logger, "debug", "Received message", envelope=decoded.data, state=self._state.value)
        else:
            logger.warning("Received payload of unknown shape: %r", decoded.data, extra=self._log_context())
        self.events.emit(EventKind.MESSAGE, decoded)

    def _handle_close(self, generation: int, code: int, reason: str) -> None:
        if generation != self._generation:
            logger.debug("Ignoring close %s from superseded transport", code, extra=self._log_context())
            return
        self.websocket = None
        self._reader_task = None

        if self.reconnect_state.exhausted:
            self._state = ConnectionState.DISCONNECTED
            logger.error(
                "WebSocket closed (%s %s); giving up after %d reconnect attempts",
                code, reason, self.reconnect_state.max_attempts, extra=self._log_context(),
            )
            self.events.emit(EventKind.CLOSE, code, reason)
            self.events.emit(EventKind.CONNECTION_CHANGE, False)
            return

        self._state = ConnectionState.CONNECTING
        logger.info("WebSocket closed (%s %s)", code, reason, extra=self._log_context())
        self.events.emit(EventKind.CLOSE, code, reason)
        self.events.emit(EventKind.CONNECTION_CHANGE, False)

        delay_ms = self.reconnect_state.next_delay_ms()
        logger.info(
            "Reconnecting in %dms (attempt %d/%d)",
            delay_ms, self.reconnect_state.attempts, self.reconnect_state.max_attempts,
            extra=self._log_context(),
        )
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay_ms, generation))

    async def _reconnect_after(self, delay_ms: int, generation: int) -> None:
        await asyncio.sleep(delay_ms / 1000)
        if generation != self._generation or self._state is not ConnectionState.CONNECTING:
            return
        self._reconnect_task = None
        await self._open()

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            logger.debug("Cancelled pending reconnect", extra=self._log_context())

    def _log_context(self) -> Dict[str, Any]:
        return {"room": self.room_address, "user": self.user_id, "state": self._state.value}


def _close_info(websocket: Any) -> Tuple[int, str]:
    code = getattr(websocket, "close_code", None)
    reason = getattr(websocket, "close_reason", None)
    return (code if code is not None else ABNORMAL_CLOSURE), (reason or "")


def _closed_exception_info(exc: ConnectionClosed) -> Tuple[int, str]:
    if exc.rcvd is not None:
        return exc.rcvd.code, exc.rcvd.reason
    return ABNORMAL_CLOSURE, ""


def create_chat_connection(room_address: str, user_id: int,
                           config: Optional[ClientConfig] = None) -> ChatConnection:
    """Factory for a connection bound to one room and one user"""
    return ChatConnection(room_address, user_id, config)
