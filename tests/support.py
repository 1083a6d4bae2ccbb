"""
Test-support fakes and payload simulators for the chat client.

Nothing here is imported by the shipped packages.
"""

import asyncio
import random
from typing import List, Optional

from websockets.exceptions import ConnectionClosedError
from websockets.frames import Close

from shared.utils import iso_now

_END = object()


class FakeWebSocket:
    """In-memory stand-in for a websockets ClientConnection."""

    def __init__(self) -> None:
        self.sent_messages: List[str] = []
        self.closed = False
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self.send_error: Optional[Exception] = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, data: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent_messages.append(data)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_END)

    # Server side controls
    def feed(self, raw) -> None:
        self._inbox.put_nowait(raw)

    def drop(self, code: int = 1006, reason: str = "") -> None:
        """Connection lost or closed with an error code."""
        rcvd = None if code == 1006 else Close(code, reason)
        self._inbox.put_nowait(ConnectionClosedError(rcvd, None))

    def server_close(self, code: int = 1001, reason: str = "going away") -> None:
        """Orderly close initiated by the server."""
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_END)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._inbox.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeConnector:
    """Connector that hands out queued outcomes: sockets or exceptions to raise."""

    def __init__(self, *outcomes) -> None:
        self.urls: List[str] = []
        self.sockets: List[FakeWebSocket] = []
        self._outcomes = list(outcomes)
        self.default_error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None

    @property
    def calls(self) -> int:
        return len(self.urls)

    @property
    def last(self) -> FakeWebSocket:
        return self.sockets[-1]

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self.gate is not None:
            await self.gate.wait()
        if self._outcomes:
            outcome = self._outcomes.pop(0)
        elif self.default_error is not None:
            outcome = self.default_error
        else:
            outcome = FakeWebSocket()
        if isinstance(outcome, BaseException):
            raise outcome
        self.sockets.append(outcome)
        return outcome


async def wait_for(predicate, timeout: float = 2.0) -> bool:
    loop = asyncio.get_running_loop()
    end = loop.time() + timeout
    while loop.time() < end:
        if predicate():
            return True
        await asyncio.sleep(0.005)
    return predicate()


# ========================================
#           PAYLOAD SIMULATORS
# ========================================

def _random_user_id() -> int:
    return random.randint(0, 99999)


def simulate_user_connected(user_id: Optional[int] = None) -> dict:
    return {"user": _random_user_id() if user_id is None else user_id, "event": "CONNECTED"}


def simulate_user_disconnected(user_id: Optional[int] = None) -> dict:
    return {"user": _random_user_id() if user_id is None else user_id, "event": "DISCONNECTED"}


def simulate_text_message(message: str = "Test message", sender_id: Optional[int] = None,
                          room_address: str = "room-test") -> dict:
    return {
        "message": message,
        "sender": _random_user_id() if sender_id is None else sender_id,
        "timestamp": iso_now(),
        "room_address": room_address,
        "type": "TEXT",
    }


def simulate_event_sequence(user_ids=(12345, 67890, 11111, 22222)) -> List[dict]:
    """Users join, chat, one leaves, chat continues."""
    events = [simulate_user_connected(uid) for uid in user_ids]
    events.append(simulate_text_message("Hello everyone!", user_ids[0]))
    events.append(simulate_text_message("Hi! How is it going?", user_ids[1]))
    events.append(simulate_text_message("All good here!", user_ids[2]))
    events.append(simulate_user_disconnected(user_ids[3]))
    events.append(simulate_text_message("Someone left the room...", user_ids[0]))
    return events
