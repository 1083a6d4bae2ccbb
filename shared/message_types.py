from __future__ import annotations

from enum import Enum
from typing import Set


class MessageKind(str, Enum):
    """Classification of an inbound chat frame."""

    TEXT = "TEXT"                  # Room text message
    USER_EVENT = "USER_EVENT"      # Someone joined or left the room
    UNKNOWN = "UNKNOWN"            # Neither shape matched


class UserEvent(str, Enum):
    """Presence events carried by user notifications."""

    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"

    @classmethod
    def from_string(cls, value: str) -> UserEvent:
        """Convert string to UserEvent enum, raise ValueError if unknown."""
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown user event: {value}")

    @classmethod
    def is_valid(cls, value: object) -> bool:
        """Check if value is a valid user event."""
        try:
            cls(value)
            return True
        except ValueError:
            return False


class ConnectionState(str, Enum):
    """Lifecycle state of a chat connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class EventKind(str, Enum):
    """Lifecycle events published by a chat connection."""

    OPEN = "open"
    MESSAGE = "message"
    CLOSE = "close"
    ERROR = "error"
    CONNECTION_CHANGE = "connection_change"


# Envelope type literal for outbound text
TEXT_TYPE = MessageKind.TEXT.value

# Fields every text envelope must carry besides "type"
TEXT_ENVELOPE_FIELDS: Set[str] = {"message", "sender", "timestamp", "room_address"}

# Fields every user notification must carry
USER_NOTIFICATION_FIELDS: Set[str] = {"user", "event"}

# Close code reserved for intentional client-side shutdown
NORMAL_CLOSURE = 1000

# Close code reported when the transport went away without a close frame
ABNORMAL_CLOSURE = 1006
