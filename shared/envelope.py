from __future__ import annotations
from dataclasses import dataclass
from numbers import Number
from typing import Any, Dict, Mapping, Optional, Union
import json

from shared.message_types import (
    MessageKind,
    TEXT_ENVELOPE_FIELDS,
    TEXT_TYPE,
    USER_NOTIFICATION_FIELDS,
    UserEvent,
)
from shared.utils import iso_now


class ParseError(Exception):
    """Raised when an inbound frame is not well-formed JSON."""
    pass


@dataclass
class TextEnvelope:
    """
    Wire shape of a room text message, both directions:
    {
    "message":      "STRING (trimmed)",
    "sender":       "INT (user id)",
    "timestamp":    "ISO-8601 STRING",
    "room_address": "STRING",
    "type":         "TEXT"
    }
    """
    message: str
    sender: Any           # user id; an int on the wire, kept as received when inbound
    timestamp: str
    room_address: str
    type: str = TEXT_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'TextEnvelope':
        """Create TextEnvelope from dictionary; caller checks the shape first"""
        return cls(
            message=data['message'],
            sender=data['sender'],
            timestamp=data['timestamp'],
            room_address=data['room_address'],
            type=data['type'],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'message': self.message,
            'sender': self.sender,
            'timestamp': self.timestamp,
            'room_address': self.room_address,
            'type': self.type,
        }

    def to_json(self) -> str:
        """Convert TextEnvelope to a compact JSON string"""
        return json.dumps(self.to_dict(), separators=(',', ':'))


@dataclass
class UserNotification:
    """
    Presence notification pushed by the room server:
    {
    "user":  "INT (user id)",
    "event": "CONNECTED | DISCONNECTED"
    }
    """
    user: Union[int, float]
    event: UserEvent

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'UserNotification':
        return cls(user=data['user'], event=UserEvent.from_string(data['event']))

    def to_dict(self) -> Dict[str, Any]:
        return {'user': self.user, 'event': self.event.value}


@dataclass
class DecodedMessage:
    """Tagged result of decoding one inbound frame."""
    kind: MessageKind
    data: Any                     # the parsed JSON value, untouched
    payload: Optional[Union[TextEnvelope, UserNotification]] = None

    @property
    def valid(self) -> bool:
        """UNKNOWN frames must not drive any chat logic"""
        return self.kind is not MessageKind.UNKNOWN


# ========================================
#           SHAPE PREDICATES
# ========================================

def is_valid_user_notification(obj: Any) -> bool:
    """'user' is a number and 'event' is CONNECTED or DISCONNECTED"""
    if not isinstance(obj, Mapping):
        return False
    if not USER_NOTIFICATION_FIELDS.issubset(obj.keys()):
        return False
    user = obj['user']
    # bool is an int subclass but never a user id
    if isinstance(user, bool) or not isinstance(user, Number):
        return False
    return isinstance(obj['event'], str) and UserEvent.is_valid(obj['event'])


def is_valid_text_envelope(obj: Any) -> bool:
    """All text fields present and 'type' is exactly TEXT"""
    if not isinstance(obj, Mapping):
        return False
    if not TEXT_ENVELOPE_FIELDS.issubset(obj.keys()):
        return False
    return obj.get('type') == TEXT_TYPE


def classify(obj: Any) -> MessageKind:
    """User notifications take precedence over text envelopes."""
    if is_valid_user_notification(obj):
        return MessageKind.USER_EVENT
    if is_valid_text_envelope(obj):
        return MessageKind.TEXT
    return MessageKind.UNKNOWN


def validate_notification_format(obj: Any) -> Dict[str, Any]:
    """
    Describe how an inbound object classifies.

    Returns:
        {"is_valid": bool, "type": "USER_EVENT" | "TEXT" | "UNKNOWN",
         "details": {"is_user_event", "is_text_message", "has_required_fields"}}
    """
    is_user_event = is_valid_user_notification(obj)
    is_text_message = is_valid_text_envelope(obj)
    kind = classify(obj)
    return {
        'is_valid': kind is not MessageKind.UNKNOWN,
        'type': kind.value,
        'details': {
            'is_user_event': is_user_event,
            'is_text_message': is_text_message,
            'has_required_fields': is_user_event or is_text_message,
        },
    }


# ========================================
#           ENCODE / DECODE
# ========================================

def encode(text: str, sender_id: int, room_address: str, *, timestamp: Optional[str] = None) -> TextEnvelope:
    """Build the outbound envelope for a chat line (trimmed, stamped now unless given)"""
    return TextEnvelope(
        message=text.strip(),
        sender=sender_id,
        timestamp=timestamp or iso_now(),
        room_address=room_address,
    )


def decode(raw: Union[str, bytes, bytearray]) -> DecodedMessage:
    """
    Parse and classify one inbound frame.

    Raises:
        ParseError: the frame is not UTF-8, not well-formed JSON, or nested
            or sized beyond what the JSON parser accepts
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = bytes(raw).decode('utf-8')
        except UnicodeDecodeError as e:
            raise ParseError(f"Invalid UTF-8: {e}")
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError, TypeError) as e:
        # ValueError covers JSONDecodeError and over-long integer literals
        raise ParseError(f"Invalid JSON: {type(e).__name__}: {e}")

    kind = classify(data)
    if kind is MessageKind.USER_EVENT:
        return DecodedMessage(kind, data, UserNotification.from_dict(data))
    if kind is MessageKind.TEXT:
        return DecodedMessage(kind, data, TextEnvelope.from_dict(data))
    return DecodedMessage(kind, data)
