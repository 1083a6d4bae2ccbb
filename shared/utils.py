from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional, Union
from urllib.parse import quote

# ========================================
#           TIMESTAMP HELPERS
# ========================================
"""
Wire timestamps are ISO-8601 UTC strings with millisecond precision and a
trailing 'Z', e.g. 2024-06-15T12:00:00.000Z.
"""


def iso_now(now: Optional[datetime] = None) -> str:
    """
    Current UTC time as an ISO-8601 string ending in 'Z'.
    """
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso8601(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware datetime.

    Naive values are taken as UTC. Raises ValueError when the string is not ISO-8601.
    """
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be a string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def is_iso8601(value: object) -> bool:
    """
    returns True if value is a string holding an ISO-8601 timestamp, otherwise False.
    """
    try:
        parse_iso8601(value)  # type: ignore[arg-type]
        return True
    except (ValueError, TypeError):
        return False


def format_message_timestamp(timestamp: Union[str, datetime], now: Optional[datetime] = None) -> str:
    """
    Render a message timestamp for display in the local timezone.

    - Messages from the last 24 hours show only the time: 'HH:MM'.
    - Older messages show day, month and time: 'DD/MM HH:MM'.
    """
    moment = timestamp if isinstance(timestamp, datetime) else parse_iso8601(timestamp)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)

    diff_hours = (current - moment).total_seconds() / 3600
    # An explicit 'now' pins the display timezone; otherwise use the host's local zone
    local = moment.astimezone(current.tzinfo) if now is not None else moment.astimezone()
    if diff_hours < 24:
        return local.strftime("%H:%M")
    return local.strftime("%d/%m %H:%M")


# ========================================
#           ENDPOINT HELPERS
# ========================================

def build_ws_url(scheme: str, host: str, port: int, path: str, room_address: str, user_id: object) -> str:
    """
    Build the chat endpoint URL:

        scheme://host:port/ws-chat-message?address=<room>&user=<user>

    Query values are passed through as-is except for characters that are not URL safe.
    """
    if not path.startswith("/"):
        path = "/" + path
    address = quote(str(room_address), safe="-_.~")
    user = quote(str(user_id), safe="-_.~")
    return f"{scheme}://{host}:{port}{path}?address={address}&user={user}"
