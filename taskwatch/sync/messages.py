"""Inbound WebSocket frames as a closed set of message variants."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from ..errors import InvalidResponse
from ..models import Item, ItemStatus, parse_timestamp

PING_FRAME = json.dumps({"type": "ping"})

COMPLETION_TYPES = ("task_complete", "task_completed")

CLOSE_CODE_DESCRIPTIONS = {
    1000: "normal closure",
    1001: "server going away",
    1006: "abnormal closure (connection lost)",
    1011: "server error",
    1012: "server restarting",
    1013: "server overloaded, try again later",
}


@dataclass(frozen=True)
class PongMessage:
    """Keepalive acknowledgement."""

    timestamp: datetime | None = None


@dataclass(frozen=True)
class CompletionEvent:
    """A task finished on the server."""

    item: Item


@dataclass(frozen=True)
class UnknownMessage:
    """A frame with a tag this client does not understand."""

    type: str | None
    raw: dict[str, Any] = field(default_factory=dict)


InboundMessage = Union[PongMessage, CompletionEvent, UnknownMessage]


def parse_message(frame: str | bytes) -> InboundMessage:
    """Parse one text frame.

    Raises:
        InvalidResponse: If the frame is not a JSON object, or a completion
            event carries no task id.
    """
    try:
        data = json.loads(frame)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise InvalidResponse(f"Malformed frame: {e}") from e

    if not isinstance(data, dict):
        raise InvalidResponse(f"Frame is not an object: {data!r}")

    msg_type = data.get("type")

    if msg_type == "pong":
        return PongMessage(timestamp=parse_timestamp(data.get("timestamp")))

    if msg_type in COMPLETION_TYPES:
        item_id = data.get("task_id", data.get("id"))
        if not item_id:
            raise InvalidResponse(f"Completion event has no task id: {data!r}")
        item = Item(id=str(item_id)).mark_completed(
            parse_timestamp(data.get("timestamp"))
        )
        if data.get("status", "completed") != ItemStatus.COMPLETED.value:
            raise InvalidResponse(f"Completion event with status {data['status']!r}")
        return CompletionEvent(item=item)

    return UnknownMessage(type=msg_type, raw=data)


def describe_close(code: int | None, reason: str = "") -> str:
    """Human-readable diagnostic for a WebSocket close code."""
    if code is None:
        text = "connection closed without a close frame"
    else:
        description = CLOSE_CODE_DESCRIPTIONS.get(code, "unexpected close")
        text = f"{description} (code {code})"
    if reason:
        text = f"{text}: {reason}"
    return text
