"""Data types shared by the client, the engines and the facade."""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import InvalidResponse


class ItemStatus(Enum):
    """Lifecycle of a work item as seen by the client."""

    PENDING = "pending"
    COMPLETED = "completed"


class SyncMode(Enum):
    """Externally visible state of a sync engine."""

    IDLE = "idle"
    ACTIVE = "active"
    ERROR = "error"  # Terminal until reset()


def parse_timestamp(value: Any) -> datetime | None:
    """Parse epoch seconds or an ISO-8601 string."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise InvalidResponse(f"Invalid completion_time: {value!r}")
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
        try:
            value = float(value)
        except ValueError:
            raise InvalidResponse(f"Invalid completion_time: {value!r}") from None
    if isinstance(value, (int, float)):
        # NaN, inf and values past the platform time_t range
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise InvalidResponse(f"Invalid completion_time: {value!r}") from None
    raise InvalidResponse(f"Invalid completion_time: {value!r}")


@dataclass(frozen=True)
class Item:
    """One unit of asynchronous work, identified by a server-assigned id."""

    id: str
    status: ItemStatus = ItemStatus.PENDING
    priority: int | None = None  # 1-10, informational only
    payload: str = ""
    completion_time: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status is ItemStatus.COMPLETED

    def mark_completed(self, when: datetime | None = None) -> "Item":
        """Return a completed copy of this item.

        Completion is monotonic: an already completed item is returned as is.
        """
        if self.is_completed:
            return self
        return replace(
            self,
            status=ItemStatus.COMPLETED,
            completion_time=when or datetime.now(timezone.utc),
        )

    @classmethod
    def from_completion(cls, data: Any) -> "Item":
        """Build a completed item from a server completion record.

        Accepts both ``{"id", "data", "priority", "completion_time"}`` and
        the ``{"task_id", "completion_time"}`` records older servers emit.

        Raises:
            InvalidResponse: If the record is not an object or has no id.
        """
        if not isinstance(data, dict):
            raise InvalidResponse(f"Completion record is not an object: {data!r}")

        item_id = data.get("id", data.get("task_id"))
        if item_id is None or item_id == "":
            raise InvalidResponse(f"Completion record has no id: {data!r}")

        priority = data.get("priority")
        if priority is not None:
            try:
                priority = int(priority)
            except (TypeError, ValueError):
                raise InvalidResponse(f"Invalid priority: {priority!r}") from None

        payload = data.get("data", data.get("payload", ""))

        return cls(
            id=str(item_id),
            status=ItemStatus.COMPLETED,
            priority=priority,
            payload="" if payload is None else str(payload),
            completion_time=parse_timestamp(data.get("completion_time"))
            or datetime.now(timezone.utc),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        return {
            "id": self.id,
            "status": self.status.value,
            "priority": self.priority,
            "data": self.payload,
            "completion_time": (
                self.completion_time.isoformat() if self.completion_time else None
            ),
        }
