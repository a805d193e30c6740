"""Completion sync engines.

Two interchangeable strategies report finished tasks exactly once: HTTP
polling with a failure ceiling and a WebSocket push engine that reconnects
indefinitely. :class:`SyncFacade` hides which one is in use.
"""

from .backoff import BackoffPolicy
from .cursor import CursorTracker
from .dedup import CompletionDeduper
from .facade import SyncFacade, SyncStatus
from .poll_engine import PollStatus, PollSyncEngine
from .push_engine import ConnectionState, PushStatus, PushSyncEngine

__all__ = [
    "BackoffPolicy",
    "CompletionDeduper",
    "ConnectionState",
    "CursorTracker",
    "PollStatus",
    "PollSyncEngine",
    "PushStatus",
    "PushSyncEngine",
    "SyncFacade",
    "SyncStatus",
]
