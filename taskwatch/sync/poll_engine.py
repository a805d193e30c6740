"""Polling engine: periodically fetch newly completed tasks over HTTP.

Each cycle probes ``/health``, fetches ``/completed_tasks`` newer than the
cursor, delivers new items and schedules the next cycle. Failures back off
exponentially until ``max_failures`` is exceeded, at which point the engine
parks in the ``error`` mode until ``reset()``.
"""

import asyncio
import logging
from dataclasses import dataclass

from ..client import TaskServerClient
from ..config import Config
from ..errors import SyncError
from ..models import Item, SyncMode
from .backoff import BackoffPolicy
from .base import CompletionCallback, ErrorCallback, SyncEngine
from .cursor import CursorTracker
from .dedup import CompletionDeduper

logger = logging.getLogger(__name__)

MAX_RETRIES_MESSAGE = (
    "Maximum retry count reached. Please check your connection and try again."
)


@dataclass(frozen=True)
class PollStatus:
    """Snapshot of a PollSyncEngine."""

    mode: SyncMode
    retry_count: int
    cursor: str | None
    last_error: str | None = None
    next_delay: float | None = None  # Seconds until the scheduled cycle


class PollSyncEngine(SyncEngine):
    """Cursor-based polling for completed tasks with bounded backoff."""

    transport = "poll"

    def __init__(
        self,
        client: TaskServerClient,
        interval: float = 3.0,
        max_failures: int = 5,
        backoff: BackoffPolicy | None = None,
        deduper: CompletionDeduper | None = None,
        on_completed: CompletionCallback | None = None,
        on_error: ErrorCallback | None = None,
    ):
        """Initialize the polling engine.

        Args:
            client: Client for the task server.
            interval: Seconds between successful cycles.
            max_failures: Consecutive failures tolerated before the engine
                enters the terminal error mode.
            backoff: Delay schedule applied after failures.
            deduper: Deduper to share with another engine.
            on_completed: Called with each newly completed item.
            on_error: Called with each surfaced error message.
        """
        super().__init__(backoff, deduper, on_completed, on_error)
        self.client = client
        self.interval = interval
        self.max_failures = max_failures
        self.cursor = CursorTracker()

        self._mode = SyncMode.IDLE
        self._retry_count = 0
        self._generation = 0
        self._timer: asyncio.TimerHandle | None = None
        self._next_delay: float | None = None
        self._inflight: asyncio.Task | None = None

    @classmethod
    def from_config(
        cls,
        config: Config,
        client: TaskServerClient | None = None,
        deduper: CompletionDeduper | None = None,
    ) -> "PollSyncEngine":
        return cls(
            client=client or TaskServerClient.from_config(config.server),
            interval=config.poll.interval_seconds,
            max_failures=config.poll.max_failures,
            backoff=BackoffPolicy.from_config(config.backoff),
            deduper=deduper,
        )

    @property
    def mode(self) -> SyncMode:
        return self._mode

    @property
    def retry_count(self) -> int:
        return self._retry_count

    def start(self) -> None:
        """Begin polling with an immediate cycle. No-op while active."""
        if self._mode is SyncMode.ACTIVE:
            logger.debug("Polling already active")
            return
        if self._mode is SyncMode.ERROR:
            logger.warning("Polling is in error mode, call reset() to resume")
            return

        logger.info("Starting task polling")
        self._mode = SyncMode.ACTIVE
        self._launch_cycle(self._generation)

    def stop(self) -> None:
        """Stop polling. An in-flight cycle finishes but its result is dropped."""
        if self._mode is not SyncMode.IDLE:
            logger.info("Stopping task polling")
        self._generation += 1
        self._cancel_timer()
        self._mode = SyncMode.IDLE

    def reset(self) -> None:
        """Clear retry count, cursor and error, then start again."""
        logger.info("Resetting task polling")
        self._generation += 1
        self._cancel_timer()
        self._mode = SyncMode.IDLE
        self._retry_count = 0
        self._last_error = None
        self.cursor.reset()
        self.start()

    def status(self) -> PollStatus:
        return PollStatus(
            mode=self._mode,
            retry_count=self._retry_count,
            cursor=self.cursor.current(),
            last_error=self._last_error,
            next_delay=self._next_delay,
        )

    async def aclose(self) -> None:
        await super().aclose()
        await self.client.close()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._next_delay = None

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation or self._mode is not SyncMode.ACTIVE

    def _launch_cycle(self, generation: int) -> None:
        self._timer = None
        self._next_delay = None
        previous = self._inflight
        if previous is not None and previous.done():
            previous = None
        self._inflight = self._spawn(
            self._cycle(generation, previous), name="poll-cycle"
        )

    def _schedule(self, delay: float, generation: int) -> None:
        self._next_delay = delay
        self._timer = asyncio.get_running_loop().call_later(
            delay, self._fire, generation
        )

    def _fire(self, generation: int) -> None:
        if self._is_stale(generation):
            return
        self._launch_cycle(generation)

    async def _exchange(self) -> list[Item]:
        await self.client.health()
        return await self.client.fetch_completed(self.cursor.current())

    def _apply(self, items: list[Item]) -> int:
        """Deliver items in order and commit the cursor to the last one."""
        delivered = 0
        latest = None
        for item in items:
            latest = item.id
            if self._deliver(item):
                delivered += 1
        if latest is not None:
            self.cursor.advance(latest)
        return delivered

    async def _cycle(self, generation: int, previous: asyncio.Task | None) -> None:
        # A stale cycle may still be talking to the server
        if previous is not None:
            await asyncio.wait({previous})
            if self._is_stale(generation):
                return

        try:
            items = await self._exchange()
        except SyncError as e:
            error = e
        except Exception as e:
            logger.error(f"Unexpected polling error: {e}", exc_info=True)
            error = SyncError(str(e))
        else:
            error = None

        if self._is_stale(generation):
            logger.debug("Discarding result of a stopped poll cycle")
            return

        if error is not None:
            self._handle_failure(error, generation)
            return

        delivered = self._apply(items)
        self._retry_count = 0
        self._last_error = None
        logger.debug(
            f"Poll cycle ok: {len(items)} returned, {delivered} new, "
            f"cursor={self.cursor.current()}"
        )
        # A completion callback may have stopped or reset the engine
        if self._is_stale(generation):
            return
        self._schedule(self.interval, generation)

    def _handle_failure(self, error: SyncError, generation: int) -> None:
        self._retry_count += 1
        logger.warning(f"Poll failed ({error.kind}): {error.message}")

        if self._retry_count > self.max_failures:
            logger.error("Maximum retry count reached. Stopping polling.")
            self._mode = SyncMode.ERROR
            self._next_delay = None
            self._report_error(MAX_RETRIES_MESSAGE)
            return

        delay = self.backoff.compute_delay(self._retry_count)
        logger.info(
            f"Retry {self._retry_count}/{self.max_failures} in {delay:.1f} seconds"
        )
        self._report_error(error.message)
        self._schedule(delay, generation)
