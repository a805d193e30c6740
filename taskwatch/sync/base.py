"""Base class for the interchangeable sync engines."""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Coroutine

from ..models import Item
from .backoff import BackoffPolicy
from .dedup import CompletionDeduper

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[Item], None]
ErrorCallback = Callable[[str], None]


class SyncEngine(ABC):
    """Shared plumbing for the poll and push engines.

    Engines run on a single asyncio loop. ``start``, ``stop``, ``reset`` and
    ``status`` never block; work happens in background tasks the engine owns.
    """

    def __init__(
        self,
        backoff: BackoffPolicy | None = None,
        deduper: CompletionDeduper | None = None,
        on_completed: CompletionCallback | None = None,
        on_error: ErrorCallback | None = None,
    ):
        self.backoff = backoff or BackoffPolicy()
        self.deduper = deduper if deduper is not None else CompletionDeduper()
        self._on_completed = on_completed
        self._on_error = on_error
        self._last_error: str | None = None
        self._tasks: set[asyncio.Task] = set()

    def set_callbacks(
        self,
        on_completed: CompletionCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        self._on_completed = on_completed
        self._on_error = on_error

    @property
    @abstractmethod
    def transport(self) -> str:
        """Short transport name: "poll" or "push"."""
        pass

    @abstractmethod
    def start(self) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass

    @abstractmethod
    def reset(self) -> None:
        pass

    @abstractmethod
    def status(self) -> Any:
        """Return an immutable snapshot of the engine state."""
        pass

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def _deliver(self, item: Item) -> bool:
        """Pass ``item`` through the deduper and hand it to the caller.

        Returns:
            True if the item was new and delivered.
        """
        if not self.deduper.accept(item):
            logger.debug(f"Suppressed duplicate completion {item.id}")
            return False

        logger.info(f"Task completed: {item.id}")
        if self._on_completed:
            self._on_completed(item)
        return True

    def _report_error(self, message: str) -> None:
        self._last_error = message
        if self._on_error:
            self._on_error(message)

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        """Run ``coro`` as a task held by the engine until it finishes."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background task {task.get_name()} failed: {exc}",
                exc_info=exc,
            )

    async def aclose(self) -> None:
        """Stop the engine and wait for its background tasks to settle."""
        self.stop()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
