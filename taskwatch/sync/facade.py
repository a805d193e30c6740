"""Single entry point for callers, independent of the active transport."""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator

from ..config import Config
from ..errors import ConfigurationInvalid
from ..models import Item, SyncMode
from .base import SyncEngine
from .dedup import CompletionDeduper
from .poll_engine import PollStatus, PollSyncEngine
from .push_engine import PushStatus, PushSyncEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncStatus:
    """Normalized status of whichever engine is active."""

    mode: SyncMode
    error_message: str | None
    retry_or_reconnect_count: int


class SyncFacade:
    """Wraps one sync engine and exposes its completions as a channel.

    Completed items are queued in delivery order after deduplication and
    can be pulled with :meth:`get_completion` or ``async for`` over
    :meth:`completions`.
    """

    def __init__(self, engine: SyncEngine):
        self.engine = engine
        self._queue: asyncio.Queue[Item] = asyncio.Queue()
        engine.set_callbacks(on_completed=self._queue.put_nowait)

    @classmethod
    def from_config(cls, config: Config, transport: str | None = None) -> "SyncFacade":
        """Build a facade over the engine named by ``transport``.

        Args:
            config: Loaded configuration.
            transport: "poll" or "push"; defaults to ``config.transport``.

        Raises:
            ConfigurationInvalid: For an unknown transport or bad URL.
        """
        transport = transport or config.transport
        deduper = CompletionDeduper()

        if transport == "poll":
            engine: SyncEngine = PollSyncEngine.from_config(config, deduper=deduper)
        elif transport == "push":
            engine = PushSyncEngine.from_config(config, deduper=deduper)
        else:
            raise ConfigurationInvalid(f"Unknown transport {transport!r}")

        logger.debug(f"Using {transport} transport")
        return cls(engine)

    @property
    def transport(self) -> str:
        return self.engine.transport

    def start(self) -> None:
        self.engine.start()

    def stop(self) -> None:
        self.engine.stop()

    def reset(self) -> None:
        self.engine.reset()

    def status(self) -> SyncStatus:
        engine_status = self.engine.status()

        if isinstance(engine_status, PollStatus):
            mode = engine_status.mode
            count = engine_status.retry_count
        elif isinstance(engine_status, PushStatus):
            # The push engine never parks in an error mode
            mode = SyncMode.ACTIVE if engine_status.running else SyncMode.IDLE
            count = engine_status.reconnect_count
        else:
            raise TypeError(f"Unsupported engine status: {engine_status!r}")

        return SyncStatus(
            mode=mode,
            error_message=engine_status.last_error,
            retry_or_reconnect_count=count,
        )

    @property
    def pending(self) -> int:
        """Number of delivered items not yet pulled."""
        return self._queue.qsize()

    async def get_completion(self, timeout: float | None = None) -> Item | None:
        """Get the next completed item.

        Args:
            timeout: Optional timeout in seconds.

        Returns:
            Item or None if timeout.
        """
        try:
            if timeout is None:
                return await self._queue.get()
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def completions(self) -> AsyncIterator[Item]:
        """Yield completed items one at a time, forever."""
        while True:
            yield await self._queue.get()

    async def aclose(self) -> None:
        """Stop the engine and release its resources."""
        await self.engine.aclose()
