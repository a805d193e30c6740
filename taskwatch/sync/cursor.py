"""Incremental-fetch cursor for the polling engine."""


class CursorTracker:
    """Holds the id of the newest completed item fetched so far.

    The server returns items oldest-to-newest, so the last id of a batch is
    taken as is.
    """

    def __init__(self) -> None:
        self._cursor: str | None = None

    def current(self) -> str | None:
        return self._cursor

    def advance(self, latest_id: str) -> None:
        self._cursor = latest_id

    def reset(self) -> None:
        """Clear the cursor so the next fetch requests the full set."""
        self._cursor = None

    def query_params(self) -> dict[str, str]:
        """Query parameters for ``GET /completed_tasks``."""
        if self._cursor is None:
            return {}
        return {"since": self._cursor}
