"""HTTP client for the task server.

Every call makes exactly one attempt and translates transport, status and
decoding problems into the error kinds in :mod:`taskwatch.errors`. Retrying
is left to the sync engines.
"""

import logging
from typing import Any

import httpx

from .config import ServerConfig
from .errors import FetchFailed, HealthCheckFailed, InvalidResponse, SyncError
from .models import Item

logger = logging.getLogger(__name__)


def _error_detail(response: httpx.Response) -> str | None:
    """Extract the server's ``{"error": ...}`` message, if any."""
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return None


class TaskServerClient:
    """Async client for the task server's HTTP endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Base URL of the server (e.g., "http://localhost:8081").
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used to stub the server.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: ServerConfig) -> "TaskServerClient":
        return cls(config.api_url, timeout=config.request_timeout_seconds)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying connection pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        error_cls: type[SyncError],
        **kwargs: Any,
    ) -> Any:
        """Make one HTTP request and decode its JSON body.

        Args:
            method: HTTP method (GET, POST).
            path: URL path appended to base_url.
            error_cls: Error kind raised for transport and status failures.

        Returns:
            Decoded JSON body.
        """
        try:
            response = await self._get_client().request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise error_cls(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise error_cls(f"{method} {path} failed: {e}") from e

        if not response.is_success:
            message = f"{method} {path} failed with status {response.status_code}"
            detail = _error_detail(response)
            if detail:
                message = f"{message}: {detail}"
            raise error_cls(message)

        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponse(f"{method} {path} returned invalid JSON") from e

    async def health(self) -> dict[str, Any]:
        """Probe ``GET /health``.

        Raises:
            HealthCheckFailed: On a network error or non-2xx status.
            InvalidResponse: If the body is not a JSON object.
        """
        data = await self._request("GET", "/health", HealthCheckFailed)
        if not isinstance(data, dict):
            raise InvalidResponse(f"Health response is not an object: {data!r}")
        logger.debug(f"Server health: {data}")
        return data

    async def fetch_completed(self, since: str | None = None) -> list[Item]:
        """Fetch items completed after ``since``, oldest first.

        An absent or empty task list is a valid, empty result.

        Raises:
            FetchFailed: On a network error or non-2xx status.
            InvalidResponse: If the body or a record has an unexpected shape.
        """
        params = {"since": since} if since is not None else None
        data = await self._request(
            "GET", "/completed_tasks", FetchFailed, params=params
        )
        if not isinstance(data, dict):
            raise InvalidResponse(
                f"Completed tasks response is not an object: {data!r}"
            )

        # Older servers name the list "completed_tasks"
        records = data.get("tasks")
        if records is None:
            records = data.get("completed_tasks")
        if records is None:
            return []
        if not isinstance(records, list):
            raise InvalidResponse(f"'tasks' is not a list: {records!r}")

        return [Item.from_completion(record) for record in records]

    async def submit(self, data: str, priority: int = 1) -> str:
        """Submit a new work item with ``POST /submit``.

        Args:
            data: Description of the work.
            priority: Priority from 1 to 10.

        Returns:
            The id assigned by the server.

        Raises:
            ValueError: If priority is out of range.
            FetchFailed: On a network error or non-2xx status.
            InvalidResponse: If no task id comes back.
        """
        if not 1 <= priority <= 10:
            raise ValueError(f"priority must be between 1 and 10, got {priority}")

        body = await self._request(
            "POST",
            "/submit",
            FetchFailed,
            json={"data": data, "priority": priority},
        )
        if not isinstance(body, dict):
            raise InvalidResponse(f"Submit response is not an object: {body!r}")
        if "error" in body:
            raise FetchFailed(f"Submit rejected: {body['error']}")
        task_id = body.get("task_id")
        if not task_id:
            raise InvalidResponse(f"Submit response has no task_id: {body!r}")

        logger.info(f"Submitted task {task_id} (priority={priority})")
        return str(task_id)
