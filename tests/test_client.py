"""Tests for the task server HTTP client."""

import json

import httpx
import pytest

from taskwatch.client import TaskServerClient
from taskwatch.errors import FetchFailed, HealthCheckFailed, InvalidResponse


def make_client(handler) -> TaskServerClient:
    return TaskServerClient(
        "http://tasks.local:8081/",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )


class TestHealth:
    """Tests for the health probe."""

    @pytest.mark.asyncio
    async def test_health_ok(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/health"
            return httpx.Response(200, json={"status": "ok", "uptime": 12})

        client = make_client(handler)
        try:
            assert await client.health() == {"status": "ok", "uptime": 12}
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_health_non_2xx(self):
        client = make_client(lambda request: httpx.Response(503))
        try:
            with pytest.raises(HealthCheckFailed, match="503"):
                await client.health()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_health_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        try:
            with pytest.raises(HealthCheckFailed, match="connection refused"):
                await client.health()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_health_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("too slow", request=request)

        client = make_client(handler)
        try:
            with pytest.raises(HealthCheckFailed, match="timed out"):
                await client.health()
        finally:
            await client.close()


class TestFetchCompleted:
    """Tests for fetching completed tasks."""

    @pytest.mark.asyncio
    async def test_fetch_without_cursor(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "tasks": [
                        {"id": "a", "data": "one", "priority": 1},
                        {"id": "b", "data": "two", "priority": 5},
                    ]
                },
            )

        client = make_client(handler)
        try:
            items = await client.fetch_completed()
        finally:
            await client.close()

        assert [item.id for item in items] == ["a", "b"]
        assert seen[0].url.path == "/completed_tasks"
        assert "since" not in seen[0].url.params

    @pytest.mark.asyncio
    async def test_fetch_with_cursor(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"tasks": []})

        client = make_client(handler)
        try:
            items = await client.fetch_completed(since="b")
        finally:
            await client.close()

        assert items == []
        assert seen[0].url.params["since"] == "b"

    @pytest.mark.asyncio
    async def test_absent_tasks_is_empty(self):
        client = make_client(lambda request: httpx.Response(200, json={}))
        try:
            assert await client.fetch_completed() == []
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_legacy_completed_tasks_key(self):
        """Test servers that answer with a completed_tasks list."""
        body = {
            "completed_tasks": [{"task_id": "x", "completion_time": 1700000000}],
            "server_time": 1700000001,
        }
        client = make_client(lambda request: httpx.Response(200, json=body))
        try:
            items = await client.fetch_completed()
        finally:
            await client.close()

        assert [item.id for item in items] == ["x"]

    @pytest.mark.asyncio
    async def test_server_error_is_fetch_failure(self):
        client = make_client(
            lambda request: httpx.Response(500, json={"error": "queue offline"})
        )
        try:
            with pytest.raises(FetchFailed, match="queue offline"):
                await client.fetch_completed()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_malformed_json(self):
        client = make_client(lambda request: httpx.Response(200, content=b"{nope"))
        try:
            with pytest.raises(InvalidResponse):
                await client.fetch_completed()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_tasks_not_a_list(self):
        client = make_client(
            lambda request: httpx.Response(200, json={"tasks": {"id": "a"}})
        )
        try:
            with pytest.raises(InvalidResponse):
                await client.fetch_completed()
        finally:
            await client.close()


class TestSubmit:
    """Tests for task submission."""

    @pytest.mark.asyncio
    async def test_submit_returns_task_id(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json={"status": "success", "task_id": "t-9"})

        client = make_client(handler)
        try:
            task_id = await client.submit("render video", priority=7)
        finally:
            await client.close()

        assert task_id == "t-9"
        assert bodies == [{"data": "render video", "priority": 7}]

    @pytest.mark.asyncio
    async def test_submit_error_body(self):
        client = make_client(
            lambda request: httpx.Response(400, json={"error": "Invalid JSON"})
        )
        try:
            with pytest.raises(FetchFailed, match="Invalid JSON"):
                await client.submit("x")
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_submit_priority_range(self):
        client = make_client(lambda request: httpx.Response(201, json={}))
        with pytest.raises(ValueError):
            await client.submit("x", priority=11)
