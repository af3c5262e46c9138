"""Tests for paginated history loading against a mocked HTTP backend."""
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from genielearn.chat.schemas import ChatMessage
from genielearn.client.errors import ChatClientError
from genielearn.client.history import HistoryLoader

T0 = datetime(2024, 5, 1, tzinfo=timezone.utc)


def fake_history(count):
    return [
        ChatMessage(
            id=f"m{i}",
            group_id="g1",
            sender_id="u1",
            sender_name="Ada",
            content=f"message {i}",
            timestamp=T0 + timedelta(seconds=i),
        ).model_dump(mode="json")
        for i in range(count)
    ]


def history_backend(messages, requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        limit = int(request.url.params["limit"])
        offset = int(request.url.params["offset"])
        return httpx.Response(200, json=messages[offset:offset + limit])
    return handler


@pytest.mark.asyncio
async def test_stops_on_short_page():
    requests = []
    transport = httpx.MockTransport(history_backend(fake_history(250), requests))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        loaded = await HistoryLoader(http, batch_size=100).load("g1")

    assert len(loaded) == 250
    assert [r.url.params["offset"] for r in requests] == ["0", "100", "200"]
    assert loaded[0].id == "m0"
    assert loaded[-1].id == "m249"


@pytest.mark.asyncio
async def test_exact_multiple_needs_one_empty_page():
    requests = []
    transport = httpx.MockTransport(history_backend(fake_history(200), requests))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        loaded = await HistoryLoader(http, batch_size=100).load("g1")

    assert len(loaded) == 200
    assert len(requests) == 3


@pytest.mark.asyncio
async def test_stops_at_cap():
    requests = []
    transport = httpx.MockTransport(history_backend(fake_history(6000), requests))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        loaded = await HistoryLoader(http, batch_size=100, cap=5000).load("g1")

    assert len(loaded) == 5000
    assert len(requests) == 50
    assert loaded[-1].id == "m4999"


@pytest.mark.asyncio
async def test_empty_group():
    requests = []
    transport = httpx.MockTransport(history_backend([], requests))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        assert await HistoryLoader(http).load("g1") == []
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_error_status_raises_friendly_error():
    transport = httpx.MockTransport(
        lambda request: httpx.Response(403, json={"detail": "You are not a member of this group."})
    )
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        with pytest.raises(ChatClientError) as exc_info:
            await HistoryLoader(http).load("g1")

    assert exc_info.value.status_code == 403
    assert exc_info.value.message == "You are not a member of this group."


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"<html>gateway timeout</html>", b'[{"id": 1}]', b"42"])
async def test_malformed_page_raises_friendly_error(body):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=body))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        with pytest.raises(ChatClientError) as exc_info:
            await HistoryLoader(http).load("g1")

    assert exc_info.value.message == "Could not load messages."
