"""Tests for HttpSessionClient against a mocked host API."""

from __future__ import annotations

import httpx
import pytest

from llm_intercept.client import HttpSessionClient
from llm_intercept.correlation import ToolCallCorrelator
from llm_intercept.hooks import is_subagent_session
from llm_intercept.state import SessionStore
from llm_intercept.types import SessionClient


def _host_api(transcript):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/session/ses_child":
            return httpx.Response(200, json={"id": "ses_child", "parentID": "ses_main"})
        if path == "/session/ses_main":
            return httpx.Response(200, json={"id": "ses_main"})
        if path == "/session/ses_main/message":
            limit = int(request.url.params["limit"])
            return httpx.Response(200, json=transcript[:limit])
        return httpx.Response(404, json={"error": "not found"})

    return handler


@pytest.fixture
def session_client(gemini_transcript):
    http = httpx.AsyncClient(transport=httpx.MockTransport(_host_api(gemini_transcript)))
    return HttpSessionClient("http://host.local/", http_client=http)


class TestHttpSessionClient:
    def test_satisfies_protocol(self, session_client):
        assert isinstance(session_client, SessionClient)
        assert session_client.base_url == "http://host.local"

    @pytest.mark.asyncio
    async def test_get_session(self, session_client):
        assert (await session_client.get_session("ses_child"))["parentID"] == "ses_main"

    @pytest.mark.asyncio
    async def test_list_messages_limit(self, session_client):
        messages = await session_client.list_messages("ses_main", limit=2)
        assert len(messages) == 2

    @pytest.mark.asyncio
    async def test_http_error_raises(self, session_client):
        with pytest.raises(httpx.HTTPStatusError):
            await session_client.get_session("ses_unknown")

    @pytest.mark.asyncio
    async def test_subagent_detection_over_http(self, session_client):
        assert await is_subagent_session(session_client, "ses_child")
        assert not await is_subagent_session(session_client, "ses_main")
        assert not await is_subagent_session(session_client, "ses_unknown")

    @pytest.mark.asyncio
    async def test_correlator_over_http(self, session_client):
        store = SessionStore()
        table = await ToolCallCorrelator(session_client, store).refresh("ses_main")
        assert table == {"read:0": "id1", "write:0": "id2", "read:1": "id3"}

    @pytest.mark.asyncio
    async def test_aclose_leaves_injected_client_open(self, session_client):
        await session_client.aclose()
        assert not session_client._client.is_closed
        await session_client._client.aclose()
