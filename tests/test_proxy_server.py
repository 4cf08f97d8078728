"""Integration tests for the intercepting proxy, via FastAPI TestClient."""

from __future__ import annotations

import json

import httpx
import pytest
from starlette.testclient import TestClient

from conftest import FakeSessionClient
from llm_intercept.mutations import inject_into_last_user_turn
from llm_intercept.proxy import create_app
from llm_intercept.proxy.server import _chat_params_from_headers, _forward_headers
from llm_intercept.state import SessionStore
from llm_intercept.types import InterceptConfig, InterceptResult


class _Upstream:
    def __init__(self):
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(
            200,
            json={"id": "resp_1", "choices": []},
            headers={"x-upstream": "yes"},
        )


def _inject_reminder(body, fmt, turns, tool_outputs, url, ctx):
    result = inject_into_last_user_turn(body, fmt, "Reminder: be terse.")
    return InterceptResult(body=result.body, modified=result.applied)


@pytest.fixture
def upstream():
    return _Upstream()


def _client(upstream, **kwargs) -> TestClient:
    app = create_app(
        "http://fake-upstream:9999/",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(upstream)),
        **kwargs,
    )
    return TestClient(app)


class TestHeaders:
    def test_forward_headers_strips_hop_by_hop_and_session(self):
        headers = {
            "Host": "x", "Content-Length": "10", "Connection": "keep-alive",
            "Authorization": "Bearer k", "X-Session-Id": "ses_1", "x-model-id": "m",
        }
        assert _forward_headers(headers) == {"Authorization": "Bearer k"}


class TestProxy:
    def test_post_rewritten_when_modified(self, upstream, chat_body):
        with _client(upstream, interceptor=_inject_reminder) as client:
            resp = client.post("/v1/chat/completions", json=chat_body)

        assert resp.status_code == 200
        assert resp.json()["id"] == "resp_1"
        assert resp.headers["x-upstream"] == "yes"

        sent = upstream.requests[0]
        assert str(sent.url) == "http://fake-upstream:9999/v1/chat/completions"
        assert json.loads(sent.content)["messages"][1]["content"] == "List the repo.\n\nReminder: be terse."

    def test_post_forwarded_verbatim_when_unmodified(self, upstream, chat_body):
        raw = json.dumps(chat_body, indent=4).encode()
        with _client(upstream) as client:
            client.post(
                "/v1/chat/completions", content=raw,
                headers={"content-type": "application/json", "authorization": "Bearer k"},
            )

        sent = upstream.requests[0]
        assert sent.content == raw
        assert sent.headers["authorization"] == "Bearer k"

    def test_get_passthrough_with_query(self, upstream):
        with _client(upstream, interceptor=_inject_reminder) as client:
            resp = client.get("/v1/models?limit=5")

        assert resp.status_code == 200
        sent = upstream.requests[0]
        assert sent.method == "GET"
        assert str(sent.url) == "http://fake-upstream:9999/v1/models?limit=5"

    def test_disabled_config_skips_interceptor(self, upstream, chat_body):
        config = InterceptConfig(enabled=False)
        with _client(upstream, config=config, interceptor=_inject_reminder) as client:
            client.post("/v1/chat/completions", json=chat_body)
        assert json.loads(upstream.requests[0].content) == chat_body

    def test_session_headers_drive_chat_params(self, upstream, gemini_body, gemini_transcript):
        store = SessionStore()
        session_client = FakeSessionClient(
            sessions={"ses_main": {}}, transcripts={"ses_main": gemini_transcript},
        )
        seen_ids = []

        def record(body, fmt, turns, tool_outputs, url, ctx):
            seen_ids.extend(o.id for o in tool_outputs)
            return InterceptResult(body=body)

        with _client(upstream, store=store, session_client=session_client, interceptor=record) as client:
            client.post(
                "/v1beta/models/gemini-2.5-pro:generateContent",
                json=gemini_body,
                headers={"X-Session-Id": "ses_main", "X-Provider-Id": "google", "X-Model-Id": "gemini-2.5-pro"},
            )

        assert seen_ids == ["id1", "id2", "id3"]
        assert store.get_model("ses_main").model_id == "gemini-2.5-pro"
        sent = upstream.requests[0]
        assert "x-session-id" not in sent.headers
        assert "x-provider-id" not in sent.headers

    def test_subagent_session_header_skips_interceptor(self, upstream, chat_body):
        session_client = FakeSessionClient(sessions={"ses_child": {"parentID": "ses_main"}})
        with _client(upstream, session_client=session_client, interceptor=_inject_reminder) as client:
            client.post("/v1/chat/completions", json=chat_body, headers={"X-Session-Id": "ses_child"})
        assert json.loads(upstream.requests[0].content) == chat_body

    def test_session_header_without_session_client(self, upstream, chat_body):
        store = SessionStore()
        with _client(upstream, store=store) as client:
            client.post("/v1/chat/completions", json=chat_body, headers={"X-Session-Id": "ses_x"})
        assert store.last_seen_session_id == "ses_x"

    def test_context_exposed_on_app_state(self, upstream):
        store = SessionStore()
        app = create_app(
            "http://fake-upstream:9999",
            store=store,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(upstream)),
        )
        assert app.state.intercept.store is store


class TestChatParamsFromHeaders:
    def _request(self, headers):
        from starlette.requests import Request

        scope = {
            "type": "http",
            "method": "POST",
            "path": "/",
            "headers": [(k.lower().encode(), v.encode()) for k, v in headers.items()],
        }
        return Request(scope)

    def test_no_session_header(self):
        assert _chat_params_from_headers(self._request({})) is None

    def test_full_headers(self):
        params = _chat_params_from_headers(self._request({
            "X-Session-Id": "s", "X-Provider-Id": "google", "X-Model-Id": "g",
        }))
        assert params == {"sessionID": "s", "provider": {"id": "google"}, "model": {"id": "g"}}
