"""HTTP reverse proxy that runs outbound chat requests through the pipeline.

Sits between any LLM client and an upstream provider.  POST bodies go
through :func:`~llm_intercept.pipeline.intercept_payload`; everything else,
and every response, is relayed byte-for-byte.

Clients may identify their host session with request headers, which feed the
chat-params hook before the body is processed:

    X-Session-Id:  host session id (required to enable session tracking)
    X-Provider-Id: provider id, e.g. ``google``
    X-Model-Id:    model id

Usage:
    llm-intercept -c config.yaml proxy --upstream https://api.openai.com
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ..client import HttpSessionClient
from ..hooks import create_chat_params_handler
from ..pipeline import intercept_payload, logging_interceptor
from ..state import SessionStore
from ..types import InterceptConfig, InterceptContext, RequestInterceptor, SessionClient

logger = logging.getLogger(__name__)

_HOP_BY_HOP = frozenset({
    "host", "connection", "transfer-encoding", "keep-alive",
    "proxy-authenticate", "proxy-authorization", "te", "trailers",
    "upgrade", "content-length",
})

_SESSION_HEADERS = frozenset({"x-session-id", "x-provider-id", "x-model-id"})


def _forward_headers(headers: dict[str, str]) -> dict[str, str]:
    """Filter out hop-by-hop and session headers for forwarding."""
    return {
        k: v for k, v in headers.items()
        if k.lower() not in _HOP_BY_HOP and k.lower() not in _SESSION_HEADERS
    }


def _chat_params_from_headers(request: Request) -> dict | None:
    session_id = request.headers.get("x-session-id")
    if not session_id:
        return None
    params: dict = {"sessionID": session_id}
    provider_id = request.headers.get("x-provider-id")
    if provider_id:
        params["provider"] = {"id": provider_id}
    model_id = request.headers.get("x-model-id")
    if model_id:
        params["model"] = {"id": model_id}
    return params


async def _relay(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    headers: dict[str, str],
    body: bytes | str,
) -> StreamingResponse:
    """Forward to upstream and stream the raw response back."""
    upstream_request = client.build_request(method, url, headers=headers, content=body)
    resp = await client.send(upstream_request, stream=True)
    return StreamingResponse(
        resp.aiter_raw(),
        status_code=resp.status_code,
        headers=_forward_headers(dict(resp.headers)),
        background=BackgroundTask(resp.aclose),
    )


def create_app(
    upstream: str,
    config: InterceptConfig | None = None,
    *,
    store: SessionStore | None = None,
    interceptor: RequestInterceptor | None = None,
    session_client: SessionClient | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create the FastAPI proxy application.

    Args:
        upstream: Upstream provider base URL (e.g. https://api.openai.com).
        config: Loaded configuration; defaults when None.
        store: Session store to share with other interception points.
        interceptor: Request interceptor; defaults to ``logging_interceptor``.
        session_client: Host session API client.  Built from
            ``config.session_api`` when None and that URL is set.
        http_client: Client used for upstream calls (tests inject a mock).
    """
    upstream = upstream.rstrip("/")
    config = config or InterceptConfig()
    store = store or SessionStore()
    interceptor = interceptor or logging_interceptor

    owns_session_client = False
    if session_client is None and config.session_api:
        session_client = HttpSessionClient(config.session_api)
        owns_session_client = True

    ctx = InterceptContext(store=store, config=config, client=session_client)
    chat_params = (
        create_chat_params_handler(session_client, store, config)
        if session_client is not None else None
    )
    client = http_client or httpx.AsyncClient(
        timeout=httpx.Timeout(config.proxy.timeout, connect=10.0),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        yield
        await client.aclose()
        if owns_session_client:
            await session_client.aclose()

    app = FastAPI(title="llm-intercept proxy", lifespan=lifespan)
    app.state.intercept = ctx

    logger.info(
        "Proxy ready: upstream=%s session_api=%s",
        upstream, config.session_api or "-",
    )

    @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"])
    async def catch_all(request: Request, path: str):
        url = f"{upstream}/{path}"
        if request.url.query:
            url = f"{url}?{request.url.query}"
        fwd_headers = _forward_headers(dict(request.headers))
        body: bytes | str = await request.body()

        if request.method == "POST" and body and config.enabled:
            params = _chat_params_from_headers(request)
            if params is not None:
                if chat_params is not None:
                    await chat_params(params)
                else:
                    store.observe_session(params["sessionID"])
            body = await intercept_payload(body, url, ctx, interceptor)

        return await _relay(client, request.method, url, fwd_headers, body)

    return app
