"""In-process interception point for ``httpx.AsyncClient``.

``InterceptingTransport`` wraps another transport and runs every outbound
request body through :func:`~llm_intercept.pipeline.intercept_payload`
before delegating.  ``install`` swaps it onto an existing client and returns
a function that puts the original transport back.

Usage:

    restore = install(client, ctx, my_interceptor)
    ...
    restore()
"""

from __future__ import annotations

import logging
from collections.abc import Callable

import httpx

from .pipeline import intercept_payload
from .types import InterceptContext, RequestInterceptor

logger = logging.getLogger(__name__)


class InterceptingTransport(httpx.AsyncBaseTransport):
    """Transport that rewrites request bodies the interceptor modified."""

    def __init__(
        self,
        ctx: InterceptContext,
        interceptor: RequestInterceptor,
        wrapped: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.ctx = ctx
        self.interceptor = interceptor
        self.wrapped = wrapped or httpx.AsyncHTTPTransport()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        if self.ctx.config.enabled:
            payload = await request.aread()
            if payload:
                new_payload = await intercept_payload(
                    payload, str(request.url), self.ctx, self.interceptor,
                )
                if new_payload is not payload:
                    request = self._rebuild(request, new_payload)
        return await self.wrapped.handle_async_request(request)

    @staticmethod
    def _rebuild(request: httpx.Request, content: bytes | str) -> httpx.Request:
        # Content-Length must be recomputed for the new body
        headers = [
            (k, v) for k, v in request.headers.multi_items()
            if k.lower() != "content-length"
        ]
        return httpx.Request(
            request.method,
            request.url,
            headers=headers,
            content=content,
            extensions=request.extensions,
        )

    async def aclose(self) -> None:
        await self.wrapped.aclose()


def install(
    client: httpx.AsyncClient,
    ctx: InterceptContext,
    interceptor: RequestInterceptor,
) -> Callable[[], None]:
    """Wrap *client*'s transports; returns a function restoring the originals.

    httpx keeps no public setter for transports, so this swaps the private
    ``_transport`` and every non-None entry of ``_mounts`` (mounted and
    environment-proxy transports, which take precedence over the default
    one).  A client built in your own code should instead be created with
    ``transport=InterceptingTransport(...)``.  Restore before closing the
    client if the original transports should be the ones that get closed.
    """
    original = client._transport
    original_mounts = dict(client._mounts)
    client._transport = InterceptingTransport(ctx, interceptor, wrapped=original)
    client._mounts = {
        pattern: InterceptingTransport(ctx, interceptor, wrapped=mounted)
        if mounted is not None else None
        for pattern, mounted in original_mounts.items()
    }
    logger.debug(
        "Installed intercepting transport on %r (mounts=%d)", client, len(original_mounts),
    )

    def restore() -> None:
        client._transport = original
        client._mounts = original_mounts
        logger.debug("Restored original transport on %r", client)

    return restore
