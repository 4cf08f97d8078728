"""Interception pipeline: detect → extract → interceptor → serialize.

``intercept_payload`` is what an interception point calls with the raw
outbound payload.  Nothing here is fatal: unparseable payloads, unknown
formats and bodies without a turn array are forwarded unchanged.  Errors
raised by the caller-supplied interceptor are not caught.
"""

from __future__ import annotations

import inspect
import json
import logging
from collections.abc import Mapping
from typing import Any

from .formats import FormatDescriptor, detect_format
from .state import short_id
from .types import (
    InterceptContext,
    InterceptResult,
    PipelineResult,
    RequestInterceptor,
    ToolOutput,
)

logger = logging.getLogger(__name__)


def _coerce_result(result: Any) -> InterceptResult:
    """Accept an InterceptResult or a ``{"body", "modified"}`` mapping."""
    if isinstance(result, InterceptResult):
        return result
    if isinstance(result, Mapping) and "body" in result:
        return InterceptResult(body=result["body"], modified=bool(result.get("modified")))
    raise TypeError(
        f"Interceptor must return InterceptResult or a body/modified mapping, "
        f"got {type(result).__name__}"
    )


async def process_request(
    body: Any,
    ctx: InterceptContext,
    url: str,
    interceptor: RequestInterceptor,
) -> PipelineResult:
    """Run one parsed request body through detection and the interceptor."""
    fmt = detect_format(body)
    if fmt is None:
        logger.debug("Unknown request format, passing through: url=%s", url)
        return PipelineResult(modified=False, body=body)

    turns = fmt.get_turns(body)
    if turns is None:
        return PipelineResult(modified=False, body=body, format=fmt)

    tool_outputs = fmt.extract_tool_outputs(turns, ctx.store.active_correlation())

    logger.debug(
        "Intercepted %s request: url=%s messages=%d tool_outputs=%d",
        fmt.name, url, len(turns), len(tool_outputs),
    )

    result = interceptor(body, fmt, turns, tool_outputs, url, ctx)
    if inspect.isawaitable(result):
        result = await result
    result = _coerce_result(result)

    if result.modified:
        logger.info("Request modified by interceptor (%s): url=%s", fmt.name, url)

    return PipelineResult(
        modified=result.modified,
        body=result.body,
        format=fmt,
        tool_outputs=tool_outputs,
        turns=turns,
    )


async def intercept_payload(
    payload: str | bytes,
    url: str,
    ctx: InterceptContext,
    interceptor: RequestInterceptor,
) -> str | bytes:
    """Process a raw outbound payload and return what should be sent.

    Returns the original *payload* object unless the interceptor reported a
    modification, in which case the re-serialized body is returned (as bytes
    when the input was bytes).
    """
    if ctx.store.should_skip_current():
        logger.debug(
            "Skipping processing for subagent session %s",
            short_id(ctx.store.last_seen_session_id),
        )
        return payload

    try:
        body = json.loads(payload)
    except (ValueError, TypeError) as e:
        logger.debug("Failed to parse request body: %s", e)
        return payload

    result = await process_request(body, ctx, url, interceptor)
    if not result.modified:
        return payload

    serialized = json.dumps(result.body)
    if isinstance(payload, (bytes, bytearray)):
        return serialized.encode("utf-8")
    return serialized


def logging_interceptor(
    body: Any,
    fmt: FormatDescriptor,
    turns: list,
    tool_outputs: list[ToolOutput],
    url: str,
    ctx: InterceptContext,
) -> InterceptResult:
    """Default interceptor: log what the request carries, change nothing."""
    logger.info(
        "Request to %s: url=%s messages=%d tool_outputs=%d",
        fmt.name, url, len(turns), len(tool_outputs),
    )
    if tool_outputs:
        logger.debug(
            "Tool outputs in request: %s",
            ", ".join(f"{t.id[:8]}({t.tool_name or '?'})" for t in tool_outputs),
        )
    return InterceptResult(body=body, modified=False)
