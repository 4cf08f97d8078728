"""Gemini tool-call identifier recovery.

The Gemini wire format carries ``functionResponse`` parts with a function name
but no call id.  The real ids only exist in the host's own session transcript,
where every ``tool`` part has a ``callID`` and a ``tool`` name.

Correlation is purely positional: the N-th call of tool ``read`` in the
transcript is assumed to be the N-th ``read`` function response in the
outgoing request.  If the provider reorders or drops a call the mapping is
silently wrong; there is no attempt at repair.  When no table is available the
descriptor falls back to ``gemini-{name}-{index}`` ids, stable only within a
single request body.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from .state import SessionStore, short_id
from .types import CorrelationTable, InterceptConfig, SessionClient

logger = logging.getLogger(__name__)


def position_key(tool_name: str, index: int) -> str:
    return f"{tool_name}:{index}"


def synthetic_call_id(tool_name: str, index: int) -> str:
    return f"gemini-{tool_name}-{index}"


def resolve_call_id(
    table: CorrelationTable | None,
    tool_name: str,
    index: int,
) -> str:
    """Look up ``tool_name:index`` in *table*, or return the synthetic id."""
    call_id = table.get(position_key(tool_name, index)) if table else None
    if call_id:
        return call_id.lower()
    return synthetic_call_id(tool_name, index)


def build_correlation_table(messages: Iterable[Any]) -> CorrelationTable:
    """Flatten a transcript into ``{"{tool}:{n}": call_id}``.

    ``n`` is the zero-based rank of the call among calls sharing the same
    (lower-cased) tool name, in transcript order.
    """
    calls_by_name: dict[str, list[str]] = {}
    for msg in messages:
        if not isinstance(msg, dict):
            continue
        parts = msg.get("parts")
        if not isinstance(parts, list):
            continue
        for part in parts:
            if not isinstance(part, dict) or part.get("type") != "tool":
                continue
            call_id = part.get("callID")
            tool = part.get("tool")
            if not isinstance(call_id, str) or not isinstance(tool, str):
                continue
            if not call_id or not tool:
                continue
            calls_by_name.setdefault(tool.lower(), []).append(call_id.lower())

    table: CorrelationTable = {}
    for tool, call_ids in calls_by_name.items():
        for index, call_id in enumerate(call_ids):
            table[position_key(tool, index)] = call_id
    return table


def _unwrap_messages(response: Any) -> list | None:
    """Accept either a bare message list or a ``{"data": [...]}`` envelope."""
    if isinstance(response, dict):
        response = response.get("data")
    return response if isinstance(response, list) else None


class ToolCallCorrelator:
    """Rebuilds a session's correlation table from its authoritative transcript."""

    def __init__(
        self,
        client: SessionClient,
        store: SessionStore,
        config: InterceptConfig | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.config = config or InterceptConfig()

    def applies_to(self, provider_id: str | None) -> bool:
        return bool(provider_id) and provider_id in self.config.correlation_providers

    async def refresh(self, session_id: str) -> CorrelationTable | None:
        """Fetch the transcript and replace the session's table.

        Returns the new table, or None when the fetch failed or returned
        something that is not a message list (the previous table is kept).
        """
        try:
            response = await self.client.list_messages(
                session_id, limit=self.config.transcript_limit,
            )
        except Exception as e:
            logger.error(
                "Failed to build Google tool call mapping for %s: %s",
                short_id(session_id), e,
            )
            return None

        messages = _unwrap_messages(response)
        if messages is None:
            logger.debug(
                "Transcript for %s is not a message list, keeping previous mapping",
                short_id(session_id),
            )
            return None

        table = build_correlation_table(messages)
        self.store.set_correlation(session_id, table)
        logger.debug(
            "Built Google tool call mapping: session=%s tools=%d",
            short_id(session_id), len(table),
        )
        return table
