"""Host hooks for session tracking and chat parameter handling.

``create_chat_params_handler`` runs before each chat completion request and
keeps the :class:`SessionStore` current: session-change detection, subagent
classification, model-info caching and Gemini correlation rebuilds.
``create_event_handler`` reacts to host session events.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .correlation import ToolCallCorrelator
from .state import SessionStore, short_id
from .types import InterceptConfig, SessionClient

logger = logging.getLogger(__name__)

IdleCallback = Callable[[str], Awaitable[None] | None]


async def is_subagent_session(client: SessionClient, session_id: str) -> bool:
    """A session is a subagent session when it has a parent session."""
    try:
        session = await client.get_session(session_id)
    except Exception as e:
        logger.debug("Session lookup failed for %s: %s", short_id(session_id), e)
        return False
    if isinstance(session, dict) and isinstance(session.get("data"), dict):
        session = session["data"]
    return isinstance(session, dict) and bool(session.get("parentID"))


def _dig(raw: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(raw, dict):
            return None
        raw = raw.get(key)
    return raw


def _provider_id(params: dict) -> str | None:
    return (
        _dig(params, "provider", "info", "id")
        or _dig(params, "provider", "id")
        or _dig(params, "message", "model", "providerID")
    )


def create_chat_params_handler(
    client: SessionClient,
    store: SessionStore,
    config: InterceptConfig | None = None,
):
    """Build the ``chat.params`` hook.

    The returned coroutine function takes the hook input (``sessionID``,
    ``provider``, ``model``, ``message``) and an unused output argument.
    """
    config = config or InterceptConfig()
    correlator = ToolCallCorrelator(client, store, config)

    async def handle_chat_params(params: dict, output: Any = None) -> None:
        session_id = params.get("sessionID")
        if not session_id:
            return
        provider_id = _provider_id(params)
        model_id = _dig(params, "model", "id")

        store.observe_session(session_id)

        if not store.is_checked(session_id):
            store.mark_checked(session_id)
            if await is_subagent_session(client, session_id):
                store.mark_subagent(session_id)
                logger.debug("Detected subagent session %s", short_id(session_id))

        if provider_id and model_id:
            store.cache_model(session_id, provider_id, model_id)
            logger.debug(
                "Cached model info: session=%s provider=%s model=%s",
                short_id(session_id), provider_id, model_id,
            )

        # Gemini drops tool call ids from its wire format
        if correlator.applies_to(provider_id):
            await correlator.refresh(session_id)

    return handle_chat_params


def create_event_handler(
    client: SessionClient,
    store: SessionStore,
    on_idle: IdleCallback | None = None,
):
    """Build the session event hook; *on_idle* runs when a session goes idle."""

    async def handle_event(event: dict) -> None:
        if event.get("type") != "session.status":
            return
        properties = event.get("properties") or {}
        if _dig(properties, "status", "type") != "idle":
            return
        session_id = properties.get("sessionID")
        if not session_id:
            return

        if await is_subagent_session(client, session_id):
            logger.debug("Skipping idle event for subagent session %s", short_id(session_id))
            return

        logger.info("Session idle: %s", short_id(session_id))

        if on_idle is not None:
            try:
                result = on_idle(session_id)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error("Error in on_idle callback: %s", e)

    return handle_event
