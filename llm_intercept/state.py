"""Session-scoped in-memory state owned by one interceptor instance."""

from __future__ import annotations

import logging

from .types import CorrelationTable, ModelInfo

logger = logging.getLogger(__name__)


def short_id(session_id: str | None) -> str:
    """First 8 characters of a session id, for log records."""
    return (session_id or "")[:8]


class SessionStore:
    """Model info, correlation tables and subagent bookkeeping, keyed by session.

    Lives as long as the host plugin instance.  Nothing is ever evicted except
    correlation tables, which are all dropped whenever the most recently seen
    session changes.
    """

    def __init__(self) -> None:
        self.models: dict[str, ModelInfo] = {}
        self.correlation_tables: dict[str, CorrelationTable] = {}
        self.checked_sessions: set[str] = set()
        self.subagent_sessions: set[str] = set()
        self.last_seen_session_id: str | None = None

    # -- Session tracking ----------------------------------------------------

    def observe_session(self, session_id: str) -> bool:
        """Record *session_id* as most recently seen.

        Returns True when this replaced a different session, in which case
        every stored correlation table has been cleared.
        """
        previous = self.last_seen_session_id
        changed = previous is not None and previous != session_id
        if changed:
            logger.info(
                "Session changed: %s -> %s", short_id(previous), short_id(session_id),
            )
            self.correlation_tables.clear()
        self.last_seen_session_id = session_id
        return changed

    # -- Model info ----------------------------------------------------------

    def cache_model(self, session_id: str, provider_id: str, model_id: str) -> ModelInfo:
        info = ModelInfo(provider_id=provider_id, model_id=model_id)
        self.models[session_id] = info
        return info

    def get_model(self, session_id: str) -> ModelInfo | None:
        return self.models.get(session_id)

    # -- Correlation tables --------------------------------------------------

    def set_correlation(self, session_id: str, table: CorrelationTable) -> None:
        self.correlation_tables[session_id] = table

    def get_correlation(self, session_id: str) -> CorrelationTable | None:
        return self.correlation_tables.get(session_id)

    def active_correlation(self) -> CorrelationTable | None:
        """Table to use for the request currently in flight.

        Prefers the most recently seen session's table, else the first
        non-empty table in the store.
        """
        if self.last_seen_session_id is not None:
            table = self.correlation_tables.get(self.last_seen_session_id)
            if table:
                return table
        for table in self.correlation_tables.values():
            if table:
                return table
        return None

    # -- Subagent bookkeeping ------------------------------------------------

    def is_checked(self, session_id: str) -> bool:
        return session_id in self.checked_sessions

    def mark_checked(self, session_id: str) -> None:
        self.checked_sessions.add(session_id)

    def mark_subagent(self, session_id: str) -> None:
        self.subagent_sessions.add(session_id)

    def is_subagent(self, session_id: str | None) -> bool:
        return session_id is not None and session_id in self.subagent_sessions

    def should_skip_current(self) -> bool:
        """True when the most recently seen session is a subagent session."""
        return self.is_subagent(self.last_seen_session_id)
