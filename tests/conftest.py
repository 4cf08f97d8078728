"""Shared fixtures for llm-intercept tests."""

from __future__ import annotations

import pytest

from llm_intercept.state import SessionStore
from llm_intercept.types import InterceptConfig, InterceptContext


# ---------------------------------------------------------------------------
# Request bodies, one per format
# ---------------------------------------------------------------------------

@pytest.fixture
def chat_body() -> dict:
    """OpenAI Chat Completions body with a native tool message."""
    return {
        "model": "gpt-4o",
        "messages": [
            {"role": "system", "content": "You are helpful."},
            {"role": "user", "content": "List the repo."},
            {"role": "assistant", "content": None, "tool_calls": [
                {"id": "call_ABC", "type": "function",
                 "function": {"name": "bash", "arguments": "{\"cmd\": \"ls\"}"}},
            ]},
            {"role": "tool", "tool_call_id": "call_ABC", "name": "bash", "content": "README.md\nsrc"},
        ],
    }


@pytest.fixture
def anthropic_style_body() -> dict:
    """Chat-format body carrying Anthropic-style tool_result parts."""
    return {
        "model": "claude-sonnet",
        "messages": [
            {"role": "user", "content": "Read the file."},
            {"role": "assistant", "content": [
                {"type": "tool_use", "id": "toolu_01", "name": "read", "input": {"path": "a.py"}},
            ]},
            {"role": "user", "content": [
                {"type": "tool_result", "tool_use_id": "toolu_01", "content": "print('hi')"},
                {"type": "text", "text": "Now explain it."},
            ]},
        ],
    }


@pytest.fixture
def responses_body() -> dict:
    """OpenAI Responses API body."""
    return {
        "model": "gpt-5-codex",
        "instructions": "Be terse.",
        "input": [
            {"type": "message", "role": "user", "content": [
                {"type": "input_text", "text": "run the tests"},
            ]},
            {"type": "function_call", "call_id": "call_Run1", "name": "shell", "arguments": "{}"},
            {"type": "function_call_output", "call_id": "call_Run1", "output": "3 passed"},
        ],
    }


@pytest.fixture
def bedrock_body() -> dict:
    """AWS Bedrock Converse body."""
    return {
        "system": [{"text": "You are helpful."}],
        "inferenceConfig": {"maxTokens": 1024},
        "messages": [
            {"role": "user", "content": [{"text": "What is in /tmp?"}]},
            {"role": "assistant", "content": [
                {"toolUse": {"toolUseId": "tooluse_XYZ", "name": "list", "input": {"dir": "/tmp"}}},
            ]},
            {"role": "user", "content": [
                {"toolResult": {"toolUseId": "tooluse_XYZ", "content": [
                    {"text": "a.txt"}, {"json": {"count": 1}},
                ]}},
            ]},
        ],
    }


@pytest.fixture
def gemini_body() -> dict:
    """Gemini body with function responses in order [read, write, read]."""
    return {
        "contents": [
            {"role": "user", "parts": [{"text": "Edit the files."}]},
            {"role": "model", "parts": [{"functionCall": {"name": "read", "args": {"path": "a"}}}]},
            {"role": "user", "parts": [
                {"functionResponse": {"name": "read", "response": {"content": "A contents"}}},
            ]},
            {"role": "model", "parts": [{"functionCall": {"name": "write", "args": {"path": "b"}}}]},
            {"role": "user", "parts": [
                {"functionResponse": {"name": "write", "response": {"content": "written"}}},
            ]},
            {"role": "model", "parts": [{"functionCall": {"name": "read", "args": {"path": "c"}}}]},
            {"role": "user", "parts": [
                {"functionResponse": {"name": "read", "response": {"content": "C contents"}}},
            ]},
        ],
        "generationConfig": {"temperature": 0.2},
    }


@pytest.fixture
def gemini_transcript() -> list[dict]:
    """Host transcript with tool calls [read, write, read] → [id1, id2, id3]."""
    return [
        {"info": {"role": "user"}, "parts": [{"type": "text", "text": "Edit the files."}]},
        {"info": {"role": "assistant"}, "parts": [
            {"type": "step-start"},
            {"type": "tool", "callID": "ID1", "tool": "read"},
        ]},
        {"info": {"role": "assistant"}, "parts": [
            {"type": "tool", "callID": "id2", "tool": "write"},
        ]},
        {"info": {"role": "assistant"}, "parts": [
            {"type": "text", "text": "one more"},
            {"type": "tool", "callID": "id3", "tool": "Read"},
        ]},
    ]


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class FakeSessionClient:
    """In-memory SessionClient that records calls."""

    def __init__(
        self,
        sessions: dict[str, dict] | None = None,
        transcripts: dict[str, object] | None = None,
        fail_messages: bool = False,
    ) -> None:
        self.sessions = sessions or {}
        self.transcripts = transcripts or {}
        self.fail_messages = fail_messages
        self.session_calls: list[str] = []
        self.message_calls: list[tuple[str, int]] = []

    async def get_session(self, session_id: str) -> dict:
        self.session_calls.append(session_id)
        if session_id not in self.sessions:
            raise KeyError(session_id)
        return self.sessions[session_id]

    async def list_messages(self, session_id: str, limit: int = 100):
        self.message_calls.append((session_id, limit))
        if self.fail_messages:
            raise ConnectionError("host unavailable")
        return self.transcripts.get(session_id, [])


@pytest.fixture
def store() -> SessionStore:
    return SessionStore()


@pytest.fixture
def ctx(store) -> InterceptContext:
    return InterceptContext(store=store, config=InterceptConfig())
