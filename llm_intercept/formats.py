"""Request format descriptors for multi-provider tool-output interception.

Each provider API (OpenAI Chat, OpenAI Responses, Gemini, Bedrock Converse)
has a distinct request schema.  ``FormatDescriptor`` is the strategy
interface; concrete subclasses locate the conversation array, extract tool
outputs, and perform targeted in-place edits on it.  The set of formats is
closed: one subclass per ``FormatKind``.

Usage:

    fmt = detect_format(body)
    turns = fmt.get_turns(body)
    outputs = fmt.extract_tool_outputs(turns, store.active_correlation())
"""

from __future__ import annotations

import enum
import json
from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import Any

from .correlation import resolve_call_id
from .types import CorrelationTable, ToolOutput

# ---------------------------------------------------------------------------
# Shared helpers (provider-agnostic)
# ---------------------------------------------------------------------------


def _lower(value: Any) -> str | None:
    return value.lower() if isinstance(value, str) else None


def _stringify(value: Any) -> str | None:
    """Strings pass through, anything else is JSON-encoded."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value)


class FormatKind(str, enum.Enum):
    OPENAI_CHAT = "openai-chat"
    OPENAI_RESPONSES = "openai-responses"
    GEMINI = "gemini"
    BEDROCK = "bedrock"


# ---------------------------------------------------------------------------
# ABC
# ---------------------------------------------------------------------------

class FormatDescriptor(ABC):
    """Strategy interface for provider-specific request handling.

    Descriptors are stateless.  Extraction never mutates; the mutation
    primitives at the bottom edit a turn array in place and are meant to be
    called through :mod:`llm_intercept.mutations`, which clones first.
    """

    # Key and label used in log metadata
    _count_key = "totalMessages"
    _log_label = ""

    @property
    @abstractmethod
    def kind(self) -> FormatKind:
        """Which of the four supported formats this is."""

    @property
    def name(self) -> str:
        return self.kind.value

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"

    # -- Detection / extraction ----------------------------------------------

    @abstractmethod
    def detect(self, body: dict) -> bool:
        """Structural predicate over top-level keys only."""

    @abstractmethod
    def get_turns(self, body: dict) -> list | None:
        """Return the conversation array, or None if it is missing."""

    @abstractmethod
    def extract_tool_outputs(
        self,
        turns: list,
        correlation: CorrelationTable | None = None,
    ) -> list[ToolOutput]:
        """Extract every tool output, in conversation order."""

    @abstractmethod
    def has_tool_outputs(self, turns: list) -> bool:
        """Cheap existence check, without building ToolOutput records."""

    def log_metadata(self, turns: list, url: str) -> dict:
        """Format-specific metadata for log records."""
        return {
            "url": url,
            self._count_key: len(turns) if isinstance(turns, list) else 0,
            "format": self._log_label,
        }

    # -- Mutation primitives (in place) --------------------------------------

    @abstractmethod
    def is_user_turn(self, turn: Any) -> bool:
        """Return True if *turn* is a user turn in this format."""

    @abstractmethod
    def build_user_turn(self, text: str) -> dict:
        """Minimal well-formed user turn carrying *text*."""

    @abstractmethod
    def replace_tool_output(
        self,
        turns: list,
        tool_id: str,
        content: str,
        correlation: CorrelationTable | None = None,
    ) -> bool:
        """Rewrite every tool output whose id matches *tool_id* (any case)."""

    def append_text(self, turn: dict, text: str) -> None:
        """Append *text* to a user turn, keeping its content representation."""
        content = turn.get("content")
        if isinstance(content, str):
            turn["content"] = f"{content}\n\n{text}"
        elif isinstance(content, list):
            content.append(self._text_block(text))
        elif content is None:
            turn["content"] = text

    def _text_block(self, text: str) -> dict:
        return {"type": "text", "text": text}


# ---------------------------------------------------------------------------
# OpenAI Chat Completions (+ Anthropic-compatible tool_result parts)
# ---------------------------------------------------------------------------

class OpenAIChatFormat(FormatDescriptor):
    """OpenAI Chat Completions format.

    Tool results come in two shapes, both handled here:
    - native ``role: "tool"`` messages carrying ``tool_call_id``
    - Anthropic-style ``tool_result`` parts (``tool_use_id``) inside
      ``role: "user"`` messages
    """

    _log_label = "openai-chat"

    @property
    def kind(self) -> FormatKind:
        return FormatKind.OPENAI_CHAT

    @staticmethod
    def _iter_tool_result_parts(user_msg: dict) -> Iterator[dict]:
        """Yield tool_result content parts from a user message."""
        content = user_msg.get("content")
        if not isinstance(content, list):
            return
        for part in content:
            if isinstance(part, dict) and part.get("type") == "tool_result":
                yield part

    def detect(self, body: dict) -> bool:
        return isinstance(body.get("messages"), list)

    def get_turns(self, body: dict) -> list | None:
        turns = body.get("messages")
        return turns if isinstance(turns, list) else None

    def extract_tool_outputs(
        self,
        turns: list,
        correlation: CorrelationTable | None = None,
    ) -> list[ToolOutput]:
        outputs: list[ToolOutput] = []
        for msg in turns:
            if not isinstance(msg, dict):
                continue
            role = msg.get("role")
            if role == "tool":
                call_id = _lower(msg.get("tool_call_id"))
                if call_id:
                    outputs.append(ToolOutput(
                        id=call_id,
                        tool_name=msg.get("name"),
                        content=_stringify(msg.get("content")),
                    ))
            elif role == "user":
                for part in self._iter_tool_result_parts(msg):
                    call_id = _lower(part.get("tool_use_id"))
                    if call_id:
                        outputs.append(ToolOutput(
                            id=call_id,
                            content=_stringify(part.get("content")),
                        ))
        return outputs

    def has_tool_outputs(self, turns: list) -> bool:
        for msg in turns:
            if not isinstance(msg, dict):
                continue
            if msg.get("role") == "tool":
                return True
            if msg.get("role") == "user" and any(self._iter_tool_result_parts(msg)):
                return True
        return False

    def is_user_turn(self, turn: Any) -> bool:
        return isinstance(turn, dict) and turn.get("role") == "user"

    def build_user_turn(self, text: str) -> dict:
        return {"role": "user", "content": text}

    def replace_tool_output(
        self,
        turns: list,
        tool_id: str,
        content: str,
        correlation: CorrelationTable | None = None,
    ) -> bool:
        target = tool_id.lower()
        replaced = False
        for msg in turns:
            if not isinstance(msg, dict):
                continue
            role = msg.get("role")
            if role == "tool" and _lower(msg.get("tool_call_id")) == target:
                msg["content"] = content
                replaced = True
            elif role == "user":
                for part in self._iter_tool_result_parts(msg):
                    if _lower(part.get("tool_use_id")) == target:
                        part["content"] = content
                        replaced = True
        return replaced


# ---------------------------------------------------------------------------
# AWS Bedrock Converse
# ---------------------------------------------------------------------------

class BedrockFormat(FormatDescriptor):
    """AWS Bedrock Converse format.

    Shares the ``messages`` key with Chat Completions; it is told apart by a
    top-level ``system`` list plus ``inferenceConfig``.  Tool results are
    ``toolResult`` blocks (``toolUseId``) inside user message content.
    """

    _log_label = "bedrock"

    @property
    def kind(self) -> FormatKind:
        return FormatKind.BEDROCK

    @staticmethod
    def _iter_tool_results(turns: list) -> Iterator[dict]:
        """Yield the ``toolResult`` dict of every block in user messages."""
        for msg in turns:
            if not isinstance(msg, dict) or msg.get("role") != "user":
                continue
            content = msg.get("content")
            if not isinstance(content, list):
                continue
            for block in content:
                if isinstance(block, dict) and isinstance(block.get("toolResult"), dict):
                    yield block["toolResult"]

    @staticmethod
    def _tool_result_text(content: Any) -> str | None:
        if isinstance(content, list):
            return "\n".join(
                block["text"]
                if isinstance(block, dict) and isinstance(block.get("text"), str) and block["text"]
                else json.dumps(block)
                for block in content
            )
        return _stringify(content)

    def detect(self, body: dict) -> bool:
        return (
            isinstance(body.get("system"), list)
            and "inferenceConfig" in body
            and isinstance(body.get("messages"), list)
        )

    def get_turns(self, body: dict) -> list | None:
        turns = body.get("messages")
        return turns if isinstance(turns, list) else None

    def extract_tool_outputs(
        self,
        turns: list,
        correlation: CorrelationTable | None = None,
    ) -> list[ToolOutput]:
        outputs: list[ToolOutput] = []
        for result in self._iter_tool_results(turns):
            call_id = _lower(result.get("toolUseId"))
            if call_id:
                outputs.append(ToolOutput(
                    id=call_id,
                    content=self._tool_result_text(result.get("content")),
                ))
        return outputs

    def has_tool_outputs(self, turns: list) -> bool:
        return any(True for _ in self._iter_tool_results(turns))

    def is_user_turn(self, turn: Any) -> bool:
        return isinstance(turn, dict) and turn.get("role") == "user"

    def build_user_turn(self, text: str) -> dict:
        return {"role": "user", "content": text}

    def replace_tool_output(
        self,
        turns: list,
        tool_id: str,
        content: str,
        correlation: CorrelationTable | None = None,
    ) -> bool:
        target = tool_id.lower()
        replaced = False
        for result in self._iter_tool_results(turns):
            if _lower(result.get("toolUseId")) == target:
                # Multi-block content collapses to a single text block
                result["content"] = [{"text": content}]
                replaced = True
        return replaced

    def _text_block(self, text: str) -> dict:
        return {"text": text}


# ---------------------------------------------------------------------------
# OpenAI Responses API
# ---------------------------------------------------------------------------

class OpenAIResponsesFormat(FormatDescriptor):
    """OpenAI Responses API format (used by Codex and newer OpenAI tools).

    Key differences from Chat Completions:
    - Turns are in ``input`` (not ``messages``)
    - Items have ``type`` (``message``, ``function_call``,
      ``function_call_output``) and messages also carry ``role``
    - Tool results are ``function_call_output`` items keyed by ``call_id``
      with the result text in ``output``
    """

    _count_key = "totalItems"
    _log_label = "openai-responses-api"

    @property
    def kind(self) -> FormatKind:
        return FormatKind.OPENAI_RESPONSES

    @staticmethod
    def _is_tool_output(item: Any) -> bool:
        return isinstance(item, dict) and item.get("type") == "function_call_output"

    def detect(self, body: dict) -> bool:
        return isinstance(body.get("input"), list)

    def get_turns(self, body: dict) -> list | None:
        turns = body.get("input")
        return turns if isinstance(turns, list) else None

    def extract_tool_outputs(
        self,
        turns: list,
        correlation: CorrelationTable | None = None,
    ) -> list[ToolOutput]:
        outputs: list[ToolOutput] = []
        for item in turns:
            if not self._is_tool_output(item):
                continue
            call_id = _lower(item.get("call_id"))
            if call_id:
                outputs.append(ToolOutput(
                    id=call_id,
                    tool_name=item.get("name"),
                    content=_stringify(item.get("output")),
                ))
        return outputs

    def has_tool_outputs(self, turns: list) -> bool:
        return any(self._is_tool_output(item) for item in turns)

    def is_user_turn(self, turn: Any) -> bool:
        return (
            isinstance(turn, dict)
            and turn.get("type") == "message"
            and turn.get("role") == "user"
        )

    def build_user_turn(self, text: str) -> dict:
        return {"type": "message", "role": "user", "content": text}

    def replace_tool_output(
        self,
        turns: list,
        tool_id: str,
        content: str,
        correlation: CorrelationTable | None = None,
    ) -> bool:
        target = tool_id.lower()
        replaced = False
        for item in turns:
            if self._is_tool_output(item) and _lower(item.get("call_id")) == target:
                item["output"] = content
                replaced = True
        return replaced

    def _text_block(self, text: str) -> dict:
        return {"type": "input_text", "text": text}


# ---------------------------------------------------------------------------
# Gemini
# ---------------------------------------------------------------------------

class GeminiFormat(FormatDescriptor):
    """Google Gemini / Vertex format.

    Key differences:
    - Turns are in ``contents`` with ``parts`` lists
    - Tool results are ``functionResponse`` parts with a ``name`` but no
      call id, so ids are recovered by position (see
      :mod:`llm_intercept.correlation`)
    """

    _count_key = "totalContents"
    _log_label = "google-gemini"

    @property
    def kind(self) -> FormatKind:
        return FormatKind.GEMINI

    @staticmethod
    def _iter_function_responses(
        turns: list,
        correlation: CorrelationTable | None,
    ) -> Iterator[tuple[dict, str, str]]:
        """Yield ``(functionResponse, call_id, tool_name)`` in request order.

        The per-name occurrence counter is scoped to this walk, so extraction
        and replacement resolve the same ids for the same body.  Nameless
        responses cannot be correlated and are skipped.
        """
        counters: dict[str, int] = {}
        for content in turns:
            if not isinstance(content, dict):
                continue
            parts = content.get("parts")
            if not isinstance(parts, list):
                continue
            for part in parts:
                if not isinstance(part, dict):
                    continue
                response = part.get("functionResponse")
                if not isinstance(response, dict):
                    continue
                tool_name = _lower(response.get("name"))
                if not tool_name:
                    continue
                index = counters.get(tool_name, 0)
                counters[tool_name] = index + 1
                yield response, resolve_call_id(correlation, tool_name, index), tool_name

    @staticmethod
    def _response_text(response: Any) -> str | None:
        if response is None:
            return None
        if isinstance(response, dict) and response.get("content"):
            return _stringify(response["content"])
        return json.dumps(response)

    def detect(self, body: dict) -> bool:
        return isinstance(body.get("contents"), list)

    def get_turns(self, body: dict) -> list | None:
        turns = body.get("contents")
        return turns if isinstance(turns, list) else None

    def extract_tool_outputs(
        self,
        turns: list,
        correlation: CorrelationTable | None = None,
    ) -> list[ToolOutput]:
        return [
            ToolOutput(
                id=call_id,
                tool_name=tool_name,
                content=self._response_text(response.get("response")),
            )
            for response, call_id, tool_name in self._iter_function_responses(turns, correlation)
        ]

    def has_tool_outputs(self, turns: list) -> bool:
        for content in turns:
            if not isinstance(content, dict):
                continue
            parts = content.get("parts")
            if isinstance(parts, list) and any(
                isinstance(p, dict) and p.get("functionResponse") for p in parts
            ):
                return True
        return False

    def is_user_turn(self, turn: Any) -> bool:
        return (
            isinstance(turn, dict)
            and turn.get("role") == "user"
            and isinstance(turn.get("parts"), list)
        )

    def build_user_turn(self, text: str) -> dict:
        return {"role": "user", "parts": [{"text": text}]}

    def append_text(self, turn: dict, text: str) -> None:
        turn["parts"].append({"text": text})

    def replace_tool_output(
        self,
        turns: list,
        tool_id: str,
        content: str,
        correlation: CorrelationTable | None = None,
    ) -> bool:
        target = tool_id.lower()
        replaced = False
        for response, call_id, _ in self._iter_function_responses(turns, correlation):
            if call_id == target:
                response["response"] = {"name": response.get("name"), "content": content}
                replaced = True
        return replaced


# ---------------------------------------------------------------------------
# Format registry + detection
# ---------------------------------------------------------------------------

_FORMAT_REGISTRY: dict[FormatKind, FormatDescriptor] = {
    FormatKind.OPENAI_RESPONSES: OpenAIResponsesFormat(),
    FormatKind.BEDROCK: BedrockFormat(),
    FormatKind.OPENAI_CHAT: OpenAIChatFormat(),
    FormatKind.GEMINI: GeminiFormat(),
}

# Bedrock must precede Chat: both expose a ``messages`` list.
DETECTION_ORDER: tuple[FormatKind, ...] = (
    FormatKind.OPENAI_RESPONSES,
    FormatKind.BEDROCK,
    FormatKind.OPENAI_CHAT,
    FormatKind.GEMINI,
)


def detect_format(body: Any) -> FormatDescriptor | None:
    """Return the first descriptor in ``DETECTION_ORDER`` that matches *body*.

    Detection order:
    1. ``input`` list → OpenAI Responses
    2. ``system`` list + ``inferenceConfig`` + ``messages`` list → Bedrock
    3. ``messages`` list → OpenAI Chat (incl. Anthropic-style tool results)
    4. ``contents`` list → Gemini

    Returns None for anything else, including non-dict bodies.
    """
    if not isinstance(body, dict):
        return None
    for kind in DETECTION_ORDER:
        fmt = _FORMAT_REGISTRY[kind]
        if fmt.detect(body):
            return fmt
    return None


def get_format(kind: FormatKind | str) -> FormatDescriptor:
    """Look up a format by kind or by its name (``"openai-chat"`` etc.)."""
    return _FORMAT_REGISTRY[FormatKind(kind)]
