"""Format-aware request body edits.

Every utility deep-copies the body, edits the copy through the descriptor's
mutation primitives and returns a :class:`MutationResult`.  The body passed
in is never modified, so an interceptor can call several utilities in a row
as long as it threads ``result.body`` through.
"""

from __future__ import annotations

import copy

from .formats import FormatDescriptor
from .types import CorrelationTable, MutationResult


def _clone_with_turns(body: dict, fmt: FormatDescriptor) -> tuple[dict, list | None]:
    clone = copy.deepcopy(body)
    return clone, fmt.get_turns(clone)


def replace_tool_output(
    body: dict,
    fmt: FormatDescriptor,
    tool_id: str,
    new_content: str,
    correlation: CorrelationTable | None = None,
) -> MutationResult:
    """Replace the content of the tool output(s) whose id matches *tool_id*.

    Matching is case-insensitive.  For Gemini, pass the same *correlation*
    table that extraction used; the positional walk is re-run on this body so
    the ids line up only if the body has not been reshaped in between.
    An unknown id is not an error: ``applied`` is False and the returned body
    equals the input.
    """
    clone, turns = _clone_with_turns(body, fmt)
    if turns is None:
        return MutationResult(body=clone, applied=False)
    applied = fmt.replace_tool_output(turns, tool_id, new_content, correlation)
    return MutationResult(body=clone, applied=applied)


def inject_into_last_user_turn(
    body: dict,
    fmt: FormatDescriptor,
    text: str,
) -> MutationResult:
    """Append *text* to the last user turn, scanning back from the end."""
    clone, turns = _clone_with_turns(body, fmt)
    if turns is None:
        return MutationResult(body=clone, applied=False)
    for turn in reversed(turns):
        if fmt.is_user_turn(turn):
            fmt.append_text(turn, text)
            return MutationResult(body=clone, applied=True)
    return MutationResult(body=clone, applied=False)


def append_user_turn(
    body: dict,
    fmt: FormatDescriptor,
    text: str,
) -> MutationResult:
    """Append a new minimal user turn carrying *text*."""
    clone, turns = _clone_with_turns(body, fmt)
    if turns is None:
        return MutationResult(body=clone, applied=False)
    turns.append(fmt.build_user_turn(text))
    return MutationResult(body=clone, applied=True)
