"""llm-intercept: uniform tool-output view and rewriting for outbound LLM requests."""

from .config import load_config
from .formats import FormatDescriptor, FormatKind, detect_format, get_format
from .mutations import append_user_turn, inject_into_last_user_turn, replace_tool_output
from .pipeline import intercept_payload, logging_interceptor, process_request
from .state import SessionStore
from .types import (
    InterceptConfig,
    InterceptContext,
    InterceptResult,
    ModelInfo,
    MutationResult,
    PipelineResult,
    RequestInterceptor,
    ToolOutput,
)

__version__ = "0.1.0"

__all__ = [
    "load_config",
    "detect_format",
    "get_format",
    "process_request",
    "intercept_payload",
    "logging_interceptor",
    "replace_tool_output",
    "inject_into_last_user_turn",
    "append_user_turn",
    "FormatDescriptor",
    "FormatKind",
    "SessionStore",
    "InterceptConfig",
    "InterceptContext",
    "InterceptResult",
    "ModelInfo",
    "MutationResult",
    "PipelineResult",
    "RequestInterceptor",
    "ToolOutput",
]
