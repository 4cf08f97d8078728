"""All dataclasses, Protocols, and type aliases for llm-intercept."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol, Union, runtime_checkable

if TYPE_CHECKING:
    from .formats import FormatDescriptor
    from .state import SessionStore


# ---------------------------------------------------------------------------
# Tool outputs
# ---------------------------------------------------------------------------

@dataclass
class ToolOutput:
    """A tool execution result found in a request body."""
    id: str  # lower-cased call id (native or recovered)
    tool_name: str | None = None
    content: str | None = None


# Correlation table: "{tool_name}:{occurrence_index}" -> call id
CorrelationTable = dict[str, str]


# ---------------------------------------------------------------------------
# Session bookkeeping
# ---------------------------------------------------------------------------

@dataclass
class ModelInfo:
    provider_id: str
    model_id: str


@runtime_checkable
class SessionClient(Protocol):
    """Host session/transcript API consumed by the hooks and the correlator."""

    async def get_session(self, session_id: str) -> dict: ...

    async def list_messages(self, session_id: str, limit: int = 100) -> Any: ...


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

DEFAULT_CORRELATION_PROVIDERS = ("google", "google-vertex")


@dataclass
class ProxyConfig:
    upstream: str = ""
    host: str = "127.0.0.1"
    port: int = 5757
    timeout: float = 120.0


@dataclass
class InterceptConfig:
    enabled: bool = True
    debug: bool = False
    plugin_name: str = "llm-intercept"
    log_dir: str = ""  # empty = ~/.config/opencode/logs/<plugin_name>
    transcript_limit: int = 100
    correlation_providers: list[str] = field(
        default_factory=lambda: list(DEFAULT_CORRELATION_PROVIDERS),
    )
    session_api: str = ""  # host session API base URL
    proxy: ProxyConfig = field(default_factory=ProxyConfig)

    def resolved_log_dir(self) -> Path:
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return Path.home() / ".config" / "opencode" / "logs" / self.plugin_name


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

@dataclass
class InterceptContext:
    """Everything an interceptor may need besides the request itself."""
    store: SessionStore
    config: InterceptConfig = field(default_factory=InterceptConfig)
    client: SessionClient | None = None


@dataclass
class InterceptResult:
    """Returned by an interceptor. ``modified`` is trusted verbatim."""
    body: Any
    modified: bool = False


@dataclass
class PipelineResult:
    modified: bool
    body: Any
    format: FormatDescriptor | None = None
    tool_outputs: list[ToolOutput] | None = None
    turns: list | None = None


@dataclass
class MutationResult:
    """Outcome of a mutation utility: a fresh body plus whether it changed."""
    body: dict
    applied: bool


# (body, fmt, turns, tool_outputs, url, ctx) -> InterceptResult, sync or async
RequestInterceptor = Callable[
    ...,
    Union[InterceptResult, Awaitable[InterceptResult]],
]
