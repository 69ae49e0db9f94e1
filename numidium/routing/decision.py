"""Routing types shared by the router stages and the orchestrator."""

from dataclasses import dataclass, field
from typing import Any, Literal

Route = Literal["pattern", "classification", "llm_guided", "fallback"]

DEFAULT_EXECUTION_THRESHOLD = 0.7


@dataclass
class ToolCallCandidate:
    """A detected tool invocation and how sure the detecting stage is."""

    tool_name: str
    params: dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.0

    def __post_init__(self) -> None:
        self.confidence = min(1.0, max(0.0, float(self.confidence)))


@dataclass
class RouteRequest:
    """Everything a routing stage may look at for one turn."""

    user_text: str
    draft_text: str | None = None
    conversation_context: str = ""
    model: str = ""
    system_prompt: str = ""
    prior_context: list[int] | None = None


@dataclass
class RoutingDecision:
    """The router's verdict for one turn.

    ``execute_tools`` is derived from the calls and the threshold, so it can
    never disagree with them.
    """

    route: Route
    tool_calls: list[ToolCallCandidate] = field(default_factory=list)
    threshold: float = DEFAULT_EXECUTION_THRESHOLD
    reasoning: str = ""
    ambiguous: bool = False
    model_text: str | None = None
    model_context: list[int] | None = None

    @property
    def execute_tools(self) -> bool:
        return any(call.confidence >= self.threshold for call in self.tool_calls)

    @property
    def confident_calls(self) -> list[ToolCallCandidate]:
        """Calls at or above threshold, highest confidence first, detection order on ties."""
        selected = [call for call in self.tool_calls if call.confidence >= self.threshold]
        return sorted(selected, key=lambda call: -call.confidence)
