"""Intent routing: decide whether a turn needs a tool, and which."""

from numidium.routing.decision import (
    DEFAULT_EXECUTION_THRESHOLD,
    Route,
    RouteRequest,
    RoutingDecision,
    ToolCallCandidate,
)
from numidium.routing.router import (
    ClassificationStage,
    IntentRouter,
    LLMGuidedStage,
    PatternStage,
    RoutingStage,
    StageOutcome,
    is_action_candidate,
)

__all__ = [
    "DEFAULT_EXECUTION_THRESHOLD",
    "ClassificationStage",
    "IntentRouter",
    "LLMGuidedStage",
    "PatternStage",
    "Route",
    "RouteRequest",
    "RoutingDecision",
    "RoutingStage",
    "StageOutcome",
    "ToolCallCandidate",
    "is_action_candidate",
]
