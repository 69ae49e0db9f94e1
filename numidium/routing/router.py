"""Multi-stage intent router.

Stages run in configured order and the first one that produces a confident
call (or a definitive answer) wins:

1. ``pattern``: the regex rule table, no model involved.
2. ``classification``: one short call to a small classifier model.
3. ``llm_guided``: the primary model, asked to emit a JSON function call.

When nothing is confident the decision falls back, flagged ambiguous if the
text reads like a request for action.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from numidium.config import Config, get_config
from numidium.exceptions import BackendError
from numidium.instructions import InstructionLoader
from numidium.llm import GenerateRequest, ModelBackend
from numidium.logging import get_logger
from numidium.response_filter import clean_response
from numidium.routing.classification import parse_classification_response
from numidium.routing.decision import (
    DEFAULT_EXECUTION_THRESHOLD,
    Route,
    RouteRequest,
    RoutingDecision,
    ToolCallCandidate,
)
from numidium.routing.function_calls import extract_function_call
from numidium.routing.patterns import DEFAULT_RULES, PatternRule, match_patterns
from numidium.session import FunctionCall
from numidium.tools.registry import ToolRegistry

log = get_logger(__name__)

ACTION_KEYWORDS = frozenset(
    {
        "create", "make", "write", "generate", "save",
        "read", "show", "display", "view", "open", "cat",
        "run", "execute", "exec",
        "list", "ls", "dir",
        "edit", "modify", "update", "change",
        "npm", "git", "node", "python", "docker",
    }
)


def is_action_candidate(text: str) -> bool:
    """Whether *text* contains a word that usually asks for a local action."""
    return any(word in ACTION_KEYWORDS for word in re.findall(r"[a-z]+", (text or "").lower()))


@dataclass
class StageOutcome:
    """What one stage found. ``final`` stops routing even without a confident call."""

    calls: list[ToolCallCandidate] = field(default_factory=list)
    reasoning: str = ""
    final: bool = False
    model_text: str | None = None
    model_context: list[int] | None = None


def _describe_calls(calls: Sequence[ToolCallCandidate]) -> str:
    return ", ".join(f"{call.tool_name} ({call.confidence:.2f})" for call in calls)


class RoutingStage(ABC):
    """One detection strategy."""

    route: Route

    @abstractmethod
    async def detect(self, request: RouteRequest) -> StageOutcome | None:
        """Inspect the request. None means the stage had nothing to say."""


class PatternStage(RoutingStage):
    """Rule-table matching against the user text, then the draft reply."""

    route: Route = "pattern"

    def __init__(
        self,
        tool_names: Sequence[str],
        rules: Sequence[PatternRule] = DEFAULT_RULES,
        threshold: float = DEFAULT_EXECUTION_THRESHOLD,
    ):
        self.tool_names = list(tool_names)
        self.rules = tuple(rules)
        self.threshold = threshold

    def _confident(self, calls: Sequence[ToolCallCandidate]) -> bool:
        return any(call.confidence >= self.threshold for call in calls)

    async def detect(self, request: RouteRequest) -> StageOutcome | None:
        calls = match_patterns(request.user_text, self.rules, self.tool_names)
        source = "user text"
        if not self._confident(calls) and request.draft_text:
            draft_calls = match_patterns(request.draft_text, self.rules, self.tool_names)
            if self._confident(draft_calls) or not calls:
                calls, source = draft_calls, "draft reply"
        if not calls:
            return None
        return StageOutcome(calls=calls, reasoning=f"Pattern match in {source}: {_describe_calls(calls)}")


class ClassificationStage(RoutingStage):
    """Ask a small model which tools apply."""

    route: Route = "classification"

    def __init__(
        self,
        backend: ModelBackend,
        tools: Mapping[str, Mapping[str, Any]],
        tool_list: str,
        instructions: InstructionLoader,
    ):
        self.backend = backend
        self.tools = dict(tools)
        self.tool_list = tool_list
        self.instructions = instructions

    async def detect(self, request: RouteRequest) -> StageOutcome | None:
        prompt = self.instructions.render(
            "classification_prompt.md",
            tool_list=self.tool_list,
            user_text=request.user_text,
            conversation_context=request.conversation_context or "(none)",
        )
        try:
            raw = await self.backend.classify(prompt)
        except BackendError as e:
            log.warning("Classification failed, falling through", error=str(e))
            return None

        result = parse_classification_response(raw, self.tools)
        if result is None:
            log.debug("Unparseable classification answer", answer=raw[:200])
            return None
        if result.none:
            return StageOutcome(reasoning=result.reason or "Classifier found no tool", final=True)
        if not result.calls:
            return None
        reasoning = f"Classifier: {_describe_calls(result.calls)}"
        if result.reason:
            reasoning += f" - {result.reason}"
        return StageOutcome(calls=result.calls, reasoning=reasoning)


def decision_from_reply(text: str, context: list[int] | None = None) -> StageOutcome:
    """Turn a primary-model reply into a stage outcome.

    A valid JSON function call becomes a single call at confidence 1.0;
    anything else is the cleaned conversational reply.
    """
    cleaned = clean_response(text)
    call: FunctionCall | None = extract_function_call(cleaned)
    if call is not None:
        return StageOutcome(
            calls=[ToolCallCandidate(call.name, call.args, 1.0)],
            reasoning=f"Model requested {call.name}",
            final=True,
            model_context=context,
        )
    return StageOutcome(
        reasoning="Model replied without a tool call",
        final=True,
        model_text=cleaned,
        model_context=context,
    )


class LLMGuidedStage(RoutingStage):
    """Let the primary model answer, with function-calling instructions appended."""

    route: Route = "llm_guided"

    def __init__(
        self,
        backend: ModelBackend,
        function_instructions: str,
        temperature: float = 0.2,
    ):
        self.backend = backend
        self.function_instructions = function_instructions
        self.temperature = temperature

    async def detect(self, request: RouteRequest) -> StageOutcome | None:
        if request.draft_text is not None:
            return decision_from_reply(request.draft_text)

        system = "\n\n".join(part for part in (request.system_prompt, self.function_instructions) if part)
        result = await self.backend.generate(
            GenerateRequest(
                model=request.model,
                prompt=request.user_text,
                system=system,
                prior_context=request.prior_context,
                options={"temperature": self.temperature},
            )
        )
        return decision_from_reply(result.text, result.context)


class IntentRouter:
    """Run routing stages in order and return the first confident decision."""

    def __init__(
        self,
        stages: Sequence[RoutingStage],
        threshold: float = DEFAULT_EXECUTION_THRESHOLD,
        function_instructions: str = "",
    ):
        self.stages = list(stages)
        self.threshold = threshold
        self.function_instructions = function_instructions

    @classmethod
    def from_registry(
        cls,
        registry: ToolRegistry,
        backend: ModelBackend,
        config: Config | None = None,
        instructions: InstructionLoader | None = None,
    ) -> "IntentRouter":
        """Build the configured stage pipeline for the tools in *registry*."""
        cfg = config or get_config()
        loader = instructions or InstructionLoader()
        router_cfg = cfg.router
        definitions = registry.get_definitions()
        function_instructions = loader.render(
            "function_calling_instructions.md",
            function_descriptions=registry.get_tool_descriptions(),
        )

        stages: list[RoutingStage] = []
        for name in router_cfg.stages:
            if name == "pattern":
                stages.append(PatternStage(registry.list_tools(), threshold=router_cfg.execution_threshold))
            elif name == "classification":
                if not router_cfg.classification_model:
                    log.debug("No classification model configured, skipping stage")
                    continue
                tool_list = "\n".join(
                    f"- {d['name']}({', '.join(d['parameters'].get('properties', {}))}): {d['description']}"
                    for d in definitions
                )
                stages.append(
                    ClassificationStage(
                        backend,
                        {d["name"]: d["parameters"] for d in definitions},
                        tool_list,
                        loader,
                    )
                )
            elif name == "llm_guided":
                stages.append(
                    LLMGuidedStage(backend, function_instructions, router_cfg.llm_guided_temperature)
                )
        return cls(stages, router_cfg.execution_threshold, function_instructions)

    def _decision(self, route: Route, outcome: StageOutcome) -> RoutingDecision:
        return RoutingDecision(
            route=route,
            tool_calls=list(outcome.calls),
            threshold=self.threshold,
            reasoning=outcome.reasoning,
            model_text=outcome.model_text,
            model_context=outcome.model_context,
        )

    async def route(self, request: RouteRequest) -> RoutingDecision:
        """Route one turn. Backend errors from the llm_guided stage propagate."""
        weak_calls: list[ToolCallCandidate] = []
        for stage in self.stages:
            outcome = await stage.detect(request)
            if outcome is None:
                continue
            decision = self._decision(stage.route, outcome)
            if decision.execute_tools or outcome.final:
                log.info(
                    "Routing decision",
                    route=decision.route,
                    execute_tools=decision.execute_tools,
                    calls=[call.tool_name for call in decision.tool_calls],
                )
                return decision
            weak_calls.extend(outcome.calls)

        decision = RoutingDecision(
            route="fallback",
            tool_calls=weak_calls,
            threshold=self.threshold,
            reasoning="No stage produced a confident tool call",
            ambiguous=is_action_candidate(request.user_text),
        )
        log.info("Routing decision", route="fallback", ambiguous=decision.ambiguous)
        return decision

    def parse_model_reply(self, text: str, context: list[int] | None = None) -> RoutingDecision:
        """Decision for an arbitrary model reply, as the llm_guided stage would make it."""
        return self._decision("llm_guided", decision_from_reply(text, context))
