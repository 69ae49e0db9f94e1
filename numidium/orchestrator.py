"""Per-turn execution: route, confirm, execute, then summarize for the user."""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path

from numidium.config import Config, get_config
from numidium.exceptions import BackendError
from numidium.instructions import InstructionLoader
from numidium.llm import GenerateRequest, ModelBackend
from numidium.logging import get_logger
from numidium.permissions import PermissionGate
from numidium.response_filter import clean_response
from numidium.routing import IntentRouter, RouteRequest, RoutingDecision
from numidium.session import FunctionCall, FunctionResponse, Message, Part
from numidium.tools.registry import ToolExecution, ToolRegistry

log = get_logger(__name__)

MAX_RESULT_CHARS = 4000
MAX_CONTEXT_ITEM_CHARS = 500


@dataclass
class TurnRequest:
    """Input for one turn. ``history`` already ends with the user message."""

    user_text: str
    history: list[Message] = field(default_factory=list)
    model: str = ""
    prior_context: list[int] | None = None
    draft_text: str | None = None
    abort_event: asyncio.Event | None = None


@dataclass
class TurnResult:
    """Outcome of one turn.

    ``messages`` are for the caller to append to history, in order.
    """

    reply: str
    tool_executions: list[ToolExecution] = field(default_factory=list)
    decision: RoutingDecision | None = None
    messages: list[Message] = field(default_factory=list)
    new_context: list[int] | None = None
    error: str | None = None


def _clip(text: str, limit: int) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + f"... [truncated, {len(text)} chars]"


class ExecutionOrchestrator:
    """Sequences detection, confirmation, execution and the follow-up reply."""

    def __init__(
        self,
        router: IntentRouter,
        registry: ToolRegistry,
        backend: ModelBackend,
        gate: PermissionGate,
        instructions: InstructionLoader | None = None,
        config: Config | None = None,
        working_directory: Path | str | None = None,
    ):
        self.router = router
        self.registry = registry
        self.backend = backend
        self.gate = gate
        self.instructions = instructions or InstructionLoader()
        self.config = config or get_config()
        self.working_directory = Path(working_directory or Path.cwd()).resolve()

    def conversation_context(self, history: list[Message]) -> str:
        """Recent turns before the current user message, one line each."""
        earlier = history[:-1] if history and history[-1].role == "user" else history
        window = self.config.router.context_messages
        recent = earlier[-window:] if window > 0 else []
        return "\n".join(
            f"{message.role}: {_clip(message.text, MAX_CONTEXT_ITEM_CHARS)}" for message in recent
        )

    def build_system_prompt(self, conversation_context: str) -> str:
        return self.instructions.render(
            "system_prompt.md",
            working_directory=str(self.working_directory),
            tool_descriptions=self.registry.get_tool_descriptions(),
            conversation_context=conversation_context or "(none)",
        )

    async def _generate(
        self,
        request: TurnRequest,
        prompt: str,
        system: str,
        prior_context: list[int] | None,
    ) -> tuple[str, list[int] | None]:
        result = await self.backend.generate(
            GenerateRequest(
                model=request.model,
                prompt=prompt,
                system=system,
                prior_context=prior_context,
            )
        )
        return clean_response(result.text), result.context

    async def _ask_with_guidance(
        self,
        request: TurnRequest,
        system_prompt: str,
        prior_context: list[int] | None,
    ) -> RoutingDecision:
        """Ask the model directly when routing was ambiguous, and parse its reply."""
        system = "\n\n".join(
            part
            for part in (
                system_prompt,
                self.instructions.load("guidance_prompt.md"),
                self.router.function_instructions,
            )
            if part
        )
        text, context = await self._generate(request, request.user_text, system, prior_context)
        decision = self.router.parse_model_reply(text, context)
        if not decision.execute_tools and not decision.model_text:
            decision.model_text = text
        return decision

    def _format_results(self, executions: list[ToolExecution]) -> str:
        blocks = []
        for index, execution in enumerate(executions, start=1):
            result = execution.result
            status = "success" if result.success else "failed"
            body = result.content if result.success else (result.error or result.content)
            blocks.append(f"{index}. {execution.tool_name} [{status}]\n{_clip(body, MAX_RESULT_CHARS)}")
        return "\n\n".join(blocks)

    @staticmethod
    def _failure_notice(reason: str, executions: list[ToolExecution]) -> Message:
        if not executions:
            return Message.notice(reason)
        lines = [f"{reason}. Tool results:"]
        lines.extend(f"- {execution.tool_name}: {execution.result.display_result}" for execution in executions)
        return Message.notice("\n".join(lines))

    async def _execute_calls(
        self,
        decision: RoutingDecision,
        abort_event: asyncio.Event | None,
    ) -> tuple[list[ToolExecution], list[Message]]:
        executions: list[ToolExecution] = []
        audit: list[Message] = []
        record_audit = decision.route == "llm_guided"
        for call in decision.confident_calls:
            if abort_event is not None and abort_event.is_set():
                log.info("Turn aborted before tool call", tool=call.tool_name)
                break
            if record_audit:
                audit.append(
                    Message(role="model", parts=[Part(function_call=FunctionCall(call.tool_name, dict(call.params)))])
                )
            execution = await self.registry.run_tool_call(call.tool_name, call.params, self.gate, abort_event)
            executions.append(execution)
            if record_audit:
                result = execution.result
                response = {"success": result.success, "content": _clip(result.content, MAX_RESULT_CHARS)}
                if result.error:
                    response["error"] = result.error
                audit.append(
                    Message(
                        role="function",
                        parts=[Part(function_response=FunctionResponse(call.tool_name, response))],
                    )
                )
        return executions, audit

    async def run_turn(self, request: TurnRequest) -> TurnResult:
        """Run one turn end to end.

        Backend failures become an error notice; tool failures live in their
        results. ConfigurationError propagates.
        """
        conversation = self.conversation_context(request.history)
        system_prompt = self.build_system_prompt(conversation)
        new_context = request.prior_context
        decision: RoutingDecision | None = None
        executions: list[ToolExecution] = []

        try:
            decision = await self.router.route(
                RouteRequest(
                    user_text=request.user_text,
                    draft_text=request.draft_text,
                    conversation_context=conversation,
                    model=request.model,
                    system_prompt=system_prompt,
                    prior_context=request.prior_context,
                )
            )
            if decision.model_context is not None:
                new_context = decision.model_context

            if decision.ambiguous and not decision.execute_tools and decision.model_text is None:
                log.info("Ambiguous request, asking model with guidance")
                decision = await self._ask_with_guidance(request, system_prompt, new_context)
                if decision.model_context is not None:
                    new_context = decision.model_context

            messages: list[Message] = []
            if decision.execute_tools:
                executions, audit = await self._execute_calls(decision, request.abort_event)
                messages.extend(audit)
                if request.abort_event is not None and request.abort_event.is_set():
                    notice = self._failure_notice("Turn aborted", executions)
                    messages.append(notice)
                    return TurnResult(notice.text, executions, decision, messages, new_context, "aborted")

            if executions:
                prompt = self.instructions.render(
                    "tool_followup_prompt.md",
                    user_text=request.user_text,
                    tool_results=self._format_results(executions),
                )
                try:
                    reply, context = await self._generate(request, prompt, system_prompt, new_context)
                except BackendError as e:
                    log.error("Tool summary generation failed", error=str(e))
                    notice = self._failure_notice(f"Could not summarize tool results: {e}", executions)
                    messages.append(notice)
                    return TurnResult(notice.text, executions, decision, messages, new_context, str(e))
                new_context = context or new_context
                if not reply:
                    reply = "\n".join(execution.result.display_result for execution in executions)
            elif decision.model_text:
                reply = decision.model_text
            else:
                reply, context = await self._generate(request, request.user_text, system_prompt, new_context)
                new_context = context or new_context

            messages.append(Message.model(reply))
            return TurnResult(reply, executions, decision, messages, new_context)

        except BackendError as e:
            log.error("Turn failed", error=str(e))
            notice = Message.notice(f"Error: {e}")
            return TurnResult(notice.text, executions, decision, [notice], new_context, str(e))
