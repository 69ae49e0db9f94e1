"""Session manager: history, token accounting, compaction and turns."""

import asyncio
import re
from typing import Any

from numidium.config import Config, get_config
from numidium.exceptions import BackendError, SessionBusyError, SessionNotFoundError
from numidium.instructions import InstructionLoader
from numidium.llm import GenerateRequest, ModelBackend, estimate_tokens
from numidium.llm.models import ModelCatalog
from numidium.logging import get_logger
from numidium.orchestrator import ExecutionOrchestrator, TurnRequest, TurnResult
from numidium.response_filter import clean_response
from numidium.session import Message, Session, SessionSettings, SessionStore

log = get_logger(__name__)


class SessionManager:
    """Owns one session and is the only writer of its history.

    Turns are serialized by a lock: a second ``run_turn`` while one is in
    flight raises SessionBusyError unless the caller asks to wait.
    """

    def __init__(
        self,
        backend: ModelBackend,
        orchestrator: ExecutionOrchestrator,
        config: Config | None = None,
        catalog: ModelCatalog | None = None,
        session: Session | None = None,
        store: SessionStore | None = None,
    ):
        self.config = config or get_config()
        self.backend = backend
        self.orchestrator = orchestrator
        self.catalog = catalog or ModelCatalog(backend)
        self.store = store
        self.instructions: InstructionLoader = orchestrator.instructions
        self.session = session or Session(
            current_model=self.config.model.model,
            max_context_tokens=self.config.context.max_tokens,
            settings=SessionSettings(auto_approve_safe=self.config.permissions.auto_approve_safe),
        )
        self._turn_lock = asyncio.Lock()

        orchestrator.registry.freeze()
        self._sync_gate()

    def _sync_gate(self) -> None:
        self.orchestrator.gate.auto_approve_safe = self.session.settings.auto_approve_safe

    @property
    def busy(self) -> bool:
        return self._turn_lock.locked()

    def _ensure_idle(self) -> None:
        if self.busy:
            raise SessionBusyError(self.session.id)

    # ------------------------------------------------------------------
    # History and tokens
    # ------------------------------------------------------------------

    async def count_tokens(self) -> int:
        """Token estimate for the current history."""
        history = self.session.history
        try:
            return max(0, int(await self.backend.count_tokens(history)))
        except Exception as e:
            log.debug("Backend token count failed, estimating", error=str(e))
            return estimate_tokens(history, self.config.context.chars_per_token)

    def _compaction_limit(self) -> float:
        return self.session.max_context_tokens * self.config.context.compaction_threshold

    async def _append(self, message: Message) -> None:
        self.session.history.append(message)
        self.session.touch()
        self.session.token_count = await self.count_tokens()
        if self.session.token_count > self._compaction_limit():
            await self.compact()

    async def add_message(self, message: Message) -> None:
        """Append a message; compacts when the context budget is exceeded."""
        self._ensure_idle()
        await self._append(message)

    def get_history(self) -> list[Message]:
        return list(self.session.history)

    # ------------------------------------------------------------------
    # Compaction
    # ------------------------------------------------------------------

    @staticmethod
    def _format_for_summary(
        messages: list[Message],
        max_total_chars: int = 24000,
        max_item_chars: int = 600,
    ) -> str:
        lines: list[str] = []
        consumed = 0
        for index, message in enumerate(messages, start=1):
            content = re.sub(r"\s+", " ", message.text.strip())
            if len(content) > max_item_chars:
                content = content[:max_item_chars].rstrip() + "... [truncated]"
            line = f"{index}. {message.role}: {content}"
            if consumed + len(line) > max_total_chars:
                lines.append("[... older conversation excerpt truncated for compaction ...]")
                break
            lines.append(line)
            consumed += len(line)
        return "\n".join(lines)

    async def _summarize(self, messages: list[Message]) -> str:
        """One model call summarizing *messages*. Empty string on failure."""
        prompt = self.instructions.render(
            "compaction_summary_user_prompt.md",
            formatted=self._format_for_summary(messages),
        )
        try:
            result = await self.backend.generate(
                GenerateRequest(
                    model=self.session.current_model,
                    prompt=prompt,
                    system=self.instructions.load("compaction_summary_system_prompt.md"),
                )
            )
        except BackendError as e:
            log.warning("Compaction summarization failed, truncating", error=str(e))
            return ""
        return clean_response(result.text)

    async def compact(self, force: bool = False) -> bool:
        """Replace older history with a summary; returns whether anything changed.

        Keeps the last ``context.keep_recent`` messages. If the summary cannot
        be produced the older messages are dropped instead. Never raises.
        """
        history = self.session.history
        if len(history) <= 2:
            return False
        if not force and self.session.token_count <= self._compaction_limit():
            return False

        keep = max(0, self.config.context.keep_recent)
        split = max(0, len(history) - keep)
        prefix, recent = history[:split], history[split:]
        if not prefix or (len(prefix) == 1 and prefix[0].is_summary):
            return False

        try:
            summary = await self._summarize(prefix)
        except Exception as e:
            log.warning("Compaction summarization raised, truncating", error=str(e))
            summary = ""

        before = len(history)
        if summary:
            self.session.history = [Message.summary(summary), *recent]
        else:
            self.session.history = list(recent)
        self.session.compaction_count += 1
        self.session.model_context = []
        self.session.token_count = await self.count_tokens()
        log.info(
            "Compacted session",
            session_id=self.session.id,
            before=before,
            after=len(self.session.history),
            summarized=bool(summary),
            token_count=self.session.token_count,
        )
        return True

    # ------------------------------------------------------------------
    # Model and settings
    # ------------------------------------------------------------------

    async def switch_model(self, name: str) -> bool:
        """Switch the session's model. False when the model is unknown or unreachable."""
        self._ensure_idle()
        try:
            model = await self.catalog.get_model(name)
        except BackendError as e:
            log.warning("Model catalog unavailable", model=name, error=str(e))
            return False
        if model is None:
            log.warning("Unknown model", model=name)
            return False

        self.session.current_model = model.name
        self.session.max_context_tokens = model.capabilities.max_context_length
        self.session.model_context = []
        await self._append(Message.notice(f"Switched to model: {model.display_name}"))
        log.info("Switched model", model=model.name, max_context_tokens=self.session.max_context_tokens)
        return True

    def clear_history(self) -> None:
        """Drop history and counters; id, model and settings survive."""
        self._ensure_idle()
        self.session.history = []
        self.session.token_count = 0
        self.session.compaction_count = 0
        self.session.model_context = []
        self.session.touch()

    def update_settings(self, **changes: Any) -> SessionSettings:
        settings = self.session.settings
        for key, value in changes.items():
            if not hasattr(settings, key):
                raise ValueError(f"Unknown session setting: {key}")
            setattr(settings, key, value)
        self._sync_gate()
        return settings

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def run_turn(
        self,
        user_text: str,
        wait: bool = False,
        abort_event: asyncio.Event | None = None,
    ) -> TurnResult:
        """Run one user turn and append its messages to history."""
        if self.busy and not wait:
            raise SessionBusyError(self.session.id)

        async with self._turn_lock:
            await self._append(Message.user(user_text))
            result = await self.orchestrator.run_turn(
                TurnRequest(
                    user_text=user_text,
                    history=list(self.session.history),
                    model=self.session.current_model,
                    prior_context=list(self.session.model_context) or None,
                    abort_event=abort_event,
                )
            )
            if result.new_context is not None:
                self.session.model_context = list(result.new_context)
            for message in result.messages:
                await self._append(message)

            if self.store is not None and self.config.session.auto_save:
                await self.store.save(self.session)
            return result

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return self.session.to_dict()

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        backend: ModelBackend,
        orchestrator: ExecutionOrchestrator,
        config: Config | None = None,
        catalog: ModelCatalog | None = None,
    ) -> "SessionManager":
        return cls(backend, orchestrator, config=config, catalog=catalog, session=Session.from_dict(data))

    async def save(self, store: SessionStore | None = None) -> None:
        target = store or self.store
        if target is None:
            raise ValueError("No session store configured")
        await target.save(self.session)

    async def restore(self, store: SessionStore | None, session_id: str) -> Session:
        """Replace the current session with a stored one."""
        self._ensure_idle()
        target = store or self.store
        if target is None:
            raise ValueError("No session store configured")
        session = await target.load(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        self.session = session
        self._sync_gate()
        return session
