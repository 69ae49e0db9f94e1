"""Conversation data model and SQLite session storage."""

import json
import secrets
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Literal

import aiosqlite

from numidium.config import get_config
from numidium.logging import get_logger

log = get_logger(__name__)

Role = Literal["user", "model", "function"]

SUMMARY_PREFIX = "[Previous conversation summary:"


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


def new_session_id() -> str:
    """Return an id of the form ``numidium-<epoch-ms>-<random>``."""
    return f"numidium-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


@dataclass
class FunctionCall:
    """A model request to invoke a tool."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)


@dataclass
class FunctionResponse:
    """The outcome of a tool invocation, as fed back to the model."""

    name: str
    response: dict[str, Any] = field(default_factory=dict)


@dataclass
class Part:
    """One piece of a message. Exactly one field is populated."""

    text: str | None = None
    function_call: FunctionCall | None = None
    function_response: FunctionResponse | None = None

    def __post_init__(self) -> None:
        populated = sum(
            value is not None
            for value in (self.text, self.function_call, self.function_response)
        )
        if populated != 1:
            raise ValueError("Part must carry exactly one of text, function_call, function_response")

    def to_dict(self) -> dict[str, Any]:
        if self.function_call is not None:
            return {"function_call": {"name": self.function_call.name, "args": self.function_call.args}}
        if self.function_response is not None:
            return {
                "function_response": {
                    "name": self.function_response.name,
                    "response": self.function_response.response,
                }
            }
        return {"text": self.text}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Part":
        if "function_call" in data:
            call = data["function_call"]
            return cls(function_call=FunctionCall(name=call["name"], args=dict(call.get("args") or {})))
        if "function_response" in data:
            resp = data["function_response"]
            return cls(
                function_response=FunctionResponse(
                    name=resp["name"], response=dict(resp.get("response") or {})
                )
            )
        return cls(text=str(data.get("text", "")))

    def render(self) -> str:
        """Plain-text rendering used for prompts and token estimates."""
        if self.function_call is not None:
            return f"[function_call {self.function_call.name} {json.dumps(self.function_call.args)}]"
        if self.function_response is not None:
            return f"[function_response {self.function_response.name} {json.dumps(self.function_response.response)}]"
        return self.text or ""


@dataclass
class Message:
    """A message in the conversation history."""

    role: Role
    parts: list[Part] = field(default_factory=list)

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role="user", parts=[Part(text=text)])

    @classmethod
    def model(cls, text: str) -> "Message":
        return cls(role="model", parts=[Part(text=text)])

    @classmethod
    def notice(cls, text: str) -> "Message":
        """Informational message, e.g. a model switch or a failed turn."""
        return cls(role="model", parts=[Part(text=f"[{text}]")])

    @classmethod
    def summary(cls, text: str) -> "Message":
        return cls(role="model", parts=[Part(text=f"{SUMMARY_PREFIX} {text.strip()}]")])

    @property
    def text(self) -> str:
        return "\n".join(part.render() for part in self.parts)

    @property
    def is_summary(self) -> bool:
        return (
            self.role == "model"
            and len(self.parts) == 1
            and (self.parts[0].text or "").startswith(SUMMARY_PREFIX)
        )

    def to_dict(self) -> dict[str, Any]:
        return {"role": self.role, "parts": [part.to_dict() for part in self.parts]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        return cls(
            role=data["role"],
            parts=[Part.from_dict(item) for item in data.get("parts", [])],
        )


@dataclass
class SessionSettings:
    """User-adjustable session behaviour."""

    auto_approve_safe: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"auto_approve_safe": self.auto_approve_safe}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionSettings":
        return cls(auto_approve_safe=bool(data.get("auto_approve_safe", False)))


@dataclass
class Session:
    """Conversation state for one run."""

    id: str = field(default_factory=new_session_id)
    current_model: str = ""
    history: list[Message] = field(default_factory=list)
    settings: SessionSettings = field(default_factory=SessionSettings)
    token_count: int = 0
    compaction_count: int = 0
    max_context_tokens: int = 8192
    model_context: list[int] = field(default_factory=list)
    start_time: str = field(default_factory=_utcnow_iso)
    last_activity: str = field(default_factory=_utcnow_iso)

    def touch(self) -> None:
        self.last_activity = _utcnow_iso()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "current_model": self.current_model,
            "history": [message.to_dict() for message in self.history],
            "settings": self.settings.to_dict(),
            "token_count": self.token_count,
            "compaction_count": self.compaction_count,
            "max_context_tokens": self.max_context_tokens,
            "start_time": self.start_time,
            "last_activity": self.last_activity,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Session":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            current_model=data.get("current_model", ""),
            history=[Message.from_dict(item) for item in data.get("history", [])],
            settings=SessionSettings.from_dict(data.get("settings", {})),
            token_count=int(data.get("token_count", 0)),
            compaction_count=int(data.get("compaction_count", 0)),
            max_context_tokens=int(data.get("max_context_tokens", 8192)),
            start_time=data.get("start_time", _utcnow_iso()),
            last_activity=data.get("last_activity", _utcnow_iso()),
        )


_COLUMNS = (
    "id, current_model, history, settings, token_count, compaction_count, "
    "max_context_tokens, start_time, last_activity"
)


class SessionStore:
    """Persists serialized sessions in SQLite."""

    def __init__(self, db_path: Path | str | None = None):
        """Initialize session store.

        Args:
            db_path: Optional database path override
        """
        if db_path is None:
            self.db_path = Path(get_config().session.path).expanduser()
        else:
            self.db_path = Path(db_path).expanduser()

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db: aiosqlite.Connection | None = None

    async def _ensure_db(self) -> None:
        """Ensure database is initialized."""
        if self._db is None:
            self._db = await aiosqlite.connect(str(self.db_path))
            await self._db.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    current_model TEXT NOT NULL DEFAULT '',
                    history TEXT NOT NULL DEFAULT '[]',
                    settings TEXT NOT NULL DEFAULT '{}',
                    token_count INTEGER NOT NULL DEFAULT 0,
                    compaction_count INTEGER NOT NULL DEFAULT 0,
                    max_context_tokens INTEGER NOT NULL DEFAULT 8192,
                    start_time TEXT NOT NULL,
                    last_activity TEXT NOT NULL
                )
            """)
            await self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_sessions_last_activity ON sessions(last_activity)"
            )
            await self._db.commit()

    @staticmethod
    def _row_to_session(row: tuple[Any, ...]) -> Session:
        return Session.from_dict({
            "id": row[0],
            "current_model": row[1],
            "history": json.loads(row[2]),
            "settings": json.loads(row[3]),
            "token_count": row[4],
            "compaction_count": row[5],
            "max_context_tokens": row[6],
            "start_time": row[7],
            "last_activity": row[8],
        })

    async def save(self, session: Session) -> None:
        """Insert or replace a session."""
        await self._ensure_db()
        data = session.to_dict()
        await self._db.execute(
            f"INSERT OR REPLACE INTO sessions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                data["id"],
                data["current_model"],
                json.dumps(data["history"]),
                json.dumps(data["settings"]),
                data["token_count"],
                data["compaction_count"],
                data["max_context_tokens"],
                data["start_time"],
                data["last_activity"],
            ),
        )
        await self._db.commit()
        log.debug("Saved session", session_id=session.id, messages=len(session.history))

    async def load(self, session_id: str) -> Session | None:
        """Get a session by ID, or None if not found."""
        await self._ensure_db()

        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM sessions WHERE id = ?",
            (session_id,),
        ) as cursor:
            row = await cursor.fetchone()

        if not row:
            return None
        return self._row_to_session(row)

    async def list_sessions(self, limit: int = 10) -> list[Session]:
        """List sessions, most recently active first."""
        await self._ensure_db()

        async with self._db.execute(
            f"SELECT {_COLUMNS} FROM sessions ORDER BY last_activity DESC LIMIT ?",
            (limit,),
        ) as cursor:
            rows = await cursor.fetchall()

        return [self._row_to_session(row) for row in rows]

    async def delete(self, session_id: str) -> bool:
        """Delete a session. Returns False if it did not exist."""
        await self._ensure_db()

        cursor = await self._db.execute(
            "DELETE FROM sessions WHERE id = ?",
            (session_id,),
        )
        await self._db.commit()

        return cursor.rowcount > 0

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None


__all__ = [
    "FunctionCall",
    "FunctionResponse",
    "Message",
    "Part",
    "Role",
    "Session",
    "SessionSettings",
    "SessionStore",
    "SUMMARY_PREFIX",
    "new_session_id",
]
