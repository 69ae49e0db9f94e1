"""Model backend - direct HTTP calls to the Ollama API."""

import asyncio
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Sequence

import httpx

from numidium.config import Config, get_config
from numidium.exceptions import BackendAPIError, BackendError
from numidium.logging import get_logger
from numidium.session import Message

log = get_logger(__name__)


OLLAMA_BASE_URL = "http://localhost:11434"
CHARS_PER_TOKEN = 3.5


@dataclass
class GenerateRequest:
    """One completion request."""

    model: str
    prompt: str
    system: str = ""
    prior_context: list[int] | None = None
    options: dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerateResult:
    """Completion text plus the backend's opaque conversation context."""

    text: str
    context: list[int] | None = None
    model: str = ""
    usage: dict[str, int] = field(default_factory=dict)


@dataclass
class ModelInfo:
    """A model available on the backend."""

    name: str
    size: int = 0
    modified_at: str = ""


def estimate_tokens(history: Sequence[Message], chars_per_token: float = CHARS_PER_TOKEN) -> int:
    """Rough token estimate from character length."""
    total_chars = sum(len(message.text) for message in history)
    return math.ceil(total_chars / chars_per_token)


class ModelBackend(ABC):
    """Abstract base class for model backends."""

    @abstractmethod
    async def generate(self, request: GenerateRequest) -> GenerateResult:
        pass

    @abstractmethod
    async def classify(self, prompt: str) -> str:
        pass

    @abstractmethod
    async def count_tokens(self, history: Sequence[Message]) -> int:
        pass

    @abstractmethod
    async def list_models(self) -> list[ModelInfo]:
        pass

    async def close(self) -> None:
        """Release network resources."""
        return None


class OllamaBackend(ModelBackend):
    """Ollama ``/api/generate`` backend."""

    def __init__(
        self,
        model: str = "qwen2.5-coder:7b",
        base_url: str = OLLAMA_BASE_URL,
        temperature: float = 0.7,
        timeout: float = 120.0,
        retries: int = 3,
        classification_model: str = "",
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize Ollama backend.

        Args:
            model: Default model used when a request names none
            base_url: Ollama API base URL
            temperature: Default sampling temperature
            timeout: Per-request timeout in seconds
            retries: Attempts for transport errors and 5xx responses
            classification_model: Lightweight model used by ``classify``
            client: Optional preconfigured HTTP client (tests inject a mock transport)
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.retries = max(1, int(retries))
        self.classification_model = classification_model
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, retrying transport errors and 5xx with exponential backoff."""
        url = f"{self.base_url}{path}"
        last_error: Exception | None = None
        for attempt in range(1, self.retries + 1):
            try:
                response = await self.client.request(method, url, **kwargs)
            except httpx.HTTPError as e:
                last_error = BackendAPIError(f"Ollama HTTP error: {e}")
            else:
                if response.is_success:
                    return response
                error = BackendAPIError(
                    f"Ollama API error {response.status_code}: {response.text}",
                    status_code=response.status_code,
                )
                if response.status_code < 500:
                    raise error
                last_error = error

            if attempt < self.retries:
                delay = 0.5 * (2 ** (attempt - 1))
                log.warning(
                    "Ollama request failed, retrying",
                    path=path,
                    attempt=attempt,
                    delay=delay,
                    error=str(last_error),
                )
                await asyncio.sleep(delay)

        assert last_error is not None
        raise last_error

    @staticmethod
    def _json_object(response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise BackendError(f"Ollama response decode error: {e}")
        if not isinstance(data, dict):
            raise BackendError(f"Ollama returned an unexpected payload: {type(data).__name__}")
        return data

    async def generate(self, request: GenerateRequest) -> GenerateResult:
        """Generate a completion."""
        model = request.model or self.model
        options: dict[str, Any] = {"temperature": self.temperature}
        options.update(request.options)

        body: dict[str, Any] = {
            "model": model,
            "prompt": request.prompt,
            "stream": False,
            "options": options,
        }
        if request.system:
            body["system"] = request.system
        if request.prior_context:
            body["context"] = request.prior_context

        log.debug("Calling Ollama", model=model, prompt_chars=len(request.prompt))
        response = await self._request("POST", "/api/generate", json=body)
        data = self._json_object(response)

        usage = {
            "prompt_tokens": data.get("prompt_eval_count", 0),
            "completion_tokens": data.get("eval_count", 0),
        }
        context = data.get("context")
        return GenerateResult(
            text=str(data.get("response", "")),
            context=list(context) if isinstance(context, list) else None,
            model=model,
            usage=usage,
        )

    async def classify(self, prompt: str) -> str:
        """Short, low-temperature completion on the classification model."""
        result = await self.generate(
            GenerateRequest(
                model=self.classification_model or self.model,
                prompt=prompt,
                options={"temperature": 0.1, "num_predict": 200},
            )
        )
        return result.text

    async def count_tokens(self, history: Sequence[Message]) -> int:
        """Count tokens (rough estimate; Ollama exposes no tokenizer endpoint)."""
        return estimate_tokens(history)

    async def list_models(self) -> list[ModelInfo]:
        """List locally available models."""
        response = await self._request("GET", "/api/tags")
        data = self._json_object(response)
        return [
            ModelInfo(
                name=str(item.get("name", "")),
                size=int(item.get("size", 0) or 0),
                modified_at=str(item.get("modified_at", "")),
            )
            for item in data.get("models") or []
            if isinstance(item, dict) and item.get("name")
        ]

    async def health_check(self) -> bool:
        """Return whether the Ollama server answers."""
        try:
            response = await self.client.get(f"{self.base_url}/", timeout=5.0)
        except httpx.HTTPError:
            return False
        return response.is_success

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def create_backend(config: Config | None = None) -> ModelBackend:
    """Create the model backend named by ``config.model.provider``."""
    cfg = config or get_config()
    if cfg.model.provider == "ollama":
        return OllamaBackend(
            model=cfg.model.model,
            base_url=cfg.model.host or OLLAMA_BASE_URL,
            temperature=cfg.model.temperature,
            timeout=cfg.model.timeout,
            retries=cfg.model.retries,
            classification_model=cfg.router.classification_model,
        )
    raise ValueError(f"Provider '{cfg.model.provider}' not supported. Use 'ollama'.")


__all__ = [
    "CHARS_PER_TOKEN",
    "GenerateRequest",
    "GenerateResult",
    "ModelBackend",
    "ModelInfo",
    "OllamaBackend",
    "create_backend",
    "estimate_tokens",
]
