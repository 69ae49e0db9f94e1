"""Local model catalog: discovery, capabilities and display names."""

import time
from dataclasses import dataclass, field, replace

from numidium.exceptions import BackendError
from numidium.llm import ModelBackend, ModelInfo
from numidium.logging import get_logger

log = get_logger(__name__)

DEFAULT_CONTEXT_LENGTH = 4096
CACHE_TTL_SECONDS = 60.0

# Small models preferred for intent classification, in order.
CLASSIFICATION_MODEL_PREFERENCE = (
    "qwen2.5:0.5b",
    "gemma2:2b",
    "phi3:mini",
    "tinyllama:latest",
)


@dataclass(frozen=True)
class ModelCapabilities:
    """What a model can do and how large its context window is."""

    max_context_length: int = DEFAULT_CONTEXT_LENGTH
    supports_tools: bool = False
    recommended_for: tuple[str, ...] = ("chat",)
    performance_profile: str = "balanced"


KNOWN_MODEL_CONFIGS: dict[str, ModelCapabilities] = {
    "codellama:7b": ModelCapabilities(4096, True, ("coding", "technical"), "fast"),
    "codellama:13b": ModelCapabilities(4096, True, ("coding", "technical"), "balanced"),
    "codellama:34b": ModelCapabilities(16384, True, ("coding", "analysis"), "quality"),
    "qwen2.5-coder:1.5b": ModelCapabilities(32768, True, ("coding", "quick_tasks"), "fast"),
    "qwen2.5-coder:7b": ModelCapabilities(32768, True, ("coding", "technical"), "balanced"),
    "qwen2.5-coder:14b": ModelCapabilities(32768, True, ("coding", "analysis"), "quality"),
    "mistral:7b": ModelCapabilities(8192, True, ("chat", "technical"), "balanced"),
    "mixtral:8x7b": ModelCapabilities(32768, True, ("coding", "analysis", "technical"), "quality"),
    "deepseek-coder:6.7b": ModelCapabilities(16384, True, ("coding", "technical"), "balanced"),
    "deepseek-coder:33b": ModelCapabilities(16384, True, ("coding", "analysis"), "quality"),
    "llama3.1:8b": ModelCapabilities(131072, True, ("chat", "coding"), "balanced"),
    "llama3.2:3b": ModelCapabilities(131072, True, ("chat", "quick_tasks"), "fast"),
    "phi3:3.8b": ModelCapabilities(4096, False, ("quick_tasks", "chat"), "fast"),
    "phi3:mini": ModelCapabilities(4096, False, ("quick_tasks", "chat"), "fast"),
    "gemma2:2b": ModelCapabilities(8192, False, ("quick_tasks", "chat"), "memory_efficient"),
    "qwen2.5:0.5b": ModelCapabilities(32768, False, ("quick_tasks",), "memory_efficient"),
}

_DISPLAY_NAMES = {
    "codellama": "Code Llama",
    "qwen2.5-coder": "Qwen 2.5 Coder",
    "qwen2.5": "Qwen 2.5",
    "deepseek-coder": "DeepSeek Coder",
    "mistral": "Mistral",
    "mixtral": "Mixtral",
    "llama3.1": "Llama 3.1",
    "llama3.2": "Llama 3.2",
    "phi3": "Phi-3",
    "gemma2": "Gemma 2",
    "tinyllama": "TinyLlama",
}

_PROFILE_SCORES = {"memory_efficient": 25, "balanced": 20, "fast": 15, "quality": 10}


@dataclass
class LocalModel:
    """A model installed on the backend, with derived metadata."""

    name: str
    display_name: str
    size: int = 0
    modified_at: str = ""
    capabilities: ModelCapabilities = field(default_factory=ModelCapabilities)
    tags: list[str] = field(default_factory=list)


def display_name_for(model_name: str) -> str:
    """``codellama:7b`` -> ``Code Llama (7b)``; unknown bases are title-cased."""
    base, _, tag = model_name.partition(":")
    tag = tag or "latest"
    label = _DISPLAY_NAMES.get(base) or base.replace("-", " ").title()
    return label if tag == "latest" else f"{label} ({tag})"


def capabilities_for(model_name: str) -> ModelCapabilities:
    known = KNOWN_MODEL_CONFIGS.get(model_name)
    if known is None and ":" not in model_name:
        known = KNOWN_MODEL_CONFIGS.get(f"{model_name}:latest")
    return known or ModelCapabilities()


def _tags_for(model_name: str, capabilities: ModelCapabilities) -> list[str]:
    tags = list(capabilities.recommended_for)
    lowered = model_name.lower()
    if "coder" in lowered or "code" in lowered:
        tags.append("code")
    if capabilities.supports_tools:
        tags.append("tools")
    return sorted(set(tags))


def pick_classification_model(available: list[str]) -> str | None:
    """Return the first preferred lightweight model present in *available*."""
    names = set(available)
    for candidate in CLASSIFICATION_MODEL_PREFERENCE:
        if candidate in names:
            return candidate
    return None


class ModelCatalog:
    """Caches the backend's model list and answers capability lookups."""

    def __init__(self, backend: ModelBackend, ttl_seconds: float = CACHE_TTL_SECONDS):
        self.backend = backend
        self.ttl_seconds = ttl_seconds
        self._models: dict[str, LocalModel] = {}
        self._refreshed_at: float | None = None

    def invalidate(self) -> None:
        self._refreshed_at = None

    async def refresh(self, force: bool = False) -> None:
        """Reload the model list unless the cache is still fresh.

        Raises BackendError when the backend cannot be reached and nothing is cached.
        """
        now = time.monotonic()
        if (
            not force
            and self._models
            and self._refreshed_at is not None
            and now - self._refreshed_at < self.ttl_seconds
        ):
            return
        try:
            infos = await self.backend.list_models()
        except BackendError as e:
            if not self._models:
                raise
            log.warning("Model list refresh failed, using cached list", error=str(e))
            return
        self._models = {info.name: self._convert(info) for info in infos}
        self._refreshed_at = now

    @staticmethod
    def _convert(info: ModelInfo) -> LocalModel:
        capabilities = capabilities_for(info.name)
        return LocalModel(
            name=info.name,
            display_name=display_name_for(info.name),
            size=info.size,
            modified_at=info.modified_at,
            capabilities=capabilities,
            tags=_tags_for(info.name, capabilities),
        )

    async def list_models(self) -> list[LocalModel]:
        await self.refresh()
        return list(self._models.values())

    async def get_model(self, name: str) -> LocalModel | None:
        """Look up a model by exact name, then by ``name:latest``."""
        await self.refresh()
        model = self._models.get(name)
        if model is None and ":" not in name:
            model = self._models.get(f"{name}:latest")
        return replace(model) if model is not None else None

    async def recommend(self, use_case: str) -> list[LocalModel]:
        """Installed models ordered by fit for *use_case*."""
        models = await self.list_models()

        def score(model: LocalModel) -> int:
            value = _PROFILE_SCORES.get(model.capabilities.performance_profile, 0)
            if use_case in model.capabilities.recommended_for:
                value += 30
            return value

        return sorted(models, key=score, reverse=True)
