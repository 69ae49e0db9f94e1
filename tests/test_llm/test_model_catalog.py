import pytest

from numidium.exceptions import BackendAPIError
from numidium.llm import ModelBackend, ModelInfo
from numidium.llm.models import (
    DEFAULT_CONTEXT_LENGTH,
    ModelCatalog,
    capabilities_for,
    display_name_for,
    pick_classification_model,
)


class ListingBackend(ModelBackend):
    def __init__(self, names):
        self.names = list(names)
        self.calls = 0
        self.fail = False

    async def generate(self, request):
        raise NotImplementedError

    async def classify(self, prompt):
        raise NotImplementedError

    async def count_tokens(self, history):
        return 0

    async def list_models(self):
        self.calls += 1
        if self.fail:
            raise BackendAPIError("ollama offline")
        return [ModelInfo(name=name) for name in self.names]


@pytest.mark.parametrize(
    "name, expected",
    [
        ("codellama:7b", "Code Llama (7b)"),
        ("qwen2.5-coder:14b", "Qwen 2.5 Coder (14b)"),
        ("mistral:latest", "Mistral"),
        ("mistral", "Mistral"),
        ("my-finetune:q4", "My Finetune (q4)"),
    ],
)
def test_display_names(name, expected):
    assert display_name_for(name) == expected


def test_capabilities():
    assert capabilities_for("llama3.1:8b").max_context_length == 131072
    assert capabilities_for("codellama:34b").performance_profile == "quality"
    unknown = capabilities_for("my-finetune:q4")
    assert unknown.max_context_length == DEFAULT_CONTEXT_LENGTH
    assert not unknown.supports_tools


def test_pick_classification_model():
    assert pick_classification_model(["codellama:7b", "phi3:mini", "gemma2:2b"]) == "gemma2:2b"
    assert pick_classification_model(["codellama:7b"]) is None


@pytest.mark.asyncio
async def test_catalog_caches_model_list():
    backend = ListingBackend(["codellama:7b", "tinyllama:latest"])
    catalog = ModelCatalog(backend)

    first = await catalog.list_models()
    await catalog.list_models()
    assert backend.calls == 1

    catalog.invalidate()
    await catalog.list_models()
    assert backend.calls == 2

    assert first[0].display_name == "Code Llama (7b)"
    assert "code" in first[0].tags
    assert "tools" in first[0].tags


@pytest.mark.asyncio
async def test_get_model_resolves_latest_tag():
    catalog = ModelCatalog(ListingBackend(["tinyllama:latest"]))

    model = await catalog.get_model("tinyllama")

    assert model is not None
    assert model.name == "tinyllama:latest"
    assert await catalog.get_model("missing:1b") is None


@pytest.mark.asyncio
async def test_refresh_failure_uses_cached_list():
    backend = ListingBackend(["mistral:7b"])
    catalog = ModelCatalog(backend)
    await catalog.list_models()
    backend.fail = True

    await catalog.refresh(force=True)

    assert [model.name for model in await catalog.list_models()] == ["mistral:7b"]


@pytest.mark.asyncio
async def test_refresh_failure_without_cache_raises():
    backend = ListingBackend([])
    backend.fail = True

    with pytest.raises(BackendAPIError):
        await ModelCatalog(backend).list_models()


@pytest.mark.asyncio
async def test_recommend_orders_by_fit():
    catalog = ModelCatalog(ListingBackend(["phi3:mini", "codellama:34b", "qwen2.5-coder:7b"]))

    ranked = await catalog.recommend("coding")

    assert [model.name for model in ranked] == ["qwen2.5-coder:7b", "codellama:34b", "phi3:mini"]
