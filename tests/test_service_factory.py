"""Unit tests for the per-application service factory."""

from __future__ import annotations

import threading
import time
from types import SimpleNamespace

import pytest

from aigen.components.chat_history import InMemoryChatHistoryRepository
from aigen.components.chat_memory import InMemoryChatMemoryStore
from aigen.components.model_registry import (
    CHAT_MODEL,
    REASONING_STREAMING_CHAT_MODEL,
    STREAMING_CHAT_MODEL,
    ModelRegistry,
)
from aigen.components.service_factory import (
    _VARIANT_HANDLERS,
    AiCodeGeneratorServiceFactory,
    bootstrap_default_service,
)
from aigen.components.tools import ToolManager
from aigen.config.settings import ServiceCacheSettings
from aigen.models import ChatMessage, CodeGenType, ToolExecutionRequest
from aigen.utils.exceptions import (
    DependencyLookupError,
    HistoryLoadError,
    ToolExecutionError,
    UnsupportedVariantError,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class FakeModel:
    def __init__(self, name: str) -> None:
        self.name = name

    def generate_content(self, contents, stream=False):
        return SimpleNamespace(text=f"reply from {self.name}")


class CountingHistoryLoader:
    def __init__(self, repository: InMemoryChatHistoryRepository, *, delay: float = 0.0) -> None:
        self._repository = repository
        self._delay = delay
        self.calls: list[tuple[int, int]] = []
        self._lock = threading.Lock()

    def load_history(self, app_id: int, max_messages: int):
        with self._lock:
            self.calls.append((app_id, max_messages))
        if self._delay:
            time.sleep(self._delay)
        return self._repository.load_history(app_id, max_messages)


def _registry(*, include_reasoning: bool = True) -> ModelRegistry:
    factories = {
        CHAT_MODEL: lambda: FakeModel("chat"),
        STREAMING_CHAT_MODEL: lambda: FakeModel("streaming"),
    }
    if include_reasoning:
        factories[REASONING_STREAMING_CHAT_MODEL] = lambda: FakeModel("reasoning")
    return ModelRegistry(factories)


def _make_factory(tmp_path, *, registry=None, loader=None, history=None, clock=None):
    history = history or InMemoryChatHistoryRepository()
    loader = loader or CountingHistoryLoader(history)
    factory = AiCodeGeneratorServiceFactory(
        model_registry=registry or _registry(),
        memory_store=InMemoryChatMemoryStore(),
        history_loader=loader,
        tool_manager=ToolManager(output_root=tmp_path),
        settings=ServiceCacheSettings(),
        timer=clock or FakeClock(),
    )
    return factory, loader


def test_every_code_gen_type_has_a_builder():
    assert set(_VARIANT_HANDLERS) == set(CodeGenType)


def test_project_service_is_cached_and_prepopulated(tmp_path):
    history = InMemoryChatHistoryRepository()
    for index in range(50):
        history.append(42, ChatMessage.user(f"message {index}"))
    factory, loader = _make_factory(tmp_path, history=history)

    first = factory.get_handle(42, CodeGenType.VUE_PROJECT)
    second = factory.get_handle(42, CodeGenType.VUE_PROJECT)

    assert first is second
    assert loader.calls == [(42, 40)]
    assert first.tools
    assert first.uses_memory_provider
    assert first.streaming_model.name == "reasoning"

    messages = first.chat_memory().messages()
    assert len(messages) == 40
    assert messages[0].content == "message 10"
    assert messages[-1].content == "message 49"


def test_variants_of_same_app_get_distinct_services(tmp_path):
    factory, loader = _make_factory(tmp_path)

    html_service = factory.get_handle(42, CodeGenType.HTML)
    project_service = factory.get_handle(42, CodeGenType.VUE_PROJECT)

    assert html_service is not project_service
    assert len(loader.calls) == 2
    assert factory.cached_count() == 2


def test_document_service_has_no_tools_and_direct_memory(tmp_path):
    factory, _ = _make_factory(tmp_path)

    service = factory.get_handle(7, CodeGenType.MULTI_FILE)

    assert service.tools == []
    assert not service.uses_memory_provider
    assert service.streaming_model.name == "streaming"
    assert len(service.input_guardrails) == 1
    with pytest.raises(ToolExecutionError):
        service.execute_tool(ToolExecutionRequest(name="write_file"))


def test_default_code_gen_type_is_html(tmp_path):
    factory, _ = _make_factory(tmp_path)

    service = factory.get_handle(3)

    assert service.code_gen_type is CodeGenType.HTML
    assert factory.get_handle(3, "html") is service


def test_unsupported_variant_fails_without_poisoning_cache(tmp_path):
    factory, loader = _make_factory(tmp_path)

    with pytest.raises(UnsupportedVariantError):
        factory.build(5, "react_project")  # type: ignore[arg-type]
    with pytest.raises(UnsupportedVariantError):
        factory.get_handle(5, "react_project")

    assert factory.cached_count() == 0
    assert loader.calls == []
    assert factory.get_handle(5, CodeGenType.VUE_PROJECT).code_gen_type is CodeGenType.VUE_PROJECT


def test_missing_model_resource_is_retryable(tmp_path):
    registry = _registry(include_reasoning=False)
    factory, _ = _make_factory(tmp_path, registry=registry)

    with pytest.raises(DependencyLookupError):
        factory.get_handle(8, CodeGenType.VUE_PROJECT)
    assert factory.cached_count() == 0

    registry.register(REASONING_STREAMING_CHAT_MODEL, lambda: FakeModel("reasoning"))
    assert factory.get_handle(8, CodeGenType.VUE_PROJECT).streaming_model.name == "reasoning"


def test_history_failure_surfaces_as_history_load_error(tmp_path):
    class BrokenLoader:
        def load_history(self, app_id, max_messages):
            raise ConnectionError("redis down")

    factory, _ = _make_factory(tmp_path, loader=BrokenLoader())

    with pytest.raises(HistoryLoadError):
        factory.get_handle(9)
    assert factory.cached_count() == 0


def test_concurrent_first_requests_build_one_service(tmp_path):
    factory, loader = _make_factory(tmp_path, loader=None)
    loader._delay = 0.2
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(factory.get_handle(42, CodeGenType.VUE_PROJECT))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert len(loader.calls) == 1
    assert len(results) == 8
    assert all(result is results[0] for result in results)


def test_service_rebuilt_after_idle_expiry(tmp_path):
    clock = FakeClock()
    factory, loader = _make_factory(tmp_path, clock=clock)

    first = factory.get_handle(11, CodeGenType.HTML)
    clock.now += 10 * 60 + 1
    second = factory.get_handle(11, CodeGenType.HTML)

    assert first is not second
    assert len(loader.calls) == 2


def test_invalidate_forces_rebuild(tmp_path):
    factory, loader = _make_factory(tmp_path)
    first = factory.get_handle(12, CodeGenType.HTML)

    factory.invalidate(12, CodeGenType.HTML)

    assert factory.get_handle(12, CodeGenType.HTML) is not first
    assert len(loader.calls) == 2


def test_unknown_tool_returns_structured_error(tmp_path):
    factory, _ = _make_factory(tmp_path)
    service = factory.get_handle(42, CodeGenType.VUE_PROJECT)

    result = service.execute_tool(ToolExecutionRequest(id="call-1", name="deploy_to_prod"))

    assert result.is_error
    assert result.request_id == "call-1"
    assert result.text == "Error: there is no tool called deploy_to_prod"
    assert service.chat_memory().messages()[-1].content == result.text


def test_memory_provider_shares_app_memory_and_isolates_other_ids(tmp_path):
    factory, _ = _make_factory(tmp_path)
    service = factory.get_handle(42, CodeGenType.VUE_PROJECT)

    assert service.chat_memory(42) is service.chat_memory()
    assert service.chat_memory(99).id == 99
    assert service.chat_memory(99) is service.chat_memory(99)
    assert service.chat_memory(99) is not service.chat_memory(100)


def test_variants_of_same_app_do_not_lose_concurrent_messages(tmp_path):
    factory, _ = _make_factory(tmp_path)
    html = factory.get_handle(42, CodeGenType.HTML).chat_memory()
    project = factory.get_handle(42, CodeGenType.VUE_PROJECT).chat_memory()

    def write(memory, prefix):
        for index in range(15):
            memory.add(ChatMessage.user(f"{prefix}{index}"))

    threads = [
        threading.Thread(target=write, args=(html, "html")),
        threading.Thread(target=write, args=(project, "vue")),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert html is not project
    assert len(project.messages()) == 30


def test_bootstrap_builds_sentinel_service(tmp_path):
    factory, loader = _make_factory(tmp_path)

    service = bootstrap_default_service(factory, ServiceCacheSettings())

    assert service.app_id == 0
    assert service.code_gen_type is CodeGenType.HTML
    assert loader.calls == [(0, 40)]
    assert factory.cached_count() == 1


def test_bootstrap_surfaces_missing_models(tmp_path):
    factory, _ = _make_factory(tmp_path, registry=ModelRegistry())

    with pytest.raises(DependencyLookupError):
        bootstrap_default_service(factory, ServiceCacheSettings())
