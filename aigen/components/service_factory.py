"""Factory that builds and caches one code generation service per app and type."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Hashable

from aigen.components.cache_key import encode_cache_key
from aigen.components.chat_history import ChatHistoryLoader, ChatHistoryRecorder, load_chat_history_to_memory
from aigen.components.chat_memory import ChatMemoryStore, MessageWindowChatMemory
from aigen.components.code_generator_service import AiCodeGeneratorService, unknown_tool_result
from aigen.components.guardrails import InputGuardrail, PromptSafetyInputGuardrail
from aigen.components.model_registry import (
    CHAT_MODEL,
    REASONING_STREAMING_CHAT_MODEL,
    STREAMING_CHAT_MODEL,
    ModelRegistry,
)
from aigen.components.service_cache import CacheStats, Clock, ExpiringKeyedCache, RemovalCause
from aigen.components.tools import ToolManager
from aigen.config.settings import ServiceCacheSettings, get_service_cache_settings
from aigen.models import CodeGenType
from aigen.utils.exceptions import UnsupportedVariantError

logger = logging.getLogger(__name__)

SYSTEM_PROMPTS = {
    CodeGenType.HTML: (
        "You are a web developer. Produce a complete single-file HTML page with inline CSS and "
        "JavaScript inside one ```html code block."
    ),
    CodeGenType.MULTI_FILE: (
        "You are a web developer. Produce index.html, style.css and script.js, each in its own "
        "fenced code block."
    ),
    CodeGenType.VUE_PROJECT: (
        "You are a senior Vue 3 engineer. Build the requested project with the provided file tools, "
        "one file per call, and call exit when the project is complete."
    ),
}


class AiCodeGeneratorServiceFactory:
    """Hands out one shared :class:`AiCodeGeneratorService` per app and code generation type.

    Services are built on first request and cached; concurrent first requests
    for the same key share a single construction. Entries expire 30 minutes
    after creation or 10 minutes after last use, and at most 1000 are kept.
    """

    def __init__(
        self,
        *,
        model_registry: ModelRegistry,
        memory_store: ChatMemoryStore,
        history_loader: ChatHistoryLoader,
        tool_manager: ToolManager,
        input_guardrail: InputGuardrail | None = None,
        history_recorder: ChatHistoryRecorder | None = None,
        settings: ServiceCacheSettings | None = None,
        timer: Clock | None = None,
        request_timeout: float | None = None,
    ) -> None:
        self._settings = settings or get_service_cache_settings()
        self._request_timeout = request_timeout
        self._model_registry = model_registry
        self._memory_store = memory_store
        self._history_loader = history_loader
        self._tool_manager = tool_manager
        self._input_guardrail = input_guardrail or PromptSafetyInputGuardrail()
        self._history_recorder = history_recorder
        self._cache: ExpiringKeyedCache[str, AiCodeGeneratorService] = ExpiringKeyedCache(
            maximum_size=self._settings.max_size,
            expire_after_write=self._settings.expire_after_write_seconds,
            expire_after_access=self._settings.expire_after_access_seconds,
            removal_listener=self._on_removal,
            timer=timer,
        )

    def get_handle(self, app_id: int, code_gen_type: CodeGenType | str | None = None) -> AiCodeGeneratorService:
        """Return the cached service for ``app_id``, building it on first use.

        ``code_gen_type`` defaults to :attr:`CodeGenType.HTML`.
        """

        code_gen_type = _coerce_code_gen_type(code_gen_type)
        cache_key = encode_cache_key(app_id, code_gen_type)
        return self._cache.get_or_create(cache_key, lambda _key: self.build(app_id, code_gen_type))

    get_ai_code_generator_service = get_handle

    def build(self, app_id: int, code_gen_type: CodeGenType) -> AiCodeGeneratorService:
        """Assemble a new service without consulting the cache."""

        handler = _VARIANT_HANDLERS.get(code_gen_type) if isinstance(code_gen_type, CodeGenType) else None
        if handler is None:
            raise UnsupportedVariantError(code_gen_type)

        logger.info("Creating AI service for app %s (%s)", app_id, code_gen_type.value)
        chat_memory = MessageWindowChatMemory(
            app_id, self._memory_store, max_messages=self._settings.memory_max_messages
        )
        load_chat_history_to_memory(
            self._history_loader, app_id, chat_memory, self._settings.memory_max_messages
        )
        return handler(self, app_id, code_gen_type, chat_memory)

    def invalidate(self, app_id: int, code_gen_type: CodeGenType | str | None = None) -> None:
        self._cache.invalidate(encode_cache_key(app_id, _coerce_code_gen_type(code_gen_type)))

    def cached_count(self) -> int:
        return len(self._cache)

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def _build_project_service(
        self, app_id: int, code_gen_type: CodeGenType, chat_memory: MessageWindowChatMemory
    ) -> AiCodeGeneratorService:
        return AiCodeGeneratorService(
            app_id=app_id,
            code_gen_type=code_gen_type,
            chat_model=self._model_registry.lookup(CHAT_MODEL),
            streaming_model=self._model_registry.lookup(REASONING_STREAMING_CHAT_MODEL),
            system_prompt=SYSTEM_PROMPTS[code_gen_type],
            chat_memory_provider=self._memory_provider(app_id, chat_memory),
            tools=self._tool_manager.get_all_tools(),
            input_guardrails=[self._input_guardrail],
            hallucinated_tool_strategy=unknown_tool_result,
            history_recorder=self._history_recorder,
            request_timeout=self._request_timeout,
        )

    def _build_document_service(
        self, app_id: int, code_gen_type: CodeGenType, chat_memory: MessageWindowChatMemory
    ) -> AiCodeGeneratorService:
        return AiCodeGeneratorService(
            app_id=app_id,
            code_gen_type=code_gen_type,
            chat_model=self._model_registry.lookup(CHAT_MODEL),
            streaming_model=self._model_registry.lookup(STREAMING_CHAT_MODEL),
            system_prompt=SYSTEM_PROMPTS[code_gen_type],
            chat_memory=chat_memory,
            input_guardrails=[self._input_guardrail],
            history_recorder=self._history_recorder,
            request_timeout=self._request_timeout,
        )

    def _memory_provider(
        self, app_id: int, chat_memory: MessageWindowChatMemory
    ) -> Callable[[Hashable], MessageWindowChatMemory]:
        windows: dict[Hashable, MessageWindowChatMemory] = {app_id: chat_memory}
        lock = threading.Lock()

        def provide(memory_id: Hashable) -> MessageWindowChatMemory:
            with lock:
                window = windows.get(memory_id)
                if window is None:
                    window = windows[memory_id] = MessageWindowChatMemory(
                        memory_id, self._memory_store, max_messages=self._settings.memory_max_messages
                    )
                return window

        return provide

    @staticmethod
    def _on_removal(cache_key: str, service: AiCodeGeneratorService | None, cause: RemovalCause) -> None:
        logger.debug("AI service removed from cache, key: %s, cause: %s", cache_key, cause.value)


_VARIANT_HANDLERS = {
    CodeGenType.HTML: AiCodeGeneratorServiceFactory._build_document_service,
    CodeGenType.MULTI_FILE: AiCodeGeneratorServiceFactory._build_document_service,
    CodeGenType.VUE_PROJECT: AiCodeGeneratorServiceFactory._build_project_service,
}

_unhandled = set(CodeGenType) - set(_VARIANT_HANDLERS)
if _unhandled:
    raise RuntimeError(f"Code generation types without a service builder: {sorted(t.value for t in _unhandled)}")


def _coerce_code_gen_type(code_gen_type: CodeGenType | str | None) -> CodeGenType:
    if code_gen_type is None:
        return CodeGenType.default()
    if isinstance(code_gen_type, CodeGenType):
        return code_gen_type
    resolved = CodeGenType.from_value(code_gen_type) if isinstance(code_gen_type, str) else None
    if resolved is None:
        raise UnsupportedVariantError(code_gen_type)
    return resolved


def bootstrap_default_service(
    factory: AiCodeGeneratorServiceFactory, settings: ServiceCacheSettings | None = None
) -> AiCodeGeneratorService:
    """Build the sentinel app's default service so misconfiguration fails at startup."""

    settings = settings or get_service_cache_settings()
    service = factory.get_handle(settings.bootstrap_app_id)
    logger.info("Bootstrapped default AI service for app %s", settings.bootstrap_app_id)
    return service
