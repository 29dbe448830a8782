"""Dependency wiring for the FastAPI application."""

from __future__ import annotations

from functools import lru_cache

import redis

from aigen.components.chat_history import RedisChatHistoryRepository
from aigen.components.chat_memory import RedisChatMemoryStore
from aigen.components.model_registry import build_gemini_model_registry
from aigen.components.service_factory import AiCodeGeneratorServiceFactory
from aigen.components.tools import ToolManager
from aigen.config.settings import get_gemini_settings, get_redis_settings


@lru_cache(maxsize=1)
def get_service_factory() -> AiCodeGeneratorServiceFactory:
    """Provide the process-wide service factory for the API layer."""

    client = redis.Redis.from_url(get_redis_settings().url, decode_responses=True)
    history = RedisChatHistoryRepository(client=client)
    return AiCodeGeneratorServiceFactory(
        model_registry=build_gemini_model_registry(),
        memory_store=RedisChatMemoryStore(client=client),
        history_loader=history,
        history_recorder=history,
        tool_manager=ToolManager(),
        request_timeout=get_gemini_settings().resolved_timeout(),
    )
