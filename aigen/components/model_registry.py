"""Named registry of model resources handed to the service factory."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

import google.generativeai as genai

from aigen.config.settings import GeminiSettings, get_gemini_settings
from aigen.utils.exceptions import DependencyLookupError

logger = logging.getLogger(__name__)

CHAT_MODEL = "chat_model"
STREAMING_CHAT_MODEL = "streaming_chat_model"
REASONING_STREAMING_CHAT_MODEL = "reasoning_streaming_chat_model"

ModelFactory = Callable[[], Any]


class ModelRegistry:
    """Maps logical model names to factories.

    Each :meth:`lookup` calls the factory, so every service gets its own
    model object.
    """

    def __init__(self, factories: dict[str, ModelFactory] | None = None) -> None:
        self._factories: dict[str, ModelFactory] = dict(factories or {})
        self._lock = threading.Lock()

    def register(self, name: str, factory: ModelFactory) -> None:
        with self._lock:
            self._factories[name] = factory

    def lookup(self, name: str) -> Any:
        with self._lock:
            factory = self._factories.get(name)
        if factory is None:
            raise DependencyLookupError(f"No model resource registered under '{name}'.")
        try:
            return factory()
        except DependencyLookupError:
            raise
        except Exception as exc:
            raise DependencyLookupError(f"Failed to create model resource '{name}'.") from exc


def build_gemini_model_registry(settings: GeminiSettings | None = None) -> ModelRegistry:
    """Register the Gemini chat, streaming and reasoning models."""

    settings = settings or get_gemini_settings()
    if settings.api_key:
        genai.configure(api_key=settings.api_key)
    else:
        logger.debug("Gemini API key not provided; model calls may fail at runtime.")

    generation_config = {
        "temperature": settings.temperature,
        "max_output_tokens": settings.max_output_tokens,
    }

    def factory(model_name: str) -> ModelFactory:
        return lambda: genai.GenerativeModel(model_name, generation_config=generation_config)

    return ModelRegistry(
        {
            CHAT_MODEL: factory(settings.chat_model),
            STREAMING_CHAT_MODEL: factory(settings.streaming_model),
            REASONING_STREAMING_CHAT_MODEL: factory(settings.reasoning_model),
        }
    )
