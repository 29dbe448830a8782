"""Persistent per-application chat history used to seed chat memory."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Optional, Protocol, Sequence

import redis

from aigen.components.chat_memory import MessageWindowChatMemory
from aigen.config.settings import get_redis_settings
from aigen.models import ChatMessage
from aigen.utils.exceptions import ChatMemoryStoreError, HistoryLoadError

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 1000


class ChatHistoryLoader(Protocol):
    """Source of an application's prior messages, oldest first."""

    def load_history(self, app_id: int, max_messages: int) -> Sequence[ChatMessage]:
        ...


class ChatHistoryRecorder(Protocol):
    """Sink for completed turns."""

    def append(self, app_id: int, message: ChatMessage) -> None:
        ...


class InMemoryChatHistoryRepository:
    """Keeps history in process memory."""

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._history: dict[int, list[ChatMessage]] = {}
        self._limit = limit
        self._lock = threading.Lock()

    def append(self, app_id: int, message: ChatMessage) -> None:
        with self._lock:
            messages = self._history.setdefault(app_id, [])
            messages.append(message)
            del messages[: max(len(messages) - self._limit, 0)]

    def load_history(self, app_id: int, max_messages: int) -> list[ChatMessage]:
        if max_messages <= 0:
            return []
        with self._lock:
            return list(self._history.get(app_id, [])[-max_messages:])


class RedisChatHistoryRepository:
    """Keeps history in a capped Redis list per application."""

    def __init__(
        self,
        *,
        client: Optional[Any] = None,
        key_prefix: str | None = None,
        limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        settings = get_redis_settings()
        self._client = client or redis.Redis.from_url(settings.url, decode_responses=True)
        self._key_prefix = key_prefix if key_prefix is not None else settings.history_key_prefix
        self._limit = limit

    def append(self, app_id: int, message: ChatMessage) -> None:
        key = self._key(app_id)
        pipeline = self._client.pipeline()
        pipeline.rpush(key, message.model_dump_json())
        pipeline.ltrim(key, -self._limit, -1)
        try:
            pipeline.execute()
        except redis.RedisError as exc:
            raise ChatMemoryStoreError(f"Failed to append chat history for app {app_id}.") from exc

    def load_history(self, app_id: int, max_messages: int) -> list[ChatMessage]:
        if max_messages <= 0:
            return []
        raw_items = self._client.lrange(self._key(app_id), -max_messages, -1)
        return [ChatMessage.model_validate(json.loads(item)) for item in raw_items]

    def _key(self, app_id: int) -> str:
        return f"{self._key_prefix}{app_id}"


def load_chat_history_to_memory(
    loader: ChatHistoryLoader,
    app_id: int,
    memory: MessageWindowChatMemory,
    max_messages: int,
) -> int:
    """Replace ``memory``'s contents with up to ``max_messages`` prior messages.

    Returns the number of messages loaded.
    """

    try:
        history = list(loader.load_history(app_id, max_messages))
    except Exception as exc:
        raise HistoryLoadError(f"Failed to load chat history for app {app_id}.") from exc

    history = history[-max_messages:] if max_messages > 0 else []
    memory.clear()
    memory.add_all(history)
    logger.info("Loaded %s history messages into memory for app %s", len(history), app_id)
    return len(history)
