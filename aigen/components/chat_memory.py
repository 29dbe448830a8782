"""Bounded per-application chat memory and its backing stores."""

from __future__ import annotations

import json
import logging
import threading
import weakref
from typing import Any, Hashable, Iterable, Optional, Protocol

import redis

from aigen.config.settings import get_redis_settings
from aigen.models import ChatMessage, MessageRole
from aigen.utils.exceptions import ChatMemoryStoreError

logger = logging.getLogger(__name__)

_STORE_LOCKS: "weakref.WeakKeyDictionary[Any, dict[Hashable, threading.RLock]]" = weakref.WeakKeyDictionary()
_STORE_LOCKS_GUARD = threading.Lock()


class ChatMemoryStore(Protocol):
    """Durable storage for the messages of one memory id."""

    def get_messages(self, memory_id: Hashable) -> list[ChatMessage]:
        ...

    def update_messages(self, memory_id: Hashable, messages: list[ChatMessage]) -> None:
        ...

    def delete_messages(self, memory_id: Hashable) -> None:
        ...


class InMemoryChatMemoryStore:
    """Process-local store, used for tests and single-node development."""

    def __init__(self) -> None:
        self._messages: dict[Hashable, list[ChatMessage]] = {}
        self._lock = threading.Lock()

    def get_messages(self, memory_id: Hashable) -> list[ChatMessage]:
        with self._lock:
            return list(self._messages.get(memory_id, []))

    def update_messages(self, memory_id: Hashable, messages: list[ChatMessage]) -> None:
        with self._lock:
            self._messages[memory_id] = list(messages)

    def delete_messages(self, memory_id: Hashable) -> None:
        with self._lock:
            self._messages.pop(memory_id, None)


class RedisChatMemoryStore:
    """Stores each memory id's messages as one JSON array under a Redis key."""

    def __init__(
        self,
        *,
        client: Optional[Any] = None,
        key_prefix: str | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        settings = get_redis_settings()
        self._client = client or redis.Redis.from_url(settings.url, decode_responses=True)
        self._key_prefix = key_prefix if key_prefix is not None else settings.memory_key_prefix
        self._ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.memory_ttl_seconds

    def get_messages(self, memory_id: Hashable) -> list[ChatMessage]:
        try:
            raw = self._client.get(self._key(memory_id))
        except redis.RedisError as exc:
            raise ChatMemoryStoreError(f"Failed to read chat memory {memory_id}.") from exc

        if not raw:
            return []
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ChatMemoryStoreError(f"Chat memory {memory_id} holds malformed JSON.") from exc
        return [ChatMessage.model_validate(item) for item in payload]

    def update_messages(self, memory_id: Hashable, messages: list[ChatMessage]) -> None:
        payload = json.dumps([message.model_dump(mode="json") for message in messages], ensure_ascii=False)
        try:
            if self._ttl_seconds:
                self._client.set(self._key(memory_id), payload, ex=self._ttl_seconds)
            else:
                self._client.set(self._key(memory_id), payload)
        except redis.RedisError as exc:
            raise ChatMemoryStoreError(f"Failed to write chat memory {memory_id}.") from exc

    def delete_messages(self, memory_id: Hashable) -> None:
        try:
            self._client.delete(self._key(memory_id))
        except redis.RedisError as exc:
            raise ChatMemoryStoreError(f"Failed to delete chat memory {memory_id}.") from exc

    def _key(self, memory_id: Hashable) -> str:
        return f"{self._key_prefix}{memory_id}"


class MessageWindowChatMemory:
    """Sliding window over the most recent messages of one conversation.

    At most one system message is retained, always first and never evicted.
    When the window overflows the oldest other messages are dropped, along
    with any tool results orphaned at the head of the window.

    Windows over the same store and memory id share one lock, so updates made
    through different window objects in this process never overwrite each other.
    """

    def __init__(self, memory_id: Hashable, store: ChatMemoryStore, *, max_messages: int = 40) -> None:
        if max_messages <= 0:
            raise ValueError("max_messages must be positive.")
        self.id = memory_id
        self.max_messages = max_messages
        self._store = store
        self._lock = shared_memory_lock(store, memory_id)

    def add(self, message: ChatMessage) -> None:
        with self._lock:
            messages = self._store.get_messages(self.id)
            if message.role is MessageRole.SYSTEM:
                existing = _find_system_message(messages)
                if existing is not None:
                    if existing.content == message.content:
                        return
                    messages.remove(existing)
                messages.insert(0, message)
            else:
                messages.append(message)
            self._store.update_messages(self.id, _trim(messages, self.max_messages))

    def add_all(self, messages: Iterable[ChatMessage]) -> None:
        with self._lock:
            for message in messages:
                self.add(message)

    def messages(self) -> list[ChatMessage]:
        with self._lock:
            return _trim(self._store.get_messages(self.id), self.max_messages)

    def clear(self) -> None:
        with self._lock:
            self._store.delete_messages(self.id)

    def __len__(self) -> int:
        return len(self.messages())

    def __repr__(self) -> str:
        return f"MessageWindowChatMemory(id={self.id!r}, max_messages={self.max_messages})"


def shared_memory_lock(store: ChatMemoryStore, memory_id: Hashable) -> threading.RLock:
    """Return the lock guarding ``memory_id`` in ``store``, creating it on first use."""

    with _STORE_LOCKS_GUARD:
        locks = _STORE_LOCKS.get(store)
        if locks is None:
            locks = _STORE_LOCKS[store] = {}
        lock = locks.get(memory_id)
        if lock is None:
            lock = locks[memory_id] = threading.RLock()
        return lock


def _find_system_message(messages: list[ChatMessage]) -> Optional[ChatMessage]:
    for message in messages:
        if message.role is MessageRole.SYSTEM:
            return message
    return None


def _trim(messages: list[ChatMessage], max_messages: int) -> list[ChatMessage]:
    messages = list(messages)
    while len(messages) > max_messages:
        index = 1 if messages[0].role is MessageRole.SYSTEM else 0
        messages.pop(index)
        while index < len(messages) and messages[index].role is MessageRole.TOOL:
            messages.pop(index)
    return messages
