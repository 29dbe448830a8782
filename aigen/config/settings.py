"""Application configuration management."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ServiceCacheSettings(BaseSettings):
    """Bounds for the per-application service cache and chat memory window."""

    max_size: int = Field(default=1000, alias="SERVICE_CACHE_MAX_SIZE")
    expire_after_write_seconds: float = Field(default=30 * 60, alias="SERVICE_CACHE_EXPIRE_AFTER_WRITE_SECONDS")
    expire_after_access_seconds: float = Field(default=10 * 60, alias="SERVICE_CACHE_EXPIRE_AFTER_ACCESS_SECONDS")
    memory_max_messages: int = Field(default=40, alias="CHAT_MEMORY_MAX_MESSAGES")
    bootstrap_app_id: int = Field(default=0, alias="BOOTSTRAP_APP_ID")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("max_size", "memory_max_messages")
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("Cache and memory bounds must be positive.")
        return value


@lru_cache(maxsize=1)
def get_service_cache_settings() -> ServiceCacheSettings:
    """Cache and return the service cache settings."""

    return ServiceCacheSettings()


class GeminiSettings(BaseSettings):
    """Configuration values required for interacting with Google Gemini."""

    api_key: str = Field(default="", alias="GOOGLE_API_KEY")
    chat_model: str = Field(default="gemini-1.5-flash", alias="GEMINI_CHAT_MODEL")
    streaming_model: str = Field(default="gemini-1.5-flash", alias="GEMINI_STREAMING_MODEL")
    reasoning_model: str = Field(default="gemini-1.5-pro", alias="GEMINI_REASONING_MODEL")
    request_timeout: float = Field(default=60.0, alias="GEMINI_REQUEST_TIMEOUT")
    max_output_tokens: int = Field(default=8192, alias="GEMINI_MAX_OUTPUT_TOKENS")
    temperature: float = Field(default=0.2, alias="GEMINI_TEMPERATURE")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    def resolved_timeout(self) -> Optional[float]:
        """Return the per-request timeout, or ``None`` when it is disabled."""

        return self.request_timeout if self.request_timeout > 0 else None


@lru_cache(maxsize=1)
def get_gemini_settings() -> GeminiSettings:
    """Cache and return the Gemini configuration settings."""

    return GeminiSettings()


class RedisSettings(BaseSettings):
    """Connection values for the Redis-backed chat memory and history."""

    url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    memory_ttl_seconds: Optional[int] = Field(default=None, alias="CHAT_MEMORY_TTL_SECONDS")
    memory_key_prefix: str = Field(default="chat_memory:", alias="CHAT_MEMORY_KEY_PREFIX")
    history_key_prefix: str = Field(default="chat_history:", alias="CHAT_HISTORY_KEY_PREFIX")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("memory_ttl_seconds", mode="before")
    @classmethod
    def _coerce_ttl(cls, value):
        """Treat blank or non-positive TTL values as 'never expire'."""

        if value in (None, ""):
            return None
        if int(value) <= 0:
            return None
        return int(value)


@lru_cache(maxsize=1)
def get_redis_settings() -> RedisSettings:
    """Cache and return the Redis configuration settings."""

    return RedisSettings()


class ToolSettings(BaseSettings):
    """Configuration for the file tools exposed to project-generation services."""

    code_output_root: Path = Field(default=Path("tmp/code_output"), alias="CODE_OUTPUT_ROOT")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache(maxsize=1)
def get_tool_settings() -> ToolSettings:
    """Cache and return the tool configuration settings."""

    return ToolSettings()
