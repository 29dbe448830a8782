"""Domain-level data models."""

from .chat import (
    CacheStatsResponse,
    ChatMessage,
    CodeGenChatRequest,
    MessageRole,
    ToolCallRequest,
    ToolExecutionRequest,
    ToolExecutionResult,
)
from .code_gen_type import CodeGenType

__all__ = [
    "CacheStatsResponse",
    "ChatMessage",
    "CodeGenChatRequest",
    "CodeGenType",
    "MessageRole",
    "ToolCallRequest",
    "ToolExecutionRequest",
    "ToolExecutionResult",
]
