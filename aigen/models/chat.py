"""Pydantic models describing chat messages, tool calls and API contracts."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from .code_gen_type import CodeGenType


class MessageRole(str, Enum):
    """Author of a message held in chat memory."""

    SYSTEM = "system"
    USER = "user"
    AI = "ai"
    TOOL = "tool"


class ChatMessage(BaseModel):
    """A single message in an application's conversation."""

    role: MessageRole
    content: str
    tool_name: Optional[str] = None

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def ai(cls, content: str) -> "ChatMessage":
        return cls(role=MessageRole.AI, content=content)

    @classmethod
    def system(cls, content: str) -> "ChatMessage":
        return cls(role=MessageRole.SYSTEM, content=content)


class ToolExecutionRequest(BaseModel):
    """A model-issued request to invoke a named tool."""

    id: Optional[str] = None
    name: str = Field(min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolExecutionResult(BaseModel):
    """Outcome of a tool invocation, returned to the model as a tool message."""

    request_id: Optional[str] = None
    tool_name: str
    text: str
    is_error: bool = False

    def to_message(self) -> ChatMessage:
        return ChatMessage(role=MessageRole.TOOL, content=self.text, tool_name=self.tool_name)


class CodeGenChatRequest(BaseModel):
    """Inbound payload for a code generation chat turn."""

    message: str = Field(min_length=1)
    code_gen_type: CodeGenType = CodeGenType.HTML
    user_id: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "message": "Build a landing page for a coffee shop.",
                "code_gen_type": "html",
                "user_id": "1001",
            }
        }
    }


class ToolCallRequest(BaseModel):
    """Inbound payload for executing a tool through an app's service."""

    name: str = Field(min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)
    code_gen_type: CodeGenType = CodeGenType.VUE_PROJECT


class CacheStatsResponse(BaseModel):
    """Snapshot of the service cache counters."""

    size: int
    hits: int
    misses: int
    loads: int
    load_failures: int
    evictions: int
