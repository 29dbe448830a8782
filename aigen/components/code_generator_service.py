"""Per-application code generation service assembled by the service factory."""

from __future__ import annotations

import logging
from typing import Any, Callable, Hashable, Iterable, Iterator, Sequence

from aigen.components.chat_history import ChatHistoryRecorder
from aigen.components.chat_memory import MessageWindowChatMemory
from aigen.components.guardrails import InputGuardrail
from aigen.components.tools import BaseTool
from aigen.models import ChatMessage, CodeGenType, MessageRole, ToolExecutionRequest, ToolExecutionResult
from aigen.utils.exceptions import CodeGenerationError, ToolExecutionError
from aigen.utils.monitor import current_monitor_context

logger = logging.getLogger(__name__)

ChatMemoryProvider = Callable[[Hashable], MessageWindowChatMemory]
HallucinatedToolStrategy = Callable[[ToolExecutionRequest], ToolExecutionResult]

_GEMINI_ROLES = {
    MessageRole.SYSTEM: "user",
    MessageRole.USER: "user",
    MessageRole.AI: "model",
    MessageRole.TOOL: "user",
}


class AiCodeGeneratorService:
    """A ready-to-use conversation with one application's code generator.

    The service is shared by every request for the same application and
    generation type; its memory is shared along with it.
    """

    def __init__(
        self,
        *,
        app_id: int,
        code_gen_type: CodeGenType,
        chat_model: Any,
        streaming_model: Any,
        system_prompt: str,
        chat_memory: MessageWindowChatMemory | None = None,
        chat_memory_provider: ChatMemoryProvider | None = None,
        tools: Iterable[BaseTool] = (),
        input_guardrails: Sequence[InputGuardrail] = (),
        hallucinated_tool_strategy: HallucinatedToolStrategy | None = None,
        history_recorder: ChatHistoryRecorder | None = None,
        request_timeout: float | None = None,
    ) -> None:
        if (chat_memory is None) == (chat_memory_provider is None):
            raise ValueError("Exactly one of chat_memory or chat_memory_provider must be given.")

        self.app_id = app_id
        self.code_gen_type = code_gen_type
        self._chat_model = chat_model
        self._streaming_model = streaming_model
        self._system_prompt = system_prompt
        self._chat_memory = chat_memory
        self._chat_memory_provider = chat_memory_provider
        self._tools = {tool.name: tool for tool in tools}
        self._input_guardrails = tuple(input_guardrails)
        self._hallucinated_tool_strategy = hallucinated_tool_strategy
        self._history_recorder = history_recorder
        self._request_kwargs: dict[str, Any] = (
            {"request_options": {"timeout": request_timeout}} if request_timeout else {}
        )

    @property
    def tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    @property
    def input_guardrails(self) -> tuple[InputGuardrail, ...]:
        return self._input_guardrails

    @property
    def streaming_model(self) -> Any:
        return self._streaming_model

    @property
    def uses_memory_provider(self) -> bool:
        return self._chat_memory_provider is not None

    def chat_memory(self, memory_id: Hashable | None = None) -> MessageWindowChatMemory:
        """Return the memory backing ``memory_id`` (the app id by default)."""

        if self._chat_memory_provider is not None:
            return self._chat_memory_provider(self.app_id if memory_id is None else memory_id)
        return self._chat_memory

    def generate_code(self, user_message: str, *, memory_id: Hashable | None = None) -> str:
        """Run one blocking turn and return the full reply."""

        memory = self._begin_turn(user_message, memory_id)
        try:
            response = self._chat_model.generate_content(
                self._build_contents(memory.messages()), **self._request_kwargs
            )
        except Exception as exc:
            raise CodeGenerationError("Code generation request failed.") from exc

        answer = self._extract_text(response)
        if not answer:
            raise CodeGenerationError("Model returned an empty response.")
        self._finish_turn(memory, user_message, answer)
        return answer

    def stream_code(self, user_message: str, *, memory_id: Hashable | None = None) -> Iterator[str]:
        """Run one streaming turn.

        Input guardrails run before this returns, so a rejected message fails
        immediately rather than on first iteration.
        """

        memory = self._begin_turn(user_message, memory_id)
        return self._stream(memory, user_message)

    def execute_tool(self, request: ToolExecutionRequest, *, memory_id: Hashable | None = None) -> ToolExecutionResult:
        """Dispatch a model tool call to the attached tool set."""

        tool = self._tools.get(request.name)
        if tool is None:
            if self._hallucinated_tool_strategy is None:
                raise ToolExecutionError(
                    f"Tool '{request.name}' is not available for {self.code_gen_type.value} services."
                )
            logger.warning("App %s requested unknown tool %s", self.app_id, request.name)
            result = self._hallucinated_tool_strategy(request)
        else:
            target_app_id = self.app_id if memory_id is None else memory_id
            try:
                text = tool.execute(request.arguments, app_id=target_app_id)
                result = ToolExecutionResult(request_id=request.id, tool_name=tool.name, text=text)
            except (KeyError, ValueError, OSError) as exc:
                logger.warning("Tool %s failed for app %s: %s", tool.name, self.app_id, exc)
                result = ToolExecutionResult(
                    request_id=request.id, tool_name=tool.name, text=f"Error: {exc}", is_error=True
                )

        self.chat_memory(memory_id).add(result.to_message())
        return result

    def _begin_turn(self, user_message: str, memory_id: Hashable | None) -> MessageWindowChatMemory:
        for guardrail in self._input_guardrails:
            user_message = guardrail.validate(user_message)

        memory = self.chat_memory(memory_id)
        if self._system_prompt:
            memory.add(ChatMessage.system(self._system_prompt))
        memory.add(ChatMessage.user(user_message))

        context = current_monitor_context()
        logger.info(
            "Generating %s code for app %s (user=%s)",
            self.code_gen_type.value,
            self.app_id,
            context.user_id,
        )
        return memory

    def _stream(self, memory: MessageWindowChatMemory, user_message: str) -> Iterator[str]:
        try:
            response = self._streaming_model.generate_content(
                self._build_contents(memory.messages()),
                stream=True,
                **self._request_kwargs,
            )
        except Exception as exc:
            raise CodeGenerationError("Streaming code generation request failed.") from exc

        parts: list[str] = []
        try:
            for chunk in response:
                text = self._extract_text(chunk)
                if text:
                    parts.append(text)
                    yield text
        except CodeGenerationError:
            raise
        except Exception as exc:
            raise CodeGenerationError("Streaming code generation was interrupted.") from exc

        self._finish_turn(memory, user_message, "".join(parts))

    def _finish_turn(self, memory: MessageWindowChatMemory, user_message: str, answer: str) -> None:
        memory.add(ChatMessage.ai(answer))
        if self._history_recorder is not None:
            self._history_recorder.append(self.app_id, ChatMessage.user(user_message))
            self._history_recorder.append(self.app_id, ChatMessage.ai(answer))

    @staticmethod
    def _build_contents(messages: Iterable[ChatMessage]) -> list[dict[str, Any]]:
        contents: list[dict[str, Any]] = []
        for message in messages:
            text = message.content
            if message.role is MessageRole.TOOL:
                text = f"[tool {message.tool_name} result]\n{text}"
            contents.append({"role": _GEMINI_ROLES[message.role], "parts": [text]})
        return contents

    @staticmethod
    def _extract_text(response: Any) -> str:
        if response is None:
            return ""

        try:
            text = response.text
        except (AttributeError, ValueError):
            # Chunks without text parts (e.g. blocked candidates) raise on access.
            text = None
        if isinstance(text, str):
            return text

        if isinstance(response, dict):
            text = response.get("text")
            if isinstance(text, str):
                return text

            candidates = response.get("candidates")
            if isinstance(candidates, list) and candidates:
                content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
                parts = content.get("parts") if isinstance(content, dict) else None
                if isinstance(parts, list) and parts and isinstance(parts[0], str):
                    return parts[0]

        return ""

    def __repr__(self) -> str:
        return (
            f"AiCodeGeneratorService(app_id={self.app_id}, code_gen_type={self.code_gen_type.value}, "
            f"tools={len(self._tools)})"
        )


def unknown_tool_result(request: ToolExecutionRequest) -> ToolExecutionResult:
    """Answer a call to a tool that does not exist instead of failing the turn."""

    return ToolExecutionResult(
        request_id=request.id,
        tool_name=request.name,
        text=f"Error: there is no tool called {request.name}",
        is_error=True,
    )
