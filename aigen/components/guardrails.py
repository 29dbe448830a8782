"""Input guardrails applied to user content before it reaches the model."""

from __future__ import annotations

import logging
import re
from typing import Iterable, Protocol

from aigen.utils.exceptions import GuardrailViolationError

logger = logging.getLogger(__name__)

MAX_INPUT_LENGTH = 1000

SENSITIVE_WORDS = (
    "ignore previous instructions",
    "ignore above",
    "jailbreak",
    "bypass",
    "hack",
)

INJECTION_PATTERNS = (
    r"(?i)ignore\s+(?:previous|above|all)\s+(?:instructions?|commands?|prompts?)",
    r"(?i)(?:forget|disregard)\s+(?:everything|all)\s+(?:above|before)",
    r"(?i)(?:pretend|act|behave)\s+(?:as|like)\s+(?:if|you\s+are)",
    r"(?i)system\s*:\s*you\s+are",
    r"(?i)new\s+(?:instructions?|commands?|prompts?)\s*:",
)


class InputGuardrail(Protocol):
    def validate(self, text: str) -> str:
        ...


class PromptSafetyInputGuardrail:
    """Rejects empty, oversized, sensitive or prompt-injection input.

    Stateless; one instance may be shared by every service.
    """

    def __init__(
        self,
        *,
        max_length: int = MAX_INPUT_LENGTH,
        sensitive_words: Iterable[str] = SENSITIVE_WORDS,
        injection_patterns: Iterable[str] = INJECTION_PATTERNS,
    ) -> None:
        self._max_length = max_length
        self._sensitive_words = tuple(word.lower() for word in sensitive_words)
        self._injection_patterns = tuple(re.compile(pattern) for pattern in injection_patterns)

    def validate(self, text: str) -> str:
        """Return ``text`` unchanged when it is safe to forward."""

        if text is None or not text.strip():
            raise GuardrailViolationError("Input must not be empty.")
        if len(text) > self._max_length:
            raise GuardrailViolationError(
                f"Input is too long; at most {self._max_length} characters are allowed."
            )

        lowered = text.lower()
        for word in self._sensitive_words:
            if word in lowered:
                logger.info("Guardrail rejected input containing a sensitive word")
                raise GuardrailViolationError("Input contains disallowed content.")

        for pattern in self._injection_patterns:
            if pattern.search(text):
                logger.info("Guardrail rejected input matching injection pattern %s", pattern.pattern)
                raise GuardrailViolationError("Input looks like a prompt injection attempt.")

        return text
