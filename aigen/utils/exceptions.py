"""Custom exception types used across the project."""


class UnsupportedVariantError(ValueError):
    """Raised when a code generation type has no service construction policy."""

    def __init__(self, variant: object) -> None:
        super().__init__(f"Unsupported code generation type: {variant!r}")
        self.variant = variant


class DependencyLookupError(RuntimeError):
    """Raised when a named model resource is missing from the model registry."""


class HistoryLoadError(RuntimeError):
    """Raised when prior chat history cannot be loaded for an application."""


class ChatMemoryStoreError(RuntimeError):
    """Raised when stored chat memory or chat history cannot be read or written."""


class CodeGenerationError(RuntimeError):
    """Raised when the model fails to produce generated code."""


class GuardrailViolationError(ValueError):
    """Raised when inbound user content is rejected by an input guardrail."""


class ToolExecutionError(RuntimeError):
    """Raised when a service without tool support is asked to run a tool."""
