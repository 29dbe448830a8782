"""Cache key encoding for per-application services."""

from __future__ import annotations

from dataclasses import dataclass

from aigen.models import CodeGenType

KEY_SEPARATOR = "|"


@dataclass(frozen=True, slots=True)
class CacheKey:
    """Value identity of a cached service: one application and one generation type."""

    app_id: int
    code_gen_type: CodeGenType

    def __post_init__(self) -> None:
        # bool is an int subclass; True and 1 must not alias.
        if isinstance(self.app_id, bool) or not isinstance(self.app_id, int):
            raise ValueError(f"app_id must be an integer, got {self.app_id!r}")
        if not isinstance(self.code_gen_type, CodeGenType):
            raise ValueError(f"code_gen_type must be a CodeGenType, got {self.code_gen_type!r}")

    def encode(self) -> str:
        return f"{self.app_id}{KEY_SEPARATOR}{self.code_gen_type.value}"


def encode_cache_key(app_id: int, code_gen_type: CodeGenType) -> str:
    """Render ``(app_id, code_gen_type)`` as a single storage key.

    The integer's text form never contains the separator, and decoding splits
    on its first occurrence, so the encoding stays injective whatever text a
    generation type's value carries.
    """

    return CacheKey(app_id, code_gen_type).encode()


def decode_cache_key(encoded: str) -> CacheKey:
    """Inverse of :func:`encode_cache_key`."""

    app_part, separator, type_part = encoded.partition(KEY_SEPARATOR)
    if not separator:
        raise ValueError(f"Malformed service cache key: {encoded!r}")
    try:
        app_id = int(app_part)
    except ValueError as exc:
        raise ValueError(f"Malformed app id in service cache key: {encoded!r}") from exc

    code_gen_type = CodeGenType.from_value(type_part)
    if code_gen_type is None:
        raise ValueError(f"Unknown code generation type in service cache key: {encoded!r}")
    return CacheKey(app_id, code_gen_type)
