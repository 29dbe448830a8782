"""Code generation types selecting how a per-app service is assembled."""

from __future__ import annotations

from enum import Enum


class CodeGenType(str, Enum):
    """Generation-type variant of an application."""

    HTML = "html"
    MULTI_FILE = "multi_file"
    VUE_PROJECT = "vue_project"

    @classmethod
    def default(cls) -> "CodeGenType":
        return cls.HTML

    @classmethod
    def from_value(cls, value: str | None) -> "CodeGenType | None":
        """Return the member whose value matches, or ``None`` for unknown input."""

        if not value:
            return None
        for member in cls:
            if member.value == value:
                return member
        return None

