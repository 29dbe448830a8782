"""File tools available to project-generation services and their registry."""

from __future__ import annotations

import abc
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from aigen.config.settings import get_tool_settings

logger = logging.getLogger(__name__)

PROTECTED_FILES = frozenset({"package.json", "package-lock.json", "vite.config.js", "index.html", "main.js", "App.vue"})
IGNORED_DIRECTORIES = frozenset({"node_modules", "dist", ".git", ".vscode", ".idea"})


class BaseTool(abc.ABC):
    """A named capability the model may invoke with JSON arguments."""

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {}

    def __init__(self, output_root: Path) -> None:
        self._output_root = output_root

    @abc.abstractmethod
    def execute(self, arguments: dict[str, Any], *, app_id: int) -> str:
        """Run the tool and return the text handed back to the model."""

    def project_root(self, app_id: int) -> Path:
        return self._output_root / f"vue_project_{app_id}"

    def resolve(self, app_id: int, relative_path: str) -> Path:
        root = self.project_root(app_id).resolve()
        target = (root / relative_path).resolve()
        if target != root and root not in target.parents:
            raise ValueError(f"Path escapes the project directory: {relative_path}")
        return target

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class WriteFileTool(BaseTool):
    name = "write_file"
    description = "Write content to a file, creating parent directories as needed."
    parameters = {"relative_path": "string", "content": "string"}

    def execute(self, arguments: dict[str, Any], *, app_id: int) -> str:
        relative_path = arguments["relative_path"]
        target = self.resolve(app_id, relative_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(arguments.get("content", ""), encoding="utf-8")
        logger.info("Wrote %s for app %s", target, app_id)
        return f"File written: {relative_path}"


class ReadFileTool(BaseTool):
    name = "read_file"
    description = "Read the content of a file in the project."
    parameters = {"relative_path": "string"}

    def execute(self, arguments: dict[str, Any], *, app_id: int) -> str:
        relative_path = arguments["relative_path"]
        target = self.resolve(app_id, relative_path)
        if not target.is_file():
            return f"Error: file does not exist: {relative_path}"
        return target.read_text(encoding="utf-8")


class ModifyFileTool(BaseTool):
    name = "modify_file"
    description = "Replace a fragment of an existing file with new content."
    parameters = {"relative_path": "string", "old_content": "string", "new_content": "string"}

    def execute(self, arguments: dict[str, Any], *, app_id: int) -> str:
        relative_path = arguments["relative_path"]
        old_content = arguments["old_content"]
        target = self.resolve(app_id, relative_path)
        if not target.is_file():
            return f"Error: file does not exist: {relative_path}"

        original = target.read_text(encoding="utf-8")
        if old_content not in original:
            return f"Warning: content to replace was not found in {relative_path}; file unchanged."
        target.write_text(original.replace(old_content, arguments.get("new_content", "")), encoding="utf-8")
        return f"File modified: {relative_path}"


class DeleteFileTool(BaseTool):
    name = "delete_file"
    description = "Delete a file from the project. Core project files cannot be deleted."
    parameters = {"relative_path": "string"}

    def execute(self, arguments: dict[str, Any], *, app_id: int) -> str:
        relative_path = arguments["relative_path"]
        target = self.resolve(app_id, relative_path)
        if target.name in PROTECTED_FILES:
            return f"Error: {target.name} is a protected project file and cannot be deleted."
        if not target.is_file():
            return f"Warning: file does not exist: {relative_path}"
        target.unlink()
        return f"File deleted: {relative_path}"


class ReadDirTool(BaseTool):
    name = "read_dir"
    description = "List the files of a project directory, skipping build output."
    parameters = {"relative_path": "string"}

    def execute(self, arguments: dict[str, Any], *, app_id: int) -> str:
        relative_path = arguments.get("relative_path") or ""
        target = self.resolve(app_id, relative_path)
        if not target.is_dir():
            return f"Error: directory does not exist: {relative_path or '.'}"

        root = self.project_root(app_id).resolve()
        lines = []
        for path in sorted(target.rglob("*")):
            if IGNORED_DIRECTORIES.intersection(path.relative_to(root).parts):
                continue
            if path.is_file():
                lines.append(path.relative_to(root).as_posix())
        return "\n".join(lines) if lines else "(empty directory)"


class ExitTool(BaseTool):
    name = "exit"
    description = "Call once the generation task is complete to stop further tool calls."
    parameters = {}

    def execute(self, arguments: dict[str, Any], *, app_id: int) -> str:
        logger.info("Tool loop finished for app %s", app_id)
        return "Task finished. Do not call any more tools; summarise the result for the user."


DEFAULT_TOOL_TYPES = (WriteFileTool, ReadFileTool, ModifyFileTool, DeleteFileTool, ReadDirTool, ExitTool)


class ToolManager:
    """Registry of every tool a project-generation service may call."""

    def __init__(
        self,
        *,
        tools: Optional[Iterable[BaseTool]] = None,
        output_root: Path | None = None,
    ) -> None:
        if tools is None:
            root = output_root or get_tool_settings().code_output_root
            tools = [tool_type(root) for tool_type in DEFAULT_TOOL_TYPES]

        self._tools: dict[str, BaseTool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool
        logger.debug("Registered tools: %s", ", ".join(self._tools))

    def get_all_tools(self) -> list[BaseTool]:
        return list(self._tools.values())
