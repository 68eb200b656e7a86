"""File tools for code workers, confined to the workspace directory."""

from __future__ import annotations

import os
from pathlib import Path

from agent_mailbox.coordination.tools.base import Tool, ToolContext, ToolResult, object_schema

DEFAULT_READ_LIMIT = 2000
LIST_FILES_LIMIT = 50


class WorkspaceEscapeError(ValueError):
    """A tool path resolved outside the workspace."""


def _resolve(workspace: Path, raw_path: str) -> Path:
    root = workspace.resolve()
    full = (root / raw_path).resolve()
    if full != root and root not in full.parents:
        raise WorkspaceEscapeError(f"Path is outside the workspace: {raw_path}")
    return full


def _error(error: Exception) -> ToolResult:
    return ToolResult(text=f"Error: {error}", details={"error": str(error)}, is_error=True)


def create_read_file(ctx: ToolContext) -> Tool:
    workspace = ctx.workspace_dir or Path.cwd()

    def read_file(path: str, offset: int | None = None, limit: int | None = None) -> ToolResult:
        try:
            content = _resolve(workspace, path).read_text("utf-8")
        except (OSError, UnicodeDecodeError, WorkspaceEscapeError) as error:
            return _error(error)
        lines = content.split("\n")
        start = max(0, (offset or 1) - 1)
        end = start + (limit or DEFAULT_READ_LIMIT)
        return ToolResult(
            text="\n".join(lines[start:end]),
            details={"path": path, "totalLines": len(lines)},
        )

    return Tool(
        name="read_file",
        label="Read File",
        description="Read the contents of a file. Use offset/limit for large files.",
        parameters=object_schema(
            {
                "path": {"type": "string", "description": "File path relative to the workspace"},
                "offset": {"type": "integer", "description": "Start line (1-indexed)"},
                "limit": {
                    "type": "integer",
                    "description": f"Max lines (default: {DEFAULT_READ_LIMIT})",
                },
            },
            ["path"],
        ),
        handler=read_file,
    )


def create_write_file(ctx: ToolContext) -> Tool:
    workspace = ctx.workspace_dir or Path.cwd()

    def write_file(path: str, content: str) -> ToolResult:
        try:
            target = _resolve(workspace, path)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, "utf-8")
        except (OSError, WorkspaceEscapeError) as error:
            return _error(error)
        size = len(content.encode("utf-8"))
        return ToolResult(
            text=f"Wrote {size} bytes to {path}",
            details={"path": path, "size": size},
        )

    return Tool(
        name="write_file",
        label="Write File",
        description="Write content to a file. Creates parent directories as needed.",
        parameters=object_schema(
            {
                "path": {"type": "string", "description": "File path relative to the workspace"},
                "content": {"type": "string", "description": "File content to write"},
            },
            ["path", "content"],
        ),
        handler=write_file,
    )


def create_list_files(ctx: ToolContext) -> Tool:
    workspace = ctx.workspace_dir or Path.cwd()

    def list_files(path: str | None = None) -> ToolResult:
        try:
            directory = _resolve(workspace, path or ".")
        except WorkspaceEscapeError as error:
            return _error(error)
        if not directory.is_dir():
            return _error(NotADirectoryError(f"Not a directory: {path}"))

        root = workspace.resolve()
        found: list[str] = []
        for current, dirnames, filenames in os.walk(directory):
            dirnames.sort()
            for filename in sorted(filenames):
                found.append(str((Path(current) / filename).relative_to(root)))
                if len(found) >= LIST_FILES_LIMIT:
                    break
            if len(found) >= LIST_FILES_LIMIT:
                break
        return ToolResult(text="\n".join(found) or "(empty)", details={"files": found})

    return Tool(
        name="list_files",
        label="List Files",
        description=f"List files in the workspace. Shows up to {LIST_FILES_LIMIT} files.",
        parameters=object_schema(
            {"path": {"type": "string", "description": "Subdirectory to list (default: root)"}},
            [],
        ),
        handler=list_files,
    )
