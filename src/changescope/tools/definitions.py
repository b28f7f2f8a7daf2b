"""Built-in tool implementations for the impact analysis agent."""

from __future__ import annotations

import logging
import re

from changescope.exceptions import RepositoryError, ToolExecutionError
from changescope.rag.vector_store import SemanticIndex
from changescope.repository import SourceRepository, TreeEntry
from changescope.tools.registry import ToolRegistry
from changescope.tools.requests import (
    GetFileInfo,
    ListFiles,
    ReadFile,
    SearchCode,
    SearchSimilarCode,
)

logger = logging.getLogger(__name__)

MAX_READ_LINES = 500
PREVIEW_CHARS = 300


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def _numbered(lines: list[str], first: int) -> str:
    return "\n".join(f"{i + first:4d} | {line}" for i, line in enumerate(lines))


class CodeAnalysisTools:
    """Read-only tools over one revision of a repository.

    File contents and the repository tree are memoized for the lifetime of
    the instance, so one instance should serve exactly one agent run.
    """

    def __init__(
        self,
        repo: SourceRepository,
        ref: str,
        index: SemanticIndex | None = None,
    ) -> None:
        self.repo = repo
        self.ref = ref
        self.index = index
        self._files: dict[str, str] = {}
        self._tree: list[TreeEntry] | None = None

    def clear_cache(self) -> None:
        self._files.clear()
        self._tree = None

    def _content(self, path: str) -> str | None:
        if path not in self._files:
            content = self.repo.get_file_content(path, self.ref)
            if content is None:
                return None
            self._files[path] = content
        return self._files[path]

    def _entries(self) -> list[TreeEntry]:
        if self._tree is None:
            try:
                self._tree = self.repo.get_tree(self.ref)
            except RepositoryError as e:
                raise ToolExecutionError(f"Could not read the repository tree: {e}") from e
        return self._tree

    def read_file(self, request: ReadFile) -> str:
        """Read a file, optionally restricted to a line range."""
        path = request.path.strip().lstrip("/")
        content = self._content(path)
        if content is None:
            raise ToolExecutionError(f"File not found: {path}")

        lines = content.split("\n")
        if request.start_line or request.end_line:
            start = max(0, request.start_line - 1)
            end = min(len(lines), request.end_line) if request.end_line else len(lines)
            if start >= end:
                raise ToolExecutionError(
                    f"Empty line range {request.start_line}-{request.end_line} "
                    f"for {path} ({len(lines)} lines)"
                )
            return f"File: {path} (lines {start + 1}-{end})\n\n" + _numbered(lines[start:end], start + 1)

        if len(lines) > MAX_READ_LINES:
            return (
                f"File: {path} ({len(lines)} lines, showing first {MAX_READ_LINES})\n\n"
                + _numbered(lines[:MAX_READ_LINES], 1)
                + f"\n\n... ({len(lines) - MAX_READ_LINES} more lines)"
            )
        return f"File: {path} ({len(lines)} lines)\n\n" + _numbered(lines, 1)

    def list_files(self, request: ListFiles) -> str:
        """List the direct children of a directory, directories first."""
        directory = request.directory.strip("/")
        prefix = f"{directory}/" if directory else ""
        label = directory or "(root)"

        dirs = []
        files = []
        for entry in self._entries():
            if not entry.path.startswith(prefix):
                continue
            name = entry.path[len(prefix):]
            if not name or "/" in name:
                continue
            if entry.kind == "dir":
                dirs.append(f"d {name}/")
            else:
                size = f" ({format_size(entry.size)})" if entry.size else ""
                files.append(f"f {name}{size}")

        if not dirs and not files:
            raise ToolExecutionError(f"Directory not found or empty: {label}")

        header = f"Directory: {label} ({len(dirs) + len(files)} entries)\n"
        return "\n".join([header, *sorted(dirs), *sorted(files)])

    def search_code(self, request: SearchCode) -> str:
        """Search file contents line by line with a case-insensitive regex."""
        try:
            regex = re.compile(request.pattern, re.IGNORECASE)
        except re.error as e:
            raise ToolExecutionError(f"Invalid regular expression '{request.pattern}': {e}") from e

        results: list[str] = []
        for entry in self._entries():
            if len(results) >= request.max_results:
                break
            if entry.kind != "file":
                continue
            if request.file_suffix and not entry.path.endswith(request.file_suffix):
                continue
            content = self._content(entry.path)
            if not content:
                continue
            for number, line in enumerate(content.split("\n"), start=1):
                if regex.search(line):
                    results.append(f"{entry.path}:{number}: {line.strip()}")
                    if len(results) >= request.max_results:
                        break

        scope = f" (files ending in {request.file_suffix})" if request.file_suffix else ""
        if not results:
            return f"No matches for '{request.pattern}'{scope}"

        limited = f", showing first {request.max_results}" if len(results) >= request.max_results else ""
        header = f"Matches for '{request.pattern}'{scope} ({len(results)} found{limited})\n"
        return "\n".join([header, *results])

    def get_file_info(self, request: GetFileInfo) -> str:
        path = request.path.strip("/")
        for entry in self._entries():
            if entry.path == path:
                info = [f"Path: {path}", f"Type: {'directory' if entry.kind == 'dir' else 'file'}"]
                if entry.size is not None:
                    info.append(f"Size: {format_size(entry.size)}")
                if entry.sha:
                    info.append(f"SHA: {entry.sha}")
                return "\n".join(info)
        raise ToolExecutionError(f"File not found: {path}")

    async def search_similar_code(self, request: SearchSimilarCode) -> str:
        """Semantic search over the index built for this analysis."""
        if self.index is None:
            raise ToolExecutionError("Semantic search is not available for this analysis")

        documents = await self.index.search(request.query, request.top_k)
        if not documents:
            return f"No code related to '{request.query}' found"

        results = []
        for i, doc in enumerate(documents, start=1):
            text = doc.text
            if len(text) > PREVIEW_CHARS:
                text = text[:PREVIEW_CHARS] + "\n... (truncated)"
            results.append(f"[{i}] {doc.path or 'unknown'}\n{text}")

        header = f"Similar code for '{request.query}' ({len(documents)} found)\n\n"
        return header + "\n\n---\n\n".join(results)


def get_all_tools(
    repo: SourceRepository,
    ref: str,
    index: SemanticIndex | None = None,
) -> ToolRegistry:
    """Create a ToolRegistry over `repo` at `ref`.

    `search_similar_code` is only offered when a non-empty index is given.
    """
    tools = CodeAnalysisTools(repo, ref, index)
    handlers = {
        ReadFile: tools.read_file,
        ListFiles: tools.list_files,
        SearchCode: tools.search_code,
        GetFileInfo: tools.get_file_info,
        SearchSimilarCode: tools.search_similar_code,
    }
    disabled = () if index is not None and not index.is_empty else (SearchSimilarCode,)
    return ToolRegistry(handlers, disabled=disabled)
