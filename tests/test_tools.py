"""Tests for agent tools and the tool registry."""

from __future__ import annotations

import pytest

from changescope.llm.base import ToolCall
from changescope.models import ChunkMetadata, DocumentChunk
from changescope.rag.vector_store import SemanticIndex
from changescope.tools.definitions import CodeAnalysisTools, format_size, get_all_tools
from changescope.tools.registry import ToolRegistry
from changescope.tools.requests import (
    REQUEST_TYPES,
    GetFileInfo,
    ListFiles,
    ReadFile,
    SearchCode,
    SearchSimilarCode,
    definition_for,
    parse_tool_call,
)

from conftest import InMemoryRepository, keyword_vector, tool_call


class KeywordEmbedder:
    async def embed_one(self, text: str) -> list[float]:
        return keyword_vector(text)


@pytest.fixture
def tools(memory_repo: InMemoryRepository) -> CodeAnalysisTools:
    return CodeAnalysisTools(memory_repo, "head")


@pytest.fixture
def index(sample_sources) -> SemanticIndex:
    index = SemanticIndex(embedder=KeywordEmbedder())
    docs = [
        DocumentChunk(text=content, metadata=ChunkMetadata(path=path))
        for path, content in sample_sources.items()
    ]
    index.add([keyword_vector(d.text) for d in docs], docs)
    return index


class TestRequests:
    def test_parse_valid_call(self):
        request = parse_tool_call(tool_call("read_file", path="a.ts", start_line=3))
        assert isinstance(request, ReadFile)
        assert request.path == "a.ts"
        assert request.start_line == 3
        assert request.end_line == 0

    def test_defaults(self):
        assert parse_tool_call(tool_call("search_code", pattern="x")).max_results == 10
        assert parse_tool_call(tool_call("search_similar_code", query="x")).top_k == 5
        assert parse_tool_call(tool_call("list_files")).directory == ""

    def test_unknown_tool_rejected(self):
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            parse_tool_call(tool_call("run_command", command="rm -rf /"))

    def test_definitions_hide_discriminator(self):
        defn = definition_for(SearchCode)
        assert defn.name == "search_code"
        assert defn.description
        assert "tool" not in defn.parameters["properties"]
        assert defn.parameters["required"] == ["pattern"]
        assert defn.parameters["properties"]["max_results"]["default"] == 10

    def test_every_request_has_a_definition(self):
        names = [definition_for(t).name for t in REQUEST_TYPES]
        assert names == [
            "read_file", "list_files", "search_code", "get_file_info", "search_similar_code",
        ]


class TestReadFile:
    def test_numbered_lines(self, tools: CodeAnalysisTools):
        output = tools.read_file(ReadFile(path="src/logger.ts"))
        assert output.startswith("File: src/logger.ts (4 lines)")
        assert "   1 | export function logger(message) {" in output

    def test_line_range(self, tools: CodeAnalysisTools):
        output = tools.read_file(ReadFile(path="src/user-service.ts", start_line=5, end_line=5))
        assert "(lines 5-5)" in output
        assert "   5 |     return this.repo.findMany(filter);" in output
        assert "   4 |" not in output

    def test_truncates_long_files(self):
        repo = InMemoryRepository({"big.py": "\n".join(f"x = {i}" for i in range(600))})
        output = CodeAnalysisTools(repo, "head").read_file(ReadFile(path="big.py"))
        assert "showing first 500" in output
        assert " 500 | x = 499" in output
        assert " 501 |" not in output
        assert "(100 more lines)" in output

    def test_missing_file(self, tools: CodeAnalysisTools):
        from changescope.exceptions import ToolExecutionError

        with pytest.raises(ToolExecutionError, match="File not found"):
            tools.read_file(ReadFile(path="nope.ts"))

    def test_contents_are_memoized(self, tools: CodeAnalysisTools, memory_repo):
        tools.read_file(ReadFile(path="src/logger.ts"))
        tools.read_file(ReadFile(path="src/logger.ts", start_line=1, end_line=2))
        assert memory_repo.content_reads.count("src/logger.ts") == 1

        tools.clear_cache()
        tools.read_file(ReadFile(path="src/logger.ts"))
        assert memory_repo.content_reads.count("src/logger.ts") == 2


class TestListFiles:
    def test_root_lists_dirs_first(self, tools: CodeAnalysisTools):
        output = tools.list_files(ListFiles())
        lines = output.splitlines()
        assert lines[0] == "Directory: (root) (2 entries)"
        assert lines[2] == "d src/"
        assert lines[3].startswith("f README.md")

    def test_direct_children_only(self, tools: CodeAnalysisTools):
        output = tools.list_files(ListFiles(directory="src/"))
        assert "f base-repository.ts" in output
        assert "f user-service.ts" in output
        assert "README.md" not in output

    def test_tree_is_memoized(self, tools: CodeAnalysisTools, memory_repo):
        tools.list_files(ListFiles())
        tools.list_files(ListFiles(directory="src"))
        tools.get_file_info(GetFileInfo(path="README.md"))
        assert memory_repo.tree_reads == 1

    def test_missing_directory(self, tools: CodeAnalysisTools):
        from changescope.exceptions import ToolExecutionError

        with pytest.raises(ToolExecutionError):
            tools.list_files(ListFiles(directory="nope"))


class TestSearchCode:
    def test_case_insensitive(self, tools: CodeAnalysisTools):
        output = tools.search_code(SearchCode(pattern="FINDMANY"))
        assert "src/base-repository.ts:2:" in output
        assert "src/user-service.ts:5: return this.repo.findMany(filter);" in output

    def test_file_suffix(self, tools: CodeAnalysisTools):
        output = tools.search_code(SearchCode(pattern="sample", file_suffix=".md"))
        assert "README.md" in output
        assert ".ts:" not in output

    def test_max_results(self, tools: CodeAnalysisTools):
        output = tools.search_code(SearchCode(pattern="filter", max_results=2))
        assert output.count("\n") == 3
        assert "showing first 2" in output

    def test_no_match(self, tools: CodeAnalysisTools):
        assert tools.search_code(SearchCode(pattern="zzz_nothing")).startswith("No matches")

    def test_invalid_regex(self, tools: CodeAnalysisTools):
        from changescope.exceptions import ToolExecutionError

        with pytest.raises(ToolExecutionError, match="Invalid regular expression"):
            tools.search_code(SearchCode(pattern="("))


class TestFileInfo:
    def test_file(self, tools: CodeAnalysisTools):
        output = tools.get_file_info(GetFileInfo(path="README.md"))
        assert "Type: file" in output
        assert "Size: " in output
        assert "SHA: " in output

    def test_directory(self, tools: CodeAnalysisTools):
        assert "Type: directory" in tools.get_file_info(GetFileInfo(path="src"))

    def test_format_size(self):
        assert format_size(512) == "512 B"
        assert format_size(2048) == "2.0 KB"
        assert format_size(3 * 1024 * 1024) == "3.0 MB"


class TestSearchSimilarCode:
    @pytest.mark.asyncio
    async def test_results(self, memory_repo, index: SemanticIndex):
        tools = CodeAnalysisTools(memory_repo, "head", index)
        output = await tools.search_similar_code(SearchSimilarCode(query="findMany", top_k=2))
        assert "(2 found)" in output
        assert "src/user-service.ts" in output
        assert "src/base-repository.ts" in output

    @pytest.mark.asyncio
    async def test_preview_is_truncated(self, memory_repo):
        index = SemanticIndex(embedder=KeywordEmbedder())
        doc = DocumentChunk(text="user " * 200, metadata=ChunkMetadata(path="long.ts"))
        index.add([keyword_vector(doc.text)], [doc])
        output = await CodeAnalysisTools(memory_repo, "head", index).search_similar_code(
            SearchSimilarCode(query="user")
        )
        assert "... (truncated)" in output

    @pytest.mark.asyncio
    async def test_without_index(self, tools: CodeAnalysisTools):
        from changescope.exceptions import ToolExecutionError

        with pytest.raises(ToolExecutionError):
            await tools.search_similar_code(SearchSimilarCode(query="x"))


class TestToolRegistry:
    def test_registry_requires_every_handler(self, tools: CodeAnalysisTools):
        with pytest.raises(ValueError, match="SearchSimilarCode"):
            ToolRegistry({
                ReadFile: tools.read_file,
                ListFiles: tools.list_files,
                SearchCode: tools.search_code,
                GetFileInfo: tools.get_file_info,
            })

    def test_similar_code_only_with_index(self, memory_repo, index: SemanticIndex):
        assert "search_similar_code" not in get_all_tools(memory_repo, "head").list_tools()
        assert "search_similar_code" not in get_all_tools(
            memory_repo, "head", SemanticIndex()
        ).list_tools()

        registry = get_all_tools(memory_repo, "head", index)
        assert "search_similar_code" in registry.list_tools()
        assert len(registry.get_definitions()) == 5

    @pytest.mark.asyncio
    async def test_execute(self, memory_repo):
        registry = get_all_tools(memory_repo, "head")
        result = await registry.execute(tool_call("read_file", "c7", path="README.md"))
        assert result.ok
        assert result.tool_call_id == "c7"
        assert result.name == "read_file"
        assert "# Sample" in result.content

    @pytest.mark.asyncio
    async def test_execute_unknown_tool(self, memory_repo):
        registry = get_all_tools(memory_repo, "head")
        result = await registry.execute(tool_call("nonexistent_tool"))
        assert result.is_error
        assert "Unknown tool" in result.content

    @pytest.mark.asyncio
    async def test_disabled_tool_is_unknown(self, memory_repo):
        registry = get_all_tools(memory_repo, "head")
        result = await registry.execute(tool_call("search_similar_code", query="x"))
        assert result.is_error
        assert "Unknown tool" in result.content

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, memory_repo):
        registry = get_all_tools(memory_repo, "head")
        result = await registry.execute(tool_call("read_file", start_line=1))
        assert result.is_error
        assert "Invalid arguments" in result.content
        assert "path" in result.content

    @pytest.mark.asyncio
    async def test_handler_failure_becomes_error_result(self, memory_repo):
        registry = get_all_tools(memory_repo, "head")
        result = await registry.execute(tool_call("read_file", path="missing.ts"))
        assert result.is_error
        assert result.content == "Error: File not found: missing.ts"

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_error_result(self, memory_repo):
        def explode(path, ref):
            raise RuntimeError("disk on fire")

        memory_repo.get_file_content = explode
        registry = get_all_tools(memory_repo, "head")
        result = await registry.execute(ToolCall(id="x", name="read_file", arguments={"path": "a"}))
        assert result.is_error
        assert "disk on fire" in result.content
