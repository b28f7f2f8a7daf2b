"""The closed set of tool requests the agent may issue.

Each tool is one pydantic model tagged by its `tool` field. A `ToolCall`
coming back from the model is validated into exactly one of these variants
before anything runs, so malformed arguments never reach a handler.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from changescope.llm.base import ToolCall, ToolDefinition


class ReadFile(BaseModel):
    """Read a file from the repository at the analyzed revision. Lines are numbered; long files are truncated unless a line range is given."""

    tool: Literal["read_file"] = "read_file"
    path: str = Field(description="Repository-relative path to the file")
    start_line: int = Field(0, ge=0, description="First line to show (1-indexed, 0 for start of file)")
    end_line: int = Field(0, ge=0, description="Last line to show (0 for end of file)")


class ListFiles(BaseModel):
    """List the direct children of a directory in the repository."""

    tool: Literal["list_files"] = "list_files"
    directory: str = Field("", description="Directory to list (empty for the repository root)")


class SearchCode(BaseModel):
    """Search every file in the repository for lines matching a case-insensitive regular expression."""

    tool: Literal["search_code"] = "search_code"
    pattern: str = Field(description="Regular expression to search for")
    file_suffix: str = Field("", description="Only search files whose path ends with this (e.g. '.py')")
    max_results: int = Field(10, ge=1, le=100, description="Maximum number of matching lines")


class GetFileInfo(BaseModel):
    """Show the type, size and object hash of a path in the repository."""

    tool: Literal["get_file_info"] = "get_file_info"
    path: str = Field(description="Repository-relative path")


class SearchSimilarCode(BaseModel):
    """Find code semantically similar to a natural-language query, e.g. 'authentication logic' or 'database queries'."""

    tool: Literal["search_similar_code"] = "search_similar_code"
    query: str = Field(description="What to look for, described in natural language")
    top_k: int = Field(5, ge=1, le=20, description="Maximum number of results")


ToolRequest = Annotated[
    Union[ReadFile, ListFiles, SearchCode, GetFileInfo, SearchSimilarCode],
    Field(discriminator="tool"),
]

REQUEST_TYPES: tuple[type[BaseModel], ...] = (
    ReadFile,
    ListFiles,
    SearchCode,
    GetFileInfo,
    SearchSimilarCode,
)

_adapter: TypeAdapter = TypeAdapter(ToolRequest)


def tool_name(request_type: type[BaseModel]) -> str:
    return request_type.model_fields["tool"].default


def parse_tool_call(call: ToolCall) -> BaseModel:
    """Validate a model-issued call into its request variant.

    Raises:
        pydantic.ValidationError: If the name is unknown or the arguments
            do not fit the variant's schema.
    """
    arguments = {k: v for k, v in call.arguments.items() if k != "tool"}
    return _adapter.validate_python({**arguments, "tool": call.name})


def definition_for(request_type: type[BaseModel]) -> ToolDefinition:
    """Build the JSON-schema tool definition sent to the model."""
    schema = request_type.model_json_schema()
    properties: dict[str, Any] = {}
    for name, prop in schema.get("properties", {}).items():
        if name == "tool":
            continue
        properties[name] = {k: v for k, v in prop.items() if k != "title"}

    parameters: dict[str, Any] = {"type": "object", "properties": properties}
    required = [r for r in schema.get("required", []) if r != "tool"]
    if required:
        parameters["required"] = required

    return ToolDefinition(
        name=tool_name(request_type),
        description=(request_type.__doc__ or "").strip(),
        parameters=parameters,
    )
