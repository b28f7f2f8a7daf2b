"""Core data model shared by the indexing, search and agent layers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace

FILE_STATUSES = ("added", "modified", "removed", "renamed")
CHUNK_KINDS = ("content", "diff")


@dataclass
class ChangedFile:
    """A file touched by the change under analysis."""

    path: str
    status: str  # 'added', 'modified', 'removed', 'renamed'
    added_lines: int = 0
    removed_lines: int = 0
    total_changes: int = 0
    diff_text: str | None = None
    full_content: str | None = None
    previous_path: str | None = None  # For renames

    def __post_init__(self) -> None:
        if self.status not in FILE_STATUSES:
            raise ValueError(f"Unknown file status: {self.status!r}")
        if not self.total_changes:
            self.total_changes = self.added_lines + self.removed_lines

    @property
    def has_text(self) -> bool:
        return bool(self.diff_text or self.full_content)

    def as_source(self) -> SourceFile:
        return SourceFile(
            path=self.path,
            content=self.full_content or "",
            status=self.status,
            diff_text=self.diff_text,
        )


@dataclass
class SourceFile:
    """A file to be indexed for semantic search."""

    path: str
    content: str
    status: str = "unchanged"
    diff_text: str | None = None


@dataclass(frozen=True)
class ChunkMetadata:
    path: str = ""
    status: str = ""
    kind: str = "content"  # 'content' or 'diff'


@dataclass(frozen=True)
class DocumentChunk:
    """A bounded slice of a file, the unit of embedding and retrieval."""

    text: str
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)

    @property
    def path(self) -> str:
        return self.metadata.path

    @property
    def kind(self) -> str:
        return self.metadata.kind

    def with_source(self, path: str, status: str = "") -> DocumentChunk:
        """Return a copy of this chunk attributed to another file."""
        return DocumentChunk(
            text=self.text,
            metadata=replace(self.metadata, path=path, status=status),
        )


@dataclass
class Candidate:
    """A file that may be affected by the change."""

    path: str
    triggering_identifier: str
    rationale: str
    score: float | None = None
