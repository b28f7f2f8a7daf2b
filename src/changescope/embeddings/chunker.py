"""Recursive separator-based text chunking.

Text is split on the coarsest separator that occurs in it (paragraphs, then
lines, then words, then characters). Pieces small enough are greedily merged
back into chunks of at most ``chunk_size`` characters, and consecutive chunks
share up to ``chunk_overlap`` characters of trailing context.
"""

from __future__ import annotations

from changescope.models import ChunkMetadata, DocumentChunk

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200
DEFAULT_SEPARATORS = ("\n\n", "\n", " ", "")


class TextChunker:
    """Split raw text into overlapping, bounded-size segments."""

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        separators: tuple[str, ...] = DEFAULT_SEPARATORS,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if chunk_overlap < 0:
            raise ValueError("chunk_overlap must be >= 0")
        if chunk_overlap >= chunk_size:
            raise ValueError("chunk_overlap must be less than chunk_size")
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.separators = separators

    def split(self, text: str) -> list[str]:
        """Split text into chunk strings."""
        return self._split(text, list(self.separators))

    def create_chunks(
        self, text: str, path: str = "", status: str = ""
    ) -> list[DocumentChunk]:
        """Split text into content chunks attributed to `path`."""
        metadata = ChunkMetadata(path=path, status=status, kind="content")
        return [DocumentChunk(text=piece, metadata=metadata) for piece in self.split(text)]

    def _split(self, text: str, separators: list[str]) -> list[str]:
        separator = separators[-1]
        remaining: list[str] = []
        for i, candidate in enumerate(separators):
            if candidate == "":
                separator = candidate
                break
            if candidate in text:
                separator = candidate
                remaining = separators[i + 1:]
                break

        pieces = text.split(separator) if separator else list(text)

        chunks: list[str] = []
        small: list[str] = []
        for piece in pieces:
            if len(piece) < self.chunk_size:
                small.append(piece)
                continue
            if small:
                chunks.extend(self._merge(small, separator))
                small = []
            if remaining:
                chunks.extend(self._split(piece, remaining))
            else:
                chunks.append(piece)
        if small:
            chunks.extend(self._merge(small, separator))
        return chunks

    def _merge(self, pieces: list[str], separator: str) -> list[str]:
        sep_len = len(separator)
        merged: list[str] = []
        window: list[str] = []
        total = 0

        for piece in pieces:
            length = len(piece)
            if total + length + (sep_len if window else 0) > self.chunk_size:
                if window:
                    joined = _join(window, separator)
                    if joined is not None:
                        merged.append(joined)
                    # Drop from the front until only the overlap remains
                    while total > self.chunk_overlap or (
                        total + length + (sep_len if window else 0) > self.chunk_size
                        and total > 0
                    ):
                        total -= len(window[0]) + (sep_len if len(window) > 1 else 0)
                        window.pop(0)
            window.append(piece)
            total += length + (sep_len if len(window) > 1 else 0)

        joined = _join(window, separator)
        if joined is not None:
            merged.append(joined)
        return merged


def _join(pieces: list[str], separator: str) -> str | None:
    text = separator.join(pieces).strip()
    return text or None
