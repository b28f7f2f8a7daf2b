"""Semantic indexing and impact candidate search."""

from changescope.rag.candidates import ImpactCandidateFinder
from changescope.rag.identifiers import IdentifierExtractor
from changescope.rag.indexer import IndexStats, SemanticIndexer
from changescope.rag.vector_store import SemanticIndex

__all__ = [
    "IdentifierExtractor",
    "ImpactCandidateFinder",
    "IndexStats",
    "SemanticIndex",
    "SemanticIndexer",
]
