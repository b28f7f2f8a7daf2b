#!/usr/bin/env python3
"""Demo: Using ChangeScope as a Python library.

This shows how to run an impact analysis programmatically, not just through
the CLI. It expects an Ollama (or other OpenAI-compatible) server serving
both an embedding model and a chat model.
"""

import asyncio
from pathlib import Path

from changescope.config import RAGConfig
from changescope.embeddings import (
    BatchEmbeddingPipeline,
    EmbeddingCache,
    EmbeddingClientPool,
)
from changescope.impact import run_impact_analysis
from changescope.llm.openai_provider import OpenAIProvider
from changescope.rag.indexer import SemanticIndexer
from changescope.repository import GitRepository, collect_changed_files, collect_corpus

OLLAMA_URL = "http://localhost:11434/v1"


async def main():
    # Point at any git repository
    project_root = Path(".")
    repo = GitRepository(project_root)

    # 1. What changed?
    changed = collect_changed_files(repo, "HEAD~1", "HEAD")
    print(f"Changed files: {len(changed)}")
    for f in changed:
        print(f"  {f.status:8} {f.path} (+{f.added_lines}/-{f.removed_lines})")

    # 2. Build the semantic index, reusing cached embeddings
    pool = EmbeddingClientPool.from_urls([OLLAMA_URL], model="nomic-embed-text")
    indexer = SemanticIndexer(
        pool,
        EmbeddingCache(project_root / ".cache" / "embeddings"),
        pipeline=BatchEmbeddingPipeline(pool, batch_size=20, dispatch_delay=0.2),
    )
    corpus = collect_corpus(repo, "HEAD", RAGConfig())

    # 3. Find candidates and let the agent verify them
    report = await run_impact_analysis(
        changed,
        repo=repo,
        ref="HEAD",
        llm=OpenAIProvider("llama3.1:latest", base_url=OLLAMA_URL),
        indexer=indexer,
        corpus=corpus,
    )

    if report.index_stats:
        stats = report.index_stats
        print(f"\nIndexed {stats.chunks} chunks ({stats.hit_rate:.0%} from cache)")

    print("\n--- Candidates ---")
    for c in report.candidates:
        print(f"  {c.path}  <- {c.triggering_identifier}")

    print("\n--- Report ---")
    print(report.render(title="HEAD~1...HEAD"))


if __name__ == "__main__":
    asyncio.run(main())
