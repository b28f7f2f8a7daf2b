"""Impact analysis pipeline: index, find candidates, verify with the agent.

Every stage degrades instead of failing. If indexing fails or semantic search
is off, the report says so and the agent works from the changed files alone,
without the similar-code tool. When a successful search finds no candidates
the agent is skipped. If the reasoning backend is down or missing, the
candidates are listed unverified.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from changescope.agent.loop import MAX_ITERATIONS, AgentResult, AgentStep, ToolInvocationAgent
from changescope.exceptions import BatchPipelineError, LLMError
from changescope.llm.base import LLMProvider
from changescope.models import Candidate, ChangedFile, SourceFile
from changescope.rag.candidates import ImpactCandidateFinder
from changescope.rag.indexer import IndexStats, SemanticIndexer
from changescope.report.renderer import (
    SEMANTIC_UNAVAILABLE_TEXT,
    render_candidate_summary,
    render_impact_report,
)
from changescope.repository import SourceRepository
from changescope.tools.definitions import get_all_tools

logger = logging.getLogger(__name__)


@dataclass
class ImpactReport:
    changed_files: list[ChangedFile]
    candidates: list[Candidate] = field(default_factory=list)
    analysis: str = ""
    notes: list[str] = field(default_factory=list)
    semantic_available: bool = True
    index_stats: IndexStats | None = None
    agent_result: AgentResult | None = None

    def render(self, title: str = "") -> str:
        stats = None
        if self.index_stats is not None:
            stats = {
                "files": self.index_stats.files,
                "chunks": self.index_stats.chunks,
                "cache_hits": self.index_stats.cache_hits,
                "cache_misses": self.index_stats.cache_misses,
            }
        return render_impact_report(
            self.changed_files,
            self.candidates,
            analysis=self.analysis,
            notes=self.notes,
            stats=stats,
            title=title,
        )


def merge_corpus(corpus: list[SourceFile], changed_files: list[ChangedFile]) -> list[SourceFile]:
    """The corpus with changed files swapped in, carrying their diffs.

    Removed files are dropped since they no longer exist at the head revision.
    """
    changed = {f.path: f for f in changed_files}
    merged = [f for f in corpus if f.path not in changed]
    for f in changed_files:
        if f.status != "removed" and f.full_content:
            merged.append(f.as_source())
    return merged


async def run_impact_analysis(
    changed_files: list[ChangedFile],
    repo: SourceRepository,
    ref: str,
    llm: LLMProvider | None = None,
    indexer: SemanticIndexer | None = None,
    corpus: list[SourceFile] | None = None,
    max_iterations: int = MAX_ITERATIONS,
    project_name: str = "",
    on_step: Callable[[AgentStep], None] | None = None,
) -> ImpactReport:
    """Run the full impact analysis pipeline for one change.

    Args:
        changed_files: Files touched by the change, with contents attached.
        repo: Repository the agent's tools read from.
        ref: Revision the tools read at (normally the change's head).
        llm: Reasoning backend. Without one the candidates are reported as is.
        indexer: Semantic indexer. Without one no candidates are searched
            and the agent runs on the changed files alone.
        corpus: Unchanged files to index alongside the changed ones.

    Returns:
        ImpactReport. Only unexpected errors propagate.
    """
    report = ImpactReport(changed_files=changed_files)
    if not changed_files:
        return report

    if indexer is None:
        report.semantic_available = False
        report.notes.append("Semantic search disabled.")
    else:
        files = merge_corpus(corpus or [], changed_files)
        try:
            report.index_stats = await indexer.index_files(files)
        except BatchPipelineError as e:
            logger.error("Indexing failed: %s", e)
            report.semantic_available = False
            report.notes.append(SEMANTIC_UNAVAILABLE_TEXT)
        else:
            finder = ImpactCandidateFinder(indexer.index)
            report.candidates = await finder.find_candidates(changed_files)
            logger.info("Found %d candidate(s)", len(report.candidates))

    if report.semantic_available and not report.candidates:
        return report
    if llm is None:
        if report.candidates:
            report.analysis = render_candidate_summary(report.candidates)
        return report

    index = indexer.index if report.semantic_available else None
    agent = ToolInvocationAgent(
        llm,
        get_all_tools(repo, ref, index),
        max_iterations=max_iterations,
        project_name=project_name,
        on_step=on_step,
    )
    try:
        result = await agent.analyze(changed_files, report.candidates)
    except LLMError as e:
        logger.error("Reasoning backend failed: %s", e)
        report.notes.append("Reasoning backend unavailable; candidates were not verified.")
        report.analysis = render_candidate_summary(report.candidates)
        return report

    report.agent_result = result
    report.analysis = result.answer
    return report
