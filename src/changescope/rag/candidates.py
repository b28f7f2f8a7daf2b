"""Find files that may be affected by a change via semantic proximity."""

from __future__ import annotations

import logging

from changescope.exceptions import EmbeddingError
from changescope.models import Candidate, ChangedFile
from changescope.rag.identifiers import Extractor, IdentifierExtractor
from changescope.rag.vector_store import SemanticIndex

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 7
MAX_FILES = 5
IDENTIFIERS_PER_FILE = 3
RESULTS_PER_IDENTIFIER = 2


class ImpactCandidateFinder:
    """Turn changed identifiers into a short list of nearby, unchanged files.

    For the largest changes, the most prominent identifiers are looked up in
    the semantic index; any other file whose chunks sit close to one of them
    becomes a candidate. Files that are part of the change itself are never
    returned.
    """

    def __init__(
        self,
        index: SemanticIndex,
        extractor: Extractor | None = None,
        max_candidates: int = MAX_CANDIDATES,
        max_files: int = MAX_FILES,
        identifiers_per_file: int = IDENTIFIERS_PER_FILE,
        results_per_identifier: int = RESULTS_PER_IDENTIFIER,
    ) -> None:
        self.index = index
        self.extractor = extractor or IdentifierExtractor()
        self.max_candidates = max_candidates
        self.max_files = max_files
        self.identifiers_per_file = identifiers_per_file
        self.results_per_identifier = results_per_identifier

    def select_files(self, changed_files: list[ChangedFile]) -> list[ChangedFile]:
        """Pick the files with the most changed lines that carry any text."""
        with_text = [f for f in changed_files if f.has_text]
        ranked = sorted(with_text, key=lambda f: f.total_changes, reverse=True)
        return ranked[: self.max_files]

    async def find_candidates(self, changed_files: list[ChangedFile]) -> list[Candidate]:
        """Return up to `max_candidates` files likely affected by the change."""
        candidates: list[Candidate] = []
        if self.index.is_empty:
            logger.warning("Semantic index is empty; no candidates can be found")
            return candidates

        changed_paths = {f.path for f in changed_files}
        recorded: set[str] = set()
        selected = self.select_files(changed_files)
        logger.info("Looking for impact candidates from %d changed file(s)", len(selected))

        for changed in selected:
            text = changed.diff_text or changed.full_content or ""
            identifiers = self.extractor.extract(text)[: self.identifiers_per_file]
            if not identifiers:
                continue
            logger.debug("%s: identifiers %s", changed.path, identifiers)

            for identifier in identifiers:
                try:
                    hits = await self.index.search_with_scores(
                        identifier, self.results_per_identifier
                    )
                except EmbeddingError as e:
                    logger.warning("Search for '%s' failed: %s", identifier, e)
                    continue

                for chunk, score in hits:
                    path = chunk.path
                    if not path or path in changed_paths or path in recorded:
                        continue
                    recorded.add(path)
                    candidates.append(
                        Candidate(
                            path=path,
                            triggering_identifier=identifier,
                            rationale=f"{identifier} from {changed.path} appears near this file",
                            score=score,
                        )
                    )
                    if len(candidates) >= self.max_candidates:
                        logger.info("Candidate limit reached (%d)", self.max_candidates)
                        return candidates

        logger.info("Found %d impact candidate(s)", len(candidates))
        return candidates
