"""Keyword bookmark pipeline: tag -> ordered, favicon-enriched engines.

Each call builds a fresh PipelineRun; nothing is cached between runs since
the user may have edited their keyword bookmarks in the meantime.
"""
import sys
from enum import Enum
from typing import List

from context_search.assembler import assemble
from context_search.engines import BookmarkEngine
from context_search.favicons import FaviconEnricher
from context_search.keyword_resolver import KeywordBookmarkResolver
from context_search.places_store import BookmarkRepository


class PipelineState(Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    ENRICHING = "enriching"
    READY = "ready"


_TRANSITIONS = {
    PipelineState.IDLE: (PipelineState.RESOLVING, PipelineState.READY),
    PipelineState.RESOLVING: (PipelineState.ENRICHING,),
    PipelineState.ENRICHING: (PipelineState.READY,),
    PipelineState.READY: (),
}


class PipelineRun:
    """A single, one-shot run of the pipeline."""

    def __init__(self, repository: BookmarkRepository):
        self.repository = repository
        self.state = PipelineState.IDLE
        self.results: List[BookmarkEngine] = []

    def _advance(self, state: PipelineState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid pipeline transition: {self.state.value} -> {state.value}")
        self.state = state

    async def run(self, tag: str) -> List[BookmarkEngine]:
        """Resolve, enrich and sort the keyword bookmark engines for ``tag``.

        Raises:
            RuntimeError: If this run was already started
        """
        if not tag:
            # Feature disabled.
            self._advance(PipelineState.READY)
            return self.results

        self._advance(PipelineState.RESOLVING)
        candidates = await KeywordBookmarkResolver(self.repository).get_candidates(tag)

        self._advance(PipelineState.ENRICHING)
        enriched = await FaviconEnricher(self.repository).enrich(candidates)

        self.results = assemble(enriched)
        self._advance(PipelineState.READY)

        print(
            f"[Pipeline] Tag {tag!r}: {len(self.results)} keyword bookmark engine(s)",
            file=sys.stderr,
        )
        return self.results


async def resolve_pipeline(tag: str, repository: BookmarkRepository) -> List[BookmarkEngine]:
    """Get the sorted keyword bookmark engines for ``tag``.

    Args:
        tag: Tag marking bookmarks for search use; empty disables the feature
        repository: Bookmark store to read from

    Returns:
        Engines sorted by title, each with a favicon
    """
    return await PipelineRun(repository).run(tag)
