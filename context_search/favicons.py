"""Favicon enrichment for bookmark engines."""
import asyncio
import base64
import sys
from dataclasses import replace
from typing import List, Optional

from context_search.config import get_config
from context_search.engines import BookmarkEngine
from context_search.places_store import BookmarkRepository, FaviconData


# Memoized default favicon reference, set on first use.
_default_favicon: Optional[str] = None


def get_default_favicon() -> str:
    """Get the icon shown for engines without a stored favicon.

    Returns:
        The configured default favicon URI
    """
    global _default_favicon

    if _default_favicon is None:
        _default_favicon = get_config().default_favicon

    return _default_favicon


def to_data_uri(favicon: FaviconData) -> str:
    """Encode favicon bytes as a ``data:`` URI."""
    encoded = base64.b64encode(favicon.data).decode("ascii")
    return f"data:{favicon.mime_type};base64,{encoded}"


class FaviconEnricher:
    """Attaches a favicon to every candidate engine."""

    def __init__(self, repository: BookmarkRepository):
        self.repository = repository

    async def enrich(self, candidates: List[BookmarkEngine]) -> List[BookmarkEngine]:
        """Fetch favicons for all candidates concurrently.

        Args:
            candidates: Engines to enrich

        Returns:
            The same engines, in the same order, each with ``favicon_url`` set
        """
        return list(await asyncio.gather(*(self._with_favicon(engine) for engine in candidates)))

    async def _with_favicon(self, engine: BookmarkEngine) -> BookmarkEngine:
        favicon_url = await self.resolve_favicon(engine.url_template)
        return replace(engine, favicon_url=favicon_url)

    async def resolve_favicon(self, url: str) -> str:
        """Get a displayable icon URI for a page, falling back to the default."""
        try:
            favicon = await self.repository.fetch_favicon_data(url)
        except Exception as e:
            print(f"[Favicons] Favicon lookup failed for {url}: {e}", file=sys.stderr)
            return get_default_favicon()

        if favicon.length == 0:
            return get_default_favicon()

        return to_data_uri(favicon)
