"""Resolve tagged keyword bookmarks into search engine candidates.

Flow for one tag:
  1. tag -> tagged URIs
  2. per URI, concurrently: keyword record -> template check -> bookmark id
     -> title and description
  3. whatever survived becomes a BookmarkEngine (favicon filled in later)

A failure while resolving one URI drops that URI only.
"""
import asyncio
import sys
from typing import List, Optional
from urllib.parse import unquote

from context_search.engines import BookmarkEngine
from context_search.places_store import (
    DESCRIPTION_ANNO,
    BookmarkRepository,
    RepositoryError,
)
from context_search.templates import SearchTemplate


def decode_post_data(post_data: Optional[str]) -> Optional[str]:
    """Decode a stored (percent-encoded) POST body template."""
    if not post_data:
        return None
    return unquote(post_data)


class KeywordBookmarkResolver:
    """Builds candidate bookmark engines from a bookmark repository."""

    def __init__(self, repository: BookmarkRepository):
        self.repository = repository

    async def get_candidates(self, tag: str) -> List[BookmarkEngine]:
        """Get the keyword bookmark search templates tagged with ``tag``.

        Args:
            tag: Tag selecting the bookmarks to use

        Returns:
            Candidates in tagging order, without favicons
        """
        if not tag:
            return []

        try:
            uris = await self.repository.get_uris_for_tag(tag)
        except Exception as e:
            print(f"[KeywordResolver] Could not list URIs for tag {tag!r}: {e}", file=sys.stderr)
            return []

        results = await asyncio.gather(*(self._resolve_uri(uri) for uri in uris))

        return [candidate for candidate in results if candidate is not None]

    async def _resolve_uri(self, uri: str) -> Optional[BookmarkEngine]:
        try:
            return await self._build_candidate(uri)
        except RepositoryError as e:
            print(f"[KeywordResolver] Lookup failed for {uri}: {e}", file=sys.stderr)
            return None
        except Exception as e:
            print(f"[KeywordResolver] Error resolving {uri}: {e}", file=sys.stderr)
            return None

    async def _build_candidate(self, uri: str) -> Optional[BookmarkEngine]:
        record = await self.repository.fetch_keyword(uri)
        if record is None:
            return None

        template = SearchTemplate(record.url, decode_post_data(record.post_data))

        # Plain keyword shortcuts have nowhere to put the search terms.
        if not template.is_search_template:
            return None

        bookmark_id = await self._select_bookmark_id(record.url)
        if bookmark_id is None:
            return None

        title = await self.repository.get_item_title(bookmark_id)
        description = await self.repository.get_item_annotation(bookmark_id, DESCRIPTION_ANNO)

        return BookmarkEngine(
            bookmark_id=bookmark_id,
            title=title,
            keyword=record.keyword,
            template=template,
            description=description or "",
        )

    async def _select_bookmark_id(self, url: str) -> Optional[int]:
        """Pick the bookmark a keyword belongs to.

        Nothing links a keyword to one particular bookmark of its URL, so
        when the URL is bookmarked more than once the lowest id wins.
        """
        items = await self.repository.get_bookmark_ids_for_uri(url)
        bookmark_ids = [item.id for item in items if item.is_bookmark]

        if not bookmark_ids:
            return None

        return min(bookmark_ids)
