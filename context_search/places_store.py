"""Read-only access to the browser's places (bookmarks) databases."""
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional, Protocol, Tuple

import aiosqlite


TYPE_BOOKMARK = 1
TYPE_FOLDER = 2
TYPE_SEPARATOR = 3

TAGS_ROOT_GUID = "tags________"
DESCRIPTION_ANNO = "bookmarkProperties/description"

# Prefer icons at least this wide; smaller ones are only used as a fallback.
MIN_ICON_WIDTH = 16


class RepositoryError(Exception):
    """A lookup against the bookmark store failed."""


class FaviconFetchError(RepositoryError):
    """No usable favicon could be read for a page."""


@dataclass(frozen=True)
class KeywordRecord:
    """A keyword entry as stored; ``post_data`` is still percent-encoded."""
    keyword: str
    url: str
    post_data: Optional[str] = None


@dataclass(frozen=True)
class BookmarkItem:
    """A bookmarks tree entry pointing at a URI."""
    id: int
    item_type: int

    @property
    def is_bookmark(self) -> bool:
        return self.item_type == TYPE_BOOKMARK


@dataclass(frozen=True)
class FaviconData:
    """Raw favicon bytes with their MIME type."""
    mime_type: str
    data: bytes

    @property
    def length(self) -> int:
        return len(self.data)


class BookmarkRepository(Protocol):
    """Protocol for the read-only bookmark lookups the pipeline needs."""

    async def get_uris_for_tag(self, tag: str) -> List[str]:
        ...

    async def fetch_keyword(self, uri: str) -> Optional[KeywordRecord]:
        ...

    async def get_bookmark_ids_for_uri(self, uri: str) -> List[BookmarkItem]:
        ...

    async def get_item_title(self, item_id: int) -> str:
        ...

    async def get_item_annotation(self, item_id: int, name: str) -> Optional[str]:
        ...

    async def fetch_favicon_data(self, url: str) -> FaviconData:
        ...


def get_firefox_profiles_root() -> Path:
    """Get the directory holding Firefox profiles for this platform.

    Returns:
        Path to the profiles directory
    """
    home = Path.home()
    if os.name == "nt":  # Windows
        return home / "AppData" / "Roaming" / "Mozilla" / "Firefox" / "Profiles"
    elif sys.platform == "darwin":  # macOS
        return home / "Library" / "Application Support" / "Firefox" / "Profiles"
    elif os.name == "posix":  # Linux
        return home / ".mozilla" / "firefox"
    else:
        raise OSError(f"Unsupported operating system: {os.name}")


def find_default_profile(profiles_root: Optional[Path] = None) -> Optional[Path]:
    """Find the default Firefox profile directory.

    Args:
        profiles_root: Directory to look in. Defaults to the platform location.

    Returns:
        The ``*.default-release`` profile if present, else the first
        ``*.default*`` profile holding a places database, else None
    """
    if profiles_root is None:
        profiles_root = get_firefox_profiles_root()

    if not profiles_root.is_dir():
        return None

    for pattern in ("*.default-release", "*.default*"):
        for candidate in sorted(profiles_root.glob(pattern)):
            if (candidate / "places.sqlite").exists():
                return candidate

    return None


def resolve_database_paths(config: Any) -> Tuple[Optional[Path], Optional[Path]]:
    """Work out the places and favicons database paths from config.

    Explicit database paths win over the profile directory.
    """
    profile_dir = config.profile_dir or find_default_profile()

    places = config.places_db_path
    if places is None and profile_dir is not None:
        places = profile_dir / "places.sqlite"

    favicons = config.favicons_db_path
    if favicons is None and profile_dir is not None:
        favicons = profile_dir / "favicons.sqlite"

    return places, favicons


def sniff_image_mime_type(data: bytes) -> str:
    """Guess an icon's MIME type from its leading bytes."""
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith(b"\x00\x00\x01\x00"):
        return "image/x-icon"
    if data.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    head = data[:256].lstrip().lower()
    if head.startswith(b"<svg") or (head.startswith(b"<?xml") and b"<svg" in head):
        return "image/svg+xml"
    return "image/png"


async def _connect_read_only(db_path: Path) -> aiosqlite.Connection:
    if not db_path.exists():
        raise RepositoryError(f"Database not found at {db_path}")

    try:
        connection = await aiosqlite.connect(f"{db_path.resolve().as_uri()}?mode=ro", uri=True)
    except aiosqlite.Error as e:
        raise RepositoryError(f"Could not open {db_path}: {e}") from e

    connection.row_factory = aiosqlite.Row
    return connection


class PlacesStore:
    """Async, read-only view of a places.sqlite / favicons.sqlite pair.

    Tags are folders below the ``tags________`` root; a URI is tagged when a
    bookmark pointing at it lives in that tag's folder.
    """

    def __init__(self, places_db_path: Path, favicons_db_path: Optional[Path] = None):
        """Initialize the store.

        Args:
            places_db_path: Path to places.sqlite
            favicons_db_path: Path to favicons.sqlite. Without it every
                favicon lookup fails with FaviconFetchError.
        """
        self.places_db_path = places_db_path
        self.favicons_db_path = favicons_db_path
        self._places: Optional[aiosqlite.Connection] = None
        self._favicons: Optional[aiosqlite.Connection] = None
        self._has_item_annos = False

    async def initialize(self) -> None:
        """Open the databases."""
        self._places = await _connect_read_only(self.places_db_path)

        rows = await self._fetchall(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'moz_items_annos'"
        )
        self._has_item_annos = bool(rows)

        if self.favicons_db_path is not None and self.favicons_db_path.exists():
            self._favicons = await _connect_read_only(self.favicons_db_path)
        elif self.favicons_db_path is not None:
            print(
                f"[PlacesStore] Favicons database not found at {self.favicons_db_path}",
                file=sys.stderr,
            )

    async def close(self) -> None:
        """Close the database connections."""
        if self._places:
            await self._places.close()
            self._places = None
        if self._favicons:
            await self._favicons.close()
            self._favicons = None

    async def __aenter__(self) -> "PlacesStore":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _fetchall(
        self,
        sql: str,
        params: Iterable[Any] = (),
        connection: Optional[aiosqlite.Connection] = None,
    ) -> List[aiosqlite.Row]:
        if connection is None:
            connection = self._places
        if connection is None:
            raise RuntimeError("Database not initialized. Call initialize() first.")

        try:
            cursor = await connection.execute(sql, tuple(params))
            rows = await cursor.fetchall()
            await cursor.close()
        except aiosqlite.Error as e:
            raise RepositoryError(str(e)) from e

        return list(rows)

    async def get_uris_for_tag(self, tag: str) -> List[str]:
        """Get the URIs carrying a tag, in the order they were tagged.

        Args:
            tag: Tag name (matched case-insensitively)

        Returns:
            List of URL strings
        """
        rows = await self._fetchall("""
            SELECT h.url AS url
            FROM moz_bookmarks tag
            JOIN moz_bookmarks root ON root.id = tag.parent
            JOIN moz_bookmarks b ON b.parent = tag.id AND b.type = ?
            JOIN moz_places h ON h.id = b.fk
            WHERE root.guid = ? AND tag.type = ? AND tag.title = ? COLLATE NOCASE
            GROUP BY h.url
            ORDER BY MIN(b.id)
        """, (TYPE_BOOKMARK, TAGS_ROOT_GUID, TYPE_FOLDER, tag))

        return [row["url"] for row in rows]

    async def fetch_keyword(self, uri: str) -> Optional[KeywordRecord]:
        """Get the keyword attached to a URI, if any.

        Returns:
            The first keyword record for the URI or None
        """
        rows = await self._fetchall("""
            SELECT k.keyword AS keyword, h.url AS url, k.post_data AS post_data
            FROM moz_keywords k
            JOIN moz_places h ON h.id = k.place_id
            WHERE h.url = ?
            ORDER BY k.id
            LIMIT 1
        """, (uri,))

        if not rows:
            return None

        row = rows[0]
        return KeywordRecord(keyword=row["keyword"], url=row["url"], post_data=row["post_data"])

    async def get_bookmark_ids_for_uri(self, uri: str) -> List[BookmarkItem]:
        """Get the bookmark tree items pointing at a URI.

        Tag entries are not part of the result.
        """
        rows = await self._fetchall("""
            SELECT b.id AS id, b.type AS type
            FROM moz_bookmarks b
            JOIN moz_places h ON h.id = b.fk
            WHERE h.url = ?
              AND b.parent NOT IN (
                  SELECT t.id FROM moz_bookmarks t
                  JOIN moz_bookmarks root ON root.id = t.parent
                  WHERE root.guid = ?
              )
            ORDER BY b.id
        """, (uri, TAGS_ROOT_GUID))

        return [BookmarkItem(id=row["id"], item_type=row["type"]) for row in rows]

    async def get_item_title(self, item_id: int) -> str:
        rows = await self._fetchall(
            "SELECT title FROM moz_bookmarks WHERE id = ?",
            (item_id,),
        )
        if not rows:
            raise RepositoryError(f"No bookmark item with id {item_id}")

        return rows[0]["title"] or ""

    async def get_item_annotation(self, item_id: int, name: str) -> Optional[str]:
        # Newer places schemas dropped item annotations entirely.
        if not self._has_item_annos:
            return None

        rows = await self._fetchall("""
            SELECT a.content AS content
            FROM moz_items_annos a
            JOIN moz_anno_attributes n ON n.id = a.anno_attribute_id
            WHERE a.item_id = ? AND n.name = ?
        """, (item_id, name))

        if not rows:
            return None

        return rows[0]["content"]

    async def fetch_favicon_data(self, url: str) -> FaviconData:
        """Read the favicon stored for a page.

        Args:
            url: Page URL

        Returns:
            FaviconData; ``data`` may be empty

        Raises:
            FaviconFetchError: If there is no favicons database or no icon
        """
        if self._favicons is None:
            raise FaviconFetchError("Favicons database not available")

        try:
            rows = await self._fetchall("""
                SELECT i.data AS data
                FROM moz_icons i
                JOIN moz_icons_to_pages ip ON ip.icon_id = i.id
                JOIN moz_pages_w_icons p ON p.id = ip.page_id
                WHERE p.page_url = ?
                ORDER BY (i.width < ?), i.width
                LIMIT 1
            """, (url, MIN_ICON_WIDTH), connection=self._favicons)
        except RepositoryError as e:
            raise FaviconFetchError(str(e)) from e

        if not rows:
            raise FaviconFetchError(f"No favicon for {url}")

        data = bytes(rows[0]["data"] or b"")
        return FaviconData(mime_type=sniff_image_mime_type(data), data=data)
