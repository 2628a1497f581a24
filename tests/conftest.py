"""Shared fixtures for tests."""
import sqlite3
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from context_search.places_store import (
    TYPE_BOOKMARK,
    TYPE_FOLDER,
    BookmarkItem,
    FaviconData,
    FaviconFetchError,
    KeywordRecord,
    PlacesStore,
    RepositoryError,
)


PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x10"
BIG_PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x20"

EXAMPLE_URL = "https://www.example.com/search?q=%s"
SHORTCUT_URL = "https://shortcut.example.com/"
POST_URL = "https://post.example.com/find"
FOLDER_URL = "https://folderonly.example.com/?q=%s"
UNTAGGED_URL = "https://untagged.example.com/?q=%s"
DICT_URL = "https://dict.example.com/?w=%s"

PLACES_SCHEMA = """
CREATE TABLE moz_places (id INTEGER PRIMARY KEY, url LONGVARCHAR, title LONGVARCHAR);
CREATE TABLE moz_bookmarks (
    id INTEGER PRIMARY KEY, type INTEGER, fk INTEGER DEFAULT NULL, parent INTEGER,
    position INTEGER, title LONGVARCHAR, keyword_id INTEGER, guid TEXT
);
CREATE TABLE moz_keywords (
    id INTEGER PRIMARY KEY AUTOINCREMENT, keyword TEXT UNIQUE, place_id INTEGER, post_data TEXT
);
CREATE TABLE moz_anno_attributes (id INTEGER PRIMARY KEY, name VARCHAR(32) UNIQUE NOT NULL);
CREATE TABLE moz_items_annos (
    id INTEGER PRIMARY KEY, item_id INTEGER NOT NULL, anno_attribute_id INTEGER, content LONGVARCHAR
);
"""

FAVICONS_SCHEMA = """
CREATE TABLE moz_icons (id INTEGER PRIMARY KEY, icon_url TEXT NOT NULL, width INTEGER NOT NULL DEFAULT 0, data BLOB);
CREATE TABLE moz_pages_w_icons (id INTEGER PRIMARY KEY, page_url TEXT NOT NULL);
CREATE TABLE moz_icons_to_pages (page_id INTEGER NOT NULL, icon_id INTEGER NOT NULL, PRIMARY KEY (page_id, icon_id));
"""


def build_places_db(path):
    """Create a small places database.

    Tagged "search": example (keyword + %s), shortcut (no %s), post (%s only
    in the POST body), folder-only, and dict (bookmarked twice, ids 35 and 40).
    Tagged "other": untagged-for-search.
    """
    conn = sqlite3.connect(path)
    conn.executescript(PLACES_SCHEMA)
    conn.executemany("INSERT INTO moz_places (id, url) VALUES (?, ?)", [
        (1, EXAMPLE_URL),
        (2, SHORTCUT_URL),
        (3, POST_URL),
        (4, FOLDER_URL),
        (5, UNTAGGED_URL),
        (6, DICT_URL),
    ])
    conn.executemany(
        "INSERT INTO moz_bookmarks (id, type, fk, parent, title, guid) VALUES (?, ?, ?, ?, ?, ?)",
        [
            (1, TYPE_FOLDER, None, 0, "", "root________"),
            (2, TYPE_FOLDER, None, 1, "menu", "menu________"),
            (4, TYPE_FOLDER, None, 1, "tags", "tags________"),
            (10, TYPE_FOLDER, None, 4, "search", "tag_search__"),
            (11, TYPE_FOLDER, None, 4, "other", "tag_other___"),
            (30, TYPE_BOOKMARK, 1, 2, "Example Search", "bm_example__"),
            (31, TYPE_BOOKMARK, 2, 2, "Shortcut", "bm_shortcut_"),
            (32, TYPE_BOOKMARK, 3, 2, "Post Search", "bm_post_____"),
            (33, TYPE_FOLDER, 4, 2, "Folder Only", "bm_folder___"),
            (34, TYPE_BOOKMARK, 5, 2, "Untagged", "bm_untagged_"),
            (35, TYPE_BOOKMARK, 6, 2, "Dictionary A", "bm_dict_a___"),
            (40, TYPE_BOOKMARK, 6, 2, "Dictionary B", "bm_dict_b___"),
            (50, TYPE_BOOKMARK, 1, 10, None, "tg_1________"),
            (51, TYPE_BOOKMARK, 2, 10, None, "tg_2________"),
            (52, TYPE_BOOKMARK, 3, 10, None, "tg_3________"),
            (53, TYPE_BOOKMARK, 4, 10, None, "tg_4________"),
            (54, TYPE_BOOKMARK, 6, 10, None, "tg_6________"),
            (55, TYPE_BOOKMARK, 5, 11, None, "tg_5________"),
        ],
    )
    conn.executemany(
        "INSERT INTO moz_keywords (id, keyword, place_id, post_data) VALUES (?, ?, ?, ?)",
        [
            (1, "ex", 1, None),
            (2, "sc", 2, None),
            (3, "ps", 3, "q%3D%25s%26lang%3Den"),
            (4, "fo", 4, None),
            (5, "un", 5, None),
            (6, "dict", 6, None),
        ],
    )
    conn.execute("INSERT INTO moz_anno_attributes (id, name) VALUES (1, 'bookmarkProperties/description')")
    conn.execute(
        "INSERT INTO moz_items_annos (item_id, anno_attribute_id, content) VALUES (30, 1, 'Search example.com')"
    )
    conn.commit()
    conn.close()


def build_favicons_db(path):
    """Create a favicons database: example has 16px and 32px icons, post has an empty icon."""
    conn = sqlite3.connect(path)
    conn.executescript(FAVICONS_SCHEMA)
    conn.executemany("INSERT INTO moz_icons (id, icon_url, width, data) VALUES (?, ?, ?, ?)", [
        (1, "https://www.example.com/favicon-32.png", 32, BIG_PNG_BYTES),
        (2, "https://www.example.com/favicon.png", 16, PNG_BYTES),
        (3, "https://post.example.com/favicon.ico", 16, b""),
    ])
    conn.executemany("INSERT INTO moz_pages_w_icons (id, page_url) VALUES (?, ?)", [
        (1, EXAMPLE_URL),
        (2, POST_URL),
    ])
    conn.executemany("INSERT INTO moz_icons_to_pages (page_id, icon_id) VALUES (?, ?)", [
        (1, 1),
        (1, 2),
        (2, 3),
    ])
    conn.commit()
    conn.close()


@pytest.fixture
def places_db_path(tmp_path):
    """Return path to a temporary places database with sample data."""
    path = tmp_path / "places.sqlite"
    build_places_db(path)
    return path


@pytest.fixture
def favicons_db_path(tmp_path):
    """Return path to a temporary favicons database with sample data."""
    path = tmp_path / "favicons.sqlite"
    build_favicons_db(path)
    return path


@pytest_asyncio.fixture
async def places_store(places_db_path, favicons_db_path):
    """Create and initialize a places store over the sample databases."""
    store = PlacesStore(places_db_path, favicons_db_path)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture(autouse=True)
def reset_globals(monkeypatch):
    """Give every test a fresh config, session and default favicon."""
    monkeypatch.setattr("context_search.config._config", None)
    monkeypatch.setattr("context_search.favicons._default_favicon", None)
    monkeypatch.setattr("context_search.server._session", None)
    for name in (
        "CONTEXT_SEARCH_TAG",
        "CONTEXT_SEARCH_PROFILE_DIR",
        "CONTEXT_SEARCH_PLACES_DB",
        "CONTEXT_SEARCH_FAVICONS_DB",
        "CONTEXT_SEARCH_DEFAULT_FAVICON",
        "CONTEXT_SEARCH_DEFAULT_ENGINE",
        "CONTEXT_SEARCH_LOAD_IN_BACKGROUND",
        "CONTEXT_SEARCH_PREVIEW_LENGTH",
    ):
        monkeypatch.delenv(name, raising=False)


class FakeRepository:
    """In-memory bookmark repository.

    ``failing_uris`` raise RepositoryError from fetch_keyword and
    ``failing_favicons`` raise FaviconFetchError.
    """

    def __init__(
        self,
        tags: Optional[Dict[str, List[str]]] = None,
        keywords: Optional[Dict[str, KeywordRecord]] = None,
        items: Optional[Dict[str, List[BookmarkItem]]] = None,
        titles: Optional[Dict[int, str]] = None,
        descriptions: Optional[Dict[int, str]] = None,
        favicons: Optional[Dict[str, FaviconData]] = None,
    ):
        self.tags = tags or {}
        self.keywords = keywords or {}
        self.items = items or {}
        self.titles = titles or {}
        self.descriptions = descriptions or {}
        self.favicons = favicons or {}
        self.failing_uris = set()
        self.failing_favicons = set()
        self.calls = []

    async def get_uris_for_tag(self, tag):
        self.calls.append(("get_uris_for_tag", tag))
        return list(self.tags.get(tag, []))

    async def fetch_keyword(self, uri):
        self.calls.append(("fetch_keyword", uri))
        if uri in self.failing_uris:
            raise RepositoryError(f"database is locked: {uri}")
        return self.keywords.get(uri)

    async def get_bookmark_ids_for_uri(self, uri):
        return list(self.items.get(uri, []))

    async def get_item_title(self, item_id):
        return self.titles[item_id]

    async def get_item_annotation(self, item_id, name):
        return self.descriptions.get(item_id)

    async def fetch_favicon_data(self, url):
        if url in self.failing_favicons:
            raise FaviconFetchError(f"no icon for {url}")
        if url not in self.favicons:
            raise FaviconFetchError(f"no icon for {url}")
        return self.favicons[url]


def make_keyword_repository(entries):
    """Build a FakeRepository tagging every entry with "search".

    Args:
        entries: (bookmark_id, title, keyword, url, post_data) tuples
    """
    repo = FakeRepository(tags={"search": [entry[3] for entry in entries]})
    for bookmark_id, title, keyword, url, post_data in entries:
        repo.keywords[url] = KeywordRecord(keyword=keyword, url=url, post_data=post_data)
        repo.items[url] = [BookmarkItem(id=bookmark_id, item_type=TYPE_BOOKMARK)]
        repo.titles[bookmark_id] = title
    return repo


@pytest.fixture
def keyword_repository():
    """A fake repository with three keyword search bookmarks and one shortcut."""
    return make_keyword_repository([
        (3, "Wiki", "w", "https://wiki.example.org/?search=%s", None),
        (1, "beta search", "b", "https://beta.example.org/s?q=%s", None),
        (2, "Alpha", "a", "https://alpha.example.org/find", "q%3D%25s"),
        (4, "Home", "h", "https://home.example.org/", None),
    ])
