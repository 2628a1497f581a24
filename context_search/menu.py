"""Search menu model: session state, menu entries and open disposition.

The menu lists the system engines first, then (after a separator) the
keyword bookmark engines. Rendering it and opening the resulting request
is up to the caller.
"""
import sys
from dataclasses import dataclass, field
from typing import List, Optional

from context_search.engines import (
    BookmarkEngine,
    BuildFailed,
    Engine,
    Submission,
    SystemEngine,
    engine_to_dict,
)

ELLIPSIS = "…"

MOUSE_BUTTON_LEFT = 0
MOUSE_BUTTON_MIDDLE = 1
MOUSE_BUTTON_RIGHT = 2


def _same_engine(a: Engine, b: Engine) -> bool:
    if isinstance(a, BookmarkEngine) and isinstance(b, BookmarkEngine):
        return a.bookmark_id == b.bookmark_id
    return a.kind == b.kind and a.title == b.title


class SearchSession:
    """State kept between menu openings: the MRU engine and run generations.

    Engine lists are rebuilt on every run, so engines are matched by
    bookmark id (keyword bookmarks) or by kind and title rather than identity.
    """

    def __init__(self, system_engines: List[SystemEngine], default_engine_name: str = ""):
        self.system_engines = list(system_engines)
        self.default_engine_name = default_engine_name
        self.bookmark_engines: List[BookmarkEngine] = []
        self.mru_engine: Optional[Engine] = None
        self.generation = 0

    @property
    def default_engine(self) -> Optional[Engine]:
        for engine in self.system_engines:
            if engine.name == self.default_engine_name:
                return engine
        visible = self.visible_engines
        return visible[0] if visible else None

    @property
    def visible_engines(self) -> List[Engine]:
        return [*self.system_engines, *self.bookmark_engines]

    def current_engine(self) -> Optional[Engine]:
        """Get the MRU engine if it is still available, else the default."""
        if self.mru_engine is not None:
            for engine in self.visible_engines:
                if _same_engine(engine, self.mru_engine):
                    return engine
        return self.default_engine

    def find_engine(
        self,
        title: str = "",
        kind: Optional[str] = None,
        bookmark_id: Optional[int] = None,
    ) -> Optional[Engine]:
        """Find a visible engine.

        Args:
            title: Engine title; ignored when ``bookmark_id`` is given
            kind: Restrict the lookup to "system" or "bookmark" engines
            bookmark_id: Select a keyword bookmark engine by its bookmark id,
                which stays unambiguous when bookmarks share a title

        Returns:
            The first matching engine or None
        """
        if bookmark_id is not None:
            for engine in self.bookmark_engines:
                if engine.bookmark_id == bookmark_id:
                    return engine
            return None

        for engine in self.visible_engines:
            if engine.title == title and (kind is None or engine.kind == kind):
                return engine
        return None

    def begin_run(self) -> int:
        """Start a new pipeline run and return its generation id."""
        self.generation += 1
        return self.generation

    def is_current(self, generation: int) -> bool:
        return generation == self.generation

    def accept_results(self, generation: int, engines: List[BookmarkEngine]) -> bool:
        """Store a run's bookmark engines unless a newer run has started.

        Returns:
            True if the results were stored, False if they were stale
        """
        if not self.is_current(generation):
            print(
                f"[Pipeline] Discarding stale results from run {generation} "
                f"(current run is {self.generation})",
                file=sys.stderr,
            )
            return False

        self.bookmark_engines = list(engines)
        return True

    def remember(self, engine: Engine) -> None:
        self.mru_engine = engine


def preview_text(text: str, max_length: int = 15, ellipsis: str = ELLIPSIS) -> str:
    """Shorten selected text for display in the menu label."""
    if len(text) > max_length:
        return text[:max_length] + ellipsis
    return text


@dataclass
class MenuEntry:
    """One line of the search menu."""
    kind: str  # system, bookmark or separator
    title: str = ""
    icon: str = ""
    tooltip: str = ""
    engine: Optional[Engine] = None

    @classmethod
    def for_engine(cls, engine: Engine) -> "MenuEntry":
        return cls(
            kind=engine.kind,
            title=engine.title,
            icon=engine.icon,
            tooltip=engine.description or "",
            engine=engine,
        )

    @classmethod
    def separator(cls) -> "MenuEntry":
        return cls(kind="separator")

    def to_dict(self) -> dict:
        if self.engine is None:
            return {"kind": self.kind}
        data = engine_to_dict(self.engine)
        data["tooltip"] = self.tooltip
        return data


@dataclass
class SearchMenu:
    """The search menu for one selection."""
    search_text: str
    label: str = ""
    accesskey: str = "S"
    engine: Optional[Engine] = None
    entries: List[MenuEntry] = field(default_factory=list)
    generation: int = 0
    stale: bool = False  # A newer run started before this one finished

    @property
    def engines(self) -> List[Engine]:
        return [entry.engine for entry in self.entries if entry.engine is not None]

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "accesskey": self.accesskey,
            "search_text": self.search_text,
            "engine": self.engine.title if self.engine else None,
            "generation": self.generation,
            "stale": self.stale,
            "entries": [entry.to_dict() for entry in self.entries],
        }


def build_menu(
    session: SearchSession,
    text: str,
    bookmark_engines: List[BookmarkEngine],
    preview_length: int = 15,
    generation: int = 0,
    stale: bool = False,
) -> SearchMenu:
    """Build the menu for searching ``text``.

    Args:
        session: Session holding the system engines and the MRU engine
        text: Selected text
        bookmark_engines: Sorted keyword bookmark engines
        preview_length: Max chars of ``text`` shown in the label
        generation: Run generation the bookmark engines came from
        stale: Whether a newer run superseded that generation

    Returns:
        SearchMenu; without a usable engine it has no label and no entries
    """
    menu = SearchMenu(search_text=text, generation=generation, stale=stale)

    engine = session.current_engine()
    if engine is None:
        print("[Pipeline] No search engine available", file=sys.stderr)
        return menu

    menu.engine = engine
    menu.label = f'Search {engine.title} for "{preview_text(text, preview_length)}"'

    menu.entries = [MenuEntry.for_engine(e) for e in session.system_engines]
    if menu.entries and bookmark_engines:
        menu.entries.append(MenuEntry.separator())
    menu.entries.extend(MenuEntry.for_engine(e) for e in bookmark_engines)

    return menu


@dataclass(frozen=True)
class OpenDisposition:
    """Where a search result should be opened."""
    where: str  # current, tab, tabshifted or window
    in_background: bool = False


def choose_disposition(
    button: int,
    shift: bool = False,
    ctrl: bool = False,
    load_in_background: bool = False,
) -> Optional[OpenDisposition]:
    """Decide where to open a search from the mouse button and modifiers.

    Returns:
        OpenDisposition, or None for buttons other than left/middle/right
    """
    if button == MOUSE_BUTTON_MIDDLE:
        return OpenDisposition("tab")
    if button == MOUSE_BUTTON_RIGHT:
        return OpenDisposition("current")
    if button != MOUSE_BUTTON_LEFT:
        return None

    if shift:
        return OpenDisposition("window")
    if ctrl:
        return OpenDisposition("tab")
    if load_in_background:
        return OpenDisposition("tabshifted", in_background=True)
    return OpenDisposition("tab")


def submit(session: SearchSession, engine: Engine, text: str) -> Optional[Submission]:
    """Build the submission for ``engine`` and remember it as the MRU engine.

    Returns:
        Submission, or None if the engine could not build a valid request
    """
    try:
        submission = engine.get_submission(text)
    except BuildFailed as e:
        print(f"[Pipeline] Could not build submission for {engine.title!r}: {e}", file=sys.stderr)
        return None

    session.remember(engine)
    return submission
