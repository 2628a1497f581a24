"""Ordering of bookmark engines for display."""
import unicodedata
from typing import List, Tuple

from context_search.engines import BookmarkEngine


def _strip_accents(text: str) -> str:
    return "".join(ch for ch in text if not unicodedata.combining(ch))


def collation_key(title: str) -> Tuple[str, str, str]:
    """Sort key approximating locale-aware string comparison.

    Compares base letters ignoring case and accents first, then accents,
    then case with lowercase sorting before uppercase.
    """
    decomposed = unicodedata.normalize("NFD", title)
    return (
        _strip_accents(decomposed).casefold(),
        decomposed.casefold(),
        decomposed.swapcase(),
    )


def assemble(candidates: List[BookmarkEngine]) -> List[BookmarkEngine]:
    """Sort engines by title. Equal titles keep their input order."""
    return sorted(candidates, key=lambda engine: collation_key(engine.title))
