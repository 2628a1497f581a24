"""Search template substitution.

Templates mark the place where the search terms go with the literal two
character marker ``%s``, the same convention browsers use for keyword
bookmarks and search engine definitions.
"""
from typing import Optional
from urllib.parse import quote

MARKER = "%s"

# Characters left alone by JavaScript's encodeURIComponent, besides alphanumerics.
_UNRESERVED = "-_.!~*'()"


def encode_search_text(text: str) -> str:
    """Escape free text for use as a query component.

    Args:
        text: Raw text, e.g. the user's selection

    Returns:
        Percent-encoded UTF-8 text with spaces written as ``+``
    """
    return quote(text, safe=_UNRESERVED, encoding="utf-8").replace("%20", "+")


def substitute(template: str, escaped: str) -> str:
    """Replace every occurrence of the marker in ``template`` with ``escaped``."""
    return template.replace(MARKER, escaped)


class SearchTemplate:
    """A URL template with an optional POST body template.

    Marker presence is checked once here so callers can filter and render
    without re-scanning the template.
    """

    def __init__(self, url: str, post_data: Optional[str] = None):
        self.url = url
        self.post_data = post_data or None
        self.url_has_marker = MARKER in url
        self.post_data_has_marker = self.post_data is not None and MARKER in self.post_data

    @property
    def is_search_template(self) -> bool:
        """True if either the URL or the POST body takes search terms."""
        return self.url_has_marker or self.post_data_has_marker

    def render_url(self, escaped: str) -> str:
        if not self.url_has_marker:
            return self.url
        return substitute(self.url, escaped)

    def render_post_data(self, escaped: str) -> Optional[str]:
        if self.post_data is None:
            return None
        if not self.post_data_has_marker:
            return self.post_data
        return substitute(self.post_data, escaped)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SearchTemplate):
            return NotImplemented
        return self.url == other.url and self.post_data == other.post_data

    def __repr__(self) -> str:
        return f"SearchTemplate(url={self.url!r}, post_data={self.post_data!r})"
