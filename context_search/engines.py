"""Search engines and the submissions they build.

Two kinds of engine share one submission capability:

  SystemEngine    configured engines (Google, DuckDuckGo, ...)
  BookmarkEngine  keyword bookmarks whose URL or POST body contains ``%s``
"""
from dataclasses import dataclass
from typing import Dict, Optional, Union
from urllib.parse import urlsplit

from context_search.templates import SearchTemplate, encode_search_text

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class BuildFailed(ValueError):
    """The substituted template did not produce an absolute URI."""


@dataclass(frozen=True)
class PostBody:
    """An encoded POST body."""
    data: bytes
    content_type: str = FORM_CONTENT_TYPE

    @property
    def content_length(self) -> int:
        return len(self.data)

    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": self.content_type,
            "Content-Length": str(self.content_length),
        }


@dataclass(frozen=True)
class Submission:
    """A fully resolved search request."""
    uri: str
    post_body: Optional[PostBody] = None

    @property
    def method(self) -> str:
        return "POST" if self.post_body is not None else "GET"


def _is_absolute_uri(uri: str) -> bool:
    try:
        parts = urlsplit(uri)
    except ValueError:
        return False
    if not parts.scheme or not parts.scheme[0].isalpha():
        return False
    return bool(parts.netloc or parts.path)


def build_submission(template: SearchTemplate, text: str) -> Submission:
    """Build the request for searching ``text`` with ``template``.

    Args:
        template: URL and optional POST body template
        text: Raw search text

    Returns:
        Submission with the substituted URI and POST body

    Raises:
        BuildFailed: If the text cannot be encoded or the resulting URI is
            not absolute
    """
    try:
        escaped = encode_search_text(text)
    except UnicodeEncodeError as e:
        raise BuildFailed(f"Search text is not valid Unicode: {e}") from e

    uri = template.render_url(escaped)
    if any(ch.isspace() for ch in uri) or not _is_absolute_uri(uri):
        raise BuildFailed(f"Not an absolute URI: {uri!r}")

    post_body = None
    post_data = template.render_post_data(escaped)
    if post_data is not None:
        try:
            post_body = PostBody(data=post_data.encode("utf-8"))
        except UnicodeEncodeError as e:
            raise BuildFailed(f"POST body is not valid Unicode: {e}") from e

    return Submission(uri=uri, post_body=post_body)


@dataclass
class SystemEngine:
    """A search engine configured by the system rather than by bookmarks."""
    name: str
    template: SearchTemplate
    icon_uri: str = ""
    description: str = ""

    kind = "system"

    @classmethod
    def from_dict(cls, data: dict) -> "SystemEngine":
        return cls(
            name=data["name"],
            template=SearchTemplate(data["url"], data.get("post_data")),
            icon_uri=data.get("icon", ""),
            description=data.get("description", ""),
        )

    @property
    def title(self) -> str:
        return self.name

    @property
    def icon(self) -> str:
        return self.icon_uri

    def get_submission(self, text: str) -> Submission:
        return build_submission(self.template, text)


@dataclass
class BookmarkEngine:
    """A keyword bookmark used as a search engine."""
    bookmark_id: int
    title: str
    keyword: str
    template: SearchTemplate
    description: str = ""
    favicon_url: str = ""
    kind = "bookmark"

    @property
    def url_template(self) -> str:
        return self.template.url

    @property
    def post_data_template(self) -> Optional[str]:
        return self.template.post_data

    @property
    def icon(self) -> str:
        return self.favicon_url

    def get_submission(self, text: str) -> Submission:
        return build_submission(self.template, text)


Engine = Union[SystemEngine, BookmarkEngine]


def engine_to_dict(engine: Engine) -> dict:
    """Serialize an engine for tool output."""
    data = {
        "kind": engine.kind,
        "title": engine.title,
        "description": engine.description,
        "icon": engine.icon,
        "url": engine.template.url,
    }
    if isinstance(engine, BookmarkEngine):
        data["bookmark_id"] = engine.bookmark_id
        data["keyword"] = engine.keyword
    if engine.template.post_data is not None:
        data["post_data"] = engine.template.post_data
    return data
