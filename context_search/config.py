"""Configuration for the context search MCP server."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


DEFAULT_FAVICON = "chrome://global/skin/icons/defaultFavicon.svg"

DEFAULT_SYSTEM_ENGINES = [
    {
        "name": "Google",
        "url": "https://www.google.com/search?q=%s",
        "icon": "https://www.google.com/favicon.ico",
        "description": "Google Search",
    },
    {
        "name": "DuckDuckGo",
        "url": "https://duckduckgo.com/?q=%s",
        "icon": "https://duckduckgo.com/favicon.ico",
        "description": "Search DuckDuckGo",
    },
    {
        "name": "Wikipedia (en)",
        "url": "https://en.wikipedia.org/wiki/Special:Search?search=%s",
        "icon": "https://en.wikipedia.org/static/favicon/wikipedia.ico",
        "description": "Wikipedia, the Free Encyclopedia",
    },
]


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class MenuConfig:
    """Configuration for the search menu presented to the user."""
    default_engine: str = "Google"
    preview_length: int = 15  # Max chars of selected text shown in the label
    load_in_background: bool = False  # Plain left click opens a background tab

    @classmethod
    def from_env(cls) -> "MenuConfig":
        """Create config from environment variables."""
        return cls(
            default_engine=os.environ.get("CONTEXT_SEARCH_DEFAULT_ENGINE", "Google"),
            preview_length=int(os.environ.get("CONTEXT_SEARCH_PREVIEW_LENGTH", "15")),
            load_in_background=_env_flag("CONTEXT_SEARCH_LOAD_IN_BACKGROUND"),
        )


@dataclass
class Config:
    """Main configuration for the context search server."""
    menu: MenuConfig = field(default_factory=MenuConfig.from_env)
    search_tag: str = "search"  # Empty string disables keyword bookmark engines
    profile_dir: Optional[Path] = None  # None = detect the default Firefox profile
    places_db_path: Optional[Path] = None  # None = <profile_dir>/places.sqlite
    favicons_db_path: Optional[Path] = None  # None = <profile_dir>/favicons.sqlite
    default_favicon: str = DEFAULT_FAVICON
    system_engines: List[dict] = field(default_factory=lambda: list(DEFAULT_SYSTEM_ENGINES))

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        profile_str = os.environ.get("CONTEXT_SEARCH_PROFILE_DIR")
        places_str = os.environ.get("CONTEXT_SEARCH_PLACES_DB")
        favicons_str = os.environ.get("CONTEXT_SEARCH_FAVICONS_DB")

        return cls(
            menu=MenuConfig.from_env(),
            search_tag=os.environ.get("CONTEXT_SEARCH_TAG", "search"),
            profile_dir=Path(profile_str) if profile_str else None,
            places_db_path=Path(places_str) if places_str else None,
            favicons_db_path=Path(favicons_str) if favicons_str else None,
            default_favicon=os.environ.get("CONTEXT_SEARCH_DEFAULT_FAVICON", DEFAULT_FAVICON),
        )


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global config instance.

    Returns:
        Config loaded from environment
    """
    global _config

    if _config is None:
        _config = Config.from_env()

    return _config
