"""MCP server exposing context search engines and submissions."""
import json
import sys
from typing import Any, List, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from context_search.config import get_config
from context_search.engines import BookmarkEngine, SystemEngine
from context_search.menu import SearchSession, build_menu, choose_disposition, submit
from context_search.pipeline import resolve_pipeline
from context_search.places_store import PlacesStore, RepositoryError, resolve_database_paths


# Global state
_session: Optional[SearchSession] = None


def get_session() -> SearchSession:
    """Get or create the search session (MRU engine, run generations)."""
    global _session

    if _session is None:
        config = get_config()
        _session = SearchSession(
            [SystemEngine.from_dict(engine) for engine in config.system_engines],
            default_engine_name=config.menu.default_engine,
        )

    return _session


def _text(text: str) -> List[TextContent]:
    return [TextContent(type="text", text=text)]


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


async def load_keyword_engines(tag: str) -> List[BookmarkEngine]:
    """Open the places databases and run the keyword bookmark pipeline.

    Args:
        tag: Search bookmarks tag; empty disables keyword bookmark engines

    Returns:
        Sorted keyword bookmark engines, or an empty list if the databases
        are unavailable
    """
    if not tag:
        return []

    places_path, favicons_path = resolve_database_paths(get_config())
    if places_path is None:
        print("[Server] No Firefox profile found; keyword bookmarks disabled", file=sys.stderr)
        return []

    store = PlacesStore(places_path, favicons_path)
    try:
        await store.initialize()
    except RepositoryError as e:
        print(f"[Server] Could not open places database: {e}", file=sys.stderr)
        await store.close()
        return []

    try:
        return await resolve_pipeline(tag, store)
    finally:
        await store.close()


async def list_search_engines_tool(text: str) -> List[TextContent]:
    """Tool handler for list_search_engines.

    Args:
        text: Selected text to search for

    Returns:
        List of TextContent with the search menu as JSON
    """
    config = get_config()
    session = get_session()

    generation = session.begin_run()
    engines = await load_keyword_engines(config.search_tag)
    accepted = session.accept_results(generation, engines)

    # A superseded run still reports its own engines, flagged as stale.
    menu = build_menu(
        session,
        text,
        engines,
        preview_length=config.menu.preview_length,
        generation=generation,
        stale=not accepted,
    )

    if menu.engine is None:
        return _text("No search engines available.")

    return _text(json.dumps(menu.to_dict(), indent=2, ensure_ascii=False))


async def get_search_submission_tool(
    text: str,
    engine: str = "",
    kind: Optional[str] = None,
    bookmark_id: Optional[int] = None,
    button: int = 0,
    shift: bool = False,
    ctrl: bool = False,
) -> List[TextContent]:
    """Tool handler for get_search_submission.

    Args:
        text: Text to search for
        engine: Engine title; empty uses the most recently used engine
        kind: Optional engine kind ("system" or "bookmark")
        bookmark_id: Keyword bookmark id; takes precedence over ``engine``
        button: Mouse button used (0 left, 1 middle, 2 right)
        shift: Shift key held
        ctrl: Ctrl key held

    Returns:
        List of TextContent with the submission as JSON
    """
    config = get_config()
    session = get_session()

    disposition = choose_disposition(button, shift, ctrl, config.menu.load_in_background)
    if disposition is None:
        return _text(f"Error: unsupported mouse button {button}")

    if engine or bookmark_id is not None:
        selected = session.find_engine(engine, kind, bookmark_id)
        if selected is None and kind != "system":
            # Keyword bookmarks may have changed since the menu was built.
            generation = session.begin_run()
            session.accept_results(generation, await load_keyword_engines(config.search_tag))
            selected = session.find_engine(engine, kind, bookmark_id)
    else:
        selected = session.current_engine()

    if selected is None:
        return _text(f"Error: unknown search engine: {engine if bookmark_id is None else bookmark_id}")

    submission = submit(session, selected, text)
    if submission is None:
        return _text(f"Error: could not build a search request for {selected.title}")

    result = {
        "engine": selected.title,
        "kind": selected.kind,
        "uri": submission.uri,
        "method": submission.method,
        "where": disposition.where,
        "in_background": disposition.in_background,
    }
    if isinstance(selected, BookmarkEngine):
        result["bookmark_id"] = selected.bookmark_id
    if submission.post_body is not None:
        result["post_data"] = submission.post_body.data.decode("utf-8")
        result["content_type"] = submission.post_body.content_type
        result["content_length"] = submission.post_body.content_length
        result["headers"] = submission.post_body.headers()

    return _text(json.dumps(result, indent=2, ensure_ascii=False))


async def health_check_tool() -> List[TextContent]:
    """Tool handler for health_check."""
    config = get_config()
    session = get_session()
    places_path, favicons_path = resolve_database_paths(config)

    result = {
        "status": "ok",
        "search_tag": config.search_tag,
        "places_db": str(places_path) if places_path else None,
        "places_db_exists": bool(places_path and places_path.exists()),
        "favicons_db": str(favicons_path) if favicons_path else None,
        "system_engines": len(session.system_engines),
        "keyword_engines": len(session.bookmark_engines),
        "mru_engine": session.mru_engine.title if session.mru_engine else None,
    }
    return _text(json.dumps(result, indent=2))


def create_server() -> Server:
    """Create and configure the MCP server.

    Returns:
        Configured Server instance
    """
    server = Server("context-search-mcp")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        """List available tools."""
        return [
            Tool(
                name="health_check",
                description="Report the configured places databases, search tag and engine counts.",
                inputSchema={"type": "object", "properties": {}},
            ),
            Tool(
                name="list_search_engines",
                description="Build the search menu for a piece of selected text: system search engines followed by keyword bookmarks tagged for search, sorted by title.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "text": {
                            "type": "string",
                            "description": "Selected text to search for"
                        }
                    },
                    "required": ["text"]
                }
            ),
            Tool(
                name="get_search_submission",
                description="Build the search request (URI and optional POST body) for the given text with one engine, and remember that engine as the most recently used.",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "text": {
                            "type": "string",
                            "description": "Text to search for"
                        },
                        "engine": {
                            "type": "string",
                            "description": "Engine title as listed by list_search_engines. Omit to use the most recently used engine."
                        },
                        "kind": {
                            "type": "string",
                            "enum": ["system", "bookmark"],
                            "description": "Restrict the engine lookup to one kind"
                        },
                        "bookmark_id": {
                            "type": "integer",
                            "description": "Bookmark id of a keyword bookmark engine, as listed by list_search_engines. Use it when several bookmarks share a title."
                        },
                        "button": {
                            "type": "integer",
                            "description": "Mouse button: 0 left, 1 middle, 2 right"
                        },
                        "shift": {"type": "boolean"},
                        "ctrl": {"type": "boolean"}
                    },
                    "required": ["text"]
                }
            ),
        ]

    @server.call_tool()
    async def call_tool(name: str, arguments: Any) -> list[TextContent]:
        """Handle tool calls."""
        arguments = arguments or {}

        if name == "health_check":
            return await health_check_tool()
        elif name in ("list_search_engines", "get_search_submission"):
            text = arguments.get("text", "")
            if not text:
                return _text("Error: 'text' parameter is required")
            if name == "list_search_engines":
                return await list_search_engines_tool(text)
            return await get_search_submission_tool(
                text,
                engine=arguments.get("engine", ""),
                kind=arguments.get("kind"),
                bookmark_id=_optional_int(arguments.get("bookmark_id")),
                button=int(arguments.get("button", 0)),
                shift=bool(arguments.get("shift", False)),
                ctrl=bool(arguments.get("ctrl", False)),
            )
        else:
            raise ValueError(f"Unknown tool: {name}")

    return server


async def main():
    """Main entry point for the MCP server."""
    server = create_server()

    async with stdio_server() as (read_stream, write_stream):
        initialization_options = server.create_initialization_options()
        await server.run(read_stream, write_stream, initialization_options)
