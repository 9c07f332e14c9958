"""Unit tests for server.py: guard checks, error replies and serialisation."""

import asyncio
import json
from typing import Any

import pytest

from drive_mcp.config import AppConfig
from drive_mcp.server import (
    ToolDispatcher,
    ToolReply,
    ToolSpec,
    UnknownToolError,
    build_dispatcher,
)
from drive_mcp.session import Session

SITE = "https://contoso.sharepoint.com/sites/Finance"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _dispatch(dispatcher: ToolDispatcher, name: str, args: dict[str, Any] | None) -> ToolReply:
    return asyncio.run(dispatcher.dispatch(name, args))


def _authenticated_session() -> Session:
    session = Session()
    session.set_tokens("tok", None, 3600)
    return session


def _spec(name: str, handler: Any, **kwargs: Any) -> ToolSpec:
    return ToolSpec(
        name=name, description="", input_schema={"type": "object"}, handler=handler, **kwargs
    )


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------


class TestGuards:
    def test_not_authenticated(self) -> None:
        dispatcher = build_dispatcher(AppConfig())

        reply = _dispatch(dispatcher, "search_my_files", {"query": "report"})

        assert reply.is_error
        assert reply.text == "Error: Not authenticated. Please run 'authenticate_sharepoint' first."

    def test_expired_token(self) -> None:
        session = Session()
        session.set_tokens("tok", None, -1)
        dispatcher = build_dispatcher(AppConfig(), session)

        reply = _dispatch(dispatcher, "list_recent_files", {"limit": 5})

        assert reply.is_error
        assert "expired" in reply.text

    def test_site_required(self) -> None:
        dispatcher = build_dispatcher(AppConfig(), _authenticated_session())

        reply = _dispatch(dispatcher, "get_folder_structure", {})

        assert reply.is_error
        assert "set_site_url" in reply.text

    def test_handler_not_called_when_guard_fails(self) -> None:
        calls: list[dict[str, Any]] = []
        dispatcher = ToolDispatcher(Session(), [_spec("guarded", calls.append)])

        _dispatch(dispatcher, "guarded", {})

        assert calls == []


# ---------------------------------------------------------------------------
# set_site_url
# ---------------------------------------------------------------------------


class TestSetSiteUrl:
    def test_requires_authentication(self) -> None:
        session = Session()
        dispatcher = build_dispatcher(AppConfig(), session)

        reply = _dispatch(dispatcher, "set_site_url", {"siteUrl": SITE})

        assert reply.is_error
        assert "Not authenticated" in reply.text
        assert session.get().site_url is None

    def test_rejected_with_expired_token(self) -> None:
        session = Session()
        session.set_tokens("tok", None, -1)
        dispatcher = build_dispatcher(AppConfig(), session)

        reply = _dispatch(dispatcher, "set_site_url", {"siteUrl": SITE})

        assert reply.is_error
        assert "expired" in reply.text
        assert session.get().site_url is None

    def test_stores_url_when_authenticated(self) -> None:
        session = _authenticated_session()
        dispatcher = build_dispatcher(AppConfig(), session)

        reply = _dispatch(dispatcher, "set_site_url", {"siteUrl": SITE})

        assert not reply.is_error
        assert SITE in reply.text
        assert session.get().site_url == SITE

    def test_rejects_invalid_url(self) -> None:
        session = _authenticated_session()
        dispatcher = build_dispatcher(AppConfig(), session)

        reply = _dispatch(dispatcher, "set_site_url", {"siteUrl": "http://intranet/sites/x"})

        assert reply.is_error
        assert "Invalid SharePoint URL" in reply.text
        assert session.get().site_url is None


# ---------------------------------------------------------------------------
# Dispatch mechanics
# ---------------------------------------------------------------------------


class TestDispatch:
    def test_unknown_tool_raises(self) -> None:
        dispatcher = build_dispatcher(AppConfig())
        with pytest.raises(UnknownToolError, match="Unknown tool: delete_everything"):
            _dispatch(dispatcher, "delete_everything", {})

    def test_exception_becomes_error_reply(self) -> None:
        def boom(args: dict[str, Any]) -> str:
            raise RuntimeError("Graph API error 500: boom")

        dispatcher = ToolDispatcher(_authenticated_session(), [_spec("boom", boom)])

        reply = _dispatch(dispatcher, "boom", {})

        assert reply == ToolReply(text="Error: Graph API error 500: boom", is_error=True)

    def test_dict_result_is_indented_json(self) -> None:
        dispatcher = ToolDispatcher(
            _authenticated_session(), [_spec("info", lambda args: {"count": 1, "args": args})]
        )

        reply = _dispatch(dispatcher, "info", {"limit": 3})

        assert not reply.is_error
        assert json.loads(reply.text) == {"count": 1, "args": {"limit": 3}}
        assert "\n  " in reply.text

    def test_none_arguments_become_empty_dict(self) -> None:
        seen: list[dict[str, Any]] = []

        def record(args: dict[str, Any]) -> str:
            seen.append(args)
            return "ok"

        dispatcher = ToolDispatcher(_authenticated_session(), [_spec("rec", record)])

        assert _dispatch(dispatcher, "rec", None).text == "ok"
        assert seen == [{}]

    def test_coroutine_handlers_are_awaited(self) -> None:
        async def sign_in(args: dict[str, Any]) -> str:
            await asyncio.sleep(0)
            return "signed in"

        dispatcher = ToolDispatcher(Session(), [_spec("sign_in", sign_in, requires_auth=False)])

        assert _dispatch(dispatcher, "sign_in", {}).text == "signed in"
