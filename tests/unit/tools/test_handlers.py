"""Unit tests for tools/handlers.py: argument handling and response shapes."""

from typing import Any
from unittest.mock import MagicMock

import pytest

from drive_mcp.config import AppConfig
from drive_mcp.graph.client import GraphApiError
from drive_mcp.session import Session
from drive_mcp.tools.handlers import DriveTools

SITE = "https://contoso.sharepoint.com/sites/Finance"
SITE_PAGES = {
    "/sites/contoso.sharepoint.com:/sites/Finance": {"id": "site-1"},
    "/sites/site-1/drive": {"id": "drive-1"},
}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_tools(
    pages: dict[str, Any], site_url: str | None = None, **config: Any
) -> tuple[DriveTools, MagicMock]:
    """Return DriveTools over a Graph mock that answers GETs from ``pages``."""
    session = Session()
    session.set_tokens("tok", None, 3600)
    if site_url:
        session.set_site_url(site_url)
    graph = MagicMock()

    def get(path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        value = pages[path]
        if isinstance(value, Exception):
            raise value
        return value

    graph.get.side_effect = get
    return DriveTools(session, AppConfig(**config), graph), graph


def _file(item_id: str, name: str, modified: str = "2024-01-01T00:00:00Z") -> dict[str, Any]:
    return {
        "id": item_id,
        "name": name,
        "size": 42,
        "lastModifiedDateTime": modified,
        "webUrl": f"https://example/{name}",
        "file": {"mimeType": "text/plain"},
    }


def _folder(item_id: str, name: str) -> dict[str, Any]:
    return {"id": item_id, "name": name, "folder": {"childCount": 3}}


# ---------------------------------------------------------------------------
# Search tools
# ---------------------------------------------------------------------------


class TestSearchFiles:
    def test_searches_site_drive(self) -> None:
        pages = {
            **SITE_PAGES,
            "/drives/drive-1/root/search(q='budget')": {"value": [_file("1", "budget.xlsx")]},
        }
        tools, _ = _make_tools(pages, site_url=SITE)

        payload = tools.search_files({"query": "budget", "searchType": "filename"})

        assert payload["query"] == "budget"
        assert payload["searchDepth"] == "filename"
        assert payload["resultCount"] == 1
        assert payload["includeShared"] is False
        assert payload["files"][0]["name"] == "budget.xlsx"
        assert payload["files"][0]["matchType"] == "filename"

    def test_defaults_to_auto_scoped_to_site(self) -> None:
        tools, graph = _make_tools(dict(SITE_PAGES), site_url=SITE)
        graph.post.return_value = {"value": []}

        payload = tools.search_files({"query": "budget"})

        assert payload["searchDepth"] == "auto"
        query_string = graph.post.call_args[0][1]["requests"][0]["query"]["queryString"]
        assert query_string == f'budget path:"{SITE}"'

    def test_accepts_search_depth_name(self) -> None:
        pages = {
            **SITE_PAGES,
            "/drives/drive-1/root/search(q='budget')": {"value": [_file("1", "budget.xlsx")]},
        }
        tools, graph = _make_tools(pages, site_url=SITE)

        payload = tools.search_files({"query": "budget", "searchDepth": "filename"})

        assert payload["searchDepth"] == "filename"
        graph.post.assert_not_called()

    @pytest.mark.parametrize("flag", ["false", "False", "0", False])
    def test_false_strings_do_not_include_shared(self, flag: Any) -> None:
        pages = {
            **SITE_PAGES,
            "/drives/drive-1/root/search(q='budget')": {"value": []},
        }
        tools, graph = _make_tools(pages, site_url=SITE)

        payload = tools.search_files(
            {"query": "budget", "searchType": "filename", "includeShared": flag}
        )

        assert payload["includeShared"] is False
        assert all(c.args[0] != "/me/drive/sharedWithMe" for c in graph.get.call_args_list)

    def test_true_string_includes_shared(self) -> None:
        pages = {
            **SITE_PAGES,
            "/drives/drive-1/root/search(q='budget')": {"value": []},
            "/me/drive/sharedWithMe": {"value": [_file("s", "budget-shared.xlsx")]},
        }
        tools, _ = _make_tools(pages, site_url=SITE)

        payload = tools.search_files(
            {"query": "budget", "searchType": "filename", "includeShared": "true"}
        )

        assert payload["includeShared"] is True
        assert [f["name"] for f in payload["files"]] == ["budget-shared.xlsx"]

    def test_unrecognised_flag_rejected(self) -> None:
        tools, _ = _make_tools(dict(SITE_PAGES), site_url=SITE)
        with pytest.raises(ValueError, match="includeShared must be true or false"):
            tools.search_files({"query": "budget", "includeShared": "maybe"})

    def test_requires_query(self) -> None:
        tools, _ = _make_tools(dict(SITE_PAGES), site_url=SITE)
        with pytest.raises(ValueError, match="query is required"):
            tools.search_files({})


class TestSearchMyFiles:
    def test_defaults_to_filename_on_own_drive(self) -> None:
        pages = {"/me/drive/root/search(q='report')": {"value": [_file("1", "report.txt")]}}
        tools, graph = _make_tools(pages)

        payload = tools.search_my_files({"query": "report", "maxResults": 5})

        assert payload["searchDepth"] == "filename"
        graph.get.assert_called_once_with("/me/drive/root/search(q='report')", {"$top": 5})

    def test_content_search_reports_scan_statistics(self) -> None:
        pages = {
            "/me/drive/items/root/children": {
                "value": [_file("1", "notes.md"), _file("2", "photo.jpg")]
            },
        }
        tools, graph = _make_tools(pages)
        graph.get_content.return_value = b"meeting notes\nbudget approved\n"

        payload = tools.search_my_files(
            {"query": "budget", "searchDepth": "content", "fileTypes": "md, txt"}
        )

        assert payload["searchDepth"] == "content"
        assert payload["filesScanned"] == 2
        assert payload["failedFolders"] == 0
        assert payload["skipped"] == {"type_filtered": 1}
        assert payload["files"][0]["contentMatches"] == [
            {"lineNumber": 2, "content": "budget approved"}
        ]

    def test_invalid_number_argument(self) -> None:
        tools, _ = _make_tools({})
        with pytest.raises(ValueError, match="maxResults must be a number"):
            tools.search_my_files({"query": "x", "maxResults": "many"})


# ---------------------------------------------------------------------------
# Browsing tools
# ---------------------------------------------------------------------------


class TestGetFolderStructure:
    def test_lists_site_folder(self) -> None:
        pages = {
            **SITE_PAGES,
            "/drives/drive-1/root:/Reports:/children": {
                "value": [_folder("f1", "2024"), _file("1", "index.txt")]
            },
            "/drives/drive-1/items/f1/children": {"value": [_file("2", "q1.txt")]},
        }
        tools, _ = _make_tools(pages, site_url=SITE)

        payload = tools.get_folder_structure({"folderPath": "Reports", "depth": 9})

        assert payload["folderPath"] == "Reports"
        assert payload["depth"] == 5
        assert payload["structure"][0]["name"] == "2024"
        assert payload["structure"][0]["children"][0]["name"] == "q1.txt"


class TestGetFileContent:
    def test_reads_from_own_drive(self) -> None:
        tools, graph = _make_tools({})
        graph.get_content.return_value = "héllo".encode()

        assert tools.get_file_content({"fileId": "abc"}) == "héllo"
        assert graph.get_content.call_args[0][0] == "/me/drive/items/abc/content"

    def test_reads_from_given_drive(self) -> None:
        tools, graph = _make_tools({})
        graph.get_content.return_value = b"x"

        tools.get_file_content({"fileId": "abc", "driveId": "d-9"})

        assert graph.get_content.call_args[0][0] == "/drives/d-9/items/abc/content"

    def test_requires_file_id(self) -> None:
        tools, _ = _make_tools({})
        with pytest.raises(ValueError, match="fileId is required"):
            tools.get_file_content({})


class TestListRecentFiles:
    def test_own_drive_drops_folders(self) -> None:
        pages = {"/me/drive/recent": {"value": [_file("1", "a.txt"), _folder("f", "Docs")]}}
        tools, graph = _make_tools(pages)

        payload = tools.list_recent_files({"limit": 5})

        assert payload["count"] == 1
        assert payload["recentFiles"][0]["name"] == "a.txt"
        graph.get.assert_called_once_with("/me/drive/recent", {"$top": 5})

    def test_site_drive_sorted_by_modification(self) -> None:
        pages = {
            **SITE_PAGES,
            "/drives/drive-1/root/search(q='')": {
                "value": [
                    _file("old", "old.txt", "2023-01-01T00:00:00Z"),
                    _folder("f", "Docs"),
                    _file("new", "new.txt", "2024-06-01T00:00:00Z"),
                    _file("mid", "mid.txt", "2024-01-01T00:00:00Z"),
                ]
            },
        }
        tools, _ = _make_tools(pages, site_url=SITE)

        payload = tools.list_recent_files({"limit": 2})

        assert [f["id"] for f in payload["recentFiles"]] == ["new", "mid"]


class TestListSharedFiles:
    def test_includes_sharer(self) -> None:
        raw = {
            "id": "local",
            "name": "plan.docx",
            "remoteItem": {
                "id": "remote",
                "parentReference": {"driveId": "owner-drive"},
                "shared": {
                    "sharedBy": {"user": {"displayName": "Grace Hopper"}},
                    "sharedDateTime": "2024-05-05T00:00:00Z",
                },
            },
        }
        tools, graph = _make_tools({"/me/drive/sharedWithMe": {"value": [raw]}})

        payload = tools.list_shared_files({})

        shared = payload["sharedFiles"][0]
        assert shared["id"] == "remote"
        assert shared["driveId"] == "owner-drive"
        assert shared["sharedBy"] == "Grace Hopper"
        assert shared["sharedDateTime"] == "2024-05-05T00:00:00Z"
        graph.get.assert_called_once_with("/me/drive/sharedWithMe", {"$top": 20})


class TestListMyFiles:
    def test_recent_when_no_path(self) -> None:
        tools, _ = _make_tools({"/me/drive/recent": {"value": [_file("1", "a.txt")]}})

        payload = tools.list_my_files({})

        assert payload["path"] == "recent files"
        assert payload["count"] == 1

    def test_folder_children(self) -> None:
        pages = {
            "/me/drive/root:/Projects:/children": {
                "value": [_folder("f", "Alpha"), _file("1", "readme.md")]
            }
        }
        tools, _ = _make_tools(pages)

        payload = tools.list_my_files({"folderPath": "/Projects", "limit": 50})

        assert payload["path"] == "/Projects"
        assert [i["type"] for i in payload["items"]] == ["folder", "file"]


class TestInspectFileMetadata:
    def test_includes_version_count(self) -> None:
        raw = {
            **_file("1", "a.txt"),
            "createdDateTime": "2023-01-01T00:00:00Z",
            "lastModifiedBy": {"user": {"displayName": "Ada"}},
        }
        pages = {
            "/me/drive/items/1": raw,
            "/me/drive/items/1/versions": {"value": [{"id": "1.0"}, {"id": "2.0"}]},
        }
        tools, _ = _make_tools(pages)

        payload = tools.inspect_file_metadata({"fileId": "1"})

        assert payload["versionCount"] == 2
        assert payload["mimeType"] == "text/plain"
        assert payload["lastModifiedBy"] == "Ada"
        assert payload["createdDateTime"] == "2023-01-01T00:00:00Z"

    def test_version_failure_is_tolerated(self) -> None:
        pages = {
            "/drives/d/items/1": _file("1", "a.txt"),
            "/drives/d/items/1/versions": GraphApiError(403, "Access denied"),
        }
        tools, _ = _make_tools(pages)

        payload = tools.inspect_file_metadata({"fileId": "1", "driveId": "d"})

        assert payload["versionCount"] is None
        assert payload["name"] == "a.txt"
