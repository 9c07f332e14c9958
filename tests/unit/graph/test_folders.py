"""Unit tests for graph/folders.py: folder tree and drive enumeration."""

from typing import Any
from unittest.mock import MagicMock

from drive_mcp.graph.client import GraphApiError
from drive_mcp.graph.folders import FolderWalker, children_path

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _file(item_id: str, name: str, size: int = 10) -> dict[str, Any]:
    return {"id": item_id, "name": name, "size": size, "file": {}}


def _folder(item_id: str, name: str) -> dict[str, Any]:
    return {"id": item_id, "name": name, "folder": {"childCount": 1}}


def _make_graph(pages: dict[str, Any]) -> MagicMock:
    """Return a Graph mock answering GETs from ``pages`` keyed by path.

    A value that is an exception instance is raised instead of returned.
    """
    graph = MagicMock()

    def get(path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        value = pages[path]
        if isinstance(value, Exception):
            raise value
        return value

    graph.get.side_effect = get
    return graph


def _children(drive: str, folder_id: str) -> str:
    return f"{drive}/items/{folder_id}/children"


# ---------------------------------------------------------------------------
# children_path
# ---------------------------------------------------------------------------


class TestChildrenPath:
    def test_root(self) -> None:
        assert children_path("/me/drive") == "/me/drive/root/children"
        assert children_path("/me/drive", "/") == "/me/drive/root/children"

    def test_nested_path_is_quoted(self) -> None:
        assert children_path("/drives/d", "/Team Docs/2024/") == (
            "/drives/d/root:/Team%20Docs/2024:/children"
        )


# ---------------------------------------------------------------------------
# list_children
# ---------------------------------------------------------------------------


class TestListChildren:
    def test_requests_page_size(self) -> None:
        graph = _make_graph({"/p": {"value": [_file("1", "a.txt")]}})
        FolderWalker(graph, page_size=50).list_children("/p")
        graph.get.assert_called_once_with("/p", {"$top": 50})

    def test_follows_next_link_when_asked(self) -> None:
        link = "https://graph.microsoft.com/v1.0/next"
        graph = _make_graph(
            {
                "/p": {"value": [_file("1", "a.txt")], "@odata.nextLink": link},
                link: {"value": [_file("2", "b.txt")]},
            }
        )
        walker = FolderWalker(graph)

        assert [i.id for i in walker.list_children("/p")] == ["1"]
        assert [i.id for i in walker.list_children("/p", follow_pages=True)] == ["1", "2"]


# ---------------------------------------------------------------------------
# folder_structure
# ---------------------------------------------------------------------------


class TestFolderStructure:
    def test_builds_tree_to_depth(self) -> None:
        drive = "/drives/d"
        graph = _make_graph(
            {
                f"{drive}/root/children": {"value": [_folder("f1", "Docs"), _file("1", "a.txt")]},
                _children(drive, "f1"): {"value": [_folder("f2", "Deep")]},
            }
        )

        nodes = FolderWalker(graph).folder_structure(drive, depth=2)

        data = [n.to_dict() for n in nodes]
        assert data[0] == {
            "name": "Docs",
            "type": "folder",
            "children": [{"name": "Deep", "type": "folder", "children": None}],
        }
        assert data[1]["type"] == "file"
        assert data[1]["size"] == 10

    def test_depth_is_clamped(self) -> None:
        drive = "/drives/d"
        graph = _make_graph({f"{drive}/root/children": {"value": [_folder("f1", "Docs")]}})

        nodes = FolderWalker(graph).folder_structure(drive, depth=0)

        assert nodes[0].children is None
        assert graph.get.call_count == 1


# ---------------------------------------------------------------------------
# enumerate_files
# ---------------------------------------------------------------------------


class TestEnumerateFiles:
    def test_walks_breadth_first(self) -> None:
        drive = "/me/drive"
        graph = _make_graph(
            {
                _children(drive, "root"): {"value": [_file("1", "a.txt"), _folder("f1", "Sub")]},
                _children(drive, "f1"): {"value": [_file("2", "b.txt")]},
            }
        )

        result = FolderWalker(graph).enumerate_files(drive)

        assert [f.id for f in result.files] == ["1", "2"]
        assert result.folders_visited == 2
        assert not result.truncated

    def test_never_revisits_an_id(self) -> None:
        drive = "/me/drive"
        graph = _make_graph(
            {
                _children(drive, "root"): {"value": [_folder("f1", "A"), _folder("f2", "B")]},
                _children(drive, "f1"): {"value": [_file("1", "a.txt"), _folder("f2", "B")]},
                _children(drive, "f2"): {"value": [_file("1", "a.txt"), _folder("f1", "A")]},
            }
        )

        result = FolderWalker(graph).enumerate_files(drive)

        assert [f.id for f in result.files] == ["1"]
        assert graph.get.call_count == 3

    def test_halts_at_cap(self) -> None:
        drive = "/me/drive"
        graph = _make_graph(
            {
                _children(drive, "root"): {
                    "value": [_file(str(i), f"{i}.txt") for i in range(10)] + [_folder("f", "F")]
                },
            }
        )

        result = FolderWalker(graph).enumerate_files(drive, max_files=3)

        assert len(result.files) == 3
        assert graph.get.call_count == 1

    def test_failing_folder_does_not_abort(self) -> None:
        drive = "/me/drive"
        graph = _make_graph(
            {
                _children(drive, "root"): {
                    "value": [_folder("bad", "Locked"), _folder("ok", "Open")]
                },
                _children(drive, "bad"): GraphApiError(403, "Access denied"),
                _children(drive, "ok"): {"value": [_file("1", "a.txt")]},
            }
        )

        result = FolderWalker(graph).enumerate_files(drive)

        assert [f.id for f in result.files] == ["1"]
        assert result.failed_folders == ["bad"]
