"""Folder tree listing and breadth-first drive enumeration."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

from drive_mcp.graph.client import GraphApiError, GraphClient
from drive_mcp.graph.models import ODATA_NEXT_LINK, ODATA_VALUE, DriveItem

logger = logging.getLogger(__name__)

MIN_STRUCTURE_DEPTH = 1
MAX_STRUCTURE_DEPTH = 5
ROOT_ITEM_ID = "root"


def children_path(drive_path: str, folder_path: str = "") -> str:
    """Return the children endpoint for a folder addressed by its path."""
    cleaned = folder_path.strip("/")
    if not cleaned:
        return f"{drive_path}/root/children"
    return f"{drive_path}/root:/{quote(cleaned)}:/children"


@dataclass
class FolderNode:
    """One entry in a folder structure tree.

    ``children`` is None for files and for folders below the depth limit.
    """

    name: str
    is_folder: bool
    size: int = 0
    last_modified: str | None = None
    children: list[FolderNode] | None = None

    def to_dict(self) -> dict[str, Any]:
        if not self.is_folder:
            return {
                "name": self.name,
                "type": "file",
                "size": self.size,
                "lastModified": self.last_modified,
            }
        return {
            "name": self.name,
            "type": "folder",
            "children": None if self.children is None else [c.to_dict() for c in self.children],
        }


@dataclass
class Enumeration:
    """Files discovered by a breadth-first walk of a drive."""

    files: list[DriveItem] = field(default_factory=list)
    folders_visited: int = 0
    failed_folders: list[str] = field(default_factory=list)
    truncated: bool = False


class FolderWalker:
    """Lists folder children and walks drives through the Graph API."""

    def __init__(self, graph: GraphClient, page_size: int = 200) -> None:
        """Initialise the walker.

        Args:
            graph: Authenticated GraphClient.
            page_size: ``$top`` value requested for each children page.
        """
        self._graph = graph
        self._page_size = page_size

    def list_children(self, path: str, follow_pages: bool = False) -> list[DriveItem]:
        """Fetch the children at a Graph children endpoint.

        Args:
            path: Children endpoint path (e.g. ``/me/drive/items/{id}/children``).
            follow_pages: Follow ``@odata.nextLink`` until exhausted. When
                False only the first page is returned.

        Returns:
            Parsed DriveItem objects in API order.
        """
        items: list[DriveItem] = []
        response = self._graph.get(path, {"$top": self._page_size})
        items.extend(DriveItem.from_graph(raw) for raw in response.get(ODATA_VALUE, []))
        while follow_pages and ODATA_NEXT_LINK in response:
            response = self._graph.get(response[ODATA_NEXT_LINK])
            items.extend(DriveItem.from_graph(raw) for raw in response.get(ODATA_VALUE, []))
        return items

    def folder_structure(
        self, drive_path: str, folder_path: str = "", depth: int = 2
    ) -> list[FolderNode]:
        """Build the folder tree below ``folder_path``.

        Args:
            drive_path: Drive URL prefix (``/me/drive`` or ``/drives/{id}``).
            folder_path: Folder path relative to the drive root; empty for root.
            depth: Levels to descend, clamped to 1-5.

        Returns:
            Top-level nodes of the tree.
        """
        max_depth = max(MIN_STRUCTURE_DEPTH, min(MAX_STRUCTURE_DEPTH, int(depth)))
        logger.info(
            "[folder_structure] listing tree; folder_path:%s;depth:%d", folder_path, max_depth
        )
        return self._build_level(drive_path, children_path(drive_path, folder_path), 1, max_depth)

    def _build_level(
        self, drive_path: str, path: str, current_depth: int, max_depth: int
    ) -> list[FolderNode]:
        nodes: list[FolderNode] = []
        for item in self.list_children(path):
            if not item.is_folder:
                nodes.append(
                    FolderNode(
                        name=item.name,
                        is_folder=False,
                        size=item.size,
                        last_modified=item.last_modified,
                    )
                )
                continue
            children = None
            if current_depth < max_depth:
                children = self._build_level(
                    drive_path,
                    f"{drive_path}/items/{item.id}/children",
                    current_depth + 1,
                    max_depth,
                )
            nodes.append(FolderNode(name=item.name, is_folder=True, children=children))
        return nodes

    def enumerate_files(self, drive_path: str, max_files: int = 5000) -> Enumeration:
        """Walk a drive breadth-first from the root and collect its files.

        Uses a work queue of folder ids and a visited set so no folder or
        file id is processed twice. The walk stops as soon as ``max_files``
        files have been collected. A folder whose children cannot be fetched
        is recorded in ``failed_folders`` and the walk continues with its
        siblings.

        Args:
            drive_path: Drive URL prefix (``/me/drive`` or ``/drives/{id}``).
            max_files: File cap for the walk.

        Returns:
            Enumeration with the collected files and walk statistics.
        """
        result = Enumeration()
        visited: set[str] = {ROOT_ITEM_ID}
        queue: deque[str] = deque([ROOT_ITEM_ID])

        while queue and len(result.files) < max_files:
            folder_id = queue.popleft()
            try:
                children = self.list_children(
                    f"{drive_path}/items/{folder_id}/children", follow_pages=True
                )
            except (GraphApiError, OSError, ValueError) as exc:
                logger.warning(
                    "[enumerate_files] skipping folder; folder_id:%s;error:%s", folder_id, exc
                )
                result.failed_folders.append(folder_id)
                continue
            result.folders_visited += 1

            for item in children:
                if item.id in visited:
                    continue
                visited.add(item.id)
                if item.is_folder:
                    queue.append(item.id)
                    continue
                result.files.append(item)
                if len(result.files) >= max_files:
                    break

        result.truncated = len(result.files) >= max_files and bool(queue)
        logger.info(
            "[enumerate_files] walk complete; files:%d;folders:%d;failed:%d;truncated:%s",
            len(result.files),
            result.folders_visited,
            len(result.failed_folders),
            result.truncated,
        )
        return result
