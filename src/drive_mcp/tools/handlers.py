"""Tool implementations: argument parsing, Graph calls, response shaping."""

from __future__ import annotations

import logging
from typing import Any

from drive_mcp.auth.device_code import DeviceCodeFlow
from drive_mcp.auth.redirect import RedirectFlow
from drive_mcp.config import AppConfig
from drive_mcp.graph.client import GraphApiError, GraphClient
from drive_mcp.graph.folders import FolderWalker, children_path
from drive_mcp.graph.models import (
    FIELD_REMOTE_ITEM,
    FIELD_SHARED,
    ODATA_VALUE,
    DriveItem,
    SearchReport,
    shared_by_name,
)
from drive_mcp.graph.sites import ME_DRIVE_PATH, resolve_site_drive, validate_site_url
from drive_mcp.search.engine import DEPTH_AUTO, DEPTH_FILENAME, SearchEngine
from drive_mcp.search.extraction import OfficeTextExtractor
from drive_mcp.session import Session

logger = logging.getLogger(__name__)

MAX_PAGE_LIMIT = 999


def _int_arg(args: dict[str, Any], key: str, default: int, minimum: int = 1) -> int:
    value = args.get(key)
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{key} must be a number") from exc
    return max(minimum, min(MAX_PAGE_LIMIT, number))


def _str_arg(args: dict[str, Any], key: str, default: str = "") -> str:
    value = args.get(key)
    if value is None:
        return default
    return str(value).strip()


def _bool_arg(args: dict[str, Any], key: str, default: bool = False) -> bool:
    value = args.get(key)
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    elif isinstance(value, int):
        return value != 0
    raise ValueError(f"{key} must be true or false")


def _required(args: dict[str, Any], key: str) -> str:
    value = _str_arg(args, key)
    if not value:
        raise ValueError(f"{key} is required")
    return value


def _search_depth(args: dict[str, Any], default: str) -> str:
    # search_files documents "searchType"; both tools accept either name.
    return _str_arg(args, "searchType") or _str_arg(args, "searchDepth") or default


def _type_list(args: dict[str, Any]) -> list[str] | None:
    value = args.get("fileTypes")
    if not value:
        return None
    if isinstance(value, str):
        return [part for part in value.split(",") if part.strip()]
    return [str(part) for part in value]


def _report_payload(report: SearchReport, include_shared: bool) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "query": report.query,
        "searchDepth": report.mode,
        "resultCount": len(report.results),
        "includeShared": include_shared,
        "files": [r.to_dict() for r in report.results],
    }
    if report.fallback_from:
        payload["fallbackFrom"] = report.fallback_from
    if report.mode == "content":
        payload["filesScanned"] = report.files_enumerated
        payload["failedFolders"] = len(report.failed_folders)
        payload["skipped"] = report.skip_reasons()
    return payload


class DriveTools:
    """The tool surface offered to the assistant host.

    Handlers take the raw ``arguments`` dict of a tool call and return either
    a dict (serialised to JSON by the dispatcher) or plain text. The auth
    handlers are coroutines; every other handler is synchronous and does
    blocking Graph I/O.
    """

    def __init__(self, session: Session, config: AppConfig, graph: GraphClient) -> None:
        self._session = session
        self._config = config
        self._graph = graph
        self._walker = FolderWalker(graph, page_size=config.page_size)
        self._engine = SearchEngine(
            graph=graph,
            walker=self._walker,
            extractor=OfficeTextExtractor(
                graph,
                max_bytes=config.max_content_bytes,
                timeout=config.download_timeout_seconds,
            ),
            max_files=config.max_enumerated_files,
            low_relevance_limit=config.low_relevance_limit,
            shared_scan_limit=config.shared_scan_limit,
            max_content_bytes=config.max_content_bytes,
            download_timeout=config.download_timeout_seconds,
        )
        self.redirect_flow = RedirectFlow(session, config)
        self.device_code_flow = DeviceCodeFlow(session, config)

    # ------------------------------------------------------------------
    # Authentication and session
    # ------------------------------------------------------------------

    async def authenticate_sharepoint(self, args: dict[str, Any]) -> str:
        return await self.redirect_flow.authenticate(
            client_id=_str_arg(args, "clientId") or None,
            tenant_id=_str_arg(args, "tenantId") or None,
            redirect_uri=_str_arg(args, "redirectUri") or None,
        )

    async def authenticate_device_code(self, args: dict[str, Any]) -> str:
        return await self.device_code_flow.authenticate(
            client_id=_str_arg(args, "clientId") or None,
            tenant_id=_str_arg(args, "tenantId") or None,
        )

    def set_site_url(self, args: dict[str, Any]) -> str:
        site_url = validate_site_url(_required(args, "siteUrl"))
        self._session.set_site_url(site_url)
        logger.info("[set_site_url] site url stored; site_url:%s", site_url)
        return f"SharePoint site URL set to: {site_url}"

    def _site_drive_path(self) -> str:
        site_url = self._session.get().site_url
        if not site_url:
            return ME_DRIVE_PATH
        return resolve_site_drive(self._graph, site_url).drive_path

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search_files(self, args: dict[str, Any]) -> dict[str, Any]:
        """Search the selected SharePoint site's document library."""
        include_shared = _bool_arg(args, "includeShared")
        report = self._engine.search(
            drive_path=self._site_drive_path(),
            query=_required(args, "query"),
            max_results=_int_arg(args, "maxResults", 20),
            include_shared=include_shared,
            search_depth=_search_depth(args, DEPTH_AUTO),
            file_types=_type_list(args),
            site_url=self._session.get().site_url,
        )
        return _report_payload(report, include_shared)

    def search_my_files(self, args: dict[str, Any]) -> dict[str, Any]:
        """Search the signed-in user's OneDrive."""
        include_shared = _bool_arg(args, "includeShared")
        report = self._engine.search(
            drive_path=ME_DRIVE_PATH,
            query=_required(args, "query"),
            max_results=_int_arg(args, "maxResults", 20),
            include_shared=include_shared,
            search_depth=_search_depth(args, DEPTH_FILENAME),
            file_types=_type_list(args),
        )
        return _report_payload(report, include_shared)

    # ------------------------------------------------------------------
    # Browsing
    # ------------------------------------------------------------------

    def get_folder_structure(self, args: dict[str, Any]) -> dict[str, Any]:
        folder_path = _str_arg(args, "folderPath")
        depth = _int_arg(args, "depth", 2)
        nodes = self._walker.folder_structure(self._site_drive_path(), folder_path, depth)
        return {
            "folderPath": folder_path or "/",
            "depth": max(1, min(5, depth)),
            "structure": [node.to_dict() for node in nodes],
        }

    def get_file_content(self, args: dict[str, Any]) -> str:
        file_id = _required(args, "fileId")
        drive_id = _str_arg(args, "driveId")
        prefix = f"/drives/{drive_id}" if drive_id else ME_DRIVE_PATH
        raw = self._graph.get_content(
            f"{prefix}/items/{file_id}/content",
            timeout=self._config.download_timeout_seconds,
        )
        return raw.decode("utf-8", errors="replace")

    def list_recent_files(self, args: dict[str, Any]) -> dict[str, Any]:
        """Recently modified files of the selected site, or of the user's OneDrive."""
        limit = _int_arg(args, "limit", 10)
        site_url = self._session.get().site_url
        if site_url:
            drive_path = resolve_site_drive(self._graph, site_url).drive_path
            response = self._graph.get(
                f"{drive_path}/root/search(q='')", {"$top": min(MAX_PAGE_LIMIT, limit * 5)}
            )
            raws = sorted(
                (raw for raw in response.get(ODATA_VALUE, []) if "folder" not in raw),
                key=lambda raw: raw.get("lastModifiedDateTime") or "",
                reverse=True,
            )[:limit]
        else:
            response = self._graph.get(f"{ME_DRIVE_PATH}/recent", {"$top": limit})
            raws = [raw for raw in response.get(ODATA_VALUE, []) if "folder" not in raw]

        files = []
        for raw in raws:
            item = DriveItem.from_graph(raw)
            if item.is_folder:
                continue
            file_system = raw.get("fileSystemInfo") or {}
            files.append(
                {
                    "id": item.id,
                    "name": item.name,
                    "size": item.size,
                    "lastModified": item.last_modified,
                    "lastAccessed": file_system.get("lastAccessedDateTime"),
                    "webUrl": item.web_url,
                    "driveId": item.drive_id,
                }
            )
        return {"recentFiles": files, "count": len(files)}

    def list_shared_files(self, args: dict[str, Any]) -> dict[str, Any]:
        limit = _int_arg(args, "limit", 20)
        response = self._graph.get(f"{ME_DRIVE_PATH}/sharedWithMe", {"$top": limit})
        files = []
        for raw in response.get(ODATA_VALUE, []):
            item = DriveItem.from_graph(raw)
            shared = (raw.get(FIELD_REMOTE_ITEM) or {}).get(FIELD_SHARED) or {}
            files.append(
                {
                    "id": item.id,
                    "name": item.name,
                    "type": "folder" if item.is_folder else "file",
                    "size": item.size,
                    "lastModified": item.last_modified,
                    "webUrl": item.web_url,
                    "driveId": item.drive_id,
                    "sharedBy": shared_by_name(raw),
                    "sharedDateTime": shared.get("sharedDateTime"),
                }
            )
        return {"sharedFiles": files, "count": len(files)}

    def list_my_files(self, args: dict[str, Any]) -> dict[str, Any]:
        folder_path = _str_arg(args, "folderPath")
        limit = _int_arg(args, "limit", 20)
        if folder_path:
            endpoint = children_path(ME_DRIVE_PATH, folder_path)
        else:
            endpoint = f"{ME_DRIVE_PATH}/recent"
        response = self._graph.get(endpoint, {"$top": limit})
        items = [DriveItem.from_graph(raw) for raw in response.get(ODATA_VALUE, [])]
        return {
            "path": folder_path or "recent files",
            "count": len(items),
            "items": [
                {
                    "id": item.id,
                    "name": item.name,
                    "type": "folder" if item.is_folder else "file",
                    "size": item.size,
                    "lastModified": item.last_modified,
                    "webUrl": item.web_url,
                }
                for item in items
            ],
        }

    def inspect_file_metadata(self, args: dict[str, Any]) -> dict[str, Any]:
        """Item metadata plus its version history size."""
        file_id = _required(args, "fileId")
        drive_id = _str_arg(args, "driveId")
        prefix = f"/drives/{drive_id}" if drive_id else ME_DRIVE_PATH
        raw = self._graph.get(f"{prefix}/items/{file_id}")
        item = DriveItem.from_graph(raw)

        version_count: int | None = None
        if not item.is_folder:
            try:
                versions = self._graph.get(f"{prefix}/items/{file_id}/versions")
                version_count = len(versions.get(ODATA_VALUE, []))
            except GraphApiError as exc:
                logger.info(
                    "[inspect_file_metadata] versions unavailable; file_id:%s;status:%d",
                    file_id,
                    exc.status_code,
                )

        modified_by = (raw.get("lastModifiedBy") or {}).get("user", {}).get("displayName")
        return {
            **item.to_dict(),
            "mimeType": item.mime_type,
            "description": item.description,
            "createdDateTime": raw.get("createdDateTime"),
            "lastModifiedBy": modified_by,
            "childCount": (raw.get("folder") or {}).get("childCount"),
            "hashes": (raw.get("file") or {}).get("hashes"),
            "versionCount": version_count,
        }
