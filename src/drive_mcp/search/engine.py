"""File search across a drive: name search, search index, and content scan."""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from typing import Any
from urllib.parse import quote

from drive_mcp.graph.client import GraphApiError, GraphClient
from drive_mcp.graph.folders import FolderWalker
from drive_mcp.graph.models import (
    ODATA_VALUE,
    PREVIEW_MAX_CHARS,
    SNIPPET_MAX_CHARS,
    ContentMatch,
    DriveItem,
    FileOutcome,
    MatchType,
    OutcomeStatus,
    SearchReport,
    SearchResult,
    shared_by_name,
)
from drive_mcp.search.extraction import ExtractionUnavailable, OfficeTextExtractor
from drive_mcp.search.scoring import (
    OFFICE_EXTENSIONS,
    is_searchable,
    name_matches,
    normalize_extensions,
    relevance_score,
    should_skip,
)

logger = logging.getLogger(__name__)

DEPTH_FILENAME = "filename"
DEPTH_CONTENT = "content"
DEPTH_AUTO = "auto"
SEARCH_DEPTHS = (DEPTH_FILENAME, DEPTH_CONTENT, DEPTH_AUTO)

SHARED_WITH_ME_PATH = "/me/drive/sharedWithMe"
SEARCH_QUERY_PATH = "/search/query"
SOURCE_DRIVE = "drive"
SOURCE_SHARED = "sharedWithMe"
SOURCE_INDEX = "searchIndex"

MAX_CONTENT_MATCHES = 5

_HIGHLIGHT_TAGS = re.compile(r"</?c0>|<ddd/>")


class _ScanSkipped(Exception):
    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def scan_text(text: str, query: str, limit: int = MAX_CONTENT_MATCHES) -> list[ContentMatch]:
    """Find lines containing ``query`` (case-insensitive).

    Args:
        text: Document text.
        query: Search query.
        limit: Maximum number of matching lines to return.

    Returns:
        Matches with 1-based line numbers and snippets truncated to 300 chars.
    """
    needle = query.lower()
    if not needle or needle not in text.lower():
        return []
    matches: list[ContentMatch] = []
    for number, line in enumerate(text.splitlines(), start=1):
        if needle in line.lower():
            matches.append(ContentMatch(number, line.strip()[:SNIPPET_MAX_CHARS]))
            if len(matches) >= limit:
                break
    return matches


def item_path(drive_path: str, item: DriveItem) -> str:
    """Graph path of an item, addressing the owner's drive for shared items."""
    if item.drive_id and drive_path == "/me/drive":
        return f"/drives/{item.drive_id}/items/{item.id}"
    return f"{drive_path}/items/{item.id}"


class SearchEngine:
    """Searches one drive by file name, via the search index, or by content."""

    def __init__(
        self,
        graph: GraphClient,
        walker: FolderWalker,
        extractor: OfficeTextExtractor,
        max_files: int = 5000,
        low_relevance_limit: int = 200,
        shared_scan_limit: int = 100,
        max_content_bytes: int = 1_048_576,
        download_timeout: float = 30.0,
    ) -> None:
        """Initialise the search engine.

        Args:
            graph: Authenticated GraphClient.
            walker: FolderWalker used to enumerate the drive for content search.
            extractor: Text extractor for Office documents.
            max_files: File cap for the drive walk.
            low_relevance_limit: Max zero-score files scanned when the ranked
                pass did not fill the result set.
            shared_scan_limit: Number of ``sharedWithMe`` items inspected.
            max_content_bytes: Files larger than this are not downloaded.
            download_timeout: Socket timeout per download in seconds.
        """
        self._graph = graph
        self._walker = walker
        self._extractor = extractor
        self._max_files = max_files
        self._low_relevance_limit = low_relevance_limit
        self._shared_scan_limit = shared_scan_limit
        self._max_content_bytes = max_content_bytes
        self._download_timeout = download_timeout

    def search(
        self,
        drive_path: str,
        query: str,
        max_results: int = 20,
        include_shared: bool = False,
        search_depth: str = DEPTH_AUTO,
        file_types: list[str] | None = None,
        site_url: str | None = None,
        now: datetime | None = None,
    ) -> SearchReport:
        """Run a search and return the ranked results with per-file outcomes.

        Args:
            drive_path: Drive URL prefix (``/me/drive`` or ``/drives/{id}``).
            query: Search text.
            max_results: Upper bound on returned results.
            include_shared: Also consider items shared with the user.
            search_depth: ``filename``, ``content`` or ``auto``. ``auto``
                tries the search index and falls back to ``content``.
            file_types: Optional extension allow-list for content scanning.
            site_url: SharePoint site URL used to scope index searches. Without
                it the index search is scoped to the web URL of ``drive_path``.
            now: Reference time for the recency bonus.

        Raises:
            ValueError: On an empty query or unknown search depth.
            GraphApiError: If a top-level Graph call fails.
        """
        if not query or not query.strip():
            raise ValueError("query is required")
        if search_depth not in SEARCH_DEPTHS:
            raise ValueError(
                f"Invalid search depth '{search_depth}'; "
                f"expected one of {', '.join(SEARCH_DEPTHS)}"
            )
        query = query.strip()
        max_results = max(1, int(max_results))
        logger.info(
            "[search] starting search; depth:%s;max_results:%d;include_shared:%s",
            search_depth,
            max_results,
            include_shared,
        )

        if search_depth == DEPTH_FILENAME:
            return self._filename_search(drive_path, query, max_results, include_shared, now)

        if search_depth == DEPTH_AUTO:
            try:
                scope = site_url or self._drive_web_url(drive_path)
                if scope:
                    return self._index_search(query, max_results, file_types, scope, now)
                logger.info("[search] drive has no web url, falling back to content scan")
            except GraphApiError as exc:
                logger.info(
                    "[search] search index unavailable, falling back to content scan; status:%d",
                    exc.status_code,
                )
            report = self._content_search(
                drive_path, query, max_results, include_shared, file_types, now
            )
            report.fallback_from = DEPTH_AUTO
            return report

        return self._content_search(
            drive_path, query, max_results, include_shared, file_types, now
        )

    # ------------------------------------------------------------------
    # Filename search
    # ------------------------------------------------------------------

    def _filename_search(
        self,
        drive_path: str,
        query: str,
        max_results: int,
        include_shared: bool,
        now: datetime | None,
    ) -> SearchReport:
        report = SearchReport(query=query, mode=DEPTH_FILENAME)
        escaped = quote(query.replace("'", "''"), safe="")
        response = self._graph.get(
            f"{drive_path}/root/search(q='{escaped}')", {"$top": max_results}
        )
        for raw in response.get(ODATA_VALUE, [])[:max_results]:
            item = DriveItem.from_graph(raw)
            report.results.append(
                SearchResult(
                    item=item,
                    match_type=MatchType.FILENAME,
                    relevance_score=relevance_score(item, query, now),
                    source=SOURCE_DRIVE,
                )
            )

        if include_shared:
            try:
                shared = self._shared_items()
            except (GraphApiError, OSError) as exc:
                logger.warning("[_filename_search] shared files search failed; error:%s", exc)
            else:
                matching = [
                    (raw, item) for raw, item in shared if name_matches(item, query)
                ][: max_results // 2]
                for raw, item in matching:
                    report.results.append(
                        SearchResult(
                            item=item,
                            match_type=MatchType.FILENAME,
                            relevance_score=relevance_score(item, query, now),
                            source=SOURCE_SHARED,
                            shared_by=shared_by_name(raw),
                        )
                    )
        return report

    # ------------------------------------------------------------------
    # Search index
    # ------------------------------------------------------------------

    def _index_search(
        self,
        query: str,
        max_results: int,
        file_types: list[str] | None,
        scope_url: str,
        now: datetime | None,
    ) -> SearchReport:
        # The search API spans the whole tenant unless a path restriction is given.
        query_string = f'{query} path:"{scope_url}"'
        body = {
            "requests": [
                {
                    "entityTypes": ["driveItem"],
                    "query": {"queryString": query_string},
                    "from": 0,
                    "size": max_results,
                }
            ]
        }
        response = self._graph.post(SEARCH_QUERY_PATH, body)
        allowed = normalize_extensions(file_types)
        report = SearchReport(query=query, mode=DEPTH_AUTO)

        for hit in self._index_hits(response):
            item = DriveItem.from_graph(hit.get("resource", {}))
            if item.is_folder or (allowed is not None and item.extension not in allowed):
                continue
            summary = _HIGHLIGHT_TAGS.sub("", hit.get("summary") or "").strip()
            report.results.append(
                SearchResult(
                    item=item,
                    match_type=MatchType.BOTH if name_matches(item, query) else MatchType.CONTENT,
                    relevance_score=relevance_score(item, query, now),
                    preview=summary[:PREVIEW_MAX_CHARS] or None,
                    source=SOURCE_INDEX,
                )
            )
            if len(report.results) >= max_results:
                break
        logger.info("[_index_search] search index returned; results:%d", len(report.results))
        return report

    def _drive_web_url(self, drive_path: str) -> str | None:
        response = self._graph.get(drive_path, {"$select": "webUrl"})
        return response.get("webUrl")

    @staticmethod
    def _index_hits(response: dict[str, Any]) -> list[dict[str, Any]]:
        hits: list[dict[str, Any]] = []
        for entry in response.get(ODATA_VALUE, []):
            for container in entry.get("hitsContainers", []):
                hits.extend(container.get("hits", []))
        return hits

    # ------------------------------------------------------------------
    # Content search
    # ------------------------------------------------------------------

    def _content_search(
        self,
        drive_path: str,
        query: str,
        max_results: int,
        include_shared: bool,
        file_types: list[str] | None,
        now: datetime | None,
    ) -> SearchReport:
        report = SearchReport(query=query, mode=DEPTH_CONTENT)
        allowed = normalize_extensions(file_types)
        now = now or datetime.now(tz=UTC)

        enumeration = self._walker.enumerate_files(drive_path, self._max_files)
        report.files_enumerated = len(enumeration.files)
        report.failed_folders = list(enumeration.failed_folders)

        high: list[tuple[int, DriveItem]] = []
        low: list[DriveItem] = []
        for item in enumeration.files:
            if should_skip(item):
                report.outcomes.append(
                    FileOutcome(item.id, item.name, OutcomeStatus.SKIPPED, "skip_pattern")
                )
                continue
            score = relevance_score(item, query, now)
            if score > 0:
                high.append((score, item))
            else:
                low.append(item)
        high.sort(key=lambda pair: pair[0], reverse=True)
        logger.info("[_content_search] candidates ranked; high:%d;low:%d", len(high), len(low))

        for score, item in high:
            if len(report.results) >= max_results:
                break
            self._evaluate(item_path(drive_path, item), item, query, score, allowed, report)

        if len(report.results) < max_results:
            for item in low[: self._low_relevance_limit]:
                if len(report.results) >= max_results:
                    break
                self._evaluate(item_path(drive_path, item), item, query, 0, allowed, report)

        if include_shared and len(report.results) < max_results:
            self._search_shared(query, max_results, allowed, report, now)

        report.results.sort(key=lambda r: r.relevance_score, reverse=True)
        logger.info(
            "[_content_search] search complete; results:%d;skipped:%d;failed_folders:%d",
            len(report.results),
            len(report.skipped()),
            len(report.failed_folders),
        )
        return report

    def _search_shared(
        self,
        query: str,
        max_results: int,
        allowed: frozenset[str] | None,
        report: SearchReport,
        now: datetime,
    ) -> None:
        try:
            shared = self._shared_items()
        except (GraphApiError, OSError) as exc:
            logger.warning("[_search_shared] shared files listing failed; error:%s", exc)
            return
        seen = {r.item.id for r in report.results}
        for raw, item in shared:
            if len(report.results) >= max_results:
                break
            if item.id in seen or should_skip(item):
                continue
            seen.add(item.id)
            self._evaluate(
                item_path("/me/drive", item),
                item,
                query,
                relevance_score(item, query, now),
                allowed,
                report,
                source=SOURCE_SHARED,
                shared_by=shared_by_name(raw),
            )

    def _shared_items(self) -> list[tuple[dict[str, Any], DriveItem]]:
        response = self._graph.get(SHARED_WITH_ME_PATH, {"$top": self._shared_scan_limit})
        return [(raw, DriveItem.from_graph(raw)) for raw in response.get(ODATA_VALUE, [])]

    def _evaluate(
        self,
        path: str,
        item: DriveItem,
        query: str,
        score: int,
        allowed: frozenset[str] | None,
        report: SearchReport,
        source: str = SOURCE_DRIVE,
        shared_by: str | None = None,
    ) -> None:
        """Match one file by name and content and record the outcome."""
        name_hit = name_matches(item, query)
        matches: list[ContentMatch] = []
        skip_reason: str | None = None

        if is_searchable(item, allowed):
            try:
                matches = self._scan(path, item, query)
            except _ScanSkipped as exc:
                skip_reason = exc.reason
            except ExtractionUnavailable:
                skip_reason = "extraction_unavailable"
            except (GraphApiError, OSError, ValueError) as exc:
                logger.debug("[_evaluate] download failed; name:%s;error:%s", item.name, exc)
                skip_reason = "download_failed"
        elif allowed is not None and item.extension not in allowed:
            skip_reason = "type_filtered"
        else:
            skip_reason = "not_searchable"

        if not name_hit and not matches:
            if skip_reason is not None:
                report.outcomes.append(
                    FileOutcome(item.id, item.name, OutcomeStatus.SKIPPED, skip_reason)
                )
            else:
                report.outcomes.append(FileOutcome(item.id, item.name, OutcomeStatus.NO_MATCH))
            return

        if name_hit and matches:
            match_type = MatchType.BOTH
        elif matches:
            match_type = MatchType.CONTENT
        else:
            match_type = MatchType.FILENAME
        report.results.append(
            SearchResult(
                item=item,
                match_type=match_type,
                relevance_score=score,
                content_matches=matches,
                preview=matches[0].content[:PREVIEW_MAX_CHARS] if matches else None,
                source=source,
                shared_by=shared_by,
            )
        )
        report.outcomes.append(FileOutcome(item.id, item.name, OutcomeStatus.MATCHED))

    def _scan(self, path: str, item: DriveItem, query: str) -> list[ContentMatch]:
        if item.extension in OFFICE_EXTENSIONS:
            text = self._extractor.extract(item, path)
        else:
            if item.size > self._max_content_bytes:
                raise _ScanSkipped("too_large")
            raw = self._graph.get_content(
                f"{path}/content",
                max_bytes=self._max_content_bytes,
                timeout=self._download_timeout,
            )
            text = raw.decode("utf-8", errors="replace")
        return scan_text(text, query)
