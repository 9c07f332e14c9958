"""Data models for Microsoft Graph drive items and search results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Graph API JSON field names
FIELD_ID = "id"
FIELD_NAME = "name"
FIELD_SIZE = "size"
FIELD_FOLDER = "folder"
FIELD_FILE = "file"
FIELD_MIME_TYPE = "mimeType"
FIELD_DESCRIPTION = "description"
FIELD_WEB_URL = "webUrl"
FIELD_LAST_MODIFIED = "lastModifiedDateTime"
FIELD_CREATED_BY = "createdBy"
FIELD_USER = "user"
FIELD_DISPLAY_NAME = "displayName"
FIELD_PARENT_REFERENCE = "parentReference"
FIELD_PATH = "path"
FIELD_DRIVE_ID = "driveId"
FIELD_REMOTE_ITEM = "remoteItem"
FIELD_SHARED = "shared"
FIELD_SHARED_BY = "sharedBy"

# OData response keys
ODATA_NEXT_LINK = "@odata.nextLink"
ODATA_VALUE = "value"

SNIPPET_MAX_CHARS = 300
PREVIEW_MAX_CHARS = 200

# Parent paths look like "/drives/{id}/root:/Folder"; item paths keep only the part after it.
GRAPH_ROOT_MARKER = "root:"


def _drive_relative(parent_path: str) -> str:
    marker = parent_path.find(GRAPH_ROOT_MARKER)
    if marker < 0:
        return parent_path
    return parent_path[marker + len(GRAPH_ROOT_MARKER) :]


def _display_name(identity_set: dict[str, Any] | None) -> str | None:
    if not identity_set:
        return None
    return identity_set.get(FIELD_USER, {}).get(FIELD_DISPLAY_NAME)


def shared_by_name(raw: dict[str, Any]) -> str | None:
    """Return who shared a ``sharedWithMe`` item, falling back to its creator."""
    remote = raw.get(FIELD_REMOTE_ITEM) or {}
    shared = remote.get(FIELD_SHARED) or {}
    return _display_name(shared.get(FIELD_SHARED_BY)) or _display_name(
        remote.get(FIELD_CREATED_BY)
    )


@dataclass
class DriveItem:
    """Read-only view of a file or folder returned by the drive API."""

    id: str
    name: str
    path: str = ""
    size: int = 0
    last_modified: str | None = None
    author: str | None = None
    is_folder: bool = False
    web_url: str | None = None
    drive_id: str | None = None
    parent_id: str | None = None
    mime_type: str | None = None
    description: str | None = None

    @classmethod
    def from_graph(cls, raw: dict[str, Any]) -> DriveItem:
        """Map a raw Graph item dict to a DriveItem.

        Items returned by ``sharedWithMe`` wrap the real file in
        ``remoteItem``; its id, drive and URL take precedence so that
        follow-up content calls address the owner's drive.
        """
        remote = raw.get(FIELD_REMOTE_ITEM) or {}
        parent_ref = remote.get(FIELD_PARENT_REFERENCE) or raw.get(FIELD_PARENT_REFERENCE) or {}
        name = raw.get(FIELD_NAME) or remote.get(FIELD_NAME, "")
        parent_path = _drive_relative(parent_ref.get(FIELD_PATH) or "")
        file_facet = raw.get(FIELD_FILE) or remote.get(FIELD_FILE) or {}
        return cls(
            id=remote.get(FIELD_ID) or raw.get(FIELD_ID, ""),
            name=name,
            path=f"{parent_path}/{name}" if parent_path else name,
            size=int(raw.get(FIELD_SIZE, remote.get(FIELD_SIZE, 0)) or 0),
            last_modified=raw.get(FIELD_LAST_MODIFIED) or remote.get(FIELD_LAST_MODIFIED),
            author=_display_name(remote.get(FIELD_CREATED_BY) or raw.get(FIELD_CREATED_BY)),
            is_folder=FIELD_FOLDER in raw or FIELD_FOLDER in remote,
            web_url=remote.get(FIELD_WEB_URL) or raw.get(FIELD_WEB_URL),
            drive_id=parent_ref.get(FIELD_DRIVE_ID),
            parent_id=parent_ref.get(FIELD_ID),
            mime_type=file_facet.get(FIELD_MIME_TYPE),
            description=raw.get(FIELD_DESCRIPTION),
        )

    @property
    def extension(self) -> str:
        """Lowercased extension without the dot, or an empty string."""
        dot = self.name.rfind(".")
        return self.name[dot + 1 :].lower() if dot > 0 else ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "size": self.size,
            "lastModified": self.last_modified,
            "author": self.author,
            "type": "folder" if self.is_folder else "file",
            "webUrl": self.web_url,
            "driveId": self.drive_id,
        }


@dataclass
class ContentMatch:
    """A single matching line inside a file."""

    line_number: int
    content: str

    def to_dict(self) -> dict[str, Any]:
        return {"lineNumber": self.line_number, "content": self.content}


class MatchType(str, Enum):
    FILENAME = "filename"
    CONTENT = "content"
    BOTH = "both"


@dataclass
class SearchResult:
    """A drive item that matched a search, with its match details."""

    item: DriveItem
    match_type: MatchType
    relevance_score: int = 0
    content_matches: list[ContentMatch] = field(default_factory=list)
    preview: str | None = None
    source: str = "drive"
    shared_by: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = self.item.to_dict()
        data.update(
            {
                "matchType": self.match_type.value,
                "relevanceScore": self.relevance_score,
                "contentMatches": [m.to_dict() for m in self.content_matches],
                "preview": self.preview,
                "source": self.source,
            }
        )
        if self.shared_by is not None:
            data["sharedBy"] = self.shared_by
        return data


class OutcomeStatus(str, Enum):
    MATCHED = "matched"
    NO_MATCH = "no_match"
    SKIPPED = "skipped"


@dataclass
class FileOutcome:
    """Why a candidate file did or did not end up in the results."""

    item_id: str
    name: str
    status: OutcomeStatus
    reason: str | None = None


@dataclass
class SearchReport:
    """Results of one search call plus the per-file bookkeeping behind them."""

    query: str
    mode: str
    results: list[SearchResult] = field(default_factory=list)
    outcomes: list[FileOutcome] = field(default_factory=list)
    files_enumerated: int = 0
    failed_folders: list[str] = field(default_factory=list)
    fallback_from: str | None = None

    def skipped(self) -> list[FileOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.SKIPPED]

    def skip_reasons(self) -> dict[str, int]:
        """Count skipped files per reason."""
        counts: dict[str, int] = {}
        for outcome in self.skipped():
            key = outcome.reason or "unknown"
            counts[key] = counts.get(key, 0) + 1
        return counts
