"""Candidate filtering and filename/path/recency relevance scoring."""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

from drive_mcp.graph.models import DriveItem

EXACT_NAME_SCORE = 100
NAME_CONTAINS_SCORE = 50
NAME_WORD_SCORE = 10
PATH_CONTAINS_SCORE = 20
RECENT_WEEK_SCORE = 10
RECENT_MONTH_SCORE = 5
MIN_WORD_LENGTH = 3

OFFICE_EXTENSIONS = frozenset({"docx", "doc", "xlsx", "xls", "pptx", "ppt"})

TEXT_EXTENSIONS = frozenset(
    {
        "txt", "md", "markdown", "rst", "csv", "tsv", "log", "json", "xml", "yaml", "yml",
        "toml", "ini", "cfg", "conf", "env", "properties", "html", "htm", "css", "scss",
        "js", "jsx", "ts", "tsx", "py", "java", "c", "h", "cpp", "hpp", "cs", "go", "rb",
        "php", "rs", "swift", "kt", "scala", "sql", "sh", "bash", "ps1", "bat", "r", "rtf",
    }
)  # fmt: skip

SEARCHABLE_EXTENSIONS = TEXT_EXTENSIONS | OFFICE_EXTENSIONS

# Matched against the lowercased file name and full path.
SKIP_PATTERNS = tuple(
    re.compile(pattern)
    for pattern in (
        r"(^|/)\.[^/]+$",  # dotfiles
        r"(^|/)~\$",  # Office owner/lock files
        r"\.(tmp|temp|bak|backup|old|orig|swp|swo|lock|cache|pyc)$",
        r"~$",
        r"\.min\.(js|css)$",
        r"\.map$",
        r"(^|/)(\.git|\.svn|\.hg)(/|$)",
        r"(^|/)(node_modules|bower_components|__pycache__|\.venv|venv)(/|$)",
        r"(^|/)(thumbs\.db|\.ds_store|desktop\.ini)$",
    )
)


def normalize_extensions(file_types: list[str] | None) -> frozenset[str] | None:
    """Normalise a user-supplied type list to lowercase extensions without dots."""
    if not file_types:
        return None
    cleaned = {t.strip().lower().lstrip(".") for t in file_types if t and t.strip()}
    return frozenset(cleaned) or None


def should_skip(item: DriveItem) -> bool:
    """Return True for folders and for files matching a skip pattern."""
    if item.is_folder:
        return True
    name = item.name.lower()
    path = item.path.lower()
    return any(p.search(name) or p.search(path) for p in SKIP_PATTERNS)


def is_searchable(item: DriveItem, allowed: frozenset[str] | None = None) -> bool:
    """Return True when the file's content can be scanned for the query."""
    ext = item.extension
    if ext not in SEARCHABLE_EXTENSIONS:
        return False
    return allowed is None or ext in allowed


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def recency_score(last_modified: str | None, now: datetime | None = None) -> int:
    """+10 for files modified within 7 days, +5 within 30 days, else 0."""
    modified = _parse_timestamp(last_modified)
    if modified is None:
        return 0
    age = (now or datetime.now(tz=UTC)) - modified
    if age <= timedelta(days=7):
        return RECENT_WEEK_SCORE
    if age <= timedelta(days=30):
        return RECENT_MONTH_SCORE
    return 0


def name_matches(item: DriveItem, query: str) -> bool:
    """Case-insensitive substring match of the full query in the file name."""
    return query.lower() in item.name.lower()


def relevance_score(item: DriveItem, query: str, now: datetime | None = None) -> int:
    """Score a candidate file against a query.

    Args:
        item: Candidate file.
        query: Search query as typed by the user.
        now: Reference time for the recency bonus (defaults to now, UTC).

    Returns:
        Non-negative integer; higher is more relevant.
    """
    q = query.lower().strip()
    name = item.name.lower()
    score = 0
    if q and name == q:
        score += EXACT_NAME_SCORE
    if q and q in name:
        score += NAME_CONTAINS_SCORE
    for word in q.split():
        if len(word) >= MIN_WORD_LENGTH and word in name:
            score += NAME_WORD_SCORE
    if q and q in item.path.lower():
        score += PATH_CONTAINS_SCORE
    score += recency_score(item.last_modified, now)
    return score
