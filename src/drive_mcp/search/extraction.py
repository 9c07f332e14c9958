"""Best-effort text extraction for Office documents stored in a drive."""

from __future__ import annotations

import html
import io
import logging
import re

from drive_mcp.graph.client import GraphApiError, GraphClient
from drive_mcp.graph.models import DriveItem

logger = logging.getLogger(__name__)

_BLOCK_TAG = re.compile(r"<\s*(br|/p|/div|/li|/tr|/h[1-6]|/td|/th)\b[^>]*>", re.IGNORECASE)
_SCRIPT_OR_STYLE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_ANY_TAG = re.compile(r"<[^>]+>")
_INLINE_SPACE = re.compile(r"[ \t\r\f\v]+")


class ExtractionUnavailable(Exception):
    """Raised when no usable text can be obtained for a document."""


def strip_html(markup: str) -> str:
    """Convert rendered HTML to plain text, one block element per line."""
    text = _SCRIPT_OR_STYLE.sub("", markup)
    text = _BLOCK_TAG.sub("\n", text)
    text = _ANY_TAG.sub(" ", text)
    text = html.unescape(text)
    lines = (_INLINE_SPACE.sub(" ", line).strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


def extract_docx_text(content: bytes) -> str:
    """Extract paragraph text from a .docx file.

    Returns:
        Extracted text, or an empty string if the document cannot be parsed.
    """
    try:
        from docx import Document

        doc = Document(io.BytesIO(content))
        return "\n".join(p.text for p in doc.paragraphs)
    except Exception:
        logger.warning("[extract_docx_text] failed to extract text from .docx")
        return ""


class OfficeTextExtractor:
    """Obtains searchable text for Office documents.

    Strategies, in order:
        1. ``.docx``: download the file and read its paragraphs with python-docx.
        2. Ask Graph for an HTML rendering (``/content?format=html``) and
           strip the markup.
        3. Use the item's metadata ``description`` field.
    """

    def __init__(
        self,
        graph: GraphClient,
        max_bytes: int = 1_048_576,
        timeout: float = 30.0,
    ) -> None:
        self._graph = graph
        self._max_bytes = max_bytes
        self._timeout = timeout

    def extract(self, item: DriveItem, item_path: str) -> str:
        """Return plain text for an Office document.

        Args:
            item: The drive item.
            item_path: Graph path of the item (e.g. ``/me/drive/items/{id}``).

        Raises:
            ExtractionUnavailable: If every strategy came up empty.
        """
        if item.extension == "docx":
            try:
                raw = self._graph.get_content(
                    f"{item_path}/content", max_bytes=self._max_bytes, timeout=self._timeout
                )
            except (GraphApiError, OSError) as exc:
                logger.debug("[extract] docx download failed; name:%s;error:%s", item.name, exc)
            else:
                text = extract_docx_text(raw)
                if text.strip():
                    return text

        try:
            rendered = self._graph.get_content(
                f"{item_path}/content?format=html",
                max_bytes=self._max_bytes,
                timeout=self._timeout,
            )
        except (GraphApiError, OSError) as exc:
            logger.debug("[extract] html rendering unavailable; name:%s;error:%s", item.name, exc)
        else:
            text = strip_html(rendered.decode("utf-8", errors="replace"))
            if text.strip():
                return text

        description = item.description
        if description is None:
            try:
                description = self._graph.get(item_path, {"$select": "description"}).get(
                    "description"
                )
            except (GraphApiError, OSError) as exc:
                logger.debug("[extract] metadata lookup failed; name:%s;error:%s", item.name, exc)
        if description and description.strip():
            return description

        raise ExtractionUnavailable(f"No extractable text for {item.name}")
