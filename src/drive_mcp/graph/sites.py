"""SharePoint site URL validation and site/drive id resolution."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlparse

from drive_mcp.graph.client import GraphClient

logger = logging.getLogger(__name__)

SHAREPOINT_HOST_MARKER = ".sharepoint.com"
ME_DRIVE_PATH = "/me/drive"

_SITE_PATH_PATTERN = re.compile(r"^/sites/([^/]+)")


class InvalidSiteUrlError(ValueError):
    """Raised when a site URL is not a usable SharePoint site URL."""


@dataclass(frozen=True)
class SiteDrive:
    """Identifiers of a SharePoint site and its default document library."""

    site_id: str
    drive_id: str

    @property
    def drive_path(self) -> str:
        return f"/drives/{self.drive_id}"


def validate_site_url(site_url: str) -> str:
    """Check that ``site_url`` looks like a SharePoint Online URL.

    Returns:
        The URL unchanged.

    Raises:
        InvalidSiteUrlError: If it does not start with ``https://`` or does
            not contain ``.sharepoint.com``.
    """
    if not site_url.startswith("https://") or SHAREPOINT_HOST_MARKER not in site_url:
        raise InvalidSiteUrlError(
            "Invalid SharePoint URL. Must be like: "
            "https://yourcompany.sharepoint.com/sites/yoursite"
        )
    return site_url


def parse_site_url(site_url: str) -> tuple[str, str]:
    """Split a site URL into ``(hostname, site_name)``.

    Raises:
        InvalidSiteUrlError: If the path does not match ``/sites/<name>``.
    """
    parsed = urlparse(site_url)
    match = _SITE_PATH_PATTERN.match(parsed.path)
    if not parsed.hostname or match is None:
        raise InvalidSiteUrlError(
            f"Invalid SharePoint site URL format: {site_url} (expected /sites/<name>)"
        )
    return parsed.hostname, match.group(1)


def resolve_site_drive(graph: GraphClient, site_url: str) -> SiteDrive:
    """Resolve the site id and its default drive id.

    Costs two Graph calls; results are not cached so a changed site URL
    takes effect immediately.
    """
    hostname, site_name = parse_site_url(site_url)
    site = graph.get(f"/sites/{hostname}:/sites/{site_name}")
    site_id = site["id"]
    drive = graph.get(f"/sites/{site_id}/drive")
    logger.info(
        "[resolve_site_drive] resolved site; site:%s;site_id:%s;drive_id:%s",
        site_name,
        site_id,
        drive["id"],
    )
    return SiteDrive(site_id=site_id, drive_id=drive["id"])
