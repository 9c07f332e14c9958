"""Application configuration loaded from environment variables."""

import os
from dataclasses import dataclass

# Microsoft Graph Explorer public client; usable without an app registration.
DEFAULT_CLIENT_ID = "14d82eec-204b-4c2f-b7e8-296a70dab67e"
DEFAULT_TENANT_ID = "common"
DEFAULT_REDIRECT_URI = "http://localhost:3000/callback"


@dataclass(frozen=True)
class AppConfig:
    """Centralized application configuration.

    Every field has a default so the server starts with no environment at
    all; the defaults target the public testing client and the multi-tenant
    authority. Search limits are exposed here rather than hard-coded in the
    engine so they can be tuned per deployment.
    """

    # OAuth
    client_id: str = DEFAULT_CLIENT_ID
    tenant_id: str = DEFAULT_TENANT_ID
    redirect_uri: str = DEFAULT_REDIRECT_URI
    auth_timeout_seconds: float = 300.0

    # Enumeration and search limits
    max_enumerated_files: int = 5000
    page_size: int = 200
    low_relevance_limit: int = 200
    shared_scan_limit: int = 100
    max_content_bytes: int = 1_048_576
    download_timeout_seconds: float = 30.0

    log_level: str = "INFO"


def load_config() -> AppConfig:
    """Construct an AppConfig from environment variables.

    Optional environment variables (with defaults):
        DRIVE_MCP_CLIENT_ID: Azure AD application (client) ID (public testing client).
        DRIVE_MCP_TENANT_ID: Azure AD tenant ID (default: common).
        DRIVE_MCP_REDIRECT_URI: Redirect URI for the browser flow
            (default: http://localhost:3000/callback).
        DRIVE_MCP_AUTH_TIMEOUT_SECONDS: Seconds to wait for the browser callback (default: 300).
        DRIVE_MCP_MAX_ENUMERATED_FILES: File cap for content-search enumeration (default: 5000).
        DRIVE_MCP_PAGE_SIZE: Children requested per folder page (default: 200).
        DRIVE_MCP_LOW_RELEVANCE_LIMIT: Max zero-score files scanned (default: 200).
        DRIVE_MCP_SHARED_SCAN_LIMIT: Shared items inspected per search (default: 100).
        DRIVE_MCP_MAX_CONTENT_BYTES: Max bytes downloaded per file (default: 1048576).
        DRIVE_MCP_DOWNLOAD_TIMEOUT_SECONDS: Per-download timeout (default: 30).
        DRIVE_MCP_LOG_LEVEL: Logging level name (default: INFO).

    Returns:
        Configured AppConfig instance.
    """
    return AppConfig(
        client_id=os.environ.get("DRIVE_MCP_CLIENT_ID", DEFAULT_CLIENT_ID),
        tenant_id=os.environ.get("DRIVE_MCP_TENANT_ID", DEFAULT_TENANT_ID),
        redirect_uri=os.environ.get("DRIVE_MCP_REDIRECT_URI", DEFAULT_REDIRECT_URI),
        auth_timeout_seconds=float(os.environ.get("DRIVE_MCP_AUTH_TIMEOUT_SECONDS", "300")),
        max_enumerated_files=int(os.environ.get("DRIVE_MCP_MAX_ENUMERATED_FILES", "5000")),
        page_size=int(os.environ.get("DRIVE_MCP_PAGE_SIZE", "200")),
        low_relevance_limit=int(os.environ.get("DRIVE_MCP_LOW_RELEVANCE_LIMIT", "200")),
        shared_scan_limit=int(os.environ.get("DRIVE_MCP_SHARED_SCAN_LIMIT", "100")),
        max_content_bytes=int(os.environ.get("DRIVE_MCP_MAX_CONTENT_BYTES", "1048576")),
        download_timeout_seconds=float(
            os.environ.get("DRIVE_MCP_DOWNLOAD_TIMEOUT_SECONDS", "30")
        ),
        log_level=os.environ.get("DRIVE_MCP_LOG_LEVEL", "INFO").upper(),
    )
