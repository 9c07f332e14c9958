"""Shared pieces of the OAuth flows: defaults, MSAL app factory, token storage."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import msal

from drive_mcp.config import DEFAULT_CLIENT_ID, AppConfig
from drive_mcp.graph.client import AUTHORITY_BASE_URL
from drive_mcp.session import Session

logger = logging.getLogger(__name__)

# Delegated scopes that do not need admin consent for most tenants.
# MSAL adds offline_access/openid/profile itself and rejects them if passed.
DELEGATED_SCOPES = ["User.Read", "Files.Read.All", "Sites.Read.All"]

AppFactory = Callable[[str, str], Any]


class AuthError(Exception):
    """Raised when an OAuth flow cannot produce an access token."""


def resolve_client(
    config: AppConfig, client_id: str | None, tenant_id: str | None
) -> tuple[str, str]:
    """Pick the client and tenant ids for a flow.

    Blank strings count as omitted, so a host that sends empty form fields
    still gets the configured defaults.
    """
    resolved_client = (client_id or "").strip() or config.client_id
    resolved_tenant = (tenant_id or "").strip() or config.tenant_id
    return resolved_client, resolved_tenant


def public_client_app(client_id: str, tenant_id: str) -> msal.PublicClientApplication:
    """Create an MSAL public client application for the given tenant."""
    return msal.PublicClientApplication(
        client_id=client_id,
        authority=f"{AUTHORITY_BASE_URL}/{tenant_id}",
    )


def store_token_result(session: Session, result: dict[str, Any] | None) -> None:
    """Copy an MSAL token response into the session.

    Raises:
        AuthError: If the response carries no access token.
    """
    result = result or {}
    if "access_token" not in result:
        error = result.get("error", "unknown_error")
        description = result.get("error_description", "No description provided")
        logger.error("[store_token_result] token acquisition failed; error:%s", error)
        raise AuthError(f"Token acquisition failed: {error}: {description}")
    session.set_tokens(
        access_token=str(result["access_token"]),
        refresh_token=result.get("refresh_token"),
        expires_in_seconds=int(result.get("expires_in", 3600)),
    )
    logger.info("[store_token_result] token stored; expires_in:%s", result.get("expires_in"))


def success_message(client_id: str, service: str = "SharePoint/OneDrive") -> str:
    """Confirmation text returned to the host after a successful sign-in."""
    if client_id != DEFAULT_CLIENT_ID:
        return f"Successfully authenticated with {service}! Access token stored."
    return (
        f"Successfully authenticated with {service} using the default public client ID.\n\n"
        "Access token stored in memory.\n\n"
        "You can now:\n"
        "- Search your files: 'search_my_files'\n"
        "- List files: 'list_my_files'\n"
        "- See recent files: 'list_recent_files'\n"
        "- Pick a SharePoint site: 'set_site_url', then 'search_files' or "
        "'get_folder_structure'"
    )
