"""Descriptions and JSON input schemas of the exposed tools."""

from __future__ import annotations

from typing import Any

_CLIENT_ARGS: dict[str, Any] = {
    "clientId": {
        "type": "string",
        "description": "Azure AD application (client) ID. Optional; a public client is used "
        "when omitted.",
    },
    "tenantId": {
        "type": "string",
        "description": "Azure AD tenant ID or 'common'. Optional.",
    },
}

_FILE_TYPES_ARG: dict[str, Any] = {
    "type": "array",
    "items": {"type": "string"},
    "description": "Only scan files with these extensions during content search, "
    "e.g. ['pdf', 'docx'].",
}

_FILE_ARGS: dict[str, Any] = {
    "fileId": {"type": "string", "description": "ID of the file."},
    "driveId": {
        "type": "string",
        "description": "ID of the drive holding the file. Defaults to your OneDrive.",
    },
}


def _object(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return schema


TOOL_SCHEMAS: dict[str, tuple[str, dict[str, Any]]] = {
    "authenticate_sharepoint": (
        "Sign in to SharePoint/OneDrive in the browser. A local listener receives the "
        "OAuth callback on the redirect URI.",
        _object(
            {
                **_CLIENT_ARGS,
                "redirectUri": {
                    "type": "string",
                    "description": "Redirect URI registered for the application. "
                    "Default: http://localhost:3000/callback",
                },
            }
        ),
    ),
    "authenticate_device_code": (
        "Sign in with a device code: open the shown URL on any device and enter the code.",
        _object(dict(_CLIENT_ARGS)),
    ),
    "set_site_url": (
        "Select the SharePoint site used by search_files and get_folder_structure.",
        _object(
            {
                "siteUrl": {
                    "type": "string",
                    "description": "Site URL, e.g. "
                    "https://yourcompany.sharepoint.com/sites/yoursite",
                }
            },
            ["siteUrl"],
        ),
    ),
    "search_files": (
        "Search files in the selected SharePoint site by name and content.",
        _object(
            {
                "query": {"type": "string", "description": "Search terms."},
                "searchType": {
                    "type": "string",
                    "enum": ["filename", "content", "auto"],
                    "default": "auto",
                    "description": "filename: names only; content: scan file text; "
                    "auto: search index with content-scan fallback.",
                },
                "maxResults": {"type": "number", "default": 20},
                "includeShared": {"type": "boolean", "default": False},
                "fileTypes": _FILE_TYPES_ARG,
            },
            ["query"],
        ),
    ),
    "search_my_files": (
        "Search files in your OneDrive by name and optionally content.",
        _object(
            {
                "query": {"type": "string", "description": "Search terms."},
                "searchDepth": {
                    "type": "string",
                    "enum": ["filename", "content", "auto"],
                    "default": "filename",
                },
                "maxResults": {"type": "number", "default": 20},
                "includeShared": {"type": "boolean", "default": False},
                "fileTypes": _FILE_TYPES_ARG,
            },
            ["query"],
        ),
    ),
    "get_folder_structure": (
        "Show the folder tree of the selected SharePoint site.",
        _object(
            {
                "folderPath": {
                    "type": "string",
                    "default": "",
                    "description": "Folder path relative to the library root. Empty for root.",
                },
                "depth": {"type": "number", "default": 2, "minimum": 1, "maximum": 5},
            }
        ),
    ),
    "get_file_content": (
        "Read the text content of a file.",
        _object(dict(_FILE_ARGS), ["fileId"]),
    ),
    "list_recent_files": (
        "List recently modified files of the selected site, or of your OneDrive when no "
        "site is set.",
        _object({"limit": {"type": "number", "default": 10}}),
    ),
    "list_shared_files": (
        "List files other people shared with you.",
        _object({"limit": {"type": "number", "default": 20}}),
    ),
    "list_my_files": (
        "List files in a OneDrive folder, or your recent files when no folder is given.",
        _object(
            {
                "folderPath": {"type": "string", "default": ""},
                "limit": {"type": "number", "default": 20},
            }
        ),
    ),
    "inspect_file_metadata": (
        "Show metadata of a file: size, type, author, hashes and version count.",
        _object(dict(_FILE_ARGS), ["fileId"]),
    ),
}
