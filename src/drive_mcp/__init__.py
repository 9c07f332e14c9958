"""MCP server exposing OneDrive and SharePoint files through Microsoft Graph."""

__version__ = "0.1.0"
