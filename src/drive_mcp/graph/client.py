"""Microsoft Graph API client authenticated with the session's delegated token."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any
from urllib import request as urllib_request
from urllib.error import HTTPError
from urllib.parse import urlencode

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
AUTHORITY_BASE_URL = "https://login.microsoftonline.com"
DEFAULT_TIMEOUT_SECONDS = 30.0


class GraphAuthError(Exception):
    """Raised when no access token is available for a Graph call."""


class GraphApiError(Exception):
    """Raised when the Graph API returns a non-2xx response."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Graph API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class GraphClient:
    """Thin wrapper over the Graph REST endpoints used by the tools."""

    def __init__(
        self,
        token_provider: Callable[[], str | None],
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialise the client.

        Args:
            token_provider: Callable returning the current bearer token, or
                None when the session holds none.
            timeout: Default socket timeout in seconds for each request.
        """
        self._token_provider = token_provider
        self._timeout = timeout

    def _token(self) -> str:
        token = self._token_provider()
        if not token:
            logger.error("[_token] no access token available")
            raise GraphAuthError("No access token available; authenticate first")
        return token

    @staticmethod
    def _url(path: str, params: dict[str, Any] | None = None) -> str:
        """Build an absolute URL from a relative path or an @odata.nextLink."""
        url = path if path.startswith("https://") else f"{GRAPH_BASE_URL}{path}"
        if params:
            separator = "&" if "?" in url else "?"
            url = f"{url}{separator}{urlencode(params)}"
        return url

    def _send(
        self,
        url: str,
        method: str,
        accept: str,
        data: bytes | None = None,
        content_type: str | None = None,
        timeout: float | None = None,
        max_bytes: int | None = None,
    ) -> bytes:
        headers = {
            "Authorization": f"Bearer {self._token()}",
            "Accept": accept,
        }
        if content_type is not None:
            headers["Content-Type"] = content_type
        req = urllib_request.Request(url, data=data, headers=headers, method=method)
        try:
            with urllib_request.urlopen(req, timeout=timeout or self._timeout) as resp:
                if max_bytes is None:
                    return resp.read()  # type: ignore[no-any-return]
                return resp.read(max_bytes)  # type: ignore[no-any-return]
        except HTTPError as exc:
            raw = exc.read()
            try:
                detail = json.loads(raw).get("error", {}).get("message", exc.reason)
            except Exception:
                detail = exc.reason
            logger.debug(
                "[_send] graph call failed; method:%s;url:%s;status:%d", method, url, exc.code
            )
            raise GraphApiError(exc.code, detail) from exc

    def get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Perform an authenticated GET request to the Graph API.

        Args:
            path: URL path relative to GRAPH_BASE_URL (must start with '/'),
                or an absolute @odata.nextLink URL.
            params: Optional query parameters (e.g. ``{"$top": 20}``).

        Returns:
            Parsed JSON response body as a dict.

        Raises:
            GraphAuthError: If no access token is available.
            GraphApiError: If the API returns a non-2xx status code.
        """
        body = self._send(self._url(path, params), "GET", "application/json")
        return json.loads(body)  # type: ignore[no-any-return]

    def get_content(
        self,
        path: str,
        max_bytes: int | None = None,
        timeout: float | None = None,
    ) -> bytes:
        """Download raw bytes from a content endpoint.

        Args:
            path: URL path relative to GRAPH_BASE_URL (must start with '/').
            max_bytes: Read at most this many bytes of the body.
            timeout: Override of the default socket timeout.

        Returns:
            Raw response body.

        Raises:
            GraphAuthError: If no access token is available.
            GraphApiError: If the API returns a non-2xx status code.
        """
        return self._send(self._url(path), "GET", "*/*", timeout=timeout, max_bytes=max_bytes)

    def post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """Perform an authenticated JSON POST request to the Graph API.

        Raises:
            GraphAuthError: If no access token is available.
            GraphApiError: If the API returns a non-2xx status code.
        """
        raw = self._send(
            self._url(path),
            "POST",
            "application/json",
            data=json.dumps(body).encode("utf-8"),
            content_type="application/json",
        )
        return json.loads(raw) if raw else {}
