"""OAuth 2.0 authorization-code flow with a local callback listener."""

from __future__ import annotations

import asyncio
import errno
import logging
import threading
import webbrowser
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any
from urllib.parse import parse_qs, urlparse

from drive_mcp.auth.common import (
    DELEGATED_SCOPES,
    AppFactory,
    AuthError,
    public_client_app,
    resolve_client,
    store_token_result,
    success_message,
)
from drive_mcp.config import AppConfig
from drive_mcp.session import Session

logger = logging.getLogger(__name__)

_SUCCESS_PAGE = b"""<html><body>
<h2>Authentication Successful!</h2>
<p>You can close this window and return to your assistant.</p>
<script>window.close();</script>
</body></html>"""

_FAILURE_PAGE = b"""<html><body>
<h2>Authentication Failed</h2>
<p>Return to your assistant for details.</p>
</body></html>"""

_SUPERSEDED = {
    "error": "superseded",
    "error_description": "sign-in was replaced by a newer authentication request",
}


class _CallbackServer(HTTPServer):
    """HTTPServer that hands the callback query parameters to ``deliver``."""

    allow_reuse_port = False
    callback_path: str = "/"
    deliver: Callable[[dict[str, str]], None]


class _CallbackHandler(BaseHTTPRequestHandler):
    server: _CallbackServer

    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        if parsed.path != self.server.callback_path:
            self.send_response(404)
            self.end_headers()
            return

        params = {key: values[0] for key, values in parse_qs(parsed.query).items()}
        failed = "error" in params or "code" not in params
        self.send_response(400 if failed else 200)
        self.send_header("Content-Type", "text/html")
        self.end_headers()
        self.wfile.write(_FAILURE_PAGE if failed else _SUCCESS_PAGE)
        self.server.deliver(params)

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.debug("[callback] %s", format % args)


def _resolve(future: asyncio.Future[dict[str, str]], params: dict[str, str]) -> None:
    if not future.done():
        future.set_result(params)


class RedirectFlow:
    """Browser sign-in that receives the authorization code on localhost.

    Only one callback listener exists at a time; starting a new sign-in
    closes the previous listener so the fixed port can be bound again.
    """

    def __init__(
        self,
        session: Session,
        config: AppConfig,
        app_factory: AppFactory = public_client_app,
        open_browser: Callable[[str], Any] = webbrowser.open,
    ) -> None:
        self._session = session
        self._config = config
        self._app_factory = app_factory
        self._open_browser = open_browser
        self._server: _CallbackServer | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def listening(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> int | None:
        """Port the active listener is bound to."""
        return None if self._server is None else self._server.server_address[1]

    def close(self) -> None:
        """Stop the active callback listener, if any.

        A sign-in still waiting on that listener fails with ``superseded``.
        Blocks until the serving thread exits; async callers run it in a
        worker thread.
        """
        self._stop(None)

    def _stop(self, expected: _CallbackServer | None) -> None:
        with self._lock:
            server, thread = self._server, self._thread
            if server is None or (expected is not None and server is not expected):
                return
            self._server = self._thread = None
        server.deliver(dict(_SUPERSEDED))
        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join(timeout=5)
        logger.info("[close] callback listener closed; port:%d", server.server_address[1])

    def _start_listener(
        self, redirect_uri: str, deliver: Callable[[dict[str, str]], None]
    ) -> _CallbackServer:
        parsed = urlparse(redirect_uri)
        host = parsed.hostname or "localhost"
        port = parsed.port if parsed.port is not None else 80
        try:
            server = _CallbackServer((host, port), _CallbackHandler)
        except OSError as exc:
            if exc.errno == errno.EADDRINUSE:
                raise AuthError(
                    f"Authentication failed: port {port} is already in use. "
                    "Close the other application or choose a different redirectUri."
                ) from exc
            raise AuthError(
                f"Authentication failed: cannot listen on {host}:{port}: {exc}"
            ) from exc
        server.callback_path = parsed.path or "/"
        server.deliver = deliver
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        with self._lock:
            self._server, self._thread = server, thread
        thread.start()
        logger.info("[_start_listener] callback listener started; host:%s;port:%d", host, port)
        return server

    async def authenticate(
        self,
        client_id: str | None = None,
        tenant_id: str | None = None,
        redirect_uri: str | None = None,
    ) -> str:
        """Sign in through the system browser.

        Args:
            client_id: Azure AD client id; defaults to the configured one.
            tenant_id: Tenant id; defaults to the configured one.
            redirect_uri: Callback URL registered for the client; its host and
                port determine where the listener binds.

        Returns:
            Confirmation message for the host.

        Raises:
            AuthError: On a callback error, failed code exchange, timeout, or
                when the listener port is already in use.
        """
        # A concurrent sign-in can bind a new listener while this one closes.
        while self.listening:
            await asyncio.to_thread(self.close)
        resolved_client, resolved_tenant = resolve_client(self._config, client_id, tenant_id)
        redirect = (redirect_uri or "").strip() or self._config.redirect_uri
        app = self._app_factory(resolved_client, resolved_tenant)

        loop = asyncio.get_running_loop()
        future: asyncio.Future[dict[str, str]] = loop.create_future()
        server = self._start_listener(
            redirect, lambda params: loop.call_soon_threadsafe(_resolve, future, params)
        )

        try:
            auth_url = app.get_authorization_request_url(DELEGATED_SCOPES, redirect_uri=redirect)
            logger.warning("[authenticate] complete sign-in in your browser: %s", auth_url)
            try:
                self._open_browser(auth_url)
            except (webbrowser.Error, OSError) as exc:
                logger.debug("[authenticate] could not open browser; error:%s", exc)

            try:
                params = await asyncio.wait_for(future, timeout=self._config.auth_timeout_seconds)
            except TimeoutError as exc:
                raise AuthError(
                    "Authentication failed: timed out waiting for the browser callback"
                ) from exc
        finally:
            await asyncio.to_thread(self._stop, server)

        if "error" in params:
            description = params.get("error_description") or params["error"]
            raise AuthError(f"Authentication failed: {description}")
        code = params.get("code")
        if not code:
            raise AuthError("Authentication failed: no authorization code received")

        result = await asyncio.to_thread(
            app.acquire_token_by_authorization_code,
            code,
            scopes=DELEGATED_SCOPES,
            redirect_uri=redirect,
        )
        store_token_result(self._session, result)
        logger.info("[authenticate] redirect flow completed")
        return success_message(resolved_client)
