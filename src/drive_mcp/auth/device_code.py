"""OAuth 2.0 device-code flow: show a code, poll until the user signs in."""

from __future__ import annotations

import asyncio
import logging
import time
import webbrowser
from collections.abc import Awaitable, Callable
from typing import Any

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

DEFAULT_POLL_INTERVAL = 5
DEFAULT_FLOW_LIFETIME = 900

ERROR_PENDING = "authorization_pending"
ERROR_SLOW_DOWN = "slow_down"
ERROR_DECLINED = "authorization_declined"
ERROR_EXPIRED = "expired_token"


class DeviceCodeFlow:
    """Runs the device-code flow and stores the resulting token in the session."""

    def __init__(
        self,
        session: Session,
        config: AppConfig,
        app_factory: AppFactory = public_client_app,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        open_browser: Callable[[str], Any] = webbrowser.open,
    ) -> None:
        """Initialise the flow.

        Args:
            session: Session that receives the token.
            config: Application configuration (default client/tenant ids).
            app_factory: Builds the MSAL application from (client_id, tenant_id).
            sleep: Coroutine used to wait between polls.
            clock: Monotonic clock used for the flow deadline.
            open_browser: Opens the verification page.
        """
        self._session = session
        self._config = config
        self._app_factory = app_factory
        self._sleep = sleep
        self._clock = clock
        self._open_browser = open_browser

    async def authenticate(
        self, client_id: str | None = None, tenant_id: str | None = None
    ) -> str:
        """Run the flow to completion.

        Polls the token endpoint every ``interval`` seconds. Pending
        authorisation is retried silently and ``slow_down`` doubles the wait;
        a declined or expired code aborts the flow.

        Returns:
            Confirmation message for the host.

        Raises:
            AuthError: If the flow cannot start, is declined, expires or times out.
        """
        resolved_client, resolved_tenant = resolve_client(self._config, client_id, tenant_id)
        app = self._app_factory(resolved_client, resolved_tenant)

        flow: dict[str, Any] = await asyncio.to_thread(
            app.initiate_device_flow, scopes=DELEGATED_SCOPES
        )
        if "user_code" not in flow:
            description = flow.get("error_description") or flow.get("error", "unknown error")
            raise AuthError(f"Authentication failed: {description}")

        verification_uri = flow.get("verification_uri", "https://microsoft.com/devicelogin")
        logger.warning(
            "[authenticate] to sign in, open %s and enter the code %s",
            verification_uri,
            flow["user_code"],
        )
        try:
            self._open_browser(verification_uri)
        except (webbrowser.Error, OSError) as exc:
            logger.debug("[authenticate] could not open browser; error:%s", exc)

        interval = float(flow.get("interval") or DEFAULT_POLL_INTERVAL)
        deadline = self._clock() + float(flow.get("expires_in") or DEFAULT_FLOW_LIFETIME)

        while self._clock() < deadline:
            await self._sleep(interval)
            result = await asyncio.to_thread(self._poll_once, app, flow)

            if "access_token" in result:
                store_token_result(self._session, result)
                logger.info("[authenticate] device code flow completed")
                return success_message(resolved_client)

            error = result.get("error")
            if error == ERROR_PENDING:
                continue
            if error == ERROR_SLOW_DOWN:
                interval *= 2
                logger.info("[authenticate] server asked to slow down; interval:%s", interval)
                continue
            if error == ERROR_DECLINED:
                raise AuthError("Authentication failed: Authentication was declined by user")
            if error == ERROR_EXPIRED:
                raise AuthError(
                    "Authentication failed: Authentication code expired. Please try again."
                )
            description = result.get("error_description") or error or "unknown error"
            raise AuthError(f"Authentication failed: {description}")

        raise AuthError("Authentication failed: Authentication timeout - please try again")

    @staticmethod
    def _poll_once(app: Any, flow: dict[str, Any]) -> dict[str, Any]:
        # An expires_at in the past makes MSAL return after a single token request.
        flow["expires_at"] = 0
        return app.acquire_token_by_device_flow(flow) or {}
