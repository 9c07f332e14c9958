"""In-memory session holding OAuth tokens and the selected SharePoint site."""

from __future__ import annotations

import time
from dataclasses import dataclass


class SessionError(Exception):
    """Base class for failed session precondition checks."""


class NotAuthenticatedError(SessionError):
    """Raised when no access token is present."""

    def __init__(self) -> None:
        super().__init__("Not authenticated. Please run 'authenticate_sharepoint' first.")


class TokenExpiredError(SessionError):
    """Raised when the stored access token has expired."""

    def __init__(self) -> None:
        super().__init__("Access token expired. Please re-authenticate.")


class SiteNotSetError(SessionError):
    """Raised when a site-scoped tool runs before a site URL was stored."""

    def __init__(self) -> None:
        super().__init__("SharePoint site URL not set. Please run 'set_site_url' first.")


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class TokenState:
    """Immutable snapshot of the session fields."""

    access_token: str | None = None
    refresh_token: str | None = None
    expires_at_ms: int | None = None
    site_url: str | None = None

    def is_expired(self, at_ms: int | None = None) -> bool:
        """Return True when the token expiry is at or before ``at_ms``."""
        if self.expires_at_ms is None:
            return False
        current = now_ms() if at_ms is None else at_ms
        return current >= self.expires_at_ms


@dataclass(frozen=True)
class GuardResult:
    """Outcome of a precondition check; ``error`` is None when it passed."""

    error: SessionError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Session:
    """Process-lifetime token and site store.

    One instance is created by the server factory and handed to the
    dispatcher and every handler that needs it. Nothing is persisted.
    """

    def __init__(self) -> None:
        self._state = TokenState()

    def get(self) -> TokenState:
        """Return the current state snapshot."""
        return self._state

    def set_tokens(
        self,
        access_token: str,
        refresh_token: str | None,
        expires_in_seconds: int | float,
    ) -> None:
        """Store a freshly acquired token, keeping the current site URL.

        Args:
            access_token: Bearer token for Graph calls.
            refresh_token: Refresh token, if the authority returned one.
            expires_in_seconds: Lifetime of the access token from now.
        """
        self._state = TokenState(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at_ms=now_ms() + int(expires_in_seconds * 1000),
            site_url=self._state.site_url,
        )

    def set_site_url(self, site_url: str) -> None:
        self._state = TokenState(
            access_token=self._state.access_token,
            refresh_token=self._state.refresh_token,
            expires_at_ms=self._state.expires_at_ms,
            site_url=site_url,
        )

    def clear(self) -> None:
        self._state = TokenState()

    def access_token(self) -> str | None:
        return self._state.access_token

    def check_authenticated(self, at_ms: int | None = None) -> GuardResult:
        """Check that a non-expired access token is present.

        Args:
            at_ms: Reference time in epoch milliseconds (defaults to now).

        Returns:
            GuardResult carrying NotAuthenticatedError or TokenExpiredError
            on failure.
        """
        state = self._state
        if not state.access_token:
            return GuardResult(NotAuthenticatedError())
        if state.is_expired(at_ms):
            return GuardResult(TokenExpiredError())
        return GuardResult()

    def check_site(self) -> GuardResult:
        """Check that a SharePoint site URL has been stored."""
        if not self._state.site_url:
            return GuardResult(SiteNotSetError())
        return GuardResult()
