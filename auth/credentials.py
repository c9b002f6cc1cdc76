from __future__ import annotations

import enum
import threading
import time
import webbrowser
from pathlib import Path
from typing import Callable, Iterable

import httpx

from auth.authorize import build_authorization_request
from auth.callback import CallbackListener
from auth.credential_store import StoredCredentials, read_credentials, write_credentials
from auth.errors import AuthError, InsufficientScope, ListenerClosed, NotAuthenticated, RefreshFailed
from auth.models import TokenSet
from auth.scope import Scope, Scopes
from auth.token_exchange import exchange_code, exchange_refresh_token
from auth.urls import CALLBACK_PATH, loopback_redirect_uri
from spotlogin.constants import DEFAULT_REDIRECT_PORT, LOGGER


class AuthState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    REFRESHING = "refreshing"


class CredentialManager:
    """Single owner of the current ``TokenSet`` for one client identity.

    One lock guards reading the token and, when it has expired, refreshing
    it, so concurrent callers never issue more than one refresh request.
    The token set is only ever replaced as a whole.
    """

    def __init__(
        self,
        client_id: str,
        scope: Scope,
        *,
        http_client: httpx.Client | None = None,
        clock: Callable[[], float] = time.time,
        exchange_code_fn=exchange_code,
        refresh_token_fn=exchange_refresh_token,
        listener_factory=CallbackListener,
    ) -> None:
        if not client_id:
            raise ValueError("client_id must not be empty.")
        self.client_id = client_id
        self.scope = scope

        self._http_client = http_client
        self._clock = clock
        self._exchange_code_fn = exchange_code_fn
        self._refresh_token_fn = refresh_token_fn
        self._listener_factory = listener_factory

        self._lock = threading.Lock()
        self._token: TokenSet | None = None
        self._phase: AuthState | None = None
        self._listener: CallbackListener | None = None
        self._cancel_requested = False

    # -- state -----------------------------------------------------------------

    @property
    def state(self) -> AuthState:
        phase = self._phase
        if phase is not None:
            return phase
        token = self._token
        if token is None:
            return AuthState.UNAUTHENTICATED
        if token.is_expired(self._clock()):
            return AuthState.EXPIRED
        return AuthState.AUTHENTICATED

    @property
    def is_authenticated(self) -> bool:
        return self._token is not None

    @property
    def granted_scope(self) -> Scope:
        token = self._token
        return token.scope if token is not None else Scope()

    @property
    def expires_at(self) -> float | None:
        token = self._token
        return token.expires_at if token is not None else None

    # -- full authorization ----------------------------------------------------

    def authenticate(
        self,
        port: int = DEFAULT_REDIRECT_PORT,
        *,
        open_browser: Callable[[str], bool] = webbrowser.open,
        timeout: float | None = None,
        show_dialog: bool = True,
    ) -> None:
        """Run the complete PKCE authorization through a loopback redirect.

        The listener is bound before ``open_browser`` is called so a busy
        port fails fast. Blocks until the redirect arrives, ``timeout``
        expires or ``cancel`` is called from another thread.
        """
        with self._lock:
            if self._phase is AuthState.AUTHENTICATING:
                raise AuthError("An authorization attempt is already in progress.")
            if self._token is not None:
                raise AuthError("Already authenticated; create a new manager to re-authorize.")
            self._phase = AuthState.AUTHENTICATING

        try:
            listener = self._listener_factory(port, expected_path=CALLBACK_PATH)
            with listener:
                with self._lock:
                    self._listener = listener
                    cancelled = self._cancel_requested
                if cancelled:
                    listener.close()
                    raise ListenerClosed()
                redirect_uri = loopback_redirect_uri(listener.port)
                url, pending = build_authorization_request(
                    self.client_id,
                    redirect_uri,
                    self.scope,
                    show_dialog=show_dialog,
                )

                try:
                    opened = open_browser(url)
                except webbrowser.Error as error:
                    LOGGER.warning("Browser launch failed: %s", error)
                    opened = False
                if opened is False:
                    LOGGER.warning("Could not open a browser; visit this URL to continue: %s", url)

                code = listener.wait_for_code(pending.state, timeout=timeout)

            token_set = self._exchange_code_fn(
                code=code,
                client_id=pending.client_id,
                redirect_uri=pending.redirect_uri,
                code_verifier=pending.code_verifier,
                client=self._http_client,
                clock=self._clock,
            )
            with self._lock:
                self._token = token_set
            LOGGER.info("Authorization complete for client %s", self.client_id)
        finally:
            with self._lock:
                self._listener = None
                self._cancel_requested = False
                self._phase = None

    def cancel(self) -> None:
        """Abort a pending ``authenticate`` call by closing its listener."""
        with self._lock:
            if self._phase is AuthState.AUTHENTICATING:
                self._cancel_requested = True
            listener = self._listener
        if listener is not None:
            listener.close()

    # -- access ----------------------------------------------------------------

    def get_valid_access_token(self) -> str:
        with self._lock:
            token = self._token
            if token is None:
                raise NotAuthenticated()
            if not token.is_expired(self._clock()):
                return token.access_token
            return self._refresh_locked(token.refresh_token, token.scope).access_token

    def refresh(self) -> None:
        with self._lock:
            token = self._token
            if token is None:
                raise NotAuthenticated()
            self._refresh_locked(token.refresh_token, token.scope)

    def require_scopes(self, *required: Scopes | str) -> None:
        missing = self.granted_scope.missing(required)
        if missing:
            raise InsufficientScope(missing)

    def _refresh_locked(self, refresh_token: str, previous_scope: Scope) -> TokenSet:
        self._phase = AuthState.REFRESHING
        try:
            refreshed = self._refresh_token_fn(
                refresh_token=refresh_token,
                client_id=self.client_id,
                previous_scope=previous_scope,
                client=self._http_client,
                clock=self._clock,
            )
        except AuthError as error:
            self._token = None
            LOGGER.warning("Token refresh failed for client %s: %s", self.client_id, error)
            raise RefreshFailed(str(error)) from error
        finally:
            self._phase = None

        self._token = refreshed
        LOGGER.info("Access token refreshed for client %s", self.client_id)
        return refreshed

    # -- persistence -----------------------------------------------------------

    def persist(self, path: str | Path) -> None:
        with self._lock:
            token = self._token
        if token is None:
            raise NotAuthenticated()
        write_credentials(
            path,
            StoredCredentials(
                client_id=self.client_id,
                scope=self.scope,
                refresh_token=token.refresh_token,
            ),
        )
        LOGGER.info("Credentials saved to %s", path)

    @classmethod
    def load(cls, path: str | Path, **kwargs) -> "CredentialManager":
        """Restore a manager from ``persist`` output and refresh it eagerly."""
        stored = read_credentials(path)
        manager = cls(stored.client_id, stored.scope, **kwargs)
        with manager._lock:
            manager._refresh_locked(stored.refresh_token, stored.scope)
        LOGGER.info("Credentials loaded from %s", path)
        return manager

    @classmethod
    def from_scopes(cls, client_id: str, scopes: Iterable[Scopes | str], **kwargs) -> "CredentialManager":
        return cls(client_id, Scope.of(scopes), **kwargs)
