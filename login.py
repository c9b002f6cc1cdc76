from __future__ import annotations

import sys
from datetime import datetime, timezone

import httpx

from auth.credentials import CredentialManager
from auth.errors import NotAuthenticated, RefreshFailed
from auth.scope import Scope
from spotlogin.constants import APP_VERSION, LOGGER
from spotlogin.env import Settings, load_env, load_settings, setup_logging, validate_env


def _restore(settings: Settings, scope: Scope, http_client: httpx.Client) -> CredentialManager | None:
    try:
        manager = CredentialManager.load(settings.credentials_path, http_client=http_client)
    except (NotAuthenticated, RefreshFailed) as error:
        LOGGER.info("Stored credentials unusable, starting authorization: %s", error)
        return None

    if manager.client_id != settings.client_id:
        LOGGER.info("Stored credentials belong to another client id; re-authorizing.")
        return None
    if manager.scope.missing(scope.flags):
        LOGGER.info("Stored credentials lack requested scopes; re-authorizing.")
        return None
    return manager


def create_manager(settings: Settings, http_client: httpx.Client) -> CredentialManager:
    scope = Scope.from_string(settings.scopes)
    manager = _restore(settings, scope, http_client)
    if manager is None:
        manager = CredentialManager(settings.client_id, scope, http_client=http_client)
        print("Opening Spotify in your browser to authorize this application...")
        manager.authenticate(
            settings.redirect_port,
            timeout=settings.auth_timeout,
            show_dialog=settings.show_dialog,
        )
    manager.persist(settings.credentials_path)
    return manager


def main() -> int:
    load_env()
    setup_logging()
    try:
        validate_env()
        settings = load_settings()
        with httpx.Client(timeout=settings.http_timeout) as http_client:
            manager = create_manager(settings, http_client)
    except RuntimeError as error:
        print(f"spotlogin: {error}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("spotlogin: interrupted", file=sys.stderr)
        return 1

    expires = datetime.fromtimestamp(manager.expires_at, tz=timezone.utc)
    print(f"spotlogin {APP_VERSION}: authorized client {manager.client_id}")
    print(f"Scopes: {manager.granted_scope}")
    print(f"Access token valid until {expires.isoformat(timespec='seconds')}")
    print(f"Credentials saved to {settings.credentials_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
