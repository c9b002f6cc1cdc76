from __future__ import annotations

import time
from dataclasses import dataclass, field

from auth.errors import TokenExchangeFailed
from auth.scope import Scope


@dataclass(frozen=True)
class PendingAuthorization:
    client_id: str
    redirect_uri: str
    scope: Scope
    state: str
    code_verifier: str = field(repr=False)


@dataclass(frozen=True)
class TokenSet:
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    scope: Scope
    expires_at: float
    token_type: str = "Bearer"

    def is_expired(self, now: float | None = None) -> bool:
        current = time.time() if now is None else now
        return current >= self.expires_at

    @classmethod
    def from_payload(
        cls,
        payload: dict,
        *,
        now: float | None = None,
        previous_refresh_token: str | None = None,
        previous_scope: Scope | None = None,
    ) -> "TokenSet":
        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token") or previous_refresh_token
        expires_in = payload.get("expires_in")
        scope = payload.get("scope")
        if scope is None:
            scope = str(previous_scope) if previous_scope is not None else ""
        token_type = payload.get("token_type", "Bearer")

        if not isinstance(access_token, str) or not access_token:
            raise TokenExchangeFailed(200, "Token response missing access_token.")
        if not isinstance(refresh_token, str) or not refresh_token:
            raise TokenExchangeFailed(200, "Token response missing refresh_token.")
        if isinstance(expires_in, bool) or not isinstance(expires_in, int):
            raise TokenExchangeFailed(200, "Token response missing expires_in.")
        if not isinstance(scope, str):
            raise TokenExchangeFailed(200, "Token response scope must be a string.")

        issued_at = time.time() if now is None else now
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            scope=Scope.from_string(scope),
            expires_at=issued_at + expires_in,
            token_type=token_type if isinstance(token_type, str) else "Bearer",
        )
