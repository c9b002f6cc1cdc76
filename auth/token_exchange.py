from __future__ import annotations

import time

import httpx

from auth.errors import AuthenticationError, TokenExchangeFailed
from auth.models import TokenSet
from auth.scope import Scope
from spotlogin.constants import DEFAULT_HTTP_TIMEOUT, LOGGER

TOKEN_URL = "https://accounts.spotify.com/api/token"


def _error_from_response(response: httpx.Response) -> TokenExchangeFailed:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        description = payload.get("error_description")
        return AuthenticationError(
            response.status_code,
            payload["error"],
            description if isinstance(description, str) else "",
        )

    detail = response.text.strip() or response.reason_phrase
    return TokenExchangeFailed(response.status_code, detail)


def _token_request(
    payload: dict[str, str],
    *,
    client: httpx.Client | None = None,
    clock=time.time,
    previous_refresh_token: str | None = None,
    previous_scope: Scope | None = None,
) -> TokenSet:
    own_client = client is None
    http_client = client or httpx.Client(timeout=DEFAULT_HTTP_TIMEOUT)

    LOGGER.info("Token request grant_type=%s", payload["grant_type"])
    # expires_at counts from before the request was sent.
    issued_at = clock()
    try:
        response = http_client.post(TOKEN_URL, data=payload)
    except httpx.HTTPError as error:
        raise TokenExchangeFailed(None, str(error) or type(error).__name__) from error
    finally:
        if own_client:
            http_client.close()

    LOGGER.info("Token response grant_type=%s status=%s", payload["grant_type"], response.status_code)
    if response.status_code != 200:
        raise _error_from_response(response)

    try:
        body = response.json()
    except ValueError as error:
        raise TokenExchangeFailed(200, "Token response is not valid JSON.") from error
    if not isinstance(body, dict):
        raise TokenExchangeFailed(200, "Token response must be a JSON object.")

    return TokenSet.from_payload(
        body,
        now=issued_at,
        previous_refresh_token=previous_refresh_token,
        previous_scope=previous_scope,
    )


def exchange_code(
    code: str,
    client_id: str,
    redirect_uri: str,
    code_verifier: str,
    *,
    client: httpx.Client | None = None,
    clock=time.time,
) -> TokenSet:
    return _token_request(
        {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": client_id,
            "code_verifier": code_verifier,
        },
        client=client,
        clock=clock,
    )


def exchange_refresh_token(
    refresh_token: str,
    client_id: str,
    *,
    previous_scope: Scope | None = None,
    client: httpx.Client | None = None,
    clock=time.time,
) -> TokenSet:
    """Mint a new access token.

    The old refresh token is kept if none is returned, and ``previous_scope``
    stands in when the response omits ``scope``.
    """
    return _token_request(
        {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
        },
        client=client,
        clock=clock,
        previous_refresh_token=refresh_token,
        previous_scope=previous_scope,
    )
