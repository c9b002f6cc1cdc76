from __future__ import annotations

import urllib.parse

from auth import pkce
from auth.errors import InvalidRedirectUri
from auth.models import PendingAuthorization
from auth.scope import Scope
from auth.urls import is_loopback_redirect_uri

AUTHORIZE_URL = "https://accounts.spotify.com/authorize"


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    scope: Scope,
    state: str,
    code_challenge: str,
    *,
    show_dialog: bool = True,
) -> str:
    query = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scope": str(scope),
        "state": state,
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
    }
    if show_dialog:
        query["show_dialog"] = "true"
    return f"{AUTHORIZE_URL}?{urllib.parse.urlencode(query, quote_via=urllib.parse.quote)}"


def build_authorization_request(
    client_id: str,
    redirect_uri: str,
    scope: Scope,
    *,
    show_dialog: bool = True,
) -> tuple[str, PendingAuthorization]:
    """Prepare everything needed to send the user to the consent page.

    Returns the authorization URL together with the ``PendingAuthorization``
    that the callback listener and the token exchange need later on. No I/O
    happens here; opening the URL is left to the caller.
    """
    if not client_id:
        raise ValueError("client_id must not be empty.")
    if not is_loopback_redirect_uri(redirect_uri):
        raise InvalidRedirectUri(redirect_uri)

    code_verifier, code_challenge = pkce.generate()
    state = pkce.generate_state()

    url = build_authorization_url(
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=scope,
        state=state,
        code_challenge=code_challenge,
        show_dialog=show_dialog,
    )
    pending = PendingAuthorization(
        client_id=client_id,
        redirect_uri=redirect_uri,
        scope=scope,
        state=state,
        code_verifier=code_verifier,
    )
    return url, pending
