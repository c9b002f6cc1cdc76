from __future__ import annotations

from typing import Generator

import httpx

from .constants import API_BASE_URL, DEFAULT_HTTP_TIMEOUT, LOGGER


class BearerTokenAuth(httpx.Auth):
    """Attach ``Authorization: Bearer <token>`` from a credential manager.

    The token is fetched per request so an expired token is refreshed
    before the call goes out.
    """

    def __init__(self, manager) -> None:
        self._manager = manager

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        token = self._manager.get_valid_access_token()
        request.headers["Authorization"] = f"Bearer {token}"
        yield request


def _log_request(request: httpx.Request) -> None:
    LOGGER.info("Spotify API request %s %s", request.method, request.url)


def _log_response(response: httpx.Response) -> None:
    LOGGER.info(
        "Spotify API response %s %s -> %s",
        response.request.method,
        response.request.url,
        response.status_code,
    )
    if response.status_code >= 400:
        text = response.read().decode("utf-8", errors="replace")
        if len(text) > 1000:
            text = text[:1000] + "...<truncated>"
        LOGGER.warning("Spotify API error body: %s", text)


def build_api_client(
    manager,
    *,
    base_url: str = API_BASE_URL,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    return httpx.Client(
        base_url=base_url,
        timeout=timeout,
        auth=BearerTokenAuth(manager),
        transport=transport,
        event_hooks={"request": [_log_request], "response": [_log_response]},
    )
