from __future__ import annotations

import urllib.parse

LOOPBACK_HOST = "127.0.0.1"
CALLBACK_PATH = "/callback"


def is_loopback_redirect_uri(uri: str) -> bool:
    parsed = urllib.parse.urlparse(uri)
    if parsed.scheme != "http":
        return False
    if parsed.hostname not in {LOOPBACK_HOST, "localhost", "::1"}:
        return False
    try:
        port = parsed.port
    except ValueError:
        return False
    if not port:
        return False
    return bool(parsed.path) and not parsed.query and not parsed.fragment


def loopback_redirect_uri(port: int, path: str = CALLBACK_PATH) -> str:
    return f"http://{LOOPBACK_HOST}:{port}{path}"
