from __future__ import annotations

import base64
import hashlib
import secrets
import string

from auth.errors import RandomSourceUnavailable

VERIFIER_BYTES = 32
STATE_LENGTH = 16
STATE_ALPHABET = string.ascii_letters + string.digits


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def generate_code_verifier() -> str:
    try:
        raw = secrets.token_bytes(VERIFIER_BYTES)
    except NotImplementedError as error:
        raise RandomSourceUnavailable() from error
    return _b64url(raw)


def generate_code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return _b64url(digest)


def generate() -> tuple[str, str]:
    """Return a fresh ``(code_verifier, code_challenge)`` pair using the S256 method."""
    verifier = generate_code_verifier()
    return verifier, generate_code_challenge(verifier)


def generate_state(length: int = STATE_LENGTH) -> str:
    try:
        return "".join(secrets.choice(STATE_ALPHABET) for _ in range(length))
    except NotImplementedError as error:
        raise RandomSourceUnavailable() from error
