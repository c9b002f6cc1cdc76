from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .constants import (
    DEFAULT_AUTH_TIMEOUT,
    DEFAULT_CREDENTIALS_PATH,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_REDIRECT_PORT,
    DEFAULT_SCOPES,
    LOGGER,
)


@dataclass(frozen=True)
class Settings:
    client_id: str
    redirect_port: int
    scopes: str
    credentials_path: Path
    auth_timeout: float | None
    http_timeout: float
    show_dialog: bool


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_int(key: str, default: int) -> int:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be an integer value.")


def _get_env_float(key: str, default: float) -> float:
    raw = os.getenv(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{key} must be a number.")


def load_env() -> None:
    env_path = Path(__file__).resolve().parent.parent / ".env"
    if not env_path.exists():
        return
    load_dotenv(env_path, override=False)


def validate_env() -> None:
    if not os.getenv("SPOTIFY_CLIENT_ID", "").strip():
        raise RuntimeError("Missing required environment variable: SPOTIFY_CLIENT_ID")

    port = _get_env_int("SPOTIFY_REDIRECT_PORT", DEFAULT_REDIRECT_PORT)
    if not 1 <= port <= 65535:
        raise RuntimeError("SPOTIFY_REDIRECT_PORT must be between 1 and 65535.")

    if _get_env_int("SPOTIFY_AUTH_TIMEOUT", DEFAULT_AUTH_TIMEOUT) < 0:
        raise RuntimeError("SPOTIFY_AUTH_TIMEOUT must not be negative.")

    scopes = os.getenv("SPOTIFY_SCOPES", DEFAULT_SCOPES).split()
    if not scopes:
        LOGGER.warning("SPOTIFY_SCOPES is empty; only public data will be accessible.")


def load_settings() -> Settings:
    timeout = _get_env_int("SPOTIFY_AUTH_TIMEOUT", DEFAULT_AUTH_TIMEOUT)
    return Settings(
        client_id=os.getenv("SPOTIFY_CLIENT_ID", "").strip(),
        redirect_port=_get_env_int("SPOTIFY_REDIRECT_PORT", DEFAULT_REDIRECT_PORT),
        scopes=os.getenv("SPOTIFY_SCOPES", DEFAULT_SCOPES),
        credentials_path=Path(
            os.getenv("SPOTIFY_CREDENTIALS_PATH", "").strip() or DEFAULT_CREDENTIALS_PATH
        ),
        auth_timeout=float(timeout) if timeout > 0 else None,
        http_timeout=_get_env_float("SPOTIFY_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
        show_dialog=is_truthy(os.getenv("SPOTIFY_SHOW_DIALOG", "1")),
    )


def setup_logging() -> bool:
    debug_enabled = is_truthy(os.getenv("SPOTLOGIN_DEBUG", "0"))
    if debug_enabled:
        logging.basicConfig(level=logging.INFO)
        LOGGER.setLevel(logging.INFO)
    return debug_enabled
