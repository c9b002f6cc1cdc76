from __future__ import annotations

import logging
from pathlib import Path

LOGGER = logging.getLogger("spotlogin")
APP_VERSION = "0.1.0"

API_BASE_URL = "https://api.spotify.com/v1"
DEFAULT_REDIRECT_PORT = 8888
DEFAULT_SCOPES = "user-read-private user-read-email"
DEFAULT_CREDENTIALS_PATH = Path(".spotify_credentials")
DEFAULT_AUTH_TIMEOUT = 300
DEFAULT_HTTP_TIMEOUT = 30.0
