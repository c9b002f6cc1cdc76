from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from auth.errors import CorruptCredentialsFile, NoCredentialsFile
from auth.scope import Scope


@dataclass(frozen=True)
class StoredCredentials:
    client_id: str
    scope: Scope
    refresh_token: str = field(repr=False)


def write_credentials(path: str | Path, credentials: StoredCredentials) -> None:
    """Write client id, scope and refresh token as three newline-separated lines.

    The file is replaced atomically and created with owner-only permissions.
    """
    target = Path(path)
    for name, value in (
        ("client_id", credentials.client_id),
        ("refresh_token", credentials.refresh_token),
    ):
        if not value or "\n" in value or "\r" in value:
            raise ValueError(f"{name} cannot be stored in the credentials file.")

    data = f"{credentials.client_id}\n{credentials.scope}\n{credentials.refresh_token}\n"
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f"{target.name}.",
        suffix=".tmp",
        dir=target.parent,
    )
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
        os.replace(tmp_path, target)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def read_credentials(path: str | Path) -> StoredCredentials:
    source = Path(path)
    try:
        raw = source.read_text(encoding="utf-8")
    except FileNotFoundError as error:
        raise NoCredentialsFile(str(source)) from error
    except (OSError, UnicodeDecodeError) as error:
        raise CorruptCredentialsFile(str(source), str(error)) from error

    lines = raw.splitlines()
    if len(lines) < 3:
        raise CorruptCredentialsFile(str(source), "expected client id, scope and refresh token")

    client_id, scope, refresh_token = (line.strip() for line in lines[:3])
    if not client_id:
        raise CorruptCredentialsFile(str(source), "client id is empty")
    if not refresh_token:
        raise CorruptCredentialsFile(str(source), "refresh token is empty")

    return StoredCredentials(
        client_id=client_id,
        scope=Scope.from_string(scope),
        refresh_token=refresh_token,
    )
