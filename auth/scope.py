from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterable


class Scopes(str, enum.Enum):
    """Permission flags understood by the Spotify accounts service."""

    UGC_IMAGE_UPLOAD = "ugc-image-upload"
    USER_READ_PLAYBACK_STATE = "user-read-playback-state"
    USER_MODIFY_PLAYBACK_STATE = "user-modify-playback-state"
    USER_READ_CURRENTLY_PLAYING = "user-read-currently-playing"
    APP_REMOTE_CONTROL = "app-remote-control"
    STREAMING = "streaming"
    PLAYLIST_READ_PRIVATE = "playlist-read-private"
    PLAYLIST_READ_COLLABORATIVE = "playlist-read-collaborative"
    PLAYLIST_MODIFY_PRIVATE = "playlist-modify-private"
    PLAYLIST_MODIFY_PUBLIC = "playlist-modify-public"
    USER_FOLLOW_MODIFY = "user-follow-modify"
    USER_FOLLOW_READ = "user-follow-read"
    USER_READ_PLAYBACK_POSITION = "user-read-playback-position"
    USER_TOP_READ = "user-top-read"
    USER_READ_RECENTLY_PLAYED = "user-read-recently-played"
    USER_LIBRARY_MODIFY = "user-library-modify"
    USER_LIBRARY_READ = "user-library-read"
    USER_READ_EMAIL = "user-read-email"
    USER_READ_PRIVATE = "user-read-private"
    USER_SOA_LINK = "user-soa-link"
    USER_SOA_UNLINK = "user-soa-unlink"
    USER_MANAGE_ENTITLEMENTS = "user-manage-entitlements"
    USER_MANAGE_PARTNER = "user-manage-partner"
    USER_CREATE_PARTNER = "user-create-partner"


_CATALOGUE_ORDER = {member.value: index for index, member in enumerate(Scopes)}


def _flag_value(flag: Scopes | str) -> str:
    value = flag.value if isinstance(flag, Scopes) else str(flag).strip()
    if not value or any(char.isspace() for char in value):
        raise ValueError(f"Invalid scope flag: {flag!r}")
    return value


@dataclass(frozen=True)
class Scope:
    """Immutable set of permission flags.

    ``str(scope)`` gives the space-joined form the provider expects. Known
    flags keep catalogue order so the serialized value is stable; flags the
    catalogue does not know about follow in sorted order.
    """

    flags: frozenset[str] = frozenset()

    @classmethod
    def of(cls, flags: Iterable[Scopes | str]) -> "Scope":
        return cls(frozenset(_flag_value(flag) for flag in flags))

    @classmethod
    def from_string(cls, raw: str) -> "Scope":
        return cls.of(raw.split())

    def includes(self, flag: Scopes | str) -> bool:
        return _flag_value(flag) in self.flags

    def missing(self, required: Iterable[Scopes | str]) -> list[str]:
        wanted = Scope.of(required)
        return [flag for flag in wanted.ordered() if flag not in self.flags]

    def ordered(self) -> list[str]:
        known = sorted(
            (flag for flag in self.flags if flag in _CATALOGUE_ORDER),
            key=_CATALOGUE_ORDER.__getitem__,
        )
        unknown = sorted(flag for flag in self.flags if flag not in _CATALOGUE_ORDER)
        return known + unknown

    def __str__(self) -> str:
        return " ".join(self.ordered())
