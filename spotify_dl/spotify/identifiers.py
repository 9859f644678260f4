"""
Parsing of Spotify identifiers.

Accepted forms (kind is one of track, playlist, album, episode):
    spotify:<kind>:<id>
    spotify:user:<user>:playlist:<id>
    https://open.spotify.com/<kind>/<id>
    https://open.spotify.com/intl-<lang>/<kind>/<id>?si=...

IDs are 22 base-62 characters.
"""

import re
from dataclasses import dataclass
from enum import Enum

from spotify_dl.core.exceptions import InvalidIdentifier


class IdentifierKind(str, Enum):
    """What an identifier points at."""
    TRACK = "track"
    PLAYLIST = "playlist"
    ALBUM = "album"
    EPISODE = "episode"

    @property
    def is_container(self) -> bool:
        return self in (IdentifierKind.PLAYLIST, IdentifierKind.ALBUM)


_KINDS = "|".join(kind.value for kind in IdentifierKind)
_ID = r"(?P<id>[0-9A-Za-z]{22})"

_URI_PATTERN = re.compile(rf"^spotify:(?:user:[^:]+:)?(?P<kind>{_KINDS}):{_ID}$")
_URL_PATTERN = re.compile(
    rf"^https?://open\.spotify\.com/(?:intl-[a-z]{{2}}(?:-[A-Za-z]{{2}})?/)?"
    rf"(?:user/[^/]+/)?(?P<kind>{_KINDS})/{_ID}/?(?:[?#].*)?$"
)


@dataclass(frozen=True)
class SpotifyIdentifier:
    """
    A parsed identifier.

    Attributes:
        kind: Track, playlist, album or episode.
        spotify_id: The 22-character base-62 ID.
    """
    kind: IdentifierKind
    spotify_id: str

    @property
    def uri(self) -> str:
        return f"spotify:{self.kind.value}:{self.spotify_id}"

    @property
    def url(self) -> str:
        return f"https://open.spotify.com/{self.kind.value}/{self.spotify_id}"

    @classmethod
    def parse(cls, raw: str) -> "SpotifyIdentifier":
        """
        Parse a URI or open.spotify.com URL.

        Raises:
            InvalidIdentifier: If the string matches none of the accepted forms.
        """
        text = raw.strip()
        match = _URI_PATTERN.match(text) or _URL_PATTERN.match(text)
        if match is None:
            raise InvalidIdentifier(raw)
        return cls(kind=IdentifierKind(match.group("kind")), spotify_id=match.group("id"))

    def __str__(self) -> str:
        return self.uri
