"""
Data models for Spotify entities.

TrackDescriptor is the unit of work for the whole download pipeline:
the resolver creates it, everything after only reads it.

Design Decisions:
    - Frozen dataclass, so workers can share descriptors without copying
    - Artists are a tuple (hashable, immutable)
    - Podcast episodes use the same type with kind=EPISODE; the show
      name is stored as the artist and album

Usage:
    from spotify_dl.spotify.models import TrackDescriptor

    track = TrackDescriptor.from_spotify_api(track_response)
    print(track.uri, track.artist, track.title)
"""

from dataclasses import dataclass
from typing import Any

from spotify_dl.spotify.identifiers import IdentifierKind


UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"


@dataclass(frozen=True)
class TrackDescriptor:
    """
    Immutable description of one track (or episode) to download.

    Attributes:
        spotify_id: Unique Spotify ID (22-character base62 string).
                    Example: "4cOdK2wGLETKBW3PvgPWqT"

        title: Track title as it appears on Spotify.

        artists: All artist names, in Spotify's order.
                 Example: ("Calvin Harris", "Dua Lipa")

        kind: IdentifierKind.TRACK or IdentifierKind.EPISODE.

        album: Album name (show name for episodes).

        container_uri: URI of the playlist/album this track was expanded
                       from, or None when requested directly.

        position: 1-based position in the resolved batch. Assigned by the
                  resolver after deduplication; 0 means "not assigned yet".

        track_number: Track number within its album (0 if unknown).

        album_track_count: Number of tracks on the album (0 if unknown).

        duration_ms: Track duration in milliseconds. Used for serial pacing.

        cover_url: URL of the largest cover image, or None.
    """
    spotify_id: str
    title: str
    artists: tuple[str, ...]
    kind: IdentifierKind = IdentifierKind.TRACK
    album: str = UNKNOWN_ALBUM
    container_uri: str | None = None
    position: int = 0
    track_number: int = 0
    album_track_count: int = 0
    duration_ms: int = 0
    cover_url: str | None = None

    @property
    def uri(self) -> str:
        return f"spotify:{self.kind.value}:{self.spotify_id}"

    @property
    def url(self) -> str:
        return f"https://open.spotify.com/{self.kind.value}/{self.spotify_id}"

    @property
    def artist(self) -> str:
        """Primary artist (first in the list)."""
        return self.artists[0] if self.artists else UNKNOWN_ARTIST

    @property
    def duration_seconds(self) -> float:
        return self.duration_ms / 1000

    @property
    def display_name(self) -> str:
        return f"{', '.join(self.artists) or UNKNOWN_ARTIST} - {self.title}"

    @classmethod
    def from_spotify_api(
        cls,
        track_data: dict[str, Any],
        album_data: dict[str, Any] | None = None,
        container_uri: str | None = None,
    ) -> "TrackDescriptor":
        """
        Create a descriptor from a Web API track object.

        Args:
            track_data: Full track object (spotify.track()) or a playlist
                        item's 'track' field. Album tracklists return
                        simplified tracks without an 'album' key; pass the
                        album object as album_data for those.
            album_data: Optional album object overriding track_data['album'].
            container_uri: URI of the playlist/album being expanded.

        Returns:
            TrackDescriptor: A new frozen instance.
        """
        album_info = album_data if album_data is not None else track_data.get("album") or {}

        artists = tuple(
            a["name"] for a in track_data.get("artists", []) if a.get("name")
        )

        return cls(
            spotify_id=track_data["id"],
            title=track_data.get("name") or "Unknown Title",
            artists=artists,
            kind=IdentifierKind.TRACK,
            album=album_info.get("name") or UNKNOWN_ALBUM,
            container_uri=container_uri,
            track_number=track_data.get("track_number") or 0,
            album_track_count=album_info.get("total_tracks") or 0,
            duration_ms=track_data.get("duration_ms") or 0,
            cover_url=_largest_image_url(album_info.get("images")),
        )

    @classmethod
    def from_episode_api(
        cls,
        episode_data: dict[str, Any],
        container_uri: str | None = None,
    ) -> "TrackDescriptor":
        """
        Create a descriptor from a Web API episode object.

        The show's name and publisher stand in for album and artist.
        """
        show = episode_data.get("show") or {}
        publisher = show.get("publisher") or show.get("name")

        return cls(
            spotify_id=episode_data["id"],
            title=episode_data.get("name") or "Unknown Episode",
            artists=(publisher,) if publisher else (),
            kind=IdentifierKind.EPISODE,
            album=show.get("name") or UNKNOWN_ALBUM,
            container_uri=container_uri,
            duration_ms=episode_data.get("duration_ms") or 0,
            cover_url=_largest_image_url(
                episode_data.get("images") or show.get("images")
            ),
        )


def _largest_image_url(images: list[dict[str, Any]] | None) -> str | None:
    """Pick the highest-resolution image URL from a Web API image list."""
    if not images:
        return None
    best = max(images, key=lambda image: (image.get("width") or 0) * (image.get("height") or 0))
    return best.get("url")
