"""
Metadata tagging for downloaded files.

Writes title, artist, album, track number and front cover into the
encoded file before it is moved into place:
    - MP3: ID3v2.4 frames (TIT2, TPE1, TALB, TRCK, APIC)
    - FLAC: Vorbis comments plus a FLAC picture block

Cover art is best-effort: a failed download is logged and the file is
tagged without it.
"""

from dataclasses import dataclass
from pathlib import Path

import mutagen
import requests
from mutagen.flac import FLAC, Picture
from mutagen.id3 import APIC, ID3, ID3NoHeaderError, TALB, TIT2, TPE1, TRCK
from mutagen.mp3 import MP3

from spotify_dl.core.exceptions import TagError
from spotify_dl.core.logger import get_logger
from spotify_dl.download.encoder import AudioFormat
from spotify_dl.spotify.models import TrackDescriptor

logger = get_logger(__name__)


COVER_TIMEOUT = 10  # seconds
COVER_MIME = "image/jpeg"


@dataclass(frozen=True)
class TrackTags:
    """
    Tag values for one file.

    track_number/track_total of 0 mean unknown and are not written.
    """
    title: str
    artist: str
    album: str
    track_number: int = 0
    track_total: int = 0
    cover: bytes | None = None

    @classmethod
    def from_descriptor(cls, descriptor: TrackDescriptor, cover: bytes | None = None) -> "TrackTags":
        return cls(
            title=descriptor.title,
            artist=descriptor.artist,
            album=descriptor.album,
            track_number=descriptor.track_number,
            track_total=descriptor.album_track_count,
            cover=cover,
        )

    @property
    def track_text(self) -> str | None:
        """Track number as written to the file, e.g. 3/12, or None."""
        if not self.track_number:
            return None
        if self.track_total:
            return f"{self.track_number}/{self.track_total}"
        return str(self.track_number)


class CoverArtFetcher:
    """Downloads cover images over HTTP."""

    def __init__(self, timeout: float = COVER_TIMEOUT, session: requests.Session | None = None) -> None:
        self.timeout = timeout
        self._session = session or requests.Session()

    def fetch(self, url: str | None) -> bytes | None:
        """
        Download a cover image.

        Returns:
            The image bytes, or None if there is no URL or the download failed.
        """
        if not url:
            return None
        try:
            response = self._session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Could not download cover art from {url}: {e}")
            return None
        return response.content or None


class TagWriter:
    """Writes TrackTags into mp3 or flac files with mutagen."""

    def write_tags(self, path: Path, tags: TrackTags, audio_format: AudioFormat) -> None:
        """
        Raises:
            TagError: The file could not be opened or saved by mutagen.
        """
        try:
            if AudioFormat(audio_format) is AudioFormat.FLAC:
                self._write_flac(path, tags)
            else:
                self._write_mp3(path, tags)
        except (mutagen.MutagenError, OSError) as e:
            raise TagError(
                f"Failed to write tags to {path.name}: {e}",
                details={"path": str(path), "original_error": str(e)}
            ) from e

    @staticmethod
    def _write_mp3(path: Path, tags: TrackTags) -> None:
        try:
            audio = MP3(path, ID3=ID3)
            if audio.tags is None:
                audio.add_tags()
        except ID3NoHeaderError:
            audio = MP3(path)
            audio.add_tags()

        audio.tags.add(TIT2(encoding=3, text=tags.title))
        audio.tags.add(TPE1(encoding=3, text=tags.artist))
        audio.tags.add(TALB(encoding=3, text=tags.album))
        if tags.track_text:
            audio.tags.add(TRCK(encoding=3, text=tags.track_text))
        if tags.cover:
            audio.tags.add(APIC(
                encoding=3,
                mime=COVER_MIME,
                type=3,  # Cover (front)
                desc="Cover",
                data=tags.cover
            ))
        audio.save(v2_version=4)

    @staticmethod
    def _write_flac(path: Path, tags: TrackTags) -> None:
        audio = FLAC(path)
        audio["TITLE"] = tags.title
        audio["ARTIST"] = tags.artist
        audio["ALBUM"] = tags.album
        if tags.track_number:
            audio["TRACKNUMBER"] = str(tags.track_number)
        if tags.track_total:
            audio["TRACKTOTAL"] = str(tags.track_total)
        if tags.cover:
            picture = Picture()
            picture.type = 3  # Cover (front)
            picture.mime = COVER_MIME
            picture.desc = "Cover"
            picture.data = tags.cover
            audio.clear_pictures()
            audio.add_picture(picture)
        audio.save()
