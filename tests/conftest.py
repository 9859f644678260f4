"""Test configuration and fixtures"""

import threading
import time
from pathlib import Path

import pytest

from spotify_dl.core.exceptions import MetadataError, NotFoundError
from spotify_dl.download.encoder import AudioFormat
from spotify_dl.download.pipeline import TrackPipeline
from spotify_dl.spotify.identifiers import SpotifyIdentifier
from spotify_dl.spotify.models import TrackDescriptor
from spotify_dl.spotify.resolver import IdentifierResolver


def track_id(n: int) -> str:
    """22-character base-62 track ID for test number n."""
    return f"t{n:021d}"


def make_track(n: int, artists=("Test Artist",), title=None, **kwargs) -> TrackDescriptor:
    """Build a TrackDescriptor with a valid ID and predictable name."""
    return TrackDescriptor(
        spotify_id=track_id(n),
        title=title or f"Song {n}",
        artists=tuple(artists),
        **kwargs
    )


def playlist_uri(n: int) -> str:
    return f"spotify:playlist:p{n:021d}"


class FakeStreamer:
    """
    In-memory stand-in for StreamingSession.

    outcomes maps a track ID to the bytes to return, an exception to
    raise, or a list of either (consumed one per call).
    """

    def __init__(self, outcomes=None, delay: float = 0.0):
        self.outcomes = dict(outcomes or {})
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def fetch_track_stream(self, descriptor: TrackDescriptor) -> bytes:
        with self._lock:
            self.calls.append(descriptor.spotify_id)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            outcome = self.outcomes.get(descriptor.spotify_id, f"audio:{descriptor.spotify_id}".encode())
            if isinstance(outcome, list):
                outcome = outcome.pop(0) if len(outcome) > 1 else outcome[0]
        try:
            if self.delay:
                time.sleep(self.delay)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            with self._lock:
                self.in_flight -= 1


class FakeDecoder:
    """Passes the fetched bytes through unchanged."""

    def __init__(self, error: Exception | None = None):
        self.error = error

    def decode(self, data: bytes) -> bytes:
        if self.error is not None:
            raise self.error
        return data


class FakeEncoder:
    """Prefixes the samples with the format name."""

    def __init__(self, output: bytes | None = None, error: Exception | None = None):
        self.output = output
        self.error = error
        self.configs = []

    def encode(self, samples: bytes, config) -> bytes:
        self.configs.append(config)
        if self.error is not None:
            raise self.error
        if self.output is not None:
            return self.output
        return config.format.value.encode() + b":" + samples


class FakeTagWriter:
    """Records tag writes; optionally fails."""

    def __init__(self, error: Exception | None = None, delay: float = 0.0):
        self.error = error
        self.delay = delay
        self.written: list[tuple[Path, object]] = []

    def write_tags(self, path: Path, tags, audio_format) -> None:
        if self.error is not None:
            raise self.error
        if self.delay:
            time.sleep(self.delay)
        assert path.exists(), "tags must be written to the staged file"
        self.written.append((path, tags))


class FakeCoverFetcher:
    def __init__(self, data: bytes | None = None):
        self.data = data
        self.urls = []

    def fetch(self, url):
        self.urls.append(url)
        return self.data


class FakeMetadata:
    """
    Metadata source backed by a dict of URI -> tracks (or exception).

    Tracks may be given as ints; they are turned into make_track(n).
    """

    def __init__(self, catalog=None):
        self.catalog = {}
        for uri, value in (catalog or {}).items():
            if isinstance(value, Exception):
                self.catalog[uri] = value
            else:
                self.catalog[uri] = [make_track(v) if isinstance(v, int) else v for v in value]
        self.calls: list[str] = []

    def resolve(self, identifier: SpotifyIdentifier) -> list[TrackDescriptor]:
        self.calls.append(identifier.uri)
        value = self.catalog.get(identifier.uri)
        if value is None:
            raise MetadataError(f"Not found: {identifier.uri}")
        if isinstance(value, Exception):
            raise value
        return list(value)


def unavailable(track_number: int) -> NotFoundError:
    return NotFoundError(f"Track {track_id(track_number)} is not available in your country")


@pytest.fixture
def streamer():
    return FakeStreamer()


@pytest.fixture
def tag_writer():
    return FakeTagWriter()


@pytest.fixture
def make_pipeline():
    """Factory for a TrackPipeline wired to fakes."""
    def factory(streamer=None, encoder=None, decoder=None, tag_writer=None, max_retries=3):
        fake_encoder = encoder or FakeEncoder()
        return TrackPipeline(
            streamer=streamer or FakeStreamer(),
            decoder=decoder or FakeDecoder(),
            tag_writer=tag_writer or FakeTagWriter(),
            cover_fetcher=FakeCoverFetcher(),
            encoders={AudioFormat.MP3: fake_encoder, AudioFormat.FLAC: fake_encoder},
            max_retries=max_retries,
            retry_base_delay=0.0,
        )
    return factory


@pytest.fixture
def make_resolver():
    def factory(catalog):
        metadata = FakeMetadata(catalog)
        return IdentifierResolver(metadata), metadata
    return factory


@pytest.fixture
def sample_track_data():
    """Sample Web API track object for testing"""
    return {
        'id': '4cOdK2wGLETKBW3PvgPWqT',
        'name': 'Test Song',
        'artists': [
            {'id': 'artist_123', 'name': 'Test Artist'},
            {'id': 'artist_456', 'name': 'Featured Artist'},
        ],
        'album': {
            'id': 'album_123',
            'name': 'Test Album',
            'total_tracks': 12,
            'images': [
                {'url': 'https://i.scdn.co/image/small', 'width': 64, 'height': 64},
                {'url': 'https://i.scdn.co/image/large', 'width': 640, 'height': 640},
            ],
        },
        'duration_ms': 210000,  # 3:30
        'track_number': 3,
    }
