"""
Streaming session for spotify-dl.

Thin adapter over librespot: authenticates once per run and fetches the
raw (Ogg Vorbis) audio stream of a track or episode.

Credentials:
    The first login uses username/password and asks librespot to store
    reusable credentials in credentials_file (~/.spotify-dl/credentials.json
    by default). Later runs log in from that file without a password.

Error mapping:
    - login failure                          -> AuthenticationError
    - removed / restricted / premium-only    -> NotFoundError
    - timeout / connection reset             -> StreamError(is_transient=True)
    - anything else while streaming          -> StreamError
"""

import queue
import threading
from dataclasses import dataclass
from pathlib import Path

from librespot.audio.decoders import AudioQuality, VorbisOnlyAudioQuality
from librespot.core import Session
from librespot.metadata import EpisodeId, TrackId

from spotify_dl.core.exceptions import AuthenticationError, NotFoundError, StreamError
from spotify_dl.core.logger import get_logger
from spotify_dl.spotify.identifiers import IdentifierKind
from spotify_dl.spotify.models import TrackDescriptor

logger = get_logger(__name__)


CHUNK_SIZE = 50_000  # bytes per read
FETCH_TIMEOUT = 30.0  # seconds for a whole stream

# librespot reports unavailable content through exception messages only
_UNAVAILABLE_MARKERS = (
    "not found",
    "unavailable",
    "restricted",
    "premium",
    "country",
    "cannot get alternative",
    "no such",
)
_TRANSIENT_MARKERS = (
    "timed out",
    "timeout",
    "connection",
    "reset by peer",
    "broken pipe",
    "temporarily",
)


@dataclass(frozen=True)
class Credentials:
    """
    Account credentials for the streaming session.

    Attributes:
        credentials_file: Stored credentials written by a previous login.
        username: Used only when credentials_file does not exist yet.
        password: Used only when credentials_file does not exist yet.
    """
    credentials_file: Path
    username: str = ""
    password: str = ""


class StreamingSession:
    """
    Authenticated librespot session.

    Usage:
        session = StreamingSession.authenticate(credentials)
        data = session.fetch_track_stream(descriptor)
        session.close()
    """

    def __init__(self, session: Session, fetch_timeout: float = FETCH_TIMEOUT) -> None:
        self._session = session
        self.fetch_timeout = fetch_timeout

    @classmethod
    def authenticate(cls, credentials: Credentials, fetch_timeout: float = FETCH_TIMEOUT) -> "StreamingSession":
        """
        Log in, preferring stored credentials.

        Raises:
            AuthenticationError: No usable credentials, or the login was rejected.
        """
        stored = credentials.credentials_file.expanduser()
        stored.parent.mkdir(parents=True, exist_ok=True)

        configuration = (
            Session.Configuration.Builder()
            .set_stored_credential_file(str(stored))
            .build()
        )
        builder = Session.Builder(configuration)

        if stored.exists():
            logger.debug(f"Logging in with stored credentials from {stored}")
            builder = builder.stored_file(str(stored))
        elif credentials.username and credentials.password:
            logger.debug(f"Logging in as {credentials.username}")
            builder = builder.user_pass(credentials.username, credentials.password)
        else:
            raise AuthenticationError(
                "No stored credentials found and no username/password configured",
                details={"credentials_file": str(stored)}
            )

        try:
            session = builder.create()
        except Exception as e:
            raise AuthenticationError(
                f"Failed to authenticate with Spotify: {e}",
                details={"original_error": str(e)}
            ) from e

        logger.info(f"Logged in as {session.username()}")
        return cls(session, fetch_timeout=fetch_timeout)

    def access_token(self) -> str:
        """Bearer token for the Web API, issued for this session's account."""
        return self._session.tokens().get("playlist-read")

    def fetch_track_stream(self, descriptor: TrackDescriptor) -> bytes:
        """
        Download the complete audio stream of a track or episode.

        Returns:
            The encoded (Ogg Vorbis) audio bytes.

        Raises:
            NotFoundError: The content cannot be played from this account.
            StreamError: The stream failed or exceeded fetch_timeout.
        """
        if descriptor.kind is IdentifierKind.EPISODE:
            playable_id = EpisodeId.from_base62(descriptor.spotify_id)
        else:
            playable_id = TrackId.from_base62(descriptor.spotify_id)

        # The read runs on a daemon thread so a stalled connection cannot
        # hold the worker past fetch_timeout.
        transfer = _StreamTransfer(self._session, playable_id)
        reader_thread = threading.Thread(
            target=transfer.run,
            name=f"stream-{descriptor.spotify_id}",
            daemon=True
        )
        reader_thread.start()
        try:
            kind, payload = transfer.outcome.get(timeout=self.fetch_timeout)
        except queue.Empty:
            transfer.cancel()
            raise StreamError(
                f"Stream for {descriptor.display_name} not complete after {self.fetch_timeout:.0f}s",
                details={"uri": descriptor.uri},
                is_transient=True
            ) from None

        if kind == "error":
            if isinstance(payload, (NotFoundError, StreamError)):
                raise payload
            raise _classify_stream_error(payload, descriptor) from payload

        data = payload
        if not data:
            raise StreamError(
                f"Empty audio stream for {descriptor.uri}",
                details={"uri": descriptor.uri},
                is_transient=True
            )
        return data

    def close(self) -> None:
        self._session.close()


class _StreamTransfer:
    """
    Loads one stream and reads it to the end, reporting through a queue.

    The outcome queue receives exactly one ("data", bytes) or
    ("error", exception) item. cancel() stops reading and closes the
    stream, which also unblocks a read that is waiting on the network.
    """

    def __init__(self, session: Session, playable_id) -> None:
        self._session = session
        self._playable_id = playable_id
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._reader = None
        self.outcome: queue.Queue = queue.Queue(maxsize=1)

    def run(self) -> None:
        try:
            stream = self._session.content_feeder().load(
                self._playable_id,
                VorbisOnlyAudioQuality(AudioQuality.VERY_HIGH),
                False,
                None
            )
            reader = stream.input_stream.stream()
            with self._lock:
                self._reader = reader
                if self._cancelled.is_set():
                    return

            chunks: list[bytes] = []
            while not self._cancelled.is_set():
                chunk = reader.read(CHUNK_SIZE)
                if not chunk:
                    break
                chunks.append(chunk)
            self.outcome.put(("data", b"".join(chunks)))
        except Exception as e:
            if not self._cancelled.is_set():
                self.outcome.put(("error", e))
        finally:
            with self._lock:
                self._close_reader()

    def cancel(self) -> None:
        self._cancelled.set()
        with self._lock:
            self._close_reader()

    def _close_reader(self) -> None:
        if self._reader is None:
            return
        try:
            self._reader.close()
        except Exception as e:
            logger.debug(f"Closing audio stream failed: {e}")
        self._reader = None


def _classify_stream_error(error: Exception, descriptor: TrackDescriptor) -> Exception:
    """
    Map a librespot exception to NotFoundError or StreamError.

    Args:
        error: The exception raised while loading or reading the stream.
        descriptor: The track being fetched (for the details dict).

    Returns:
        The exception to raise in its place.
    """
    message = str(error) or type(error).__name__
    lowered = message.lower()
    details = {"uri": descriptor.uri, "original_error": message}

    if any(marker in lowered for marker in _UNAVAILABLE_MARKERS):
        return NotFoundError(f"{descriptor.display_name} is unavailable: {message}", details=details)

    transient = isinstance(error, (TimeoutError, ConnectionError)) or any(
        marker in lowered for marker in _TRANSIENT_MARKERS
    )
    return StreamError(
        f"Failed to stream {descriptor.display_name}: {message}",
        details=details,
        is_transient=transient
    )
