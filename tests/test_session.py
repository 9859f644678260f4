"""Test the streaming session adapter"""

import io
import threading
import time
from unittest.mock import Mock, patch

import pytest

from conftest import make_track
from spotify_dl.core.exceptions import AuthenticationError, NotFoundError, StreamError
from spotify_dl.spotify.identifiers import IdentifierKind
from spotify_dl.spotify.session import Credentials, StreamingSession


def session_with_stream(data=b"", error=None):
    """A StreamingSession whose librespot session returns data (or raises)."""
    librespot_session = Mock()
    feeder = librespot_session.content_feeder.return_value
    if error is not None:
        feeder.load.side_effect = error
    else:
        feeder.load.return_value.input_stream.stream.return_value = io.BytesIO(data)
    return StreamingSession(librespot_session), feeder


@pytest.fixture(autouse=True)
def fake_ids():
    with patch("spotify_dl.spotify.session.TrackId") as track_ids, \
            patch("spotify_dl.spotify.session.EpisodeId") as episode_ids:
        yield track_ids, episode_ids


class TestFetchTrackStream:
    """Test stream reading and error classification"""

    def test_reads_whole_stream(self):
        data = b"OggS" + bytes(120_000)
        session, _ = session_with_stream(data)

        assert session.fetch_track_stream(make_track(1)) == data

    def test_empty_stream_is_transient(self):
        session, _ = session_with_stream(b"")

        with pytest.raises(StreamError) as exc_info:
            session.fetch_track_stream(make_track(1))
        assert exc_info.value.is_transient

    @pytest.mark.parametrize("message", [
        "Track not found",
        "Content is restricted in this country",
        "Premium account required",
        "Cannot get alternative track",
    ])
    def test_unavailable_content(self, message):
        session, _ = session_with_stream(error=RuntimeError(message))

        with pytest.raises(NotFoundError):
            session.fetch_track_stream(make_track(1))

    def test_timeout_is_transient(self):
        session, _ = session_with_stream(error=ConnectionResetError("Connection reset by peer"))

        with pytest.raises(StreamError) as exc_info:
            session.fetch_track_stream(make_track(1))
        assert exc_info.value.is_transient

    def test_other_errors_are_permanent(self):
        session, _ = session_with_stream(error=RuntimeError("Failed to decrypt chunk"))

        with pytest.raises(StreamError) as exc_info:
            session.fetch_track_stream(make_track(1))
        assert not exc_info.value.is_transient

    def test_stream_is_closed_after_reading(self):
        session, feeder = session_with_stream(b"OggS data")
        reader = feeder.load.return_value.input_stream.stream.return_value

        session.fetch_track_stream(make_track(1))

        assert reader.closed

    def test_stalled_read_times_out(self):
        """A read that never returns is abandoned after fetch_timeout"""
        released = threading.Event()
        reader = Mock()
        reader.read.side_effect = lambda size: released.wait(5) and b""
        reader.close.side_effect = released.set
        librespot_session = Mock()
        feeder = librespot_session.content_feeder.return_value
        feeder.load.return_value.input_stream.stream.return_value = reader
        session = StreamingSession(librespot_session, fetch_timeout=0.1)

        started = time.monotonic()
        with pytest.raises(StreamError) as exc_info:
            session.fetch_track_stream(make_track(1))

        assert time.monotonic() - started < 2
        assert exc_info.value.is_transient
        assert "not complete" in exc_info.value.message
        reader.close.assert_called()

    def test_episode_uses_episode_id(self, fake_ids):
        track_ids, episode_ids = fake_ids
        session, _ = session_with_stream(b"data")

        session.fetch_track_stream(make_track(1, kind=IdentifierKind.EPISODE))

        episode_ids.from_base62.assert_called_once()
        track_ids.from_base62.assert_not_called()


class TestAuthenticate:
    """Test the login choice"""

    def test_no_credentials_at_all(self, tmp_path):
        with patch("spotify_dl.spotify.session.Session"):
            with pytest.raises(AuthenticationError):
                StreamingSession.authenticate(Credentials(tmp_path / "credentials.json"))

    def test_prefers_stored_credentials(self, tmp_path):
        stored = tmp_path / "credentials.json"
        stored.write_text("{}")

        with patch("spotify_dl.spotify.session.Session") as session_cls:
            builder = session_cls.Builder.return_value
            StreamingSession.authenticate(Credentials(stored, "user", "pass"))

        builder.stored_file.assert_called_once_with(str(stored))
        builder.user_pass.assert_not_called()

    def test_password_login(self, tmp_path):
        with patch("spotify_dl.spotify.session.Session") as session_cls:
            builder = session_cls.Builder.return_value
            StreamingSession.authenticate(Credentials(tmp_path / "credentials.json", "user", "pass"))

        builder.user_pass.assert_called_once_with("user", "pass")
        builder.user_pass.return_value.create.assert_called_once()

    def test_rejected_login(self, tmp_path):
        with patch("spotify_dl.spotify.session.Session") as session_cls:
            session_cls.Builder.return_value.user_pass.return_value.create.side_effect = RuntimeError("BadCredentials")

            with pytest.raises(AuthenticationError):
                StreamingSession.authenticate(Credentials(tmp_path / "credentials.json", "user", "wrong"))
