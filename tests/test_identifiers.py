"""Test Spotify identifier parsing"""

import pytest

from spotify_dl.core.exceptions import InvalidIdentifier
from spotify_dl.spotify.identifiers import IdentifierKind, SpotifyIdentifier

TRACK_ID = "4cOdK2wGLETKBW3PvgPWqT"


class TestSpotifyIdentifier:
    """Test parsing of URIs and URLs"""

    @pytest.mark.parametrize("kind", ["track", "playlist", "album", "episode"])
    def test_parse_uri(self, kind):
        """Every supported kind parses from its URI form"""
        identifier = SpotifyIdentifier.parse(f"spotify:{kind}:{TRACK_ID}")

        assert identifier.kind is IdentifierKind(kind)
        assert identifier.spotify_id == TRACK_ID
        assert identifier.uri == f"spotify:{kind}:{TRACK_ID}"

    def test_parse_url_variants(self):
        """Share links with locale prefixes and query strings are accepted"""
        urls = [
            f"https://open.spotify.com/track/{TRACK_ID}",
            f"https://open.spotify.com/track/{TRACK_ID}?si=abc123",
            f"https://open.spotify.com/intl-de/track/{TRACK_ID}",
            f"http://open.spotify.com/track/{TRACK_ID}/",
        ]
        for url in urls:
            identifier = SpotifyIdentifier.parse(url)
            assert identifier == SpotifyIdentifier(IdentifierKind.TRACK, TRACK_ID), url

    def test_parse_legacy_user_playlist(self):
        """Old user-scoped playlist URIs still parse"""
        identifier = SpotifyIdentifier.parse(f"spotify:user:someone:playlist:{TRACK_ID}")

        assert identifier.kind is IdentifierKind.PLAYLIST
        assert identifier.uri == f"spotify:playlist:{TRACK_ID}"

    def test_parse_strips_whitespace(self):
        assert SpotifyIdentifier.parse(f"  spotify:album:{TRACK_ID}\n").kind is IdentifierKind.ALBUM

    @pytest.mark.parametrize("raw", [
        "",
        "not a link",
        f"spotify:artist:{TRACK_ID}",
        "spotify:track:tooShort",
        f"https://example.com/track/{TRACK_ID}",
        f"spotify:track:{TRACK_ID}extra",
    ])
    def test_parse_rejects_invalid(self, raw):
        """Unsupported kinds, bad IDs and foreign hosts are rejected"""
        with pytest.raises(InvalidIdentifier) as exc_info:
            SpotifyIdentifier.parse(raw)
        assert exc_info.value.raw == raw

    def test_url_and_str(self):
        identifier = SpotifyIdentifier(IdentifierKind.EPISODE, TRACK_ID)

        assert identifier.url == f"https://open.spotify.com/episode/{TRACK_ID}"
        assert str(identifier) == identifier.uri

    def test_container_kinds(self):
        assert IdentifierKind.PLAYLIST.is_container
        assert IdentifierKind.ALBUM.is_container
        assert not IdentifierKind.TRACK.is_container
        assert not IdentifierKind.EPISODE.is_container
