"""Test the Web API metadata client"""

from unittest.mock import Mock

import pytest
import requests
from spotipy.exceptions import SpotifyException

from spotify_dl.core.exceptions import AuthenticationError, MetadataError
from spotify_dl.spotify.client import MetadataClient
from spotify_dl.spotify.identifiers import IdentifierKind, SpotifyIdentifier

PLAYLIST = SpotifyIdentifier(IdentifierKind.PLAYLIST, "37i9dQZF1DXcBWIGoYBM5M")
ALBUM = SpotifyIdentifier(IdentifierKind.ALBUM, "1DFixLWuPkv3KT3TnV35m3")


def api_track(n: int, **extra) -> dict:
    data = {
        "id": f"t{n:021d}",
        "name": f"Song {n}",
        "artists": [{"name": "Test Artist"}],
        "album": {"name": "Test Album", "total_tracks": 10},
        "duration_ms": 180000,
        "track_number": n,
    }
    data.update(extra)
    return data


class TestMetadataClient:
    """Test identifier expansion through a mocked spotipy client"""

    def test_resolve_track(self):
        spotify = Mock()
        spotify.track.return_value = api_track(1)

        tracks = MetadataClient(spotify).resolve(
            SpotifyIdentifier(IdentifierKind.TRACK, f"t{1:021d}")
        )

        spotify.track.assert_called_once_with(f"t{1:021d}")
        assert [t.title for t in tracks] == ["Song 1"]

    def test_playlist_pagination_and_filtering(self):
        """Local files, removed entries and ID-less tracks are skipped"""
        spotify = Mock()
        spotify.playlist_items.side_effect = [
            {
                "items": [
                    {"track": api_track(1)},
                    {"track": None},
                    {"track": api_track(2, is_local=True)},
                ],
                "next": "page-2",
            },
            {
                "items": [
                    {"track": api_track(3)},
                    {"track": api_track(4, id=None)},
                ],
                "next": None,
            },
        ]

        tracks = MetadataClient(spotify).resolve(PLAYLIST)

        assert [t.title for t in tracks] == ["Song 1", "Song 3"]
        assert all(t.container_uri == PLAYLIST.uri for t in tracks)
        offsets = [c.kwargs["offset"] for c in spotify.playlist_items.call_args_list]
        assert offsets == [0, 100]

    def test_playlist_episode_items(self):
        spotify = Mock()
        spotify.playlist_items.return_value = {
            "items": [{"track": {
                "id": f"e{1:021d}",
                "type": "episode",
                "name": "Episode",
                "show": {"name": "Show", "publisher": "Network"},
            }}],
            "next": None,
        }

        tracks = MetadataClient(spotify).resolve(PLAYLIST)

        assert tracks[0].kind is IdentifierKind.EPISODE

    def test_album_follows_next_pages(self):
        """Album tracklists use the album object for album fields"""
        spotify = Mock()
        second_page = {"items": [{"id": f"t{2:021d}", "name": "Song 2", "artists": []}], "next": None}
        spotify.album.return_value = {
            "name": "The Album",
            "total_tracks": 2,
            "images": [],
            "tracks": {
                "items": [{"id": f"t{1:021d}", "name": "Song 1", "artists": []}],
                "next": "page-2",
            },
        }
        spotify.next.return_value = second_page

        tracks = MetadataClient(spotify).resolve(ALBUM)

        assert [t.title for t in tracks] == ["Song 1", "Song 2"]
        assert {t.album for t in tracks} == {"The Album"}
        assert tracks[0].album_track_count == 2

    def test_not_found_maps_to_metadata_error(self):
        spotify = Mock()
        spotify.playlist_items.side_effect = SpotifyException(404, -1, "Not found")

        with pytest.raises(MetadataError) as exc_info:
            MetadataClient(spotify).resolve(PLAYLIST)
        assert "not found" in exc_info.value.message

    def test_unauthorized_maps_to_authentication_error(self):
        spotify = Mock()
        spotify.album.side_effect = SpotifyException(401, -1, "The access token expired")

        with pytest.raises(AuthenticationError):
            MetadataClient(spotify).resolve(ALBUM)

    def test_network_error_maps_to_metadata_error(self):
        spotify = Mock()
        spotify.album.side_effect = requests.ConnectionError("connection reset")

        with pytest.raises(MetadataError):
            MetadataClient(spotify).resolve(ALBUM)

    def test_empty_response_is_an_error(self):
        spotify = Mock()
        spotify.track.return_value = None

        with pytest.raises(MetadataError):
            MetadataClient(spotify).resolve(SpotifyIdentifier(IdentifierKind.TRACK, f"t{1:021d}"))
