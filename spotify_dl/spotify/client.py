"""
Spotify Web API client for metadata lookups.

Wraps spotipy to turn one parsed identifier into the ordered list of
TrackDescriptors it stands for. Audio is never fetched here; see
spotify_dl.spotify.session for that.

Authentication:
    1. Client Credentials: client_id and client_secret from config.yaml.
    2. Session token: the access token of the already authenticated
       streaming session, used when no API credentials are configured.

Usage:
    client = MetadataClient.from_client_credentials(client_id, client_secret)
    tracks = client.resolve(SpotifyIdentifier.parse("spotify:album:..."))
"""

from typing import Any, Callable

import requests
import spotipy
from spotipy.oauth2 import SpotifyClientCredentials

from spotify_dl.core.exceptions import AuthenticationError, MetadataError
from spotify_dl.core.logger import get_logger
from spotify_dl.spotify.identifiers import IdentifierKind, SpotifyIdentifier
from spotify_dl.spotify.models import TrackDescriptor

logger = get_logger(__name__)


PAGE_SIZE = 100
DEFAULT_MARKET = "US"
REQUEST_TIMEOUT = 30  # seconds


class MetadataClient:
    """
    Metadata collaborator backed by the Spotify Web API.

    Attributes:
        market: Market used for episode lookups, which the API requires
                when the token is not a user token.
    """

    def __init__(self, spotify: spotipy.Spotify, market: str = DEFAULT_MARKET) -> None:
        self._spotify = spotify
        self.market = market

    @classmethod
    def from_client_credentials(cls, client_id: str, client_secret: str) -> "MetadataClient":
        """
        Build a client from Web API application credentials.

        Raises:
            AuthenticationError: If the credentials are rejected.
        """
        try:
            auth_manager = SpotifyClientCredentials(
                client_id=client_id,
                client_secret=client_secret
            )
            # Fetch a token now so bad credentials fail before the batch starts
            auth_manager.get_access_token(as_dict=False)
        except spotipy.SpotifyOauthError as e:
            raise AuthenticationError(
                f"Spotify Web API rejected the client credentials: {e}",
                details={"original_error": str(e)}
            ) from e

        return cls(spotipy.Spotify(auth_manager=auth_manager, requests_timeout=REQUEST_TIMEOUT, retries=3))

    @classmethod
    def from_access_token(cls, token: str) -> "MetadataClient":
        """Build a client from a bearer token (e.g. the streaming session's)."""
        return cls(spotipy.Spotify(auth=token, requests_timeout=REQUEST_TIMEOUT, retries=3))

    def resolve(self, identifier: SpotifyIdentifier) -> list[TrackDescriptor]:
        """
        Expand one identifier into its tracks, in source order.

        Tracks and episodes give a single descriptor; albums and playlists
        give their members. Local files and removed tracks in playlists
        are skipped.

        Raises:
            MetadataError: The item does not exist, is private, or the
                           request failed.
            AuthenticationError: The API token was rejected.
        """
        if identifier.kind is IdentifierKind.TRACK:
            data = self._call(self._spotify.track, identifier)
            return [TrackDescriptor.from_spotify_api(data)]

        if identifier.kind is IdentifierKind.EPISODE:
            data = self._call(
                lambda episode_id: self._spotify.episode(episode_id, market=self.market),
                identifier
            )
            return [TrackDescriptor.from_episode_api(data)]

        if identifier.kind is IdentifierKind.ALBUM:
            return self._album_tracks(identifier)

        return self._playlist_tracks(identifier)

    def _album_tracks(self, identifier: SpotifyIdentifier) -> list[TrackDescriptor]:
        album = self._call(self._spotify.album, identifier)
        page = album.get("tracks") or {}

        tracks: list[TrackDescriptor] = []
        while page:
            for item in page.get("items", []):
                if item and item.get("id"):
                    tracks.append(
                        TrackDescriptor.from_spotify_api(item, album_data=album, container_uri=identifier.uri)
                    )
            if not page.get("next"):
                break
            page = self._call(lambda _: self._spotify.next(page), identifier)

        logger.debug(f"Album {album.get('name')}: {len(tracks)} tracks")
        return tracks

    def _playlist_tracks(self, identifier: SpotifyIdentifier) -> list[TrackDescriptor]:
        tracks: list[TrackDescriptor] = []
        offset = 0
        skipped = 0

        while True:
            response = self._call(
                lambda playlist_id: self._spotify.playlist_items(
                    playlist_id,
                    limit=PAGE_SIZE,
                    offset=offset,
                    additional_types=["track", "episode"]
                ),
                identifier
            )
            for item in response.get("items", []):
                descriptor = self._playlist_item_to_descriptor(item, identifier.uri)
                if descriptor is None:
                    skipped += 1
                else:
                    tracks.append(descriptor)

            if response.get("next") is None:
                break
            offset += PAGE_SIZE

        if skipped:
            logger.info(f"Skipped {skipped} local or unavailable playlist entries")
        return tracks

    @staticmethod
    def _playlist_item_to_descriptor(
        item: dict[str, Any] | None,
        container_uri: str
    ) -> TrackDescriptor | None:
        """
        Convert one playlist item, or return None for entries that cannot
        be downloaded (removed tracks, local files, entries without an ID).
        """
        if not item or not isinstance(item, dict):
            return None

        entry = item.get("track")
        if not entry or entry.get("is_local", False) or not entry.get("id"):
            return None

        if entry.get("type") == "episode":
            return TrackDescriptor.from_episode_api(entry, container_uri=container_uri)
        return TrackDescriptor.from_spotify_api(entry, container_uri=container_uri)

    def _call(self, request: Callable[[str], Any], identifier: SpotifyIdentifier) -> Any:
        """
        Run one Web API request, translating spotipy errors.

        Raises:
            AuthenticationError: HTTP 401.
            MetadataError: Any other failure, including an empty response.
        """
        try:
            result = request(identifier.spotify_id)
        except spotipy.SpotifyException as e:
            if e.http_status == 401:
                raise AuthenticationError(
                    f"Spotify Web API rejected the access token: {e.msg}",
                    details={"uri": identifier.uri, "http_status": 401}
                ) from e
            if e.http_status == 404:
                raise MetadataError(
                    f"{identifier.kind.value.capitalize()} not found: {identifier.uri}",
                    details={"uri": identifier.uri, "http_status": 404}
                ) from e
            raise MetadataError(
                f"Failed to fetch {identifier.kind.value} {identifier.uri}: {e.msg}",
                details={"uri": identifier.uri, "http_status": e.http_status}
            ) from e
        except spotipy.SpotifyOauthError as e:
            raise AuthenticationError(
                f"Spotify Web API authentication failed: {e}",
                details={"uri": identifier.uri}
            ) from e
        except requests.RequestException as e:
            raise MetadataError(
                f"Network error while fetching {identifier.uri}: {e}",
                details={"uri": identifier.uri, "original_error": str(e)}
            ) from e

        if result is None:
            raise MetadataError(
                f"Empty response for {identifier.uri}",
                details={"uri": identifier.uri}
            )
        return result
