"""
Spotify module for spotify-dl.

This module handles everything that talks to Spotify:
    - identifiers: Parsing of URIs and open.spotify.com URLs
    - models: TrackDescriptor, the unit of work of a batch
    - client: Web API metadata lookups (spotipy)
    - session: Authenticated audio streaming (librespot)
    - resolver: Identifier list -> deduplicated track list

The session module is not imported here so that metadata-only code and
tests do not need librespot loaded.
"""

from spotify_dl.spotify.identifiers import IdentifierKind, SpotifyIdentifier
from spotify_dl.spotify.models import TrackDescriptor
from spotify_dl.spotify.resolver import IdentifierResolver, Resolution

__all__ = [
    "IdentifierKind",
    "SpotifyIdentifier",
    "TrackDescriptor",
    "IdentifierResolver",
    "Resolution",
]
