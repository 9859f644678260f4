"""
Identifier resolution.

Turns the raw strings given on the command line into a flat, deduplicated,
ordered list of TrackDescriptors:

    raw strings -> SpotifyIdentifier -> metadata lookup -> TrackDescriptor

Invalid strings and failed lookups are collected per item instead of
aborting the batch. Only an input with no valid identifier at all is fatal.
"""

from dataclasses import dataclass, field, replace
from typing import Iterable, Protocol

from spotify_dl.core.exceptions import (
    InvalidIdentifier,
    MetadataError,
    NoValidIdentifiersError,
)
from spotify_dl.core.logger import get_logger
from spotify_dl.spotify.identifiers import SpotifyIdentifier
from spotify_dl.spotify.models import TrackDescriptor

logger = get_logger(__name__)


class MetadataSource(Protocol):
    """Anything that can expand an identifier into tracks."""

    def resolve(self, identifier: SpotifyIdentifier) -> list[TrackDescriptor]:
        ...


@dataclass
class Resolution:
    """
    Outcome of resolving one batch of identifiers.

    Attributes:
        tracks: Unique tracks in request order, positions assigned 1..M.
        identifiers: Valid identifiers, deduplicated, in request order.
        invalid: Strings that did not parse.
        failed: Valid identifiers whose metadata lookup failed.
        containers: Playlist/album URI -> track IDs it contained (in order),
                    including IDs dropped as duplicates of earlier items.
    """
    tracks: list[TrackDescriptor] = field(default_factory=list)
    identifiers: list[SpotifyIdentifier] = field(default_factory=list)
    invalid: list[InvalidIdentifier] = field(default_factory=list)
    failed: list[tuple[SpotifyIdentifier, MetadataError]] = field(default_factory=list)
    containers: dict[str, list[str]] = field(default_factory=dict)


class IdentifierResolver:
    """
    Resolves raw identifier strings through a metadata source.

    Example:
        resolver = IdentifierResolver(MetadataClient.from_access_token(token))
        resolution = resolver.resolve(["spotify:playlist:...", "https://open.spotify.com/track/..."])
    """

    def __init__(self, metadata: MetadataSource) -> None:
        self._metadata = metadata

    def parse(self, raw_items: Iterable[str]) -> tuple[list[SpotifyIdentifier], list[InvalidIdentifier]]:
        """
        Parse raw strings without any network access.

        Each raw item may hold several whitespace-separated identifiers.
        Duplicates are dropped, first occurrence wins.
        """
        identifiers: list[SpotifyIdentifier] = []
        invalid: list[InvalidIdentifier] = []
        seen: set[SpotifyIdentifier] = set()

        for raw_item in raw_items:
            for raw in raw_item.split():
                try:
                    identifier = SpotifyIdentifier.parse(raw)
                except InvalidIdentifier as e:
                    logger.warning(str(e))
                    invalid.append(e)
                    continue
                if identifier not in seen:
                    seen.add(identifier)
                    identifiers.append(identifier)

        return identifiers, invalid

    def resolve(self, raw_items: Iterable[str]) -> Resolution:
        """
        Parse and expand identifiers into unique tracks.

        Raises:
            NoValidIdentifiersError: No raw string parsed as an identifier.
            AuthenticationError: The metadata source rejected its credentials.
        """
        identifiers, invalid = self.parse(raw_items)
        if not identifiers:
            raise NoValidIdentifiersError(
                "No valid Spotify identifiers given",
                details={"invalid": [e.raw for e in invalid]}
            )

        resolution = Resolution(identifiers=identifiers, invalid=invalid)
        seen_ids: set[str] = set()

        for identifier in identifiers:
            try:
                tracks = self._metadata.resolve(identifier)
            except MetadataError as e:
                logger.error(f"Could not resolve {identifier.uri}: {e.message}")
                resolution.failed.append((identifier, e))
                continue

            if identifier.kind.is_container:
                resolution.containers[identifier.uri] = [t.spotify_id for t in tracks]
                logger.info(f"{identifier.uri}: {len(tracks)} tracks")

            for track in tracks:
                if track.spotify_id in seen_ids:
                    logger.debug(f"Duplicate track skipped: {track.display_name}")
                    continue
                seen_ids.add(track.spotify_id)
                resolution.tracks.append(
                    replace(track, position=len(resolution.tracks) + 1)
                )

        return resolution
