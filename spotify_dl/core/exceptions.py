"""
Exception classes for spotify-dl.

This module defines all custom exceptions used throughout the application.
Each exception carries a human-readable message plus an optional details
dictionary, so callers can log context without parsing strings.

Exception Hierarchy:
    SpotifyDLError (base)
        ConfigError - Configuration file issues
        InvalidIdentifier - Malformed track/playlist/album/episode identifier
        NoValidIdentifiersError - Nothing left to download after parsing
        MetadataError - Metadata lookup for an identifier failed
        AuthenticationError - Streaming session could not be established
        NotFoundError - Track missing, geo-restricted or premium-only
        StreamError - Audio stream could not be fetched
        DecodeError - Fetched audio could not be decoded
        EncodeError - Samples could not be encoded to the target codec
        TagError - Metadata tags could not be written
        WriteError - Output file could not be committed
        PersistenceError - Sync state could not be written

Fatal vs. per-track:
    ConfigError, NoValidIdentifiersError and AuthenticationError abort the
    batch. Every other error is scoped to a single track and is converted
    into a JobResult by the track pipeline.
"""


class SpotifyDLError(Exception):
    """
    Base exception for all spotify-dl errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (track id, path, ...).

    Example:
        try:
            # some operation
        except SpotifyDLError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'track_id': Spotify track ID involved in the error
                     - 'path': File path involved in the error
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(SpotifyDLError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - explicit --config path does not exist
        - config.yaml has invalid YAML syntax
        - Invalid field values (e.g., non-positive worker count)
    """
    pass


class InvalidIdentifier(SpotifyDLError):
    """
    Raised when a user-supplied string is not a recognised Spotify identifier.

    Non-fatal on its own: the resolver reports it and moves on to the
    next identifier.

    Attributes:
        raw: The string that failed to parse.
    """

    def __init__(self, raw: str, reason: str = "unrecognised identifier") -> None:
        super().__init__(f"Invalid identifier '{raw}': {reason}", details={"raw": raw})
        self.raw = raw


class NoValidIdentifiersError(SpotifyDLError):
    """Raised when a batch ends up with zero valid identifiers."""
    pass


class MetadataError(SpotifyDLError):
    """
    Raised when metadata for an identifier could not be retrieved.

    Common causes:
        - Playlist is private or was deleted
        - Album/track ID does not exist
        - Web API request failed
    """
    pass


class AuthenticationError(SpotifyDLError):
    """
    Raised when the streaming session cannot be authenticated.

    This is a CRITICAL error: no track can be fetched without a session,
    so the batch is aborted before any work starts.
    """
    pass


class NotFoundError(SpotifyDLError):
    """
    Raised when a track's audio is unavailable.

    Covers tracks that were removed, are restricted in the account's
    country, or require a premium account. The pipeline maps this to
    SKIPPED_UNAVAILABLE instead of FAILED.
    """
    pass


class StreamError(SpotifyDLError):
    """
    Raised when the audio stream could not be fetched.

    Attributes:
        is_transient: True for timeouts and connection problems that are
                      worth retrying with backoff.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        is_transient: bool = False
    ) -> None:
        """
        Initialize stream error with a retry hint.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional context.
            is_transient: Set to True if retrying may succeed.
        """
        super().__init__(message, details)
        self.is_transient = is_transient


class DecodeError(SpotifyDLError):
    """Raised when fetched audio bytes cannot be decoded."""
    pass


class EncodeError(SpotifyDLError):
    """Raised when decoded samples cannot be encoded to mp3/flac."""
    pass


class TagError(SpotifyDLError):
    """Raised when ID3 or Vorbis comment tags cannot be written."""
    pass


class WriteError(SpotifyDLError):
    """Raised when the encoded file cannot be committed to its destination."""
    pass


class PersistenceError(SpotifyDLError):
    """
    Raised when the sync state store cannot write to disk.

    Writes are retried once before this is raised. The result aggregator
    downgrades it to a batch-level warning: the audio file is already on
    disk, only the history entry is missing.
    """
    pass
