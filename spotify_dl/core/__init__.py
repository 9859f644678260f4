"""
Core module for spotify-dl.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - state: Per-folder SQLite sync state (history, membership, last run)
    - logger: Logging system with multiple outputs
    - progress: Rich progress bar (imported directly, not re-exported here)

Usage:
    from spotify_dl.core import (
        Config, load_config,
        SyncStateStore, ResetScope,
        setup_logging, get_logger,
        SpotifyDLError, ConfigError
    )
"""

from spotify_dl.core.config import (
    Config,
    DownloadConfig,
    OutputConfig,
    PacingConfig,
    SpotifyConfig,
    load_config,
)
from spotify_dl.core.exceptions import (
    AuthenticationError,
    ConfigError,
    DecodeError,
    EncodeError,
    InvalidIdentifier,
    MetadataError,
    NoValidIdentifiersError,
    NotFoundError,
    PersistenceError,
    SpotifyDLError,
    StreamError,
    TagError,
    WriteError,
)
from spotify_dl.core.logger import (
    get_logger,
    log_download_failure,
    setup_logging,
    shutdown_logging,
)
from spotify_dl.core.state import ResetScope, SyncRecord, SyncStateStore

__all__ = [
    # Config
    "Config",
    "SpotifyConfig",
    "OutputConfig",
    "DownloadConfig",
    "PacingConfig",
    "load_config",
    # State
    "SyncStateStore",
    "SyncRecord",
    "ResetScope",
    # Exceptions
    "SpotifyDLError",
    "ConfigError",
    "InvalidIdentifier",
    "NoValidIdentifiersError",
    "MetadataError",
    "AuthenticationError",
    "NotFoundError",
    "StreamError",
    "DecodeError",
    "EncodeError",
    "TagError",
    "WriteError",
    "PersistenceError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_download_failure",
    "shutdown_logging",
]
