"""
Utility functions for spotify-dl.

This module provides common utility functions used across the application:
    - File naming for downloaded tracks (current and legacy naming)
    - Path manipulation helpers
    - Retry backoff and human-readable formatting

Usage:
    from spotify_dl.utils import (
        build_file_stem,
        ensure_directory,
        calculate_backoff
    )
"""

import os
import random
from pathlib import Path
from typing import Sequence

from spotify_dl.core.logger import get_logger

logger = get_logger(__name__)


# Characters that are never allowed in a generated file name
INVALID_FILENAME_CHARS = frozenset('<>:\'"/\\|?*.')

# More artists than this are abbreviated in file names
MAX_ARTISTS_IN_FILENAME = 3

# Retry backoff
BASE_DELAY = 1.5  # seconds
MAX_DELAY = 15.0  # seconds
JITTER_FACTOR = 0.3  # randomness factor for backoff


def clean_file_name(name: str, allow_non_ascii: bool | None = None) -> str:
    """
    Remove characters that are not safe in a file name.

    Args:
        name: Raw file name without extension.
        allow_non_ascii: Keep non-ASCII characters. Defaults to True
                         everywhere except Windows.

    Returns:
        The name without < > : ' " / \\ | ? * . and control characters.

    Examples:
        clean_file_name('AC/DC - T.N.T.')   # "ACDC - TNT"
        clean_file_name('What?')            # "What"
    """
    if allow_non_ascii is None:
        allow_non_ascii = os.name != "nt"

    return "".join(
        c for c in name
        if c not in INVALID_FILENAME_CHARS
        and c.isprintable()
        and (allow_non_ascii or c.isascii())
    )


def build_file_stem(artists: Sequence[str], title: str) -> str:
    """
    Build the file name (without extension) for a track.

    Up to three artists are joined with ", ". More than three are cut to
    the first three followed by ", and others".

    Examples:
        build_file_stem(["Queen"], "Bohemian Rhapsody")
            # "Queen - Bohemian Rhapsody"
        build_file_stem(["A", "B", "C", "D"], "Song")
            # "A, B, C, and others - Song"
    """
    if len(artists) > MAX_ARTISTS_IN_FILENAME:
        shown = ", ".join(artists[:MAX_ARTISTS_IN_FILENAME])
        return clean_file_name(f"{shown}, and others - {title}")
    return clean_file_name(f"{', '.join(artists)} - {title}")


def legacy_file_stem(artists: Sequence[str], title: str) -> str | None:
    """
    Build the file name older releases used for tracks with many artists.

    Those releases abbreviated with ", ..." (whose dots were then cleaned
    away). A file under this name counts as already downloaded.

    Returns:
        The legacy stem, or None when the track has three artists or fewer
        (the naming never differed for those).
    """
    if len(artists) > MAX_ARTISTS_IN_FILENAME:
        shown = ", ".join(artists[:MAX_ARTISTS_IN_FILENAME])
        return clean_file_name(f"{shown}, ... - {title}")
    return None


def ensure_directory(path: Path) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure exists.

    Returns:
        The same path (for chaining).

    Raises:
        OSError: If the directory cannot be created.
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def calculate_backoff(attempt: int, base_delay: float = BASE_DELAY) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Args:
        attempt: Zero-based retry attempt number.
        base_delay: Base delay in seconds. 0 disables waiting.

    Returns:
        Delay in seconds: min(base * 2^attempt, MAX_DELAY) +/- JITTER_FACTOR.
    """
    delay = min(base_delay * (2 ** attempt), MAX_DELAY)
    jitter = delay * JITTER_FACTOR * (2 * random.random() - 1)
    return max(0.0, delay + jitter)


def format_duration(seconds: float) -> str:
    """
    Format seconds as M:SS or H:MM:SS.

    Examples:
        format_duration(90)    # "1:30"
        format_duration(3661)  # "1:01:01"
    """
    total = max(0, int(round(seconds)))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_size(num_bytes: int) -> str:
    """Format a byte count as B, KB, MB or GB."""
    size = float(num_bytes)
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{int(size)} B" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"
