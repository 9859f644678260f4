"""
spotify-dl: Download Spotify tracks, albums, playlists and podcast episodes.

Given a list of Spotify identifiers, spotify-dl streams each track's audio,
transcodes it to mp3 or flac, tags it, and remembers per destination folder
what it has already downloaded so playlists can be kept in sync with
repeated runs.

Architecture:
    spotify/    Identifier parsing, metadata lookups (spotipy),
                audio streaming session (librespot), batch resolution
    download/   Per-track pipeline (fetch -> decode -> transcode -> tag -> write),
                work queue and throttling, result aggregation, batch orchestration
    core/       Configuration, per-folder sync state, logging, progress, exceptions
    utils/      File naming, backoff and formatting helpers
    cli.py      Command-line interface

Usage:
    Command Line:
        spotify-dl "https://open.spotify.com/playlist/..."
        spotify-dl -t 4 -f flac -c 8 spotify:album:...
        spotify-dl                      # re-sync the last run in this folder

    Python API:
        from spotify_dl.download import Downloader, DownloadOptions, TrackPipeline
        from spotify_dl.spotify import IdentifierResolver
"""

__version__ = "0.3.0"
__author__ = "spotify-dl contributors"

__all__ = ["__version__"]
