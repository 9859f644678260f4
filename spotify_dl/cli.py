"""
Command-line interface for spotify-dl.

This module implements the CLI using Click; rich-click is used for the
help output colors.

Usage:
    spotify-dl <identifier>...              Download tracks/albums/playlists/episodes
    spotify-dl                              Re-sync the identifiers of the last run
                                            in the destination folder (prompts if none)

Examples:
    # One playlist, paced serial mode, mp3 320 kbps
    spotify-dl "https://open.spotify.com/playlist/..."

    # Several items, 4 parallel workers, flac at maximum compression
    spotify-dl -t 4 -f flac -c 8 spotify:album:... spotify:track:...

    # Start over: forget history and the last run, then download again
    spotify-dl -r "https://open.spotify.com/playlist/..."

Configuration:
    An optional config.yaml in the current directory (or --config) supplies
    credentials and defaults. Command-line options override it.

Exit Codes:
    0    Everything succeeded, or some tracks failed but not all
    1    Configuration error, or no track could be downloaded
    2    Sync state error
    3    Authentication failed
    4    No valid identifiers / other fatal error
    130  Interrupted
"""

import sys
from pathlib import Path
from typing import Optional

import rich_click as click

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.OPTION_GROUPS = {
    "cli": [
        {
            "name": "Output",
            "options": ["--destination", "--format", "--compression-level"],
        },
        {
            "name": "Throttling",
            "options": ["--turbo", "--delay", "--jitter"],
        },
        {
            "name": "Sync State",
            "options": ["--reset", "--reset-history", "--force"],
        },
        {
            "name": "Info",
            "options": ["--config", "--verbose", "--version", "--help"],
        },
    ],
}

from spotify_dl import __version__
from spotify_dl.core import (
    AuthenticationError,
    Config,
    ConfigError,
    NoValidIdentifiersError,
    PersistenceError,
    ResetScope,
    SpotifyDLError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from spotify_dl.core.progress import DownloadProgressBar
from spotify_dl.download import (
    AudioFormat,
    BatchReport,
    DownloadOptions,
    Downloader,
    FormatConfig,
    JobResult,
    ThrottlePolicy,
    TrackPipeline,
)
from spotify_dl.spotify import IdentifierResolver
from spotify_dl.spotify.client import MetadataClient
from spotify_dl.spotify.session import Credentials, StreamingSession
from spotify_dl.utils import format_size

logger = get_logger(__name__)


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.argument("tracks", nargs=-1, metavar="[IDENTIFIERS]...")
@click.option(
    "-d", "--destination",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Folder to download into (default: output.directory or the current folder)"
)
@click.option(
    "-f", "--format", "audio_format",
    type=click.Choice([f.value for f in AudioFormat], case_sensitive=False),
    default=None,
    help="Audio format. Default is mp3 (320 kbps)"
)
@click.option(
    "-c", "--compression-level",
    type=int,
    default=None,
    help="FLAC compression level 0-8 (values outside are clamped)"
)
@click.option(
    "-t", "--turbo", "--parallel", "workers",
    type=click.IntRange(min=1),
    default=None,
    help="Number of parallel downloads. 1 (default) downloads one at a time with pauses"
)
@click.option(
    "--delay",
    type=click.FloatRange(min=0),
    default=None,
    help="Base pause in seconds between tracks in serial mode"
)
@click.option(
    "--jitter",
    type=click.FloatRange(min=0),
    default=None,
    help="Maximum random extra pause in seconds in serial mode"
)
@click.option(
    "-r", "--reset",
    is_flag=True,
    help="Forget download history, playlist membership and the last run before starting"
)
@click.option(
    "--reset-history",
    is_flag=True,
    help="Forget download history only"
)
@click.option(
    "-F", "--force",
    is_flag=True,
    help="Download even if the track is in history or its file exists"
)
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to config.yaml"
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Show debug messages"
)
@click.version_option(__version__, "--version", prog_name="spotify-dl")
def cli(
    tracks: tuple[str, ...],
    destination: Optional[Path],
    audio_format: Optional[str],
    compression_level: Optional[int],
    workers: Optional[int],
    delay: Optional[float],
    jitter: Optional[float],
    reset: bool,
    reset_history: bool,
    force: bool,
    config_path: Optional[Path],
    verbose: bool,
) -> None:
    """
    spotify-dl: Download Spotify tracks, albums, playlists and episodes.

    IDENTIFIERS are Spotify URIs (spotify:track:...) or open.spotify.com
    URLs. Without identifiers, the items of the last run in the destination
    folder are synced again.

    \b
    BASIC USAGE:
        spotify-dl "https://open.spotify.com/playlist/..."
        spotify-dl -t 4 -f flac spotify:album:...
        spotify-dl                    # sync the last run again
    """
    if reset and reset_history:
        raise click.UsageError("Use either --reset or --reset-history, not both")

    _run_download({
        "tracks": tracks,
        "destination": destination,
        "audio_format": audio_format,
        "compression_level": compression_level,
        "workers": workers,
        "delay": delay,
        "jitter": jitter,
        "reset": ResetScope.ALL if reset else ResetScope.HISTORY if reset_history else None,
        "force": force,
        "config_path": config_path,
        "verbose": verbose,
    })


def _run_download(options: dict) -> None:
    """
    Execute the download workflow based on CLI options.

    1. Loads configuration and applies CLI overrides
    2. Sets up logging
    3. Authenticates the streaming session and the metadata client
    4. Runs the batch
    5. Reports results

    Raises:
        SystemExit: Always, with the exit code of the run.
    """
    session: StreamingSession | None = None
    progress: dict[str, DownloadProgressBar] = {}

    try:
        config = _load_configuration(options)

        setup_logging(config.output.log_directory, verbose=options["verbose"])
        logger.info(f"spotify-dl {__version__} starting")

        session = StreamingSession.authenticate(Credentials(
            credentials_file=config.spotify.credentials_file,
            username=config.spotify.username,
            password=config.spotify.password,
        ))
        downloader = Downloader(
            resolver=IdentifierResolver(_create_metadata_client(config, session)),
            pipeline=TrackPipeline(streamer=session, max_retries=config.download.max_retries),
        )

        download_options = DownloadOptions(
            destination=config.output.directory,
            format_config=FormatConfig(
                format=AudioFormat(config.download.format),
                flac_compression=config.download.flac_compression,
                mp3_bitrate=config.download.mp3_bitrate,
            ),
            policy=ThrottlePolicy.from_workers(
                config.download.parallel,
                base_delay=config.download.pacing.base_delay,
                jitter=config.download.pacing.jitter,
                duration_ratio=config.download.pacing.duration_ratio,
            ),
            force=options["force"],
            reset=options["reset"],
        )
        logger.info(f"Destination: {download_options.destination}")

        def on_start(total: int) -> None:
            if total:
                progress["bar"] = DownloadProgressBar(total=total)
                progress["bar"].start()

        def on_result(result: JobResult) -> None:
            if "bar" in progress:
                progress["bar"].update(result.status)

        try:
            report = downloader.download(
                options["tracks"],
                download_options,
                prompt=_prompt_identifiers,
                on_start=on_start,
                on_result=on_result,
            )
        finally:
            if "bar" in progress:
                progress["bar"].stop()

        _print_final_stats(report)
        logger.info("spotify-dl finished")
        exit_code = report.exit_code

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        exit_code = 1

    except PersistenceError as e:
        click.echo(f"Sync state error: {e.message}", err=True)
        logger.error(f"Sync state error: {e.message}", exc_info=True)
        exit_code = 2

    except AuthenticationError as e:
        click.echo(f"Authentication failed: {e.message}", err=True)
        click.echo(
            "Check spotify.username/password or the stored credentials file in config.yaml",
            err=True
        )
        logger.error(f"Authentication failed: {e.message}")
        exit_code = 3

    except NoValidIdentifiersError as e:
        click.echo(f"Nothing to download: {e.message}", err=True)
        exit_code = 4

    except SpotifyDLError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        exit_code = 4

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        exit_code = 130

    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error")
        exit_code = 1

    finally:
        if session is not None:
            session.close()
        shutdown_logging()

    sys.exit(exit_code)


def _load_configuration(options: dict) -> Config:
    """
    Load config.yaml and apply command-line overrides.

    Raises:
        ConfigError: If configuration is invalid or an explicit file is missing.
    """
    config = load_config(options["config_path"])
    return config.with_overrides(
        directory=options["destination"],
        format=options["audio_format"].lower() if options["audio_format"] else None,
        flac_compression=options["compression_level"],
        parallel=options["workers"],
        base_delay=options["delay"],
        jitter=options["jitter"],
    )


def _create_metadata_client(config: Config, session: StreamingSession) -> MetadataClient:
    """Prefer Web API app credentials; fall back to the session's own token."""
    if config.spotify.has_api_credentials:
        return MetadataClient.from_client_credentials(
            config.spotify.client_id,
            config.spotify.client_secret
        )
    return MetadataClient.from_access_token(session.access_token())


def _prompt_identifiers() -> list[str]:
    """Ask for identifiers when none were given and there is no last run."""
    answer = click.prompt(
        "Enter Spotify URLs or URIs (separated by spaces)",
        default="",
        show_default=False
    )
    return answer.split()


def _print_final_stats(report: BatchReport) -> None:
    """
    Print the batch summary: counts, then each failed/unavailable track.
    """
    summary = report.summary
    resolution = report.resolution

    logger.info("=" * 60)
    logger.info("FINAL STATISTICS")
    logger.info("=" * 60)
    logger.info(f"Tracks:            {summary.total}")
    logger.info(f"Downloaded:        {summary.completed} ({format_size(summary.bytes_written)})")
    logger.info(f"Already present:   {summary.skipped_present}")
    logger.info(f"Unavailable:       {summary.skipped_unavailable}")
    logger.info(f"Failed:            {summary.failed}")
    if resolution.invalid:
        logger.info(f"Invalid input:     {len(resolution.invalid)}")
    if resolution.failed:
        logger.info(f"Lookup failed:     {len(resolution.failed)}")
    logger.info("=" * 60)

    for result in summary.failures:
        reason = result.reason.value if result.reason else "Error"
        logger.info(f"  ✗ {result.descriptor.display_name} [{reason}] {result.message}")
    for result in summary.unavailable:
        logger.info(f"  ∅ {result.descriptor.display_name} (unavailable)")
    for identifier, error in resolution.failed:
        logger.info(f"  ? {identifier.uri}: {error.message}")
    for container_uri, removed in report.removed.items():
        logger.info(f"  - {len(removed)} track(s) no longer in {container_uri}")
    for warning in summary.warnings:
        logger.warning(warning)


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `spotify-dl` from the command line.
    """
    cli()


if __name__ == "__main__":
    main()
