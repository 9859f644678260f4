"""
Logging configuration for spotify-dl.

This module sets up the logging system with multiple outputs:
    - Console: Real-time progress with tqdm-compatible formatting
    - log_full_<timestamp>.log: Complete log of all events (DEBUG and above)
    - log_errors_<timestamp>.log: Only ERROR and CRITICAL level messages
    - download_failures_<timestamp>.log: Failed and unavailable tracks with their Spotify URLs

The logging system follows the principle: everything to screen is also saved
to file, then filtered into specialized files.

Log File Locations:
    All log files are created in the log directory from config.yaml
    (default ~/.spotify-dl/logs). Each run gets its own timestamped files.

Usage:
    from spotify_dl.core.logger import setup_logging, get_logger

    setup_logging(log_dir)  # Call once at startup
    logger = get_logger(__name__)  # Get logger for each module

    logger.info("Starting download")
"""

import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import TextIO

from tqdm import tqdm


# Log format for file output (detailed with timestamp)
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(threadName)s | %(name)s | %(message)s"
FILE_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    BOLD = "\033[1m"


class ColoredConsoleFormatter(logging.Formatter):
    """
    Custom formatter that adds colors to console output.

    Colors:
        - DEBUG: Blue
        - INFO: Green
        - WARNING: Yellow
        - ERROR: Red
        - CRITICAL: Bold Red
    """

    LEVEL_COLORS = {
        logging.DEBUG: Colors.BLUE,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.BOLD + Colors.RED,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Colors.WHITE)
        colored_levelname = f"{color}{record.levelname}{Colors.RESET}"
        return f"{colored_levelname}: {record.getMessage()}"


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes to console without breaking progress bars.

    Progress bars redraw themselves in place on stderr; plain writes to the
    same stream leave half-drawn bars behind. tqdm.write() prints the message
    above any active bar instead.

    Attributes:
        stream: The output stream (defaults to sys.stderr).
    """

    def __init__(self, stream: TextIO = sys.stderr) -> None:
        super().__init__()
        self.stream = stream

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except Exception:
            self.handleError(record)


class DownloadFailedTrackHandler(logging.Handler):
    """
    Handler that captures track failures for the download report file.

    This handler listens for log records that contain track failure
    information and writes them to download_failures_<timestamp>.log in a
    simple, human-readable format:

        Artist Name - Song Title
        spotify:track:xxxxx
        FAILED (EncodeError): ffmpeg exited with status 1

    The handler looks for specific extra fields in log records:
        - 'download_failed_track_name': The name of the track that failed
        - 'download_failed_track_artist': The artist name
        - 'download_failed_track_uri': The Spotify URI
        - 'download_failed_status': "FAILED" or "UNAVAILABLE"
        - 'download_failed_reason': Short reason text

    Only records containing these fields are written to the report.
    Workers may log concurrently, so writes are serialized with a lock.
    """

    def __init__(self, report_path: Path) -> None:
        super().__init__()
        self.report_path = report_path
        self.report_file: TextIO | None = None
        self._write_lock = threading.Lock()

    def open(self) -> None:
        """
        Open the report file for writing.

        Called by setup_logging() after handler is created.
        """
        self.report_file = open(self.report_path, "w", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        if not hasattr(record, "download_failed_track_name"):
            return

        if self.report_file is None:
            return

        try:
            track_name = getattr(record, "download_failed_track_name", "Unknown")
            artist = getattr(record, "download_failed_track_artist", "Unknown")
            uri = getattr(record, "download_failed_track_uri", "")
            status = getattr(record, "download_failed_status", "FAILED")
            reason = getattr(record, "download_failed_reason", "")

            with self._write_lock:
                self.report_file.write(f"{artist} - {track_name}\n")
                self.report_file.write(f"{uri}\n")
                self.report_file.write(f"{status}: {reason}\n\n")
                self.report_file.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        """
        Close the report file handle.

        Safe to call multiple times.
        """
        if self.report_file is not None:
            try:
                self.report_file.close()
            except OSError:
                pass
            self.report_file = None
        super().close()


class ErrorOnlyFilter(logging.Filter):
    """Filter that only allows ERROR and CRITICAL level records."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def setup_logging(log_dir: Path, verbose: bool = False) -> None:
    """
    Configure the logging system for the application.

    This function should be called ONCE at application startup, after
    the configuration is loaded but before any other operations.

    Args:
        log_dir: Directory where log files will be created.
        verbose: Show DEBUG messages on the console as well.

    Behavior:
        1. Create log_dir if it doesn't exist
        2. Generate timestamp for this run's log files
        3. Configure root logger level to DEBUG
        4. Console handler (TqdmLoggingHandler), INFO or DEBUG, colored
        5. Full log file handler, DEBUG
        6. Error log file handler, filtered to ERROR+ by ErrorOnlyFilter
        7. Download failure report handler

    Thread Safety:
        This function is NOT thread-safe. Call it once from the main
        thread before starting any worker threads.
    """
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove any existing handlers
    root_logger.handlers.clear()

    console_handler = TqdmLoggingHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(ColoredConsoleFormatter())
    root_logger.addHandler(console_handler)

    full_log_path = log_dir / f"log_full_{timestamp}.log"
    full_handler = logging.FileHandler(full_log_path, mode="w", encoding="utf-8")
    full_handler.setLevel(logging.DEBUG)
    full_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    root_logger.addHandler(full_handler)

    error_log_path = log_dir / f"log_errors_{timestamp}.log"
    error_handler = logging.FileHandler(error_log_path, mode="w", encoding="utf-8")
    error_handler.setLevel(logging.DEBUG)  # Filter handles the level restriction
    error_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, FILE_DATE_FORMAT))
    error_handler.addFilter(ErrorOnlyFilter())
    root_logger.addHandler(error_handler)

    download_failures_path = log_dir / f"download_failures_{timestamp}.log"
    download_handler = DownloadFailedTrackHandler(download_failures_path)
    download_handler.open()
    root_logger.addHandler(download_handler)

    # Third-party libraries are chatty at DEBUG
    for noisy in ("urllib3", "spotipy", "librespot", "pydub.converter"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for a module.

    Args:
        name: The logger name, typically __name__ of the calling module.

    Note:
        Loggers obtained before setup_logging() is called will have no
        handlers and will not produce output.
    """
    return logging.getLogger(name)


def log_download_failure(
    logger: logging.Logger,
    track_name: str,
    artist: str,
    spotify_uri: str,
    error_message: str,
    unavailable: bool = False
) -> None:
    """
    Log a track that could not be downloaded.

    Logs with the extra fields that DownloadFailedTrackHandler picks up.
    Unavailable tracks are logged at WARNING, real failures at ERROR, so
    only the latter end up in the error log.

    Example:
        log_download_failure(
            logger,
            track_name="Song Title",
            artist="Artist Name",
            spotify_uri="spotify:track:xxx",
            error_message="not available in your country",
            unavailable=True
        )
    """
    status = "UNAVAILABLE" if unavailable else "FAILED"
    level = logging.WARNING if unavailable else logging.ERROR
    logger.log(
        level,
        f"{'Unavailable' if unavailable else 'Download failed'}: "
        f"{artist} - {track_name} ({error_message})",
        extra={
            "download_failed_track_name": track_name,
            "download_failed_track_artist": artist,
            "download_failed_track_uri": spotify_uri,
            "download_failed_status": status,
            "download_failed_reason": error_message,
        }
    )


def shutdown_logging() -> None:
    """
    Properly shut down the logging system.

    Flushes and closes every root handler, then removes it. Called from
    the CLI's finally block.
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        try:
            handler.flush()
            handler.close()
        except (OSError, ValueError):
            pass
        root_logger.removeHandler(handler)
