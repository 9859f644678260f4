"""
Per-track download pipeline for spotify-dl.

Each track runs through a fixed sequence of stages:

    FETCHING -> DECODING -> TRANSCODING -> TAGGING -> WRITING -> DONE
        |           |            |            |          |
        v           +------------+------------+----------+--> FAILED
    UNAVAILABLE

Stage Details:
    FETCHING     Stream the audio from Spotify. "Not found", geo-restricted
                 and premium-only tracks end in UNAVAILABLE. Transient
                 network errors are retried with exponential backoff.
    DECODING     Decode the Ogg Vorbis stream into samples.
    TRANSCODING  Encode to mp3 or flac.
    TAGGING      Stage the encoded bytes in a hidden temp file next to the
                 destination and write tags (cover art is optional).
    WRITING      Check the staged file is non-empty and rename it onto the
                 final path. The rename is atomic on the same filesystem, so
                 a crash never leaves a half-written file under the final name.

Failure Isolation:
    run() never raises. Any error is turned into a JobResult whose reason
    names the stage it happened in, and the staged temp file is removed on
    every exit path except DONE.

Usage:
    pipeline = TrackPipeline(streamer=session, decoder=Decoder(), tag_writer=TagWriter())
    result = pipeline.run(descriptor, Path("~/Music"), FormatConfig(AudioFormat.MP3))
"""

import os
import time
from enum import Enum, auto
from pathlib import Path
from typing import Mapping, Protocol

from spotify_dl.core.exceptions import NotFoundError, StreamError, WriteError
from spotify_dl.core.logger import get_logger
from spotify_dl.download.encoder import AudioFormat, Decoder, Encoder, FormatConfig, get_encoder
from spotify_dl.download.results import FailureReason, JobResult
from spotify_dl.download.tags import CoverArtFetcher, TagWriter, TrackTags
from spotify_dl.spotify.models import TrackDescriptor
from spotify_dl.utils import BASE_DELAY, build_file_stem, calculate_backoff, legacy_file_stem

logger = get_logger(__name__)


MAX_RETRIES = 3
PARTIAL_SUFFIX = ".part"


class PipelineState(Enum):
    FETCHING = auto()
    DECODING = auto()
    TRANSCODING = auto()
    TAGGING = auto()
    WRITING = auto()
    DONE = auto()
    UNAVAILABLE = auto()
    FAILED = auto()


# Failure reason for an error raised while in a given state
_FAILURE_REASONS = {
    PipelineState.FETCHING: FailureReason.FETCH_ERROR,
    PipelineState.DECODING: FailureReason.DECODE_ERROR,
    PipelineState.TRANSCODING: FailureReason.ENCODE_ERROR,
    PipelineState.TAGGING: FailureReason.TAG_ERROR,
    PipelineState.WRITING: FailureReason.WRITE_ERROR,
}


class TrackStreamer(Protocol):
    def fetch_track_stream(self, descriptor: TrackDescriptor) -> bytes:
        ...


def target_path(descriptor: TrackDescriptor, destination: Path, audio_format: AudioFormat) -> Path:
    """Final file path of a track."""
    stem = build_file_stem(descriptor.artists, descriptor.title)
    return destination / f"{stem}.{AudioFormat(audio_format).extension}"


def existing_file(descriptor: TrackDescriptor, destination: Path, audio_format: AudioFormat) -> Path | None:
    """
    Return the file this track was already saved under, if any.

    Checks the current name first, then the legacy name older releases
    used for tracks with more than three artists.
    """
    current = target_path(descriptor, destination, audio_format)
    if current.exists():
        return current

    legacy = legacy_file_stem(descriptor.artists, descriptor.title)
    if legacy is not None:
        legacy_path = destination / f"{legacy}.{AudioFormat(audio_format).extension}"
        if legacy_path.exists():
            return legacy_path
    return None


def partial_path(final_path: Path, spotify_id: str) -> Path:
    """
    Hidden staging path in the same directory as final_path.

    The track ID is part of the name, so two tracks that share a final
    name never share a staging file.
    """
    return final_path.with_name(f".{final_path.name}.{spotify_id}{PARTIAL_SUFFIX}")


def purge_partial_files(destination: Path) -> int:
    """
    Delete staging files left behind by an interrupted run.

    Returns:
        Number of files removed.
    """
    removed = 0
    if not destination.is_dir():
        return removed
    for path in destination.glob(f".*{PARTIAL_SUFFIX}"):
        try:
            path.unlink()
            removed += 1
        except OSError as e:
            logger.warning(f"Could not remove stale partial file {path.name}: {e}")
    if removed:
        logger.info(f"Removed {removed} partial file(s) from an interrupted run")
    return removed


class TrackPipeline:
    """
    Drives a single track from stream to tagged file.

    One instance is shared by all workers: it holds no per-track state.

    Attributes:
        max_retries: Fetch attempts for transient stream errors.
        retry_base_delay: Base of the exponential backoff between attempts.
    """

    def __init__(
        self,
        streamer: TrackStreamer,
        decoder: Decoder | None = None,
        tag_writer: TagWriter | None = None,
        cover_fetcher: CoverArtFetcher | None = None,
        encoders: Mapping[AudioFormat, Encoder] | None = None,
        max_retries: int = MAX_RETRIES,
        retry_base_delay: float = BASE_DELAY,
    ) -> None:
        self._streamer = streamer
        self._decoder = decoder or Decoder()
        self._tag_writer = tag_writer or TagWriter()
        self._cover_fetcher = cover_fetcher or CoverArtFetcher()
        self._encoders = dict(encoders) if encoders else {}
        self.max_retries = max(1, max_retries)
        self.retry_base_delay = retry_base_delay

    def run(self, descriptor: TrackDescriptor, destination: Path, format_config: FormatConfig) -> JobResult:
        """
        Download, convert, tag and save one track.

        Args:
            descriptor: Track to download.
            destination: Folder the final file goes into (must exist).
            format_config: Target format.

        Returns:
            JobResult: COMPLETED, SKIPPED_UNAVAILABLE or FAILED. Never raises.
        """
        started = time.monotonic()
        final_path = target_path(descriptor, destination, format_config.format)
        staged = partial_path(final_path, descriptor.spotify_id)
        state = PipelineState.FETCHING

        try:
            data = self._fetch(descriptor)

            state = PipelineState.DECODING
            samples = self._decoder.decode(data)

            state = PipelineState.TRANSCODING
            encoded = self._encoder_for(format_config.format).encode(samples, format_config)

            state = PipelineState.TAGGING
            staged.write_bytes(encoded)
            cover = self._fetch_cover(descriptor)
            self._tag_writer.write_tags(staged, TrackTags.from_descriptor(descriptor, cover), format_config.format)

            state = PipelineState.WRITING
            size = self._commit(staged, final_path)

            state = PipelineState.DONE
            elapsed = time.monotonic() - started
            logger.info(f"Downloaded: {final_path.name} ({elapsed:.1f}s)")
            return JobResult.completed(descriptor, final_path, size, duration=elapsed)

        except NotFoundError as e:
            state = PipelineState.UNAVAILABLE
            return JobResult.unavailable(descriptor, e.message, duration=time.monotonic() - started)

        except Exception as e:
            reason = _FAILURE_REASONS.get(state, FailureReason.UNEXPECTED)
            logger.debug(f"{descriptor.display_name} failed while {state.name}", exc_info=True)
            state = PipelineState.FAILED
            return JobResult.failed(descriptor, reason, str(e) or type(e).__name__, duration=time.monotonic() - started)

        finally:
            if state is not PipelineState.DONE:
                _remove_quietly(staged)

    def _encoder_for(self, audio_format: AudioFormat) -> Encoder:
        audio_format = AudioFormat(audio_format)
        if audio_format not in self._encoders:
            self._encoders[audio_format] = get_encoder(audio_format)
        return self._encoders[audio_format]

    def _fetch(self, descriptor: TrackDescriptor) -> bytes:
        """
        Fetch the stream, retrying transient errors.

        Raises:
            NotFoundError: Immediately, never retried.
            StreamError: After the last attempt, or at once if not transient.
        """
        for attempt in range(self.max_retries):
            try:
                return self._streamer.fetch_track_stream(descriptor)
            except StreamError as e:
                if not e.is_transient or attempt == self.max_retries - 1:
                    raise
                delay = calculate_backoff(attempt, self.retry_base_delay)
                logger.debug(
                    f"Stream attempt {attempt + 1}/{self.max_retries} failed for "
                    f"{descriptor.display_name}: {e.message}. Retrying in {delay:.1f}s"
                )
                time.sleep(delay)
        raise AssertionError("unreachable")

    def _fetch_cover(self, descriptor: TrackDescriptor) -> bytes | None:
        try:
            return self._cover_fetcher.fetch(descriptor.cover_url)
        except Exception as e:
            logger.warning(f"Cover art skipped for {descriptor.display_name}: {e}")
            return None

    @staticmethod
    def _commit(staged: Path, final_path: Path) -> int:
        """
        Move the staged file onto its final name.

        Returns:
            Size of the committed file in bytes.

        Raises:
            WriteError: The staged file is empty or the rename failed.
        """
        size = staged.stat().st_size
        if size == 0:
            raise WriteError(
                f"Encoded file is empty: {final_path.name}",
                details={"path": str(final_path)}
            )
        try:
            os.replace(staged, final_path)
        except OSError as e:
            raise WriteError(
                f"Failed to move {staged.name} to {final_path.name}: {e}",
                details={"path": str(final_path), "original_error": str(e)}
            ) from e
        return size


def _remove_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not remove temporary file {path.name}: {e}")
