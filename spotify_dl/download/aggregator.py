"""
Result aggregation for a download batch.

The aggregator is the single consumer of JobResults. For each result it:
    1. Updates the per-status counters
    2. On COMPLETED, verifies the file and records it in the sync state
    3. Logs failures for the download report
    4. Notifies an optional progress callback

A failed history write does not fail the track (the file is on disk);
it becomes a batch-level warning instead.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable

from spotify_dl.core.exceptions import PersistenceError
from spotify_dl.core.logger import get_logger, log_download_failure
from spotify_dl.core.state import SyncStateStore
from spotify_dl.download.results import JobResult, JobStatus

logger = get_logger(__name__)


@dataclass
class BatchSummary:
    """
    Counts and details of a finished (or interrupted) batch.

    Attributes:
        completed: Tracks downloaded in this run.
        skipped_present: Tracks already on disk.
        skipped_unavailable: Tracks Spotify would not stream.
        failed: Tracks that hit an error.
        failures: The FAILED results, in completion order.
        unavailable: The SKIPPED_UNAVAILABLE results.
        warnings: Batch-level problems that did not fail a track.
        bytes_written: Total size of files written in this run.
    """
    completed: int = 0
    skipped_present: int = 0
    skipped_unavailable: int = 0
    failed: int = 0
    failures: list[JobResult] = field(default_factory=list)
    unavailable: list[JobResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    bytes_written: int = 0

    @property
    def total(self) -> int:
        return self.completed + self.skipped_present + self.skipped_unavailable + self.failed

    @property
    def attempted(self) -> int:
        """Tracks that went through the pipeline in this run."""
        return self.completed + self.skipped_unavailable + self.failed

    @property
    def is_total_failure(self) -> bool:
        """True when there was work to do and none of it succeeded."""
        return self.total > 0 and self.completed == 0 and self.skipped_present == 0


class ResultAggregator:
    """
    Collects JobResults and writes successes back to the sync state.

    Must be driven from a single thread (the one iterating the work queue).

    Example:
        aggregator = ResultAggregator(store, on_result=progress_bar_callback)
        for result in queue.run(tracks, job):
            aggregator.consume(result)
        summary = aggregator.summary()
    """

    def __init__(
        self,
        store: SyncStateStore,
        on_result: Callable[[JobResult], None] | None = None
    ) -> None:
        self._store = store
        self._on_result = on_result
        self._summary = BatchSummary()

    def consume(self, result: JobResult) -> None:
        """Account for one result. Never raises, not even if the callback does."""
        summary = self._summary
        track = result.descriptor

        if result.status is JobStatus.COMPLETED:
            summary.completed += 1
            summary.bytes_written += result.bytes_written
            self._record(result)

        elif result.status is JobStatus.SKIPPED_ALREADY_PRESENT:
            summary.skipped_present += 1
            logger.debug(f"Already present: {track.display_name}")

        elif result.status is JobStatus.SKIPPED_UNAVAILABLE:
            summary.skipped_unavailable += 1
            summary.unavailable.append(result)
            log_download_failure(
                logger,
                track_name=track.title,
                artist=track.artist,
                spotify_uri=track.uri,
                error_message=result.message,
                unavailable=True
            )

        else:
            summary.failed += 1
            summary.failures.append(result)
            reason = result.reason.value if result.reason else "Error"
            log_download_failure(
                logger,
                track_name=track.title,
                artist=track.artist,
                spotify_uri=track.uri,
                error_message=f"{reason}: {result.message}"
            )

        if self._on_result is not None:
            try:
                self._on_result(result)
            except Exception as e:
                logger.warning(f"Result callback failed for {track.display_name}: {e}", exc_info=True)

    def consume_all(self, results: Iterable[JobResult]) -> BatchSummary:
        for result in results:
            self.consume(result)
        return self.summary()

    def summary(self) -> BatchSummary:
        return self._summary

    def _record(self, result: JobResult) -> None:
        """Write a completed track to history if its file checks out."""
        path = result.file_path
        if path is None or not path.is_file() or path.stat().st_size == 0:
            message = f"Not recording {result.descriptor.display_name}: output file is missing or empty"
            logger.warning(message)
            self._summary.warnings.append(message)
            return

        try:
            self._store.record_success(result.track_id, path.name)
        except PersistenceError as e:
            message = f"Downloaded {path.name} but could not save it to history: {e.message}"
            logger.warning(message)
            self._summary.warnings.append(message)
