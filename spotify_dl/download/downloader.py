"""
Batch downloader for spotify-dl.

Wires the components of one run together:

    1. Open the destination's sync state and apply any requested reset
    2. Pick identifiers: the given ones, else the folder's last run, else a prompt
    3. Resolve identifiers into unique tracks
    4. Split off tracks already present; run the rest through the work queue
    5. Aggregate results (history is written as each track completes)
    6. Update playlist/album membership and report tracks removed upstream

Skip Rules (unless force is set):
    - In history and the recorded file still exists      -> already present
    - In history but the file is gone                     -> download again
    - Not in history, but a file with its name exists     -> already present
      (current name or the legacy many-artists name)
    - Shares its file name with an earlier track of the batch -> already present
      (applies with force too)

Usage:
    downloader = Downloader(resolver, pipeline)
    report = downloader.download(["spotify:playlist:..."], options)
    sys.exit(report.exit_code)
"""

import random
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

from spotify_dl.core.exceptions import NoValidIdentifiersError, PersistenceError
from spotify_dl.core.logger import get_logger
from spotify_dl.core.state import ResetScope, SyncRecord, SyncStateStore
from spotify_dl.download.aggregator import BatchSummary, ResultAggregator
from spotify_dl.download.encoder import FormatConfig
from spotify_dl.download.pipeline import TrackPipeline, existing_file, purge_partial_files, target_path
from spotify_dl.download.results import JobResult
from spotify_dl.download.throttle import ThrottlePolicy, WorkQueue, split_satisfied
from spotify_dl.spotify.models import TrackDescriptor
from spotify_dl.spotify.resolver import IdentifierResolver, Resolution
from spotify_dl.utils import ensure_directory, format_duration

logger = get_logger(__name__)


# Rough per-track pipeline time used for the up-front estimate
ESTIMATED_SECONDS_PER_TRACK = 10.0


@dataclass(frozen=True)
class DownloadOptions:
    """
    Settings of one batch.

    Attributes:
        destination: Folder to download into (created if missing).
        format_config: Target format.
        policy: Parallel or paced serial execution.
        force: Ignore history and existing files.
        reset: Clear this part of the folder's state before starting.
    """
    destination: Path
    format_config: FormatConfig = field(default_factory=FormatConfig)
    policy: ThrottlePolicy = field(default_factory=ThrottlePolicy)
    force: bool = False
    reset: ResetScope | None = None


@dataclass
class BatchReport:
    """
    Everything a caller needs to report on a run.

    Attributes:
        summary: Per-status counts and failure details.
        resolution: Resolver output (tracks, invalid/failed identifiers).
        removed: Container URI -> tracks that left it since the last sync.
    """
    summary: BatchSummary
    resolution: Resolution
    removed: dict[str, set[str]] = field(default_factory=dict)

    @property
    def nothing_resolved(self) -> bool:
        """Every metadata lookup failed, so there were no tracks to work on."""
        return not self.resolution.tracks and bool(self.resolution.failed)

    @property
    def exit_code(self) -> int:
        return 1 if self.summary.is_total_failure or self.nothing_resolved else 0


class Downloader:
    """
    Runs download batches.

    Attributes:
        sleep: Used for serial pacing; replaceable in tests.
        rng: Random source for pacing jitter.
    """

    def __init__(
        self,
        resolver: IdentifierResolver,
        pipeline: TrackPipeline,
        store_factory: Callable[[Path], SyncStateStore] = SyncStateStore,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._resolver = resolver
        self._pipeline = pipeline
        self._store_factory = store_factory
        self.sleep = sleep
        self.rng = rng

    def download(
        self,
        identifiers: Sequence[str],
        options: DownloadOptions,
        prompt: Callable[[], Sequence[str]] | None = None,
        on_start: Callable[[int], None] | None = None,
        on_result: Callable[[JobResult], None] | None = None,
    ) -> BatchReport:
        """
        Download one batch into options.destination.

        Args:
            identifiers: Raw identifier strings; may be empty.
            options: Batch settings.
            prompt: Asked for identifiers when none are given and the
                    folder has no previous run.
            on_start: Called with the number of tracks once resolved.
            on_result: Called for every JobResult, in completion order.

        Returns:
            BatchReport for the run.

        Raises:
            NoValidIdentifiersError: Nothing to download.
            AuthenticationError: Metadata lookups were rejected.
        """
        destination = ensure_directory(options.destination.expanduser().resolve())
        store = self._store_factory(destination)
        try:
            if options.reset is not None:
                store.reset(options.reset)
            record = store.load()

            requested = self._pick_identifiers(identifiers, record, prompt)
            resolution = self._resolver.resolve(requested)
            self._remember(store, [identifier.uri for identifier in resolution.identifiers])

            purge_partial_files(destination)

            claimed: dict[Path, TrackDescriptor] = {}
            pending, skipped = split_satisfied(
                resolution.tracks,
                lambda track: (
                    self._already_present(track, record, destination, options)
                    or self._claim_file_name(track, claimed, destination, options)
                )
            )
            self._log_plan(resolution, pending, skipped, options.policy)
            if on_start is not None:
                on_start(len(resolution.tracks))

            aggregator = ResultAggregator(store, on_result=on_result)
            for result in skipped:
                aggregator.consume(result)

            queue = WorkQueue(options.policy, sleep=self.sleep, rng=self.rng)
            for result in queue.run(
                pending,
                lambda track: self._pipeline.run(track, destination, options.format_config)
            ):
                aggregator.consume(result)

            summary = aggregator.summary()
            removed = self._sync_membership(store, resolution, summary)
            try:
                store.mark_synced()
            except PersistenceError as e:
                summary.warnings.append(e.message)

            return BatchReport(summary=summary, resolution=resolution, removed=removed)
        finally:
            store.close()

    @staticmethod
    def _pick_identifiers(
        identifiers: Sequence[str],
        record: SyncRecord,
        prompt: Callable[[], Sequence[str]] | None
    ) -> list[str]:
        if identifiers:
            return list(identifiers)
        if record.last_identifiers:
            logger.info(
                f"No identifiers given, syncing the {len(record.last_identifiers)} "
                f"from the last run in this folder"
            )
            return list(record.last_identifiers)
        if prompt is not None:
            answer = [item for item in prompt() if item.strip()]
            if answer:
                return answer
        raise NoValidIdentifiersError(
            "No identifiers given and no previous run in this folder"
        )

    @staticmethod
    def _remember(store: SyncStateStore, uris: list[str]) -> None:
        try:
            store.remember_identifiers(uris)
        except PersistenceError as e:
            logger.warning(e.message)

    @staticmethod
    def _already_present(
        track: TrackDescriptor,
        record: SyncRecord,
        destination: Path,
        options: DownloadOptions
    ) -> JobResult | None:
        if options.force:
            return None

        entry = record.history.get(track.spotify_id)
        if entry is not None:
            recorded = destination / entry.file_name
            if entry.file_name and recorded.is_file():
                return JobResult.already_present(track, recorded, "in history")
            logger.info(f"{track.display_name} is in history but its file is gone, downloading again")
            return None

        found = existing_file(track, destination, options.format_config.format)
        if found is not None:
            return JobResult.already_present(track, found, "file exists")
        return None

    @staticmethod
    def _claim_file_name(
        track: TrackDescriptor,
        claimed: dict[Path, TrackDescriptor],
        destination: Path,
        options: DownloadOptions
    ) -> JobResult | None:
        """
        Reserve the track's file name for this batch.

        Different tracks can share "Artist - Title" (a single and its album
        version). The first one in batch order gets the file; later ones are
        reported as already present under it.
        """
        path = target_path(track, destination, options.format_config.format)
        owner = claimed.get(path)
        if owner is None:
            claimed[path] = track
            return None
        logger.info(
            f"{track.display_name} ({track.spotify_id}) has the same file name as "
            f"{owner.spotify_id}, keeping the first"
        )
        return JobResult.already_present(track, path, "same file name as another track")

    @staticmethod
    def _log_plan(
        resolution: Resolution,
        pending: list[TrackDescriptor],
        skipped: list[JobResult],
        policy: ThrottlePolicy
    ) -> None:
        logger.info(
            f"{len(resolution.tracks)} tracks: {len(pending)} to download, "
            f"{len(skipped)} already present"
        )
        if not pending:
            return
        durations = [track.duration_seconds for track in pending]
        estimate = policy.estimate_wall_time(
            len(pending),
            ESTIMATED_SECONDS_PER_TRACK,
            sum(durations) / len(durations)
        )
        mode = f"{policy.workers} parallel workers" if policy.concurrency > 1 else "serial, paced"
        logger.info(f"Mode: {mode}. Estimated time: ~{format_duration(estimate)}")

    @staticmethod
    def _sync_membership(
        store: SyncStateStore,
        resolution: Resolution,
        summary: BatchSummary
    ) -> dict[str, set[str]]:
        """Store each container's current tracks; return what left since last time."""
        removed: dict[str, set[str]] = {}
        for container_uri, track_ids in resolution.containers.items():
            try:
                gone = store.update_membership(container_uri, track_ids)
            except PersistenceError as e:
                summary.warnings.append(e.message)
                continue
            if gone:
                removed[container_uri] = gone
                logger.info(
                    f"{len(gone)} track(s) were removed from {container_uri} since the last "
                    "sync; their files were left in place"
                )
        return removed
