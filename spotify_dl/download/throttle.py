"""
Work queue and throttling for spotify-dl.

Two execution modes:

    PARALLEL ("turbo")  Up to N tracks run at once on a thread pool. Tracks
                        are admitted in list order; results come back in
                        completion order. No pacing delay.
    SERIAL              One track at a time on the calling thread, with a
                        randomized pause between tracks:
                        base_delay + duration_ratio * track duration + uniform(0, jitter)

Tracks that are already satisfied (in history and on disk) are split off
before admission and never reach a worker.

Usage:
    policy = ThrottlePolicy.from_workers(4)
    queue = WorkQueue(policy)
    for result in queue.run(tracks, lambda t: pipeline.run(t, dest, fmt)):
        aggregator.consume(result)
"""

import math
import random
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Iterator, Sequence

from spotify_dl.core.logger import get_logger
from spotify_dl.download.results import FailureReason, JobResult
from spotify_dl.spotify.models import TrackDescriptor

logger = get_logger(__name__)


class ThrottleMode(Enum):
    PARALLEL = "parallel"
    SERIAL = "serial"


@dataclass(frozen=True)
class ThrottlePolicy:
    """
    How a batch is executed. Fixed for the whole batch.

    Attributes:
        mode: PARALLEL or SERIAL.
        workers: Concurrency in PARALLEL mode (ignored in SERIAL mode).
        base_delay: Fixed part of the serial pause, in seconds.
        jitter: Upper bound of the random part of the serial pause.
        duration_ratio: Fraction of the finished track's duration added
                        to the serial pause.
    """
    mode: ThrottleMode = ThrottleMode.SERIAL
    workers: int = 1
    base_delay: float = 2.0
    jitter: float = 3.0
    duration_ratio: float = 0.0

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ValueError("workers must be at least 1")
        if min(self.base_delay, self.jitter, self.duration_ratio) < 0:
            raise ValueError("pacing values must not be negative")

    @classmethod
    def parallel(cls, workers: int) -> "ThrottlePolicy":
        return cls(mode=ThrottleMode.PARALLEL, workers=workers, base_delay=0.0, jitter=0.0)

    @classmethod
    def serial(cls, base_delay: float = 2.0, jitter: float = 3.0, duration_ratio: float = 0.0) -> "ThrottlePolicy":
        return cls(
            mode=ThrottleMode.SERIAL,
            workers=1,
            base_delay=base_delay,
            jitter=jitter,
            duration_ratio=duration_ratio,
        )

    @classmethod
    def from_workers(
        cls,
        workers: int,
        base_delay: float = 2.0,
        jitter: float = 3.0,
        duration_ratio: float = 0.0
    ) -> "ThrottlePolicy":
        """More than one worker selects turbo mode; one worker the paced serial mode."""
        if workers > 1:
            return cls.parallel(workers)
        return cls.serial(base_delay, jitter, duration_ratio)

    @property
    def concurrency(self) -> int:
        return self.workers if self.mode is ThrottleMode.PARALLEL else 1

    def sample_delay(self, descriptor: TrackDescriptor | None = None, rng: random.Random | None = None) -> float:
        """
        Pause to wait after a track in SERIAL mode (always 0 in PARALLEL mode).

        Args:
            descriptor: The track that just finished, for duration-based pacing.
            rng: Random source. Defaults to the module-level generator.
        """
        if self.mode is ThrottleMode.PARALLEL:
            return 0.0
        duration = descriptor.duration_seconds if descriptor is not None else 0.0
        uniform = rng.uniform if rng is not None else random.uniform
        jitter = uniform(0, self.jitter) if self.jitter > 0 else 0.0
        return self.base_delay + self.duration_ratio * duration + jitter

    def estimate_wall_time(
        self,
        batch_size: int,
        per_track_seconds: float,
        average_duration_seconds: float = 0.0
    ) -> float:
        """
        Rough wall-clock estimate for a batch, in seconds.

        PARALLEL: ceil(M / N) * t
        SERIAL:   M * (t + average pause), an upper bound since no pause
                  follows the last track

        Args:
            batch_size: Number of tracks to process (M).
            per_track_seconds: Expected pipeline time per track (t).
            average_duration_seconds: Average track duration, for duration pacing.
        """
        if batch_size <= 0:
            return 0.0
        if self.mode is ThrottleMode.PARALLEL:
            return math.ceil(batch_size / self.workers) * per_track_seconds
        average_pause = (
            self.base_delay
            + self.duration_ratio * average_duration_seconds
            + self.jitter / 2
        )
        return batch_size * (per_track_seconds + average_pause)


def split_satisfied(
    tracks: Iterable[TrackDescriptor],
    is_satisfied: Callable[[TrackDescriptor], JobResult | None]
) -> tuple[list[TrackDescriptor], list[JobResult]]:
    """
    Separate tracks that need work from tracks that are already done.

    Args:
        tracks: Resolved tracks, in order.
        is_satisfied: Returns a SKIPPED_ALREADY_PRESENT result for a track
                      that needs no work, None otherwise.

    Returns:
        (pending tracks in order, skipped results in order)
    """
    pending: list[TrackDescriptor] = []
    skipped: list[JobResult] = []
    for track in tracks:
        result = is_satisfied(track)
        if result is None:
            pending.append(track)
        else:
            skipped.append(result)
    return pending, skipped


class WorkQueue:
    """
    Runs a job for every track under a ThrottlePolicy.

    Results are yielded to the caller's thread, which makes the caller the
    single consumer of all results regardless of the worker count.

    Attributes:
        policy: The batch's throttle policy.
    """

    def __init__(
        self,
        policy: ThrottlePolicy,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.policy = policy
        self._sleep = sleep
        self._rng = rng

    def run(
        self,
        tracks: Sequence[TrackDescriptor],
        job: Callable[[TrackDescriptor], JobResult]
    ) -> Iterator[JobResult]:
        """
        Execute job for each track and yield one result per track.

        A job that raises yields a FAILED result instead; admission of the
        remaining tracks continues.
        """
        if not tracks:
            return iter(())
        if self.policy.mode is ThrottleMode.PARALLEL:
            return self._run_parallel(tracks, job)
        return self._run_serial(tracks, job)

    def _run_serial(
        self,
        tracks: Sequence[TrackDescriptor],
        job: Callable[[TrackDescriptor], JobResult]
    ) -> Iterator[JobResult]:
        last = len(tracks) - 1
        for index, track in enumerate(tracks):
            yield _run_guarded(job, track)

            if index < last:
                delay = self.policy.sample_delay(track, self._rng)
                if delay > 0:
                    logger.debug(f"Waiting {delay:.1f}s before the next track")
                    self._sleep(delay)

    def _run_parallel(
        self,
        tracks: Sequence[TrackDescriptor],
        job: Callable[[TrackDescriptor], JobResult]
    ) -> Iterator[JobResult]:
        queued = iter(tracks)
        in_flight: dict[Future, TrackDescriptor] = {}

        with ThreadPoolExecutor(
            max_workers=self.policy.workers,
            thread_name_prefix="track-worker"
        ) as executor:

            def admit() -> None:
                track = next(queued, None)
                if track is not None:
                    in_flight[executor.submit(_run_guarded, job, track)] = track

            for _ in range(self.policy.workers):
                admit()

            while in_flight:
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    in_flight.pop(future)
                    # Refill the freed slot before handing the result over
                    admit()
                    yield future.result()


def _run_guarded(job: Callable[[TrackDescriptor], JobResult], track: TrackDescriptor) -> JobResult:
    """Run one job, turning an unexpected exception into a FAILED result."""
    try:
        return job(track)
    except Exception as e:
        logger.exception(f"Unexpected error while processing {track.display_name}")
        return JobResult.failed(track, FailureReason.UNEXPECTED, str(e) or type(e).__name__)
