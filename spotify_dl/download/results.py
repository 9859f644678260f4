"""
Per-track outcome of a download batch.

Every track handed to the work queue produces exactly one JobResult,
whatever happens to it.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from spotify_dl.spotify.models import TrackDescriptor


class JobStatus(Enum):
    COMPLETED = "completed"
    SKIPPED_ALREADY_PRESENT = "skipped_already_present"
    SKIPPED_UNAVAILABLE = "skipped_unavailable"
    FAILED = "failed"


class FailureReason(Enum):
    """Pipeline stage a FAILED track stopped in."""
    FETCH_ERROR = "FetchError"
    DECODE_ERROR = "DecodeError"
    ENCODE_ERROR = "EncodeError"
    TAG_ERROR = "TagError"
    WRITE_ERROR = "WriteError"
    UNEXPECTED = "UnexpectedError"


@dataclass(frozen=True)
class JobResult:
    """
    Outcome of one track.

    Attributes:
        descriptor: The track this result is for.
        status: What happened.
        reason: Set only for FAILED results.
        message: Human-readable detail (error text, skip reason).
        file_path: Final file for COMPLETED and SKIPPED_ALREADY_PRESENT.
        bytes_written: Size of the committed file.
        duration: Seconds spent in the pipeline.
    """
    descriptor: TrackDescriptor
    status: JobStatus
    reason: FailureReason | None = None
    message: str = ""
    file_path: Path | None = None
    bytes_written: int = 0
    duration: float = 0.0

    @property
    def track_id(self) -> str:
        return self.descriptor.spotify_id

    @property
    def is_success(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.SKIPPED_ALREADY_PRESENT)

    @classmethod
    def completed(
        cls,
        descriptor: TrackDescriptor,
        file_path: Path,
        bytes_written: int,
        duration: float = 0.0
    ) -> "JobResult":
        return cls(
            descriptor=descriptor,
            status=JobStatus.COMPLETED,
            file_path=file_path,
            bytes_written=bytes_written,
            duration=duration,
        )

    @classmethod
    def already_present(cls, descriptor: TrackDescriptor, file_path: Path, message: str = "") -> "JobResult":
        return cls(
            descriptor=descriptor,
            status=JobStatus.SKIPPED_ALREADY_PRESENT,
            file_path=file_path,
            message=message,
        )

    @classmethod
    def unavailable(cls, descriptor: TrackDescriptor, message: str, duration: float = 0.0) -> "JobResult":
        return cls(
            descriptor=descriptor,
            status=JobStatus.SKIPPED_UNAVAILABLE,
            message=message,
            duration=duration,
        )

    @classmethod
    def failed(
        cls,
        descriptor: TrackDescriptor,
        reason: FailureReason,
        message: str,
        duration: float = 0.0
    ) -> "JobResult":
        return cls(
            descriptor=descriptor,
            status=JobStatus.FAILED,
            reason=reason,
            message=message,
            duration=duration,
        )
