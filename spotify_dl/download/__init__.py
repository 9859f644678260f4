"""
Download module for spotify-dl.

This module turns resolved tracks into tagged audio files:
    - results: JobResult, the outcome of one track
    - encoder: Decoding and mp3/flac encoding (pydub + ffmpeg)
    - tags: ID3 / Vorbis comment tagging and cover art (mutagen, requests)
    - pipeline: Per-track fetch -> decode -> transcode -> tag -> write
    - throttle: Parallel or paced serial execution of a batch
    - aggregator: Result collection and history updates
    - downloader: The batch orchestrator used by the CLI

Usage:
    from spotify_dl.download import Downloader, DownloadOptions, TrackPipeline
"""

from spotify_dl.download.aggregator import BatchSummary, ResultAggregator
from spotify_dl.download.downloader import BatchReport, DownloadOptions, Downloader
from spotify_dl.download.encoder import AudioFormat, FormatConfig
from spotify_dl.download.pipeline import PipelineState, TrackPipeline
from spotify_dl.download.results import FailureReason, JobResult, JobStatus
from spotify_dl.download.throttle import ThrottleMode, ThrottlePolicy, WorkQueue

__all__ = [
    "AudioFormat",
    "BatchReport",
    "BatchSummary",
    "DownloadOptions",
    "Downloader",
    "FailureReason",
    "FormatConfig",
    "JobResult",
    "JobStatus",
    "PipelineState",
    "ResultAggregator",
    "ThrottleMode",
    "ThrottlePolicy",
    "TrackPipeline",
    "WorkQueue",
]
