"""Test logging setup and the download failure report"""

import logging

from spotify_dl.core.logger import (
    DownloadFailedTrackHandler,
    ErrorOnlyFilter,
    log_download_failure,
)
from spotify_dl.core.progress import DownloadProgressBar
from spotify_dl.download.results import JobStatus


class TestDownloadFailureReport:
    """Test that failed tracks end up in the report file"""

    def test_report_lines(self, tmp_path):
        report = tmp_path / "download_failures.log"
        handler = DownloadFailedTrackHandler(report)
        handler.open()
        logger = logging.getLogger("spotify_dl.tests.report")
        logger.addHandler(handler)
        logger.setLevel(logging.DEBUG)

        try:
            logger.info("ordinary message")
            log_download_failure(logger, "Song", "Artist", "spotify:track:abc", "EncodeError: ffmpeg")
            log_download_failure(logger, "Other", "Band", "spotify:track:def", "premium only", unavailable=True)
        finally:
            logger.removeHandler(handler)
            handler.close()

        content = report.read_text(encoding="utf-8")
        assert "ordinary message" not in content
        assert "Artist - Song\nspotify:track:abc\nFAILED: EncodeError: ffmpeg\n" in content
        assert "UNAVAILABLE: premium only" in content

    def test_error_only_filter(self):
        error_filter = ErrorOnlyFilter()
        make = lambda level: logging.LogRecord("x", level, __file__, 1, "msg", None, None)

        assert error_filter.filter(make(logging.ERROR))
        assert not error_filter.filter(make(logging.WARNING))


class TestDownloadProgressBar:
    def test_counts_by_status(self):
        with DownloadProgressBar(total=3) as progress:
            progress.update(JobStatus.COMPLETED)
            progress.update(JobStatus.SKIPPED_UNAVAILABLE)
            progress.update(JobStatus.COMPLETED)

        assert progress.completed == 3
        assert progress.counts[JobStatus.COMPLETED] == 2
        assert "∅ 1" in progress._get_status_text()
