"""Test the per-track download pipeline"""

from conftest import FakeDecoder, FakeEncoder, FakeStreamer, FakeTagWriter, make_track, track_id, unavailable
from spotify_dl.core.exceptions import DecodeError, EncodeError, StreamError, TagError
from spotify_dl.download.encoder import AudioFormat, FormatConfig
from spotify_dl.download.pipeline import (
    existing_file,
    partial_path,
    purge_partial_files,
    target_path,
)
from spotify_dl.download.results import FailureReason, JobStatus
from spotify_dl.download.throttle import ThrottlePolicy, WorkQueue

MP3 = FormatConfig(AudioFormat.MP3)


def leftovers(folder):
    return sorted(p.name for p in folder.iterdir())


class TestTrackPipeline:
    """Test stage transitions and failure isolation"""

    def test_successful_run(self, tmp_path, make_pipeline):
        """A track ends up tagged under its final name"""
        tag_writer = FakeTagWriter()
        pipeline = make_pipeline(tag_writer=tag_writer)
        track = make_track(1, artists=("Queen",), title="Bohemian Rhapsody")

        result = pipeline.run(track, tmp_path, MP3)

        final = tmp_path / "Queen - Bohemian Rhapsody.mp3"
        assert result.status is JobStatus.COMPLETED
        assert result.file_path == final
        assert final.read_bytes() == f"mp3:audio:{track_id(1)}".encode()
        assert result.bytes_written == final.stat().st_size
        assert leftovers(tmp_path) == [final.name]
        # Tags are written to the staged file, before the rename
        staged, tags = tag_writer.written[0]
        assert staged == partial_path(final, track.spotify_id)
        assert staged.name == f".Queen - Bohemian Rhapsody.mp3.{track.spotify_id}.part"
        assert tags.title == "Bohemian Rhapsody"
        assert tags.artist == "Queen"

    def test_flac_extension_and_config(self, tmp_path, make_pipeline):
        encoder = FakeEncoder()
        pipeline = make_pipeline(encoder=encoder)
        config = FormatConfig(AudioFormat.FLAC, flac_compression=12)

        result = pipeline.run(make_track(1), tmp_path, config)

        assert result.file_path.suffix == ".flac"
        assert encoder.configs[0].flac_compression == 8

    def test_unavailable_track(self, tmp_path, make_pipeline):
        """Not-found streams are skipped, not failed, and never retried"""
        streamer = FakeStreamer({track_id(1): unavailable(1)})
        pipeline = make_pipeline(streamer=streamer)

        result = pipeline.run(make_track(1), tmp_path, MP3)

        assert result.status is JobStatus.SKIPPED_UNAVAILABLE
        assert result.reason is None
        assert streamer.calls == [track_id(1)]
        assert leftovers(tmp_path) == []

    def test_transient_fetch_error_is_retried(self, tmp_path, make_pipeline):
        streamer = FakeStreamer({track_id(1): [
            StreamError("Connection reset", is_transient=True),
            b"audio",
        ]})
        pipeline = make_pipeline(streamer=streamer)

        result = pipeline.run(make_track(1), tmp_path, MP3)

        assert result.status is JobStatus.COMPLETED
        assert len(streamer.calls) == 2

    def test_fetch_gives_up_after_max_retries(self, tmp_path, make_pipeline):
        streamer = FakeStreamer({track_id(1): StreamError("timed out", is_transient=True)})
        pipeline = make_pipeline(streamer=streamer, max_retries=3)

        result = pipeline.run(make_track(1), tmp_path, MP3)

        assert result.status is JobStatus.FAILED
        assert result.reason is FailureReason.FETCH_ERROR
        assert len(streamer.calls) == 3

    def test_permanent_fetch_error_is_not_retried(self, tmp_path, make_pipeline):
        streamer = FakeStreamer({track_id(1): StreamError("bad key")})
        pipeline = make_pipeline(streamer=streamer)

        result = pipeline.run(make_track(1), tmp_path, MP3)

        assert result.reason is FailureReason.FETCH_ERROR
        assert len(streamer.calls) == 1

    def test_failure_reason_names_the_stage(self, tmp_path, make_pipeline):
        """Each stage reports its own reason and leaves no files behind"""
        cases = [
            (dict(decoder=FakeDecoder(error=DecodeError("corrupt"))), FailureReason.DECODE_ERROR),
            (dict(encoder=FakeEncoder(error=EncodeError("ffmpeg missing"))), FailureReason.ENCODE_ERROR),
            (dict(tag_writer=FakeTagWriter(error=TagError("bad frame"))), FailureReason.TAG_ERROR),
            (dict(encoder=FakeEncoder(output=b"")), FailureReason.WRITE_ERROR),
        ]
        for kwargs, reason in cases:
            result = make_pipeline(**kwargs).run(make_track(1), tmp_path, MP3)

            assert result.status is JobStatus.FAILED
            assert result.reason is reason
            assert result.message
            assert leftovers(tmp_path) == []

    def test_unexpected_exception_is_contained(self, tmp_path, make_pipeline):
        pipeline = make_pipeline(decoder=FakeDecoder(error=ValueError()))

        result = pipeline.run(make_track(1), tmp_path, MP3)

        assert result.status is JobStatus.FAILED
        assert result.reason is FailureReason.DECODE_ERROR
        assert result.message == "ValueError"

    def test_overwrites_existing_file(self, tmp_path, make_pipeline):
        """Forced downloads replace the previous file atomically"""
        final = target_path(make_track(1), tmp_path, AudioFormat.MP3)
        final.write_bytes(b"old")

        make_pipeline().run(make_track(1), tmp_path, MP3)

        assert final.read_bytes() != b"old"


class TestFileNames:
    """Test naming, legacy lookup and partial file cleanup"""

    def test_target_path_many_artists(self, tmp_path):
        track = make_track(1, artists=("A", "B", "C", "D"), title="Song")

        assert target_path(track, tmp_path, AudioFormat.MP3).name == "A, B, C, and others - Song.mp3"

    def test_existing_file_current_name(self, tmp_path):
        track = make_track(1, artists=("A",), title="Song")
        (tmp_path / "A - Song.mp3").write_bytes(b"x")

        assert existing_file(track, tmp_path, AudioFormat.MP3) == tmp_path / "A - Song.mp3"
        assert existing_file(track, tmp_path, AudioFormat.FLAC) is None

    def test_existing_file_legacy_name(self, tmp_path):
        """Files saved under the old many-artists name are recognised"""
        track = make_track(1, artists=("A", "B", "C", "D"), title="Song")
        legacy = tmp_path / "A, B, C,  - Song.mp3"
        legacy.write_bytes(b"x")

        assert existing_file(track, tmp_path, AudioFormat.MP3) == legacy

    def test_purge_partial_files(self, tmp_path):
        (tmp_path / ".A - Song.mp3.part").write_bytes(b"half")
        (tmp_path / ".B - Song.flac.part").write_bytes(b"half")
        (tmp_path / "A - Song.mp3").write_bytes(b"full")

        assert purge_partial_files(tmp_path) == 2
        assert leftovers(tmp_path) == ["A - Song.mp3"]

    def test_purge_matches_per_track_staging_names(self, tmp_path):
        track = make_track(1, artists=("A",), title="Song")
        partial_path(tmp_path / "A - Song.mp3", track.spotify_id).write_bytes(b"half")

        assert purge_partial_files(tmp_path) == 1
        assert leftovers(tmp_path) == []


class TestSameNameTracks:
    """Test tracks that map to the same file name"""

    def test_parallel_runs_use_separate_staging_files(self, tmp_path, make_pipeline):
        """Two tracks named alike never touch each other's staged file"""
        tag_writer = FakeTagWriter(delay=0.1)
        pipeline = make_pipeline(tag_writer=tag_writer)
        tracks = [make_track(1, title="Same"), make_track(2, title="Same")]

        results = list(WorkQueue(ThrottlePolicy.parallel(2)).run(
            tracks,
            lambda track: pipeline.run(track, tmp_path, MP3)
        ))

        assert [r.status for r in results] == [JobStatus.COMPLETED, JobStatus.COMPLETED]
        staged = {path.name for path, _ in tag_writer.written}
        assert len(staged) == 2
        assert leftovers(tmp_path) == ["Test Artist - Same.mp3"]
