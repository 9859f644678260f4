"""Test audio format handling"""

from unittest.mock import Mock, patch

import pytest
from pydub.exceptions import CouldntDecodeError, CouldntEncodeError

from spotify_dl.core.exceptions import DecodeError, EncodeError
from spotify_dl.download.encoder import (
    AudioFormat,
    Decoder,
    FlacEncoder,
    FormatConfig,
    Mp3Encoder,
    get_encoder,
)


class TestFormatConfig:
    def test_defaults(self):
        config = FormatConfig()

        assert config.format is AudioFormat.MP3
        assert config.mp3_bitrate == "320k"

    def test_compression_is_clamped(self):
        """Out-of-range levels are clamped, not rejected"""
        assert FormatConfig(AudioFormat.FLAC, flac_compression=10).flac_compression == 8
        assert FormatConfig(AudioFormat.FLAC, flac_compression=-2).flac_compression == 0

    def test_format_from_string(self):
        assert FormatConfig("flac").format is AudioFormat.FLAC


class TestEncoders:
    """Test the ffmpeg parameters passed through pydub"""

    def test_get_encoder(self):
        assert isinstance(get_encoder(AudioFormat.MP3), Mp3Encoder)
        assert isinstance(get_encoder("flac"), FlacEncoder)

    def test_flac_compression_level(self):
        samples = Mock()

        FlacEncoder().encode(samples, FormatConfig(AudioFormat.FLAC, flac_compression=8))

        _, kwargs = samples.export.call_args
        assert kwargs["format"] == "flac"
        assert kwargs["parameters"] == ["-compression_level", "8"]

    def test_mp3_bitrate(self):
        samples = Mock()

        Mp3Encoder().encode(samples, FormatConfig())

        _, kwargs = samples.export.call_args
        assert kwargs["format"] == "mp3"
        assert kwargs["bitrate"] == "320k"

    def test_encoded_bytes_are_returned(self):
        samples = Mock()
        samples.export.side_effect = lambda buffer, **kwargs: buffer.write(b"encoded")

        assert Mp3Encoder().encode(samples, FormatConfig()) == b"encoded"

    def test_encode_failure(self):
        samples = Mock()
        samples.export.side_effect = CouldntEncodeError("ffmpeg returned error code: 1")

        with pytest.raises(EncodeError):
            FlacEncoder().encode(samples, FormatConfig(AudioFormat.FLAC))


class TestDecoder:
    def test_empty_stream(self):
        with pytest.raises(DecodeError):
            Decoder().decode(b"")

    def test_decode_failure(self):
        with patch("spotify_dl.download.encoder.AudioSegment.from_file", side_effect=CouldntDecodeError("bad")):
            with pytest.raises(DecodeError):
                Decoder().decode(b"not ogg")

    def test_decode_uses_ogg(self):
        with patch("spotify_dl.download.encoder.AudioSegment.from_file") as from_file:
            Decoder().decode(b"OggS")

        assert from_file.call_args.kwargs["format"] == "ogg"
