"""
Audio decoding and encoding for spotify-dl.

Spotify streams arrive as Ogg Vorbis. They are decoded into a pydub
AudioSegment and re-encoded to the target format through ffmpeg.

Supported Formats:
    - mp3: Constant bitrate, 320 kbps by default
    - flac: Lossless, compression level 0 (fastest) to 8 (smallest)

Dependencies:
    - pydub: Decoding/encoding front-end
    - FFmpeg: Must be installed and on PATH

Usage:
    config = FormatConfig(AudioFormat.FLAC, flac_compression=8)
    samples = Decoder().decode(stream_bytes)
    data = get_encoder(config.format).encode(samples, config)
"""

import io
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from pydub import AudioSegment
from pydub.exceptions import CouldntDecodeError, CouldntEncodeError

from spotify_dl.core.config import DEFAULT_FLAC_COMPRESSION, clamp_flac_compression
from spotify_dl.core.exceptions import DecodeError, EncodeError


# Container format of the fetched stream, as understood by ffmpeg
SOURCE_FORMAT = "ogg"


class AudioFormat(str, Enum):
    MP3 = "mp3"
    FLAC = "flac"

    @property
    def extension(self) -> str:
        return self.value


@dataclass(frozen=True)
class FormatConfig:
    """
    Target format for a batch.

    Attributes:
        format: mp3 or flac.
        flac_compression: Always within 0-8; out-of-range values are clamped
                          on construction.
        mp3_bitrate: Bitrate string passed to ffmpeg for mp3.
    """
    format: AudioFormat = AudioFormat.MP3
    flac_compression: int = DEFAULT_FLAC_COMPRESSION
    mp3_bitrate: str = "320k"

    def __post_init__(self) -> None:
        object.__setattr__(self, "format", AudioFormat(self.format))
        object.__setattr__(self, "flac_compression", clamp_flac_compression(self.flac_compression))


class Encoder(Protocol):
    def encode(self, samples: AudioSegment, config: FormatConfig) -> bytes:
        ...


class Decoder:
    """Decodes fetched stream bytes into samples."""

    def __init__(self, source_format: str = SOURCE_FORMAT) -> None:
        self.source_format = source_format

    def decode(self, data: bytes) -> AudioSegment:
        """
        Raises:
            DecodeError: ffmpeg could not read the data.
        """
        if not data:
            raise DecodeError("Nothing to decode: audio stream is empty")
        try:
            return AudioSegment.from_file(io.BytesIO(data), format=self.source_format)
        except (CouldntDecodeError, IndexError, OSError) as e:
            raise DecodeError(
                f"Failed to decode {self.source_format} stream: {e}",
                details={"size": len(data), "original_error": str(e)}
            ) from e


def _export(samples: AudioSegment, audio_format: AudioFormat, **params) -> bytes:
    buffer = io.BytesIO()
    try:
        samples.export(buffer, format=audio_format.value, **params)
    except (CouldntEncodeError, OSError) as e:
        raise EncodeError(
            f"Failed to encode {audio_format.value}: {e}",
            details={"format": audio_format.value, "original_error": str(e)}
        ) from e
    return buffer.getvalue()


class Mp3Encoder:
    def encode(self, samples: AudioSegment, config: FormatConfig) -> bytes:
        return _export(samples, AudioFormat.MP3, bitrate=config.mp3_bitrate)


class FlacEncoder:
    def encode(self, samples: AudioSegment, config: FormatConfig) -> bytes:
        return _export(
            samples,
            AudioFormat.FLAC,
            parameters=["-compression_level", str(config.flac_compression)]
        )


def get_encoder(audio_format: AudioFormat) -> Encoder:
    """Return the encoder for a target format."""
    if AudioFormat(audio_format) is AudioFormat.FLAC:
        return FlacEncoder()
    return Mp3Encoder()
