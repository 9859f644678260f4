"""
Configuration management for spotify-dl.

This module handles loading, validating, and providing access to the
optional configuration file (config.yaml).

The configuration file contains:
    - Spotify credentials (Web API client for metadata, account login for streaming)
    - Default output directory and log directory
    - Default audio format and FLAC compression level
    - Throttling: number of parallel workers and serial pacing

Configuration File Location:
    config.yaml in the current working directory, or an explicit path
    passed with --config. When no file exists at the default location the
    built-in defaults are used. Command-line flags always win over the file.

Example config.yaml:
    spotify:
      client_id: "your_client_id_here"        # optional
      client_secret: "your_client_secret_here"
      username: "you@example.com"             # only needed for the first login
      password: "..."
      credentials_file: "~/.spotify-dl/credentials.json"

    output:
      directory: "~/Music"
      log_directory: "~/.spotify-dl/logs"

    download:
      format: mp3            # mp3 | flac
      flac_compression: 5    # 0-8, clamped
      parallel: 1            # >1 enables turbo mode
      max_retries: 3
      pacing:
        base_delay: 2.0
        jitter: 3.0
        duration_ratio: 0.2
"""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from spotify_dl.core.exceptions import ConfigError
from spotify_dl.core.logger import get_logger

logger = get_logger(__name__)


# Default configuration file name (looked up in current working directory)
CONFIG_FILENAME = "config.yaml"

# Per-user application directory (credentials, logs)
APP_DIRECTORY = Path("~/.spotify-dl").expanduser()

SUPPORTED_FORMATS = ("mp3", "flac")
MIN_FLAC_COMPRESSION = 0
MAX_FLAC_COMPRESSION = 8
DEFAULT_FLAC_COMPRESSION = 5


@dataclass(frozen=True)
class SpotifyConfig:
    """
    Spotify credentials.

    Attributes:
        client_id: Optional Web API client ID used for metadata lookups.
                   When empty, the streaming session's token is used instead.
        client_secret: Optional Web API client secret.
        username: Account username, only needed when no stored credentials exist.
        password: Account password, only needed when no stored credentials exist.
        credentials_file: Where the streaming session stores reusable credentials.
    """
    client_id: str = ""
    client_secret: str = ""
    username: str = ""
    password: str = ""
    credentials_file: Path = APP_DIRECTORY / "credentials.json"

    @property
    def has_api_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass(frozen=True)
class OutputConfig:
    """
    Output locations.

    Attributes:
        directory: Default destination folder for downloaded tracks.
        log_directory: Folder for the per-run log files.
    """
    directory: Path = field(default_factory=Path.cwd)
    log_directory: Path = APP_DIRECTORY / "logs"


@dataclass(frozen=True)
class PacingConfig:
    """
    Serial-mode pacing between two tracks.

    The delay after each track is
    base_delay + duration_ratio * track duration + uniform(0, jitter).
    """
    base_delay: float = 2.0
    jitter: float = 3.0
    duration_ratio: float = 0.2


@dataclass(frozen=True)
class DownloadConfig:
    """
    Download behavior configuration.

    Attributes:
        format: Target codec, "mp3" or "flac".
        flac_compression: FLAC compression level, always within 0-8.
        mp3_bitrate: Bitrate passed to the mp3 encoder.
        parallel: Number of concurrent workers. 1 selects the serial,
                  paced mode; more than 1 selects turbo mode.
        max_retries: Attempts for transient stream failures.
        pacing: Serial-mode pacing settings.
    """
    format: str = "mp3"
    flac_compression: int = DEFAULT_FLAC_COMPRESSION
    mp3_bitrate: str = "320k"
    parallel: int = 1
    max_retries: int = 3
    pacing: PacingConfig = field(default_factory=PacingConfig)


@dataclass(frozen=True)
class Config:
    """
    Complete application configuration.

    Created by load_config() and treated as immutable. Command-line
    overrides produce a new instance through with_overrides().

    Example:
        config = load_config()
        print(f"Saving to: {config.output.directory}")
        print(f"Using {config.download.parallel} workers")
    """
    spotify: SpotifyConfig = field(default_factory=SpotifyConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    download: DownloadConfig = field(default_factory=DownloadConfig)

    def with_overrides(
        self,
        directory: Path | None = None,
        format: str | None = None,
        flac_compression: int | None = None,
        parallel: int | None = None,
        base_delay: float | None = None,
        jitter: float | None = None,
    ) -> "Config":
        """
        Return a copy with command-line values applied on top.

        None means "not given on the command line" and keeps the file value.
        """
        output = self.output
        if directory is not None:
            output = replace(output, directory=directory.expanduser().resolve())

        pacing = self.download.pacing
        if base_delay is not None:
            pacing = replace(pacing, base_delay=base_delay)
        if jitter is not None:
            pacing = replace(pacing, jitter=jitter)

        download = replace(
            self.download,
            format=format if format is not None else self.download.format,
            flac_compression=(
                clamp_flac_compression(flac_compression)
                if flac_compression is not None
                else self.download.flac_compression
            ),
            parallel=parallel if parallel is not None else self.download.parallel,
            pacing=pacing,
        )
        return replace(self, output=output, download=download)


def clamp_flac_compression(level: int) -> int:
    """
    Clamp a FLAC compression level into the supported 0-8 range.

    Out-of-range values are not an error: they are clamped and a
    warning is logged.
    """
    clamped = max(MIN_FLAC_COMPRESSION, min(MAX_FLAC_COMPRESSION, level))
    if clamped != level:
        logger.warning(
            f"FLAC compression level {level} is out of range, using {clamped}"
        )
    return clamped


def load_config(config_path: Path | None = None) -> Config:
    """
    Load and validate configuration from config.yaml.

    Args:
        config_path: Optional explicit path to config file.
                     If None, looks for config.yaml in current working directory.

    Returns:
        Config: A frozen dataclass containing all configuration values.

    Raises:
        ConfigError: If an explicit config file is not found, the file has
                     invalid YAML syntax, or contains invalid values.

    Behavior:
        1. Locate config file (explicit path or CWD/config.yaml)
        2. Missing default file -> built-in defaults
        3. Read and parse YAML content
        4. Parse each optional section, applying defaults
        5. Create and return frozen Config object

    Thread Safety:
        This function is NOT thread-safe. It should be called once at
        application startup, before any threads are created.
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = Path.cwd() / CONFIG_FILENAME

    if not config_path.exists():
        if explicit:
            raise ConfigError(
                f"Configuration file not found: {config_path}",
                details={"file_path": str(config_path)}
            )
        return Config()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise ConfigError(
            f"Failed to read configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    try:
        raw_config = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(
            f"Invalid YAML syntax in configuration file: {e}",
            details={"file_path": str(config_path), "original_error": str(e)}
        ) from e

    # An empty file is a valid "use defaults" file
    if raw_config is None:
        raw_config = {}

    if not isinstance(raw_config, dict):
        raise ConfigError(
            "Configuration file must contain a YAML dictionary",
            details={"file_path": str(config_path)}
        )

    return Config(
        spotify=_parse_spotify_config(_section(raw_config, "spotify")),
        output=_parse_output_config(_section(raw_config, "output")),
        download=_parse_download_config(_section(raw_config, "download")),
    )


def _section(raw_config: dict[str, Any], name: str) -> dict[str, Any]:
    """Return a (possibly empty) section dictionary, validating its type."""
    section = raw_config.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(
            f"Section '{name}' must be a dictionary",
            details={"section": name}
        )
    return section


def _string(section: dict[str, Any], key: str, field_name: str) -> str:
    value = section.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ConfigError(
            f"'{field_name}' must be a string",
            details={"field": field_name}
        )
    return value.strip()


def _number(section: dict[str, Any], key: str, field_name: str, default: float) -> float:
    value = section.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise ConfigError(
            f"'{field_name}' must be a non-negative number",
            details={"field": field_name, "value": value}
        )
    return float(value)


def _parse_spotify_config(spotify_section: dict[str, Any]) -> SpotifyConfig:
    """
    Parse the Spotify credentials section.

    All fields are optional. client_id and client_secret must be given
    together.
    """
    client_id = _string(spotify_section, "client_id", "spotify.client_id")
    client_secret = _string(spotify_section, "client_secret", "spotify.client_secret")

    if bool(client_id) != bool(client_secret):
        raise ConfigError(
            "'spotify.client_id' and 'spotify.client_secret' must be set together",
            details={"field": "spotify.client_id"}
        )

    credentials_raw = _string(spotify_section, "credentials_file", "spotify.credentials_file")
    credentials_file = (
        Path(credentials_raw).expanduser()
        if credentials_raw
        else SpotifyConfig.credentials_file
    )

    return SpotifyConfig(
        client_id=client_id,
        client_secret=client_secret,
        username=_string(spotify_section, "username", "spotify.username"),
        password=_string(spotify_section, "password", "spotify.password"),
        credentials_file=credentials_file,
    )


def _parse_output_config(output_section: dict[str, Any]) -> OutputConfig:
    """
    Parse the output section.

    Expands ~ to home directory and converts to absolute Path.
    Does NOT create the directories (that happens at download time).
    """
    directory = _string(output_section, "directory", "output.directory")
    log_directory = _string(output_section, "log_directory", "output.log_directory")

    defaults = OutputConfig()
    return OutputConfig(
        directory=Path(directory).expanduser().resolve() if directory else defaults.directory,
        log_directory=Path(log_directory).expanduser() if log_directory else defaults.log_directory,
    )


def _parse_download_config(download_section: dict[str, Any]) -> DownloadConfig:
    """
    Parse and validate the download section.

    Raises:
        ConfigError: If format is unsupported, parallel/max_retries are not
                     positive integers, or a pacing value is negative.
    """
    defaults = DownloadConfig()

    audio_format = _string(download_section, "format", "download.format").lower() or defaults.format
    if audio_format not in SUPPORTED_FORMATS:
        raise ConfigError(
            f"'download.format' must be one of: {', '.join(SUPPORTED_FORMATS)}",
            details={"field": "download.format", "value": audio_format}
        )

    flac_compression = defaults.flac_compression
    raw_level = download_section.get("flac_compression")
    if raw_level is not None:
        if isinstance(raw_level, bool) or not isinstance(raw_level, int):
            raise ConfigError(
                "'download.flac_compression' must be an integer",
                details={"field": "download.flac_compression", "value": raw_level}
            )
        flac_compression = clamp_flac_compression(raw_level)

    integers = {}
    for key, default in (("parallel", defaults.parallel), ("max_retries", defaults.max_retries)):
        raw_value = download_section.get(key)
        if raw_value is None:
            integers[key] = default
            continue
        if isinstance(raw_value, bool) or not isinstance(raw_value, int) or raw_value < 1:
            raise ConfigError(
                f"'download.{key}' must be a positive integer",
                details={"field": f"download.{key}", "value": raw_value}
            )
        integers[key] = raw_value

    pacing_section = _section(download_section, "pacing")
    pacing_defaults = PacingConfig()
    pacing = PacingConfig(
        base_delay=_number(pacing_section, "base_delay", "download.pacing.base_delay", pacing_defaults.base_delay),
        jitter=_number(pacing_section, "jitter", "download.pacing.jitter", pacing_defaults.jitter),
        duration_ratio=_number(pacing_section, "duration_ratio", "download.pacing.duration_ratio", pacing_defaults.duration_ratio),
    )

    return DownloadConfig(
        format=audio_format,
        flac_compression=flac_compression,
        mp3_bitrate=_string(download_section, "mp3_bitrate", "download.mp3_bitrate") or defaults.mp3_bitrate,
        parallel=integers["parallel"],
        max_retries=integers["max_retries"],
        pacing=pacing,
    )
