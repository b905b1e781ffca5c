"""Configuration management for segmentscan."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_INTRO_PATTERN = r"(^|\s)(Intro|Introduction|OP|Opening)(\s|:|$)"
DEFAULT_CREDITS_PATTERN = r"(^|\s)(Credits?|ED|Ending|Outro)(\s|:|$)"


class ConfigurationError(Exception):
    """The environment cannot support analysis (e.g. ffmpeg is missing)."""

    pass


@dataclass
class AnalysisConfig:
    """Configuration for the season analysis pipeline."""

    max_parallelism: int = 2
    analyze_season_zero: bool = False
    analysis_percent: int = 25
    analysis_length_limit: int = 10  # minutes
    minimum_intro_duration: int = 15
    maximum_intro_duration: int = 120
    minimum_credits_duration: int = 15
    maximum_credits_duration: int = 300
    black_frame_minimum_percentage: int = 85
    selected_libraries: list[str] = field(default_factory=list)


@dataclass
class FingerprintConfig:
    """Configuration for chromaprint comparison."""

    maximum_point_differences: int = 6
    maximum_time_skip: float = 3.5
    inverted_index_shift: int = 2
    cache_fingerprints: bool = True


@dataclass
class ChapterConfig:
    """Chapter names that mark intros and credits."""

    intro_pattern: str = DEFAULT_INTRO_PATTERN
    credits_pattern: str = DEFAULT_CREDITS_PATTERN


@dataclass
class PlaybackConfig:
    """Adjustments applied when segments are shown to a player."""

    seconds_of_intro_to_play: int = 2
    show_prompt_adjustment: int = 5
    hide_prompt_adjustment: int = 10


@dataclass
class PathsConfig:
    """External tools and storage locations."""

    ffmpeg: str = "ffmpeg"
    ffprobe: str = "ffprobe"
    data_dir: str = "~/.local/share/segmentscan"

    @property
    def data_path(self) -> Path:
        """Data directory with ``~`` expanded."""
        return Path(self.data_dir).expanduser()


@dataclass
class Config:
    """Main configuration for segmentscan."""

    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    fingerprint: FingerprintConfig = field(default_factory=FingerprintConfig)
    chapters: ChapterConfig = field(default_factory=ChapterConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    libraries: dict[str, str] = field(default_factory=dict)


def load_config(path: str | None = None) -> Config:
    """Load configuration from a TOML file.

    Args:
        path: Path to the config file. If None, returns default config.

    Returns:
        A Config object with loaded or default values.
    """
    if path is None:
        return Config()

    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        import tomli

        with open(config_path, "rb") as f:
            data = tomli.load(f)
    except ImportError:
        raise ImportError("tomli is required for config loading. Run: pip install tomli")

    return _parse_config(data)


def _split_libraries(value: Any) -> list[str]:
    """Accept either a comma separated string or a list of library names."""
    if isinstance(value, str):
        value = value.split(",")
    return [name.strip() for name in value if name and name.strip()]


def _parse_config(data: dict[str, Any]) -> Config:
    """Parse configuration dictionary into Config object.

    Args:
        data: Dictionary from TOML file.

    Returns:
        Parsed Config object.
    """
    analysis_data = data.get("analysis", {})
    fingerprint_data = data.get("fingerprint", {})
    chapters_data = data.get("chapters", {})
    playback_data = data.get("playback", {})
    paths_data = data.get("paths", {})
    libraries_data = data.get("libraries", {})

    analysis_config = AnalysisConfig(
        max_parallelism=analysis_data.get("max_parallelism", 2),
        analyze_season_zero=analysis_data.get("analyze_season_zero", False),
        analysis_percent=analysis_data.get("analysis_percent", 25),
        analysis_length_limit=analysis_data.get("analysis_length_limit", 10),
        minimum_intro_duration=analysis_data.get("minimum_intro_duration", 15),
        maximum_intro_duration=analysis_data.get("maximum_intro_duration", 120),
        minimum_credits_duration=analysis_data.get("minimum_credits_duration", 15),
        maximum_credits_duration=analysis_data.get("maximum_credits_duration", 300),
        black_frame_minimum_percentage=analysis_data.get("black_frame_minimum_percentage", 85),
        selected_libraries=_split_libraries(analysis_data.get("selected_libraries", "")),
    )

    fingerprint_config = FingerprintConfig(
        maximum_point_differences=fingerprint_data.get("maximum_point_differences", 6),
        maximum_time_skip=fingerprint_data.get("maximum_time_skip", 3.5),
        inverted_index_shift=fingerprint_data.get("inverted_index_shift", 2),
        cache_fingerprints=fingerprint_data.get("cache_fingerprints", True),
    )

    chapter_config = ChapterConfig(
        intro_pattern=chapters_data.get("intro_pattern", DEFAULT_INTRO_PATTERN),
        credits_pattern=chapters_data.get("credits_pattern", DEFAULT_CREDITS_PATTERN),
    )

    playback_config = PlaybackConfig(
        seconds_of_intro_to_play=playback_data.get("seconds_of_intro_to_play", 2),
        show_prompt_adjustment=playback_data.get("show_prompt_adjustment", 5),
        hide_prompt_adjustment=playback_data.get("hide_prompt_adjustment", 10),
    )

    paths_config = PathsConfig(
        ffmpeg=paths_data.get("ffmpeg", "ffmpeg"),
        ffprobe=paths_data.get("ffprobe", "ffprobe"),
        data_dir=paths_data.get("data_dir", "~/.local/share/segmentscan"),
    )

    return Config(
        analysis=analysis_config,
        fingerprint=fingerprint_config,
        chapters=chapter_config,
        playback=playback_config,
        paths=paths_config,
        libraries={str(name): str(root) for name, root in libraries_data.items()},
    )
