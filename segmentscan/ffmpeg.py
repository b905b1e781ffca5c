"""ffmpeg/ffprobe wrapper used to sample media files."""

import json
import logging
import re
import subprocess
from pathlib import Path

import numpy as np

from .config import Config
from .models import AnalysisMode, BlackFrame, Chapter, QueuedEpisode, TimeRange

logger = logging.getLogger(__name__)

# Seconds of audio covered by one chromaprint point.
SAMPLES_TO_SECONDS = 0.1238

# Percentage of a frame that must be black before ffmpeg reports it at all.
BLACKFRAME_AMOUNT = 50

_BLACKFRAME_LINE = re.compile(r"pblack:(?P<percent>\d+).*?\bt:(?P<time>[\d.]+)")


class FFmpegError(Exception):
    """Error related to running ffmpeg or ffprobe."""

    pass


class FingerprintError(FFmpegError):
    """A chromaprint fingerprint could not be produced for a file."""

    pass


class FFmpegWrapper:
    """Runs ffmpeg and ffprobe to sample episodes.

    Args:
        ffmpeg_path: ffmpeg binary.
        ffprobe_path: ffprobe binary.
        cache_dir: Directory to cache fingerprints in. None disables caching.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        cache_dir: str | Path | None = None,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.cache_dir = Path(cache_dir) if cache_dir else None

    @classmethod
    def from_config(cls, config: Config) -> "FFmpegWrapper":
        cache_dir = None
        if config.fingerprint.cache_fingerprints:
            cache_dir = config.paths.data_path / "cache"
        return cls(config.paths.ffmpeg, config.paths.ffprobe, cache_dir)

    def _run(self, args: list[str], text: bool = True) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                args,
                capture_output=True,
                text=text,
                errors="replace" if text else None,
                check=True,
            )
        except FileNotFoundError:
            raise FFmpegError(
                f"{args[0]} not found. Please install ffmpeg: https://ffmpeg.org/download.html"
            )
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode(errors="replace") if isinstance(e.stderr, bytes) else e.stderr
            raise FFmpegError(f"{Path(args[0]).name} failed: {stderr}")

    def check_version(self) -> bool:
        """Check that ffmpeg is installed and was built with chromaprint.

        Returns:
            True if fingerprints can be generated on this system.
        """
        try:
            self._run([self.ffmpeg_path, "-hide_banner", "-version"])
            muxers = self._run([self.ffmpeg_path, "-hide_banner", "-muxers"])
        except FFmpegError as e:
            logger.debug("ffmpeg check failed: %s", e)
            return False

        if "chromaprint" not in muxers.stdout:
            logger.warning("ffmpeg at %s was built without chromaprint", self.ffmpeg_path)
            return False

        return True

    def get_duration(self, path: str) -> float:
        """Get the duration of a media file in seconds using ffprobe.

        Args:
            path: Path to the media file.

        Returns:
            Duration in seconds.

        Raises:
            FFmpegError: If the file doesn't exist or ffprobe fails.
        """
        media_path = Path(path)

        if not media_path.is_file():
            raise FFmpegError(f"File not found: {path}")

        result = self._run(
            [
                self.ffprobe_path,
                "-v",
                "quiet",
                "-print_format",
                "json",
                "-show_format",
                str(media_path),
            ]
        )

        try:
            data = json.loads(result.stdout)
            duration = float(data["format"]["duration"])
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            raise FFmpegError(f"Failed to parse ffprobe output: {e}")

        return duration

    def get_chapters(self, path: str) -> list[Chapter]:
        """Read the chapter markers of a media file."""
        result = self._run(
            [
                self.ffprobe_path,
                "-v",
                "quiet",
                "-print_format",
                "json",
                "-show_chapters",
                path,
            ]
        )

        try:
            data = json.loads(result.stdout)
            return [
                Chapter(
                    name=chapter.get("tags", {}).get("title"),
                    start=float(chapter["start_time"]),
                )
                for chapter in data.get("chapters", [])
            ]
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            raise FFmpegError(f"Failed to parse ffprobe output: {e}")

    def _cache_path(self, episode: QueuedEpisode, mode: AnalysisMode) -> Path | None:
        if self.cache_dir is None:
            return None
        suffix = "-credits" if mode == AnalysisMode.CREDITS else ""
        return self.cache_dir / f"{episode.episode_id}{suffix}"

    def _read_cache(self, cache_path: Path) -> np.ndarray | None:
        """Load a cached fingerprint. Empty or unreadable entries are discarded."""
        if not cache_path.exists():
            return None

        try:
            cached = np.array(
                [int(value) for value in cache_path.read_text().split()],
                dtype=np.uint32,
            )
        except (OSError, ValueError, OverflowError) as e:
            logger.debug("Discarding fingerprint cache %s: %s", cache_path, e)
            cached = np.array([], dtype=np.uint32)

        if cached.size == 0:
            cache_path.unlink(missing_ok=True)
            return None

        return cached

    def _write_cache(self, cache_path: Path, points: np.ndarray) -> None:
        cache_path.parent.mkdir(parents=True, exist_ok=True)
        partial = cache_path.with_name(cache_path.name + ".tmp")
        partial.write_text("\n".join(str(point) for point in points.tolist()))
        partial.replace(cache_path)

    def fingerprint(self, episode: QueuedEpisode, mode: AnalysisMode) -> np.ndarray:
        """Fingerprint the part of an episode that may hold an intro or credits.

        Introductions are fingerprinted from the start of the file up to
        ``intro_fingerprint_end``. Credits are fingerprinted from
        ``credits_fingerprint_start`` to the end of the file.

        Args:
            episode: Episode to fingerprint.
            mode: Which end of the episode to fingerprint.

        Returns:
            Array of 32-bit chromaprint points.

        Raises:
            FingerprintError: If ffmpeg fails or returns no points.
        """
        cache_path = self._cache_path(episode, mode)
        if cache_path is not None:
            cached = self._read_cache(cache_path)
            if cached is not None:
                return cached

        if mode == AnalysisMode.INTRODUCTION:
            start, end = 0.0, float(episode.intro_fingerprint_end)
        else:
            start, end = float(episode.credits_fingerprint_start), episode.duration

        try:
            result = self._run(
                [
                    self.ffmpeg_path,
                    "-hide_banner",
                    "-loglevel",
                    "error",
                    "-ss",
                    str(start),
                    "-i",
                    episode.path,
                    "-t",
                    str(end - start),
                    "-ac",
                    "2",
                    "-f",
                    "chromaprint",
                    "-fp_format",
                    "raw",
                    "-",
                ],
                text=False,
            )
        except FFmpegError as e:
            raise FingerprintError(f"Unable to fingerprint {episode.path}: {e}")

        raw = result.stdout
        if not raw or len(raw) % 4 != 0:
            raise FingerprintError(
                f"Invalid fingerprint for {episode.path}: got {len(raw)} bytes"
            )

        points = np.frombuffer(raw, dtype="<u4").astype(np.uint32)

        if cache_path is not None:
            self._write_cache(cache_path, points)

        return points

    def detect_black_frames(
        self,
        episode: QueuedEpisode,
        time_range: TimeRange,
        minimum: int,
    ) -> list[BlackFrame]:
        """Find black frames inside a window of an episode.

        Args:
            episode: Episode to sample.
            time_range: Window to scan, in seconds from the start of the file.
            minimum: Percentage of the frame that must be black.

        Returns:
            Black frames ordered by time. Frame times are relative to the
            start of ``time_range``.
        """
        result = self._run(
            [
                self.ffmpeg_path,
                "-hide_banner",
                "-ss",
                str(time_range.start),
                "-i",
                episode.path,
                "-t",
                str(time_range.duration),
                "-an",
                "-dn",
                "-sn",
                "-vf",
                f"blackframe=amount={BLACKFRAME_AMOUNT}",
                "-f",
                "null",
                "-",
            ]
        )

        return parse_black_frames(result.stderr, minimum)


def parse_black_frames(output: str, minimum: int) -> list[BlackFrame]:
    """Parse the log lines written by ffmpeg's blackframe filter.

    Args:
        output: ffmpeg stderr.
        minimum: Percentage of the frame that must be black.

    Returns:
        Frames at least ``minimum`` percent black, in output order.
    """
    frames: list[BlackFrame] = []

    for line in output.splitlines():
        if "blackframe" not in line:
            continue

        match = _BLACKFRAME_LINE.search(line)
        if not match:
            continue

        frame = BlackFrame(
            time=float(match.group("time")),
            percentage=int(match.group("percent")),
        )
        if frame.percentage >= minimum:
            frames.append(frame)

    return frames
