"""Filesystem media library.

Each library is a directory laid out as ``<root>/<Series>/<Season>/<files>``.
Episodes directly inside a series directory are also accepted, in which case
the season is taken from the ``S01E02`` style tag in the file name.
"""

import logging
import re
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from .ffmpeg import FFmpegError, FFmpegWrapper
from .models import LibraryEpisode

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = {
    ".mp4", ".mkv", ".avi", ".mov", ".m4v", ".wmv", ".webm",
    ".ts", ".mpg", ".mpeg", ".m2ts",
}

_EPISODE_PATTERNS = [
    re.compile(r"[Ss](\d+)[.\s]*[Ee](\d+)"),
    re.compile(r"(\d+)[Xx](\d+)"),
    re.compile(r"[Ss](\d+)\s*-\s*[Ee](\d+)"),
]

_SEASON_DIR_PATTERN = re.compile(r"^(?:season|series|s)[\s._-]*(\d+)$", re.IGNORECASE)
_SPECIALS_DIRS = {"specials", "extras"}


@dataclass
class LibraryFolder:
    """A named library and the root directories it covers."""

    name: str
    locations: list[str] = field(default_factory=list)


def parse_episode_tag(name: str) -> tuple[int, int] | None:
    """Extract ``(season, episode)`` from a file name, if tagged."""
    for pattern in _EPISODE_PATTERNS:
        match = pattern.search(name)
        if match:
            return int(match.group(1)), int(match.group(2))
    return None


def parse_season_dir(name: str) -> int | None:
    """Extract the season number from a season directory name."""
    if name.strip().lower() in _SPECIALS_DIRS:
        return 0
    match = _SEASON_DIR_PATTERN.match(name.strip())
    return int(match.group(1)) if match else None


class FilesystemLibrary:
    """Lists episodes stored on disk.

    Args:
        libraries: Mapping of library name to root directory.
        ffmpeg: Used to read episode durations.
    """

    def __init__(self, libraries: dict[str, str], ffmpeg: FFmpegWrapper):
        self.libraries = libraries
        self.ffmpeg = ffmpeg
        self._paths: dict[str, str | None] = {}

    def folders(self) -> list[LibraryFolder]:
        return [
            LibraryFolder(name=name, locations=[str(Path(root).expanduser())])
            for name, root in self.libraries.items()
        ]

    def episodes(self, location: str) -> list[LibraryEpisode]:
        """List every episode below a library root.

        Episodes are ordered by series name, season and episode number.
        Files whose duration can't be read are returned without a path.

        Args:
            location: Library root directory.

        Returns:
            Episodes found under the root.

        Raises:
            OSError: If the root can't be read.
        """
        root = Path(location)
        if not root.is_dir():
            raise OSError(f"Library location is not a directory: {location}")

        episodes: list[LibraryEpisode] = []
        for item in sorted(root.rglob("*")):
            if not item.is_file() or item.suffix.lower() not in VIDEO_EXTENSIONS:
                continue
            episodes.append(self._build_episode(root, item))

        episodes.sort(key=lambda e: (e.series_name.lower(), e.season_number, e.episode_number))
        return episodes

    def _build_episode(self, root: Path, item: Path) -> LibraryEpisode:
        parts = item.relative_to(root).parts
        series_name = parts[0] if len(parts) > 1 else ""

        tag = parse_episode_tag(item.stem)
        season_number = parse_season_dir(parts[1]) if len(parts) > 2 else None
        if season_number is None:
            season_number = tag[0] if tag else 1
        episode_number = tag[1] if tag else 0

        path: str | None = str(item)
        try:
            duration = self.ffmpeg.get_duration(str(item))
        except FFmpegError as e:
            logger.debug("Unable to read duration of %s: %s", item, e)
            path = None
            duration = 0.0

        episode_id = str(uuid.uuid5(uuid.NAMESPACE_URL, str(item)))
        season_key = f"{root}/{series_name}/{season_number}"
        episode = LibraryEpisode(
            episode_id=episode_id,
            season_id=str(uuid.uuid5(uuid.NAMESPACE_URL, season_key)),
            series_name=series_name,
            season_number=season_number,
            episode_number=episode_number,
            name=item.stem,
            path=path,
            duration=duration,
        )
        self._paths[episode_id] = path
        return episode

    def get_item_path(self, episode_id: str) -> str | None:
        """Get the file path of a listed episode.

        Raises:
            KeyError: If the episode is no longer part of the library.
        """
        return self._paths[episode_id]
