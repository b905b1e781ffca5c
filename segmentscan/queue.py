"""Builds and verifies the per-season analysis queue."""

import logging
from pathlib import Path
from typing import Protocol

from .config import Config, ConfigurationError
from .ffmpeg import FFmpegError, FFmpegWrapper
from .library import LibraryFolder
from .models import AnalysisMode, LibraryEpisode, QueuedEpisode
from .store import SegmentStore

logger = logging.getLogger(__name__)

# Episodes shorter than this are fingerprinted in full.
SHORT_EPISODE_SECONDS = 5 * 60


class Library(Protocol):
    """What the queue needs from a media library."""

    def folders(self) -> list[LibraryFolder]: ...

    def episodes(self, location: str) -> list[LibraryEpisode]: ...

    def get_item_path(self, episode_id: str) -> str | None: ...


def intro_fingerprint_end(duration: float, analysis_percent: int, length_limit: int) -> int:
    """How many seconds from the start of an episode to fingerprint.

    Episodes of five minutes or more are limited to ``analysis_percent`` of
    their runtime. Every episode is limited to ``length_limit`` minutes.
    """
    fingerprint_duration = duration
    if fingerprint_duration >= SHORT_EPISODE_SECONDS:
        fingerprint_duration *= analysis_percent / 100

    return round(min(fingerprint_duration, 60 * length_limit))


def credits_fingerprint_start(duration: float, maximum_credits_duration: int) -> int:
    """Offset from the start of an episode where credit fingerprinting begins."""
    return max(0, round(duration - maximum_credits_duration))


class QueueManager:
    """Enqueues library episodes for analysis, grouped by season.

    Args:
        library: Media library to read episodes from.
        ffmpeg: Decoder wrapper; must support chromaprint.
        store: Segment store used to skip finished seasons.
        config: Configuration.
    """

    def __init__(
        self,
        library: Library,
        ffmpeg: FFmpegWrapper,
        store: SegmentStore,
        config: Config,
    ):
        self.library = library
        self.ffmpeg = ffmpeg
        self.store = store
        self.config = config
        self._queued_episodes: dict[str, list[QueuedEpisode]] = {}
        self._selected_libraries: list[str] = []

    def build_queue(self, libraries: list[str] | None = None) -> dict[str, list[QueuedEpisode]]:
        """Enqueue every episode in the selected libraries.

        Args:
            libraries: Library names to analyze. Defaults to the configured
                ``selected_libraries``; an empty selection means all libraries.

        Returns:
            Mapping of season id to that season's episodes, in library order.

        Raises:
            ConfigurationError: If ffmpeg with chromaprint isn't available.
        """
        if not self.ffmpeg.check_version():
            raise ConfigurationError(
                "ffmpeg with chromaprint is not installed on this system - episodes will not be analyzed"
            )

        self._queued_episodes = {}
        self._load_analysis_settings(libraries)

        for folder in self.library.folders():
            if self._selected_libraries and folder.name not in self._selected_libraries:
                logger.debug('Not analyzing library "%s": not selected by user', folder.name)
                continue

            logger.info("Running enqueue of items in library %s", folder.name)

            try:
                for location in folder.locations:
                    self._queue_library_contents(location)
            except (OSError, FFmpegError) as e:
                logger.error("Failed to enqueue items from library %s: %s", folder.name, e)

        return {season_id: list(episodes) for season_id, episodes in self._queued_episodes.items()}

    def _load_analysis_settings(self, libraries: list[str] | None) -> None:
        analysis = self.config.analysis

        if libraries is None:
            libraries = analysis.selected_libraries
        self._selected_libraries = [name.strip() for name in libraries if name.strip()]

        if self._selected_libraries:
            logger.info("Limiting analysis to the following libraries: %s", self._selected_libraries)
        else:
            logger.debug("Not limiting analysis by library name")

        if (
            analysis.analysis_length_limit != 10
            or analysis.analysis_percent != 25
            or analysis.minimum_intro_duration != 15
        ):
            logger.info(
                "Analysis settings have been changed to: %d%%/%dm and a minimum of %ds",
                analysis.analysis_percent,
                analysis.analysis_length_limit,
                analysis.minimum_intro_duration,
            )

    def _queue_library_contents(self, location: str) -> None:
        episodes = self.library.episodes(location)
        for episode in episodes:
            self._queue_episode(episode)
        logger.debug("Queued %d episodes from %s", len(episodes), location)

    def _queue_episode(self, episode: LibraryEpisode) -> None:
        if not episode.path:
            logger.debug(
                'Not queuing episode "%s" from series "%s" (%s) as no path was provided',
                episode.name,
                episode.series_name,
                episode.episode_id,
            )
            return

        season = self._queued_episodes.setdefault(episode.season_id, [])
        if any(queued.episode_id == episode.episode_id for queued in season):
            logger.debug(
                'Episode "%s" from series "%s" (%s) is already queued',
                episode.name,
                episode.series_name,
                episode.episode_id,
            )
            return

        analysis = self.config.analysis
        season.append(
            QueuedEpisode(
                episode_id=episode.episode_id,
                season_id=episode.season_id,
                series_name=episode.series_name,
                season_number=episode.season_number,
                episode_number=episode.episode_number,
                name=episode.name,
                path=episode.path,
                duration=episode.duration,
                intro_fingerprint_end=intro_fingerprint_end(
                    episode.duration,
                    analysis.analysis_percent,
                    analysis.analysis_length_limit,
                ),
                credits_fingerprint_start=credits_fingerprint_start(
                    episode.duration,
                    analysis.maximum_credits_duration,
                ),
            )
        )

    def verify_queue(
        self,
        candidates: list[QueuedEpisode],
        modes: list[AnalysisMode],
    ) -> tuple[list[QueuedEpisode], list[AnalysisMode]]:
        """Re-check a season right before it is analyzed.

        Episodes are kept only if their file still exists. A mode stays
        outstanding only until one episode of the season is found to already
        have a result for it; the whole season is then treated as done for
        that mode.

        Args:
            candidates: Queued episodes of one season.
            modes: Requested analysis modes.

        Returns:
            Tuple of (episodes that still exist, modes still to run).
        """
        verified: list[QueuedEpisode] = []
        outstanding = {mode: True for mode in modes}
        checked = False

        for candidate in candidates:
            try:
                path = self.library.get_item_path(candidate.episode_id)

                if path and Path(path).exists():
                    verified.append(candidate)

                for mode in modes:
                    if outstanding[mode] and self.store.has_result(candidate.episode_id, mode):
                        outstanding[mode] = False

                checked = True
            except (KeyError, OSError) as e:
                logger.debug(
                    "Skipping analysis of %s (%s): %s",
                    candidate.name,
                    candidate.episode_id,
                    e,
                )

        if not checked:
            return verified, []

        return verified, [mode for mode in modes if outstanding[mode]]
