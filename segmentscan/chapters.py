"""Find intros and credits from chapter names."""

import logging
import re
import threading

from .analyzer import MediaFileAnalyzer, unresolved
from .config import Config
from .ffmpeg import FFmpegError, FFmpegWrapper
from .models import AnalysisMode, Chapter, QueuedEpisode, Segment, TimeRange
from .store import SegmentStore

logger = logging.getLogger(__name__)


class ChapterAnalyzer(MediaFileAnalyzer):
    """Matches chapter names such as "Opening" or "End Credits"."""

    def __init__(self, ffmpeg: FFmpegWrapper, store: SegmentStore, config: Config):
        self.ffmpeg = ffmpeg
        self.store = store
        self.config = config

    def analyze(
        self,
        queue: list[QueuedEpisode],
        mode: AnalysisMode,
        cancel_event: threading.Event,
    ) -> list[QueuedEpisode]:
        if mode == AnalysisMode.INTRODUCTION:
            expression = self.config.chapters.intro_pattern
        else:
            expression = self.config.chapters.credits_pattern

        if not expression:
            return list(queue)

        found: dict[str, Segment] = {}

        for episode in queue:
            if cancel_event.is_set():
                break

            try:
                chapters = self.ffmpeg.get_chapters(episode.path)
            except FFmpegError as e:
                logger.debug("Unable to read chapters of %s: %s", episode.name, e)
                continue

            segment = self.find_matching_chapter(episode, chapters, expression, mode)
            if segment is not None:
                found[episode.episode_id] = segment

        self.store.merge(mode, found)

        return unresolved(queue, found)

    def find_matching_chapter(
        self,
        episode: QueuedEpisode,
        chapters: list[Chapter],
        expression: str,
        mode: AnalysisMode,
    ) -> Segment | None:
        """Find the first chapter whose name and length fit ``mode``.

        Intros are searched from the start of the file, credits from the end.
        The first chapter is never considered to be credits.

        Args:
            episode: Episode the chapters belong to.
            chapters: Chapters ordered by start time.
            expression: Regular expression chapter names must match.
            mode: Type of segment to look for.

        Returns:
            The matching segment, or None.
        """
        if not chapters:
            return None

        analysis = self.config.analysis
        if mode == AnalysisMode.INTRODUCTION:
            minimum = analysis.minimum_intro_duration
            maximum = analysis.maximum_intro_duration
        else:
            minimum = analysis.minimum_credits_duration
            maximum = analysis.maximum_credits_duration

        # A virtual chapter at the end of the file closes the last real chapter.
        bounded = [*chapters, Chapter(start=episode.duration)]

        if mode == AnalysisMode.INTRODUCTION:
            indices = range(0, len(bounded) - 1)
        else:
            indices = range(len(bounded) - 2, 0, -1)

        pattern = re.compile(expression, re.IGNORECASE)

        for i in indices:
            current = bounded[i]
            following = bounded[i + 1]
            current_range = TimeRange(start=current.start, end=following.start)

            if not current.name or not current.name.strip():
                continue

            if current_range.duration < minimum or current_range.duration > maximum:
                continue

            if not pattern.search(current.name):
                continue

            logger.debug(
                'Found %s chapter "%s" in %s at %.1f-%.1f',
                mode.value,
                current.name,
                episode.name,
                current_range.start,
                current_range.end,
            )
            return Segment.from_range(episode.episode_id, current_range)

        return None
