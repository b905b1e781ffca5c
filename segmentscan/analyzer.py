"""Interface shared by all media file analyzers."""

import threading
from abc import ABC, abstractmethod

from .models import AnalysisMode, QueuedEpisode, Segment


class MediaFileAnalyzer(ABC):
    """Abstract base class for analyzers in a season's analysis chain."""

    @abstractmethod
    def analyze(
        self,
        queue: list[QueuedEpisode],
        mode: AnalysisMode,
        cancel_event: threading.Event,
    ) -> list[QueuedEpisode]:
        """Find segments for as many episodes as possible.

        Segments that are found are merged into the segment store.

        Args:
            queue: Episodes without a segment for ``mode`` yet.
            mode: Type of segment to look for.
            cancel_event: Set when the scan should stop.

        Returns:
            Episodes that were not resolved, in their original order.
        """
        pass


def unresolved(queue: list[QueuedEpisode], found: dict[str, Segment]) -> list[QueuedEpisode]:
    """Episodes of ``queue`` that have no entry in ``found``."""
    return [episode for episode in queue if episode.episode_id not in found]
