"""Find end credits shown over a black background.

The end of each file is bisected so that only a handful of two second
windows need to be decoded per episode.
"""

import logging
import threading

from .analyzer import MediaFileAnalyzer, unresolved
from .config import Config
from .ffmpeg import FFmpegWrapper
from .models import AnalysisMode, QueuedEpisode, Segment, TimeRange
from .store import SegmentStore

logger = logging.getLogger(__name__)

# Stop bisecting once the boundary is known to within this many seconds.
MAXIMUM_ERROR = 4.0

# Length of each probe window in seconds.
PROBE_DURATION = 2.0


class BlackFrameAnalyzer(MediaFileAnalyzer):
    """Locates the first black frame near the end of each episode."""

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
        if mode != AnalysisMode.CREDITS:
            raise ValueError("Black frame analysis only supports credits")

        minimum = self.config.analysis.black_frame_minimum_percentage
        credits: dict[str, Segment] = {}

        for episode in queue:
            if cancel_event.is_set():
                break

            segment = self.analyze_media_file(episode, minimum)
            if segment is None:
                continue

            credits[episode.episode_id] = segment

        self.store.merge(mode, credits)

        return unresolved(queue, credits)

    def analyze_media_file(self, episode: QueuedEpisode, minimum: int) -> Segment | None:
        """Bisect the end of an episode for the first black frame.

        The search interval is kept as offsets from the end of the file,
        starting at ``[minimum_credits_duration, maximum_credits_duration]``
        with the upper bound limited to the episode duration.

        Args:
            episode: Episode to analyze.
            minimum: Percentage of a frame that must be black.

        Returns:
            Credits running from the first black frame to the end of the
            file, or None if no black frame was found.
        """
        analysis = self.config.analysis
        # Never probe before the start of the file.
        start = min(float(analysis.maximum_credits_duration), episode.duration)
        end = float(analysis.minimum_credits_duration)
        first_frame_time = 0.0

        while start - end > MAXIMUM_ERROR:
            midpoint = (start + end) / 2
            scan_time = episode.duration - midpoint
            probe = TimeRange(start=scan_time, end=scan_time + PROBE_DURATION)

            logger.debug(
                "%s, dur %.1f, bisect [%.1f, %.1f], time [%.1f, %.1f]",
                episode.name,
                episode.duration,
                start,
                end,
                probe.start,
                probe.end,
            )

            frames = self.ffmpeg.detect_black_frames(episode, probe, minimum)
            logger.debug("%s at %.1f has %d black frames", episode.name, probe.start, len(frames))

            if not frames:
                # No black frames, so the credits start closer to the end.
                start = midpoint - PROBE_DURATION
            else:
                # Black frames found, look for an even earlier boundary.
                end = midpoint
                first_frame_time = frames[0].time + scan_time

        if first_frame_time > 0:
            return Segment.from_range(
                episode.episode_id,
                TimeRange(start=first_frame_time, end=episode.duration),
            )

        return None
