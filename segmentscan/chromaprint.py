"""Find intros and credits shared between episodes of a season.

Episodes are compared in pairs using chromaprint audio fingerprints. Points
that (almost) agree between two episodes at some alignment are converted to
timestamps, and the longest contiguous run of matching timestamps is taken as
the shared segment.
"""

import logging
import threading

import numpy as np

from .analyzer import MediaFileAnalyzer, unresolved
from .config import Config
from .diagnostics import Diagnostics, ScanWarning
from .ffmpeg import SAMPLES_TO_SECONDS, FFmpegWrapper, FingerprintError
from .models import AnalysisMode, QueuedEpisode, Segment, TimeRange
from .store import SegmentStore
from .timeranges import find_contiguous

logger = logging.getLogger(__name__)

# Segments starting this close to the beginning are extended to 0.
SNAP_TO_START_SECONDS = 5.0


def create_inverted_index(points: np.ndarray) -> dict[int, int]:
    """Map each fingerprint point to the last index it appears at."""
    return {int(point): index for index, point in enumerate(points.tolist())}


def count_bits(values: np.ndarray) -> np.ndarray:
    """Population count of each 32-bit value."""
    as_bytes = values.astype("<u4").view(np.uint8)
    return np.unpackbits(as_bytes).reshape(-1, 32).sum(axis=1)


class ChromaprintAnalyzer(MediaFileAnalyzer):
    """Compares audio fingerprints between the episodes of one season."""

    def __init__(
        self,
        ffmpeg: FFmpegWrapper,
        store: SegmentStore,
        config: Config,
        diagnostics: Diagnostics | None = None,
    ):
        self.ffmpeg = ffmpeg
        self.store = store
        self.config = config
        self.diagnostics = diagnostics or Diagnostics()

    def _duration_limits(self, mode: AnalysisMode) -> tuple[int, int]:
        analysis = self.config.analysis
        if mode == AnalysisMode.INTRODUCTION:
            return analysis.minimum_intro_duration, analysis.maximum_intro_duration
        return analysis.minimum_credits_duration, analysis.maximum_credits_duration

    def analyze(
        self,
        queue: list[QueuedEpisode],
        mode: AnalysisMode,
        cancel_event: threading.Event,
    ) -> list[QueuedEpisode]:
        _, maximum = self._duration_limits(mode)
        season_segments: dict[str, Segment] = {}
        fingerprints: dict[str, np.ndarray] = {}

        for episode in queue:
            try:
                points = self.ffmpeg.fingerprint(episode, mode)
            except FingerprintError as e:
                logger.warning("Unable to fingerprint %s: %s", episode.name, e)
                self.diagnostics.set_flag(ScanWarning.INVALID_FINGERPRINT)
                points = np.array([], dtype=np.uint32)

            # Reversed so that the ends of the files line up.
            if mode == AnalysisMode.CREDITS:
                points = points[::-1]

            fingerprints[episode.episode_id] = points

            if cancel_event.is_set():
                return list(queue)

        pending = list(queue)
        while pending:
            current = pending.pop(0)

            for remaining in pending:
                current_segment, remaining_segment = self.compare_episodes(
                    current.episode_id,
                    fingerprints[current.episode_id],
                    remaining.episode_id,
                    fingerprints[remaining.episode_id],
                    mode,
                )

                if not current_segment.valid or not remaining_segment.valid:
                    continue

                if remaining_segment.duration > maximum:
                    continue

                for segment in (current_segment, remaining_segment):
                    saved = season_segments.get(segment.episode_id)
                    if saved is None or segment.duration > saved.duration:
                        season_segments[segment.episode_id] = segment

                break

            if cancel_event.is_set():
                return list(queue)

        if mode == AnalysisMode.CREDITS:
            durations = {episode.episode_id: episode.duration for episode in queue}
            season_segments = {
                episode_id: self._from_tail(segment, durations[episode_id])
                for episode_id, segment in season_segments.items()
            }

        self.store.merge(mode, season_segments)

        return unresolved(queue, season_segments)

    @staticmethod
    def _from_tail(segment: Segment, duration: float) -> Segment:
        """Convert a segment found in a reversed fingerprint to file times."""
        return segment.model_copy(
            update={
                "start": max(0.0, duration - segment.end),
                "end": duration - segment.start,
            }
        )

    def compare_episodes(
        self,
        lhs_id: str,
        lhs_points: np.ndarray,
        rhs_id: str,
        rhs_points: np.ndarray,
        mode: AnalysisMode,
    ) -> tuple[Segment, Segment]:
        """Find the segment shared by two episodes.

        Args:
            lhs_id: First episode id.
            lhs_points: First episode fingerprint.
            rhs_id: Second episode id.
            rhs_points: Second episode fingerprint.
            mode: Analysis mode, selects the duration limits.

        Returns:
            A segment for each episode. Both are invalid if nothing matched.
        """
        lhs_ranges, rhs_ranges = self._search_inverted_index(lhs_points, rhs_points, mode)

        if not lhs_ranges:
            logger.debug("Unable to find a shared segment between %s and %s", lhs_id, rhs_id)
            return Segment(episode_id=lhs_id), Segment(episode_id=rhs_id)

        return self._get_longest_time_range(lhs_id, lhs_ranges, rhs_id, rhs_ranges)

    def _search_inverted_index(
        self,
        lhs_points: np.ndarray,
        rhs_points: np.ndarray,
        mode: AnalysisMode,
    ) -> tuple[list[TimeRange], list[TimeRange]]:
        lhs_index = create_inverted_index(lhs_points)
        rhs_index = create_inverted_index(rhs_points)
        index_shift = self.config.fingerprint.inverted_index_shift

        # dict keeps shifts in discovery order
        shifts: dict[int, None] = {}
        for point, lhs_position in lhs_index.items():
            for offset in range(-index_shift, index_shift + 1):
                rhs_position = rhs_index.get((point + offset) & 0xFFFFFFFF)
                if rhs_position is not None:
                    shifts[rhs_position - lhs_position] = None

        lhs_ranges: list[TimeRange] = []
        rhs_ranges: list[TimeRange] = []
        for shift in shifts:
            lhs_range, rhs_range = self._find_contiguous(lhs_points, rhs_points, shift, mode)
            if lhs_range.end > 0 and rhs_range.end > 0:
                lhs_ranges.append(lhs_range)
                rhs_ranges.append(rhs_range)

        return lhs_ranges, rhs_ranges

    def _find_contiguous(
        self,
        lhs_points: np.ndarray,
        rhs_points: np.ndarray,
        shift: int,
        mode: AnalysisMode,
    ) -> tuple[TimeRange, TimeRange]:
        """Longest matching run when ``rhs`` is shifted by ``shift`` points."""
        minimum, _ = self._duration_limits(mode)
        fingerprint = self.config.fingerprint

        left_offset = -shift if shift < 0 else 0
        right_offset = shift if shift > 0 else 0
        upper_limit = min(len(lhs_points), len(rhs_points)) - abs(shift)
        if upper_limit <= 0:
            return TimeRange(), TimeRange()

        lhs = lhs_points[left_offset:left_offset + upper_limit]
        rhs = rhs_points[right_offset:right_offset + upper_limit]
        differences = count_bits(np.bitwise_xor(lhs, rhs))
        matches = np.flatnonzero(differences <= fingerprint.maximum_point_differences)

        lhs_times = ((matches + left_offset) * SAMPLES_TO_SECONDS).tolist()
        rhs_times = ((matches + right_offset) * SAMPLES_TO_SECONDS).tolist()

        lhs_contiguous = find_contiguous(lhs_times, fingerprint.maximum_time_skip)
        if lhs_contiguous.duration < minimum:
            return TimeRange(), TimeRange()

        rhs_contiguous = find_contiguous(rhs_times, fingerprint.maximum_time_skip)
        return lhs_contiguous, rhs_contiguous

    @staticmethod
    def _get_longest_time_range(
        lhs_id: str,
        lhs_ranges: list[TimeRange],
        rhs_id: str,
        rhs_ranges: list[TimeRange],
    ) -> tuple[Segment, Segment]:
        """Pick the pair of ranges with the longest first range."""
        lhs_range, rhs_range = sorted(zip(lhs_ranges, rhs_ranges), key=lambda pair: pair[0])[0]

        if lhs_range.start <= SNAP_TO_START_SECONDS:
            lhs_range = TimeRange(start=0.0, end=lhs_range.end)
        if rhs_range.start <= SNAP_TO_START_SECONDS:
            rhs_range = TimeRange(start=0.0, end=rhs_range.end)

        return Segment.from_range(lhs_id, lhs_range), Segment.from_range(rhs_id, rhs_range)
