"""Pydantic data models for segmentscan."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from .config import PlaybackConfig


class AnalysisMode(str, Enum):
    """Kind of skippable segment being searched for."""

    INTRODUCTION = "introduction"
    CREDITS = "credits"


class TimeRange(BaseModel):
    """Range of contiguous time, in seconds.

    Ranges order by duration, longest first, so ``sorted(ranges)[0]`` is the
    longest range. Ranges with equal durations keep their original order.
    """

    start: float = 0.0
    end: float = 0.0

    @property
    def duration(self) -> float:
        """Duration of this range in seconds."""
        return self.end - self.start

    def intersects(self, other: "TimeRange") -> bool:
        """Check if either endpoint of ``other`` lies strictly inside this range."""
        return (
            (self.start < other.start and other.start < self.end)
            or (self.start < other.end and other.end < self.end)
        )

    def __lt__(self, other: "TimeRange") -> bool:
        return self.duration > other.duration


class Segment(BaseModel):
    """A skippable segment found in one episode."""

    episode_id: str
    start: float = 0.0
    end: float = 0.0
    show_skip_prompt_at: float = 0.0
    hide_skip_prompt_at: float = 0.0

    @classmethod
    def from_range(cls, episode_id: str, time_range: TimeRange) -> "Segment":
        return cls(episode_id=episode_id, start=time_range.start, end=time_range.end)

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def valid(self) -> bool:
        """A segment is only usable if it has a positive duration."""
        return self.end > 0 and self.duration > 0

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    def for_playback(self, settings: PlaybackConfig) -> "Segment":
        """Return a copy adjusted for display by a playback client.

        The end is pulled back so the last seconds of the segment still play,
        and the skip prompt window is computed around the segment start.

        Args:
            settings: Prompt timing settings.

        Returns:
            A new Segment. The stored segment is not modified.
        """
        end = self.end - settings.seconds_of_intro_to_play
        return self.model_copy(
            update={
                "end": end,
                "show_skip_prompt_at": max(0.0, self.start - settings.show_prompt_adjustment),
                "hide_skip_prompt_at": min(
                    self.start + settings.hide_prompt_adjustment,
                    end - 1,
                ),
            }
        )


class QueuedEpisode(BaseModel):
    """An episode waiting to be analyzed.

    Created once per library scan and never modified afterwards.
    """

    model_config = ConfigDict(frozen=True)

    episode_id: str
    season_id: str
    series_name: str = ""
    season_number: int = 0
    episode_number: int = 0
    name: str = ""
    path: str
    duration: float
    intro_fingerprint_end: int
    credits_fingerprint_start: int


class LibraryEpisode(BaseModel):
    """An episode as reported by a media library."""

    episode_id: str
    season_id: str
    series_name: str = ""
    season_number: int = 0
    episode_number: int = 0
    name: str = ""
    path: Optional[str] = None
    duration: float = 0.0


class Chapter(BaseModel):
    """A chapter marker embedded in a media file."""

    name: Optional[str] = None
    start: float


class BlackFrame(BaseModel):
    """A video frame reported as (mostly) black."""

    time: float
    percentage: int
