"""Storage for discovered segments."""

import logging
import threading
from pathlib import Path

from pydantic import BaseModel, ValidationError

from .config import Config
from .models import AnalysisMode, Segment

logger = logging.getLogger(__name__)

_FILENAMES = {
    AnalysisMode.INTRODUCTION: "intros.json",
    AnalysisMode.CREDITS: "credits.json",
}


class SegmentList(BaseModel):
    """On-disk format of one mode's segments."""

    segments: list[Segment]


class SegmentStore:
    """Segments found so far, one bucket per analysis mode.

    Merges are serialized by one lock and every merge is written to disk.
    Writing to disk is guarded by a second lock.

    Args:
        data_dir: Directory holding the JSON files. None keeps results in
            memory only.
    """

    def __init__(self, data_dir: str | Path | None = None):
        self.data_dir = Path(data_dir) if data_dir else None
        self._segments: dict[AnalysisMode, dict[str, Segment]] = {
            mode: {} for mode in AnalysisMode
        }
        self._segments_lock = threading.Lock()
        self._save_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: Config) -> "SegmentStore":
        return cls(config.paths.data_path)

    def path_for(self, mode: AnalysisMode) -> Path | None:
        if self.data_dir is None:
            return None
        return self.data_dir / _FILENAMES[mode]

    def restore(self) -> None:
        """Load previously saved segments from disk."""
        with self._segments_lock:
            for mode in AnalysisMode:
                path = self.path_for(mode)
                if path is None or not path.exists():
                    continue

                try:
                    saved = SegmentList.model_validate_json(path.read_text())
                except (OSError, ValidationError) as e:
                    logger.warning("Unable to load %s timestamps from %s: %s", mode.value, path, e)
                    continue

                for segment in saved.segments:
                    self._segments[mode][segment.episode_id] = segment

    def _save(self, snapshot: dict[AnalysisMode, list[Segment]]) -> None:
        if self.data_dir is None:
            return

        with self._save_lock:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            for mode, segments in snapshot.items():
                path = self.path_for(mode)
                path.write_text(SegmentList(segments=segments).model_dump_json(indent=2))

    def _snapshot(self) -> dict[AnalysisMode, list[Segment]]:
        return {mode: list(segments.values()) for mode, segments in self._segments.items()}

    def merge(self, mode: AnalysisMode, segments: dict[str, Segment]) -> None:
        """Add or replace segments for a mode and persist the result.

        Args:
            mode: Bucket to merge into.
            segments: Segments keyed by episode id.
        """
        with self._segments_lock:
            self._segments[mode].update(segments)
            self._save(self._snapshot())

    def has_result(self, episode_id: str, mode: AnalysisMode) -> bool:
        with self._segments_lock:
            return episode_id in self._segments[mode]

    def get(self, episode_id: str, mode: AnalysisMode) -> Segment | None:
        with self._segments_lock:
            return self._segments[mode].get(episode_id)

    def all(self, mode: AnalysisMode) -> list[Segment]:
        with self._segments_lock:
            return list(self._segments[mode].values())

    def reset(self, mode: AnalysisMode) -> None:
        """Erase every stored segment for a mode."""
        with self._segments_lock:
            self._segments[mode].clear()
            self._save(self._snapshot())
