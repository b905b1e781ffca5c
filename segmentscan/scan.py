"""Runs the analyzer chain over every queued season."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable

from .analyzer import MediaFileAnalyzer
from .blackframe import BlackFrameAnalyzer
from .chapters import ChapterAnalyzer
from .chromaprint import ChromaprintAnalyzer
from .config import Config
from .diagnostics import Diagnostics, ScanWarning
from .ffmpeg import FFmpegError, FFmpegWrapper
from .models import AnalysisMode, QueuedEpisode
from .queue import QueueManager
from .store import SegmentStore

logger = logging.getLogger(__name__)

AnalyzerFactory = Callable[[AnalysisMode, Diagnostics], list[MediaFileAnalyzer]]


class ScanError(Exception):
    """The scan could not run at all."""

    pass


@dataclass
class ScanResult:
    """Outcome of one scan."""

    total_queued: int
    total_processed: int = 0
    seasons_failed: int = 0
    cancelled: bool = False
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def percent(self) -> int:
        if self.total_queued == 0:
            return 0
        return min(100, self.total_processed * 100 // self.total_queued)


class _Counters:
    """Counters shared between season workers."""

    def __init__(self):
        self.processed = 0
        self.failed = 0
        self._lock = threading.Lock()

    def add_processed(self, count: int) -> int:
        with self._lock:
            self.processed += count
            return self.processed

    def add_failed(self) -> None:
        with self._lock:
            self.failed += 1


class SegmentScanner:
    """Analyzes all queued seasons for the requested modes.

    Seasons are analyzed in parallel, up to ``max_parallelism`` at a time.
    Within a season the analyzers run one after another, each one only
    seeing the episodes the previous analyzers could not resolve.

    Args:
        modes: Analysis modes to run.
        queue_manager: Builds and verifies the season queue.
        store: Receives discovered segments.
        ffmpeg: Decoder wrapper handed to the analyzers.
        config: Configuration.
        analyzer_factory: Builds the analyzer chain for a mode. Defaults to
            chapters, then chromaprint, then black frames (credits only).
    """

    def __init__(
        self,
        modes: list[AnalysisMode],
        queue_manager: QueueManager,
        store: SegmentStore,
        ffmpeg: FFmpegWrapper,
        config: Config,
        analyzer_factory: AnalyzerFactory | None = None,
    ):
        self.modes = modes
        self.queue_manager = queue_manager
        self.store = store
        self.ffmpeg = ffmpeg
        self.config = config
        self.analyzer_factory = analyzer_factory or self.default_analyzers

    def default_analyzers(
        self, mode: AnalysisMode, diagnostics: Diagnostics
    ) -> list[MediaFileAnalyzer]:
        analyzers: list[MediaFileAnalyzer] = [
            ChapterAnalyzer(self.ffmpeg, self.store, self.config),
            ChromaprintAnalyzer(self.ffmpeg, self.store, self.config, diagnostics),
        ]

        if mode == AnalysisMode.CREDITS:
            analyzers.append(BlackFrameAnalyzer(self.ffmpeg, self.store, self.config))

        return analyzers

    def analyze_items(
        self,
        progress_callback: Callable[[int], None] | None = None,
        cancel_event: threading.Event | None = None,
        libraries: list[str] | None = None,
    ) -> ScanResult:
        """Analyze every episode in the library.

        Args:
            progress_callback: Optional callback(percent: int) for progress updates.
            cancel_event: Set to stop the scan between seasons and analyzers.
            libraries: Library names to limit the scan to.

        Returns:
            Counters and warnings for this scan.

        Raises:
            ConfigurationError: If ffmpeg with chromaprint isn't available.
            ScanError: If no episodes were queued.
        """
        cancel_event = cancel_event or threading.Event()
        queue = self.queue_manager.build_queue(libraries)

        total_queued = sum(len(episodes) for episodes in queue.values())
        if total_queued == 0:
            raise ScanError(
                "No episodes to analyze. If you are limiting the list of libraries to analyze, "
                "check that all library names have been spelled correctly."
            )

        result = ScanResult(total_queued=total_queued)
        counters = _Counters()

        def report(processed: int) -> None:
            if progress_callback:
                progress_callback(min(100, processed * 100 // total_queued))

        parallelism = max(1, self.config.analysis.max_parallelism)
        with ThreadPoolExecutor(max_workers=parallelism) as pool:
            futures = [
                pool.submit(
                    self._analyze_season,
                    episodes,
                    counters,
                    report,
                    result.diagnostics,
                    cancel_event,
                )
                for episodes in queue.values()
            ]
            for future in as_completed(futures):
                future.result()

        result.total_processed = counters.processed
        result.seasons_failed = counters.failed
        result.cancelled = cancel_event.is_set()
        return result

    def _analyze_season(
        self,
        season: list[QueuedEpisode],
        counters: _Counters,
        report: Callable[[int], None],
        diagnostics: Diagnostics,
        cancel_event: threading.Event,
    ) -> None:
        # Items may have been deleted since the queue was built.
        episodes, modes_to_execute = self.queue_manager.verify_queue(season, self.modes)

        if not episodes or not modes_to_execute:
            if episodes:
                logger.debug(
                    "All episodes in %s season %d have already been analyzed",
                    episodes[0].series_name,
                    episodes[0].season_number,
                )
            report(counters.add_processed(len(season)))
            return

        if cancel_event.is_set():
            return

        first = episodes[0]
        try:
            for mode in modes_to_execute:
                if cancel_event.is_set():
                    return
                analyzed = self._analyze_episodes(episodes, mode, diagnostics, cancel_event)
                report(counters.add_processed(analyzed))
        except FFmpegError as e:
            logger.warning(
                "Unable to analyze %s season %d: unable to fingerprint: %s",
                first.series_name,
                first.season_number,
                e,
            )
            diagnostics.set_flag(ScanWarning.SEASON_FAILED)
            counters.add_failed()

    def _analyze_episodes(
        self,
        items: list[QueuedEpisode],
        mode: AnalysisMode,
        diagnostics: Diagnostics,
        cancel_event: threading.Event,
    ) -> int:
        """Run the analyzer chain over one season.

        Returns:
            Number of episodes handed to the chain.
        """
        total_items = len(items)

        # Only analyze specials (season 0) if the user has opted in.
        first = items[0]
        if first.season_number == 0 and not self.config.analysis.analyze_season_zero:
            return 0

        logger.info(
            "Analyzing %d files from %s season %d (%s)",
            total_items,
            first.series_name,
            first.season_number,
            mode.value,
        )

        remaining = list(items)
        for analyzer in self.analyzer_factory(mode, diagnostics):
            if not remaining or cancel_event.is_set():
                break
            remaining = analyzer.analyze(remaining, mode, cancel_event)

        return total_items
