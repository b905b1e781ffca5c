"""CLI for segmentscan."""

import logging
import threading
from enum import Enum
from pathlib import Path
from typing import Annotated, Optional

import typer

from . import __version__
from .config import Config, ConfigurationError, load_config
from .ffmpeg import FFmpegWrapper
from .library import FilesystemLibrary
from .models import AnalysisMode, Segment
from .queue import QueueManager
from .scan import ScanError, SegmentScanner
from .store import SegmentStore

app = typer.Typer(
    name="segmentscan",
    help="Find skippable intros and credits in a video library.",
    add_completion=False,
)


class ModeChoice(str, Enum):
    intro = "intro"
    credits = "credits"
    all = "all"


_MODES = {
    ModeChoice.intro: [AnalysisMode.INTRODUCTION],
    ModeChoice.credits: [AnalysisMode.CREDITS],
    ModeChoice.all: [AnalysisMode.INTRODUCTION, AnalysisMode.CREDITS],
}


def format_duration(seconds: float) -> str:
    """Format duration in HH:MM:SS format."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _load(config_path: Optional[Path]) -> Config:
    try:
        return load_config(str(config_path) if config_path else None)
    except FileNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _open_store(config: Config) -> SegmentStore:
    store = SegmentStore.from_config(config)
    store.restore()
    return store


def _describe(label: str, segment: Segment) -> str:
    return (
        f"{label}: {format_duration(segment.start)} - {format_duration(segment.end)} "
        f"(prompt {segment.show_skip_prompt_at:.1f}s - {segment.hide_skip_prompt_at:.1f}s)"
    )


ConfigOption = Annotated[
    Optional[Path], typer.Option("--config", "-c", help="Path to config file")
]


@app.command()
def scan(
    config_path: ConfigOption = None,
    mode: Annotated[
        ModeChoice, typer.Option("--mode", "-m", help="Segments to detect")
    ] = ModeChoice.all,
    library: Annotated[
        Optional[list[str]],
        typer.Option("--library", "-l", help="Only analyze this library (repeatable)"),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
) -> None:
    """Analyze the configured libraries for intros and credits."""
    _setup_logging(verbose)
    config = _load(config_path)

    ffmpeg = FFmpegWrapper.from_config(config)
    store = _open_store(config)
    queue_manager = QueueManager(FilesystemLibrary(config.libraries, ffmpeg), ffmpeg, store, config)
    scanner = SegmentScanner(_MODES[mode], queue_manager, store, ffmpeg, config)

    last_percent = -1
    progress_lock = threading.Lock()

    def on_progress(percent: int) -> None:
        nonlocal last_percent
        with progress_lock:
            if percent != last_percent:
                last_percent = percent
                typer.echo(f"Progress: {percent}%")

    try:
        result = scanner.analyze_items(progress_callback=on_progress, libraries=library)
    except (ConfigurationError, ScanError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo()
    typer.echo("Scan complete!")
    typer.echo(f"  Episodes queued: {result.total_queued}")
    typer.echo(f"  Episodes processed: {result.total_processed}")
    typer.echo(f"  Seasons failed: {result.seasons_failed}")
    typer.echo(f"  Warnings: {result.diagnostics}")


@app.command()
def show(
    episode_id: Annotated[str, typer.Argument(help="Episode id")],
    config_path: ConfigOption = None,
) -> None:
    """Show the stored segments of one episode."""
    config = _load(config_path)
    store = _open_store(config)

    found = False
    for analysis_mode, label in (
        (AnalysisMode.INTRODUCTION, "Intro"),
        (AnalysisMode.CREDITS, "Credits"),
    ):
        segment = store.get(episode_id, analysis_mode)
        if segment is None:
            continue

        playback = segment.for_playback(config.playback)
        if not playback.valid:
            continue

        typer.echo(_describe(label, playback))
        found = True

    if not found:
        typer.echo(f"No segments found for {episode_id}")
        raise typer.Exit(1)


@app.command("list")
def list_segments(
    mode: Annotated[
        AnalysisMode, typer.Option("--mode", "-m", help="Segments to list")
    ] = AnalysisMode.INTRODUCTION,
    config_path: ConfigOption = None,
) -> None:
    """List every stored segment for a mode."""
    config = _load(config_path)
    store = _open_store(config)

    segments = store.all(mode)
    for segment in sorted(segments, key=lambda s: s.episode_id):
        typer.echo(
            f"{segment.episode_id}  {format_duration(segment.start)} - {format_duration(segment.end)}"
        )
    typer.echo(f"{len(segments)} {mode.value} segment(s)")


@app.command()
def reset(
    mode: Annotated[AnalysisMode, typer.Option("--mode", "-m", help="Segments to erase")],
    config_path: ConfigOption = None,
) -> None:
    """Erase all stored segments for a mode."""
    config = _load(config_path)
    store = _open_store(config)
    store.reset(mode)
    typer.echo(f"Erased all {mode.value} segments")


@app.command()
def version() -> None:
    """Show the version of segmentscan."""
    typer.echo(f"segmentscan v{__version__}")


if __name__ == "__main__":
    app()
