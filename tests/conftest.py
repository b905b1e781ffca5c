"""Shared fixtures for segmentscan tests."""

import threading

import pytest

from segmentscan.config import Config
from segmentscan.models import QueuedEpisode
from segmentscan.store import SegmentStore


@pytest.fixture
def make_episode():
    """Factory for queued episodes with sensible defaults."""

    def _make(
        episode_id: str = "ep1",
        season_id: str = "season1",
        duration: float = 1800.0,
        season_number: int = 1,
        path: str = "/media/show/ep.mkv",
        **kwargs,
    ) -> QueuedEpisode:
        return QueuedEpisode(
            episode_id=episode_id,
            season_id=season_id,
            series_name=kwargs.pop("series_name", "Show"),
            season_number=season_number,
            episode_number=kwargs.pop("episode_number", 1),
            name=kwargs.pop("name", episode_id),
            path=path,
            duration=duration,
            intro_fingerprint_end=kwargs.pop("intro_fingerprint_end", 450),
            credits_fingerprint_start=kwargs.pop(
                "credits_fingerprint_start", max(0, round(duration - 300))
            ),
            **kwargs,
        )

    return _make


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def store():
    """In-memory segment store."""
    return SegmentStore()


@pytest.fixture
def cancel_event():
    return threading.Event()


FAKE_FFMPEG = r"""#!/bin/sh
printf 'Input #0, matroska,webm, from input:\n  Metadata:\n    title           : caf\351\n' >&2
case "$*" in
  *%(black)s*)
    printf '[Parsed_blackframe_0 @ 0x1] frame:1 pblack:100 pts:0 t:0.000000 type:I last_keyframe:0\n' >&2
    ;;
esac
exit 0
"""


@pytest.fixture
def fake_ffmpeg(tmp_path):
    """Write an ffmpeg stand-in whose stderr is not valid UTF-8.

    Black frames are reported for every call whose arguments contain the
    ``black`` marker.
    """

    def _make(black: str = "with-credits") -> str:
        script = tmp_path / "ffmpeg"
        script.write_text(FAKE_FFMPEG % {"black": black})
        script.chmod(0o755)
        return str(script)

    return _make
