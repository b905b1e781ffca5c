"""Tests for the ffmpeg wrapper."""

import json
import subprocess
import sys
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from segmentscan.config import Config
from segmentscan.ffmpeg import (
    FFmpegError,
    FFmpegWrapper,
    FingerprintError,
    parse_black_frames,
)
from segmentscan.models import AnalysisMode, TimeRange

BLACKFRAME_OUTPUT = """\
[Parsed_blackframe_0 @ 0x55d5c8] frame:1 pblack:99 pts:1001 t:0.041708 type:P last_keyframe:0
[Parsed_blackframe_0 @ 0x55d5c8] frame:2 pblack:60 pts:2002 t:0.083417 type:P last_keyframe:0
[Parsed_blackframe_0 @ 0x55d5c8] frame:3 pblack:100 pts:3003 t:0.125125 type:B last_keyframe:0
frame=   48 fps=0.0 q=-0.0 Lsize=N/A time=00:00:02.00 bitrate=N/A speed=  60x
"""


class TestCheckVersion:
    @patch("subprocess.run")
    def test_with_chromaprint(self, mock_run):
        """Should accept an ffmpeg that lists the chromaprint muxer."""
        mock_run.return_value = MagicMock(stdout=" E chromaprint     Chromaprint\n")

        assert FFmpegWrapper().check_version() is True
        assert mock_run.call_count == 2

    @patch("subprocess.run")
    def test_without_chromaprint(self, mock_run):
        """Should reject an ffmpeg built without chromaprint."""
        mock_run.return_value = MagicMock(stdout=" E matroska        Matroska\n")

        assert FFmpegWrapper().check_version() is False

    @patch("subprocess.run")
    def test_not_installed(self, mock_run):
        """Should report False when ffmpeg is missing."""
        mock_run.side_effect = FileNotFoundError()

        assert FFmpegWrapper().check_version() is False


class TestGetDuration:
    def test_file_not_found(self, tmp_path):
        """Should raise FFmpegError for non-existent file."""
        with pytest.raises(FFmpegError, match="File not found"):
            FFmpegWrapper().get_duration(str(tmp_path / "missing.mkv"))

    @patch("subprocess.run")
    def test_ffprobe_not_found(self, mock_run, tmp_path):
        """Should raise FFmpegError if ffprobe is not installed."""
        test_file = tmp_path / "episode.mkv"
        test_file.write_bytes(b"fake video data")
        mock_run.side_effect = FileNotFoundError()

        with pytest.raises(FFmpegError, match="ffprobe not found"):
            FFmpegWrapper().get_duration(str(test_file))

    @patch("subprocess.run")
    def test_ffprobe_failure(self, mock_run, tmp_path):
        """Should raise FFmpegError if ffprobe fails."""
        test_file = tmp_path / "episode.mkv"
        test_file.write_bytes(b"fake video data")
        mock_run.side_effect = subprocess.CalledProcessError(1, "ffprobe", stderr="error")

        with pytest.raises(FFmpegError, match="ffprobe failed"):
            FFmpegWrapper().get_duration(str(test_file))

    @patch("subprocess.run")
    def test_successful_duration_extraction(self, mock_run, tmp_path):
        """Should return duration from ffprobe output."""
        test_file = tmp_path / "episode.mkv"
        test_file.write_bytes(b"fake video data")
        mock_run.return_value = MagicMock(stdout=json.dumps({"format": {"duration": "1325.5"}}))

        assert FFmpegWrapper().get_duration(str(test_file)) == 1325.5

    @patch("subprocess.run")
    def test_invalid_output(self, mock_run, tmp_path):
        """Should raise FFmpegError if ffprobe output can't be parsed."""
        test_file = tmp_path / "episode.mkv"
        test_file.write_bytes(b"fake video data")
        mock_run.return_value = MagicMock(stdout="not json")

        with pytest.raises(FFmpegError, match="Failed to parse"):
            FFmpegWrapper().get_duration(str(test_file))


class TestGetChapters:
    @patch("subprocess.run")
    def test_chapters(self, mock_run):
        """Should return chapter titles and start times."""
        mock_run.return_value = MagicMock(
            stdout=json.dumps(
                {
                    "chapters": [
                        {"start_time": "0.000000", "tags": {"title": "Cold Open"}},
                        {"start_time": "60.000000", "tags": {"title": "Opening"}},
                        {"start_time": "150.000000"},
                    ]
                }
            )
        )

        chapters = FFmpegWrapper().get_chapters("/media/ep.mkv")

        assert [c.name for c in chapters] == ["Cold Open", "Opening", None]
        assert [c.start for c in chapters] == [0.0, 60.0, 150.0]

    @patch("subprocess.run")
    def test_no_chapters(self, mock_run):
        """Files without chapters give an empty list."""
        mock_run.return_value = MagicMock(stdout="{}")

        assert FFmpegWrapper().get_chapters("/media/ep.mkv") == []


class TestFingerprint:
    @patch("subprocess.run")
    def test_intro_window(self, mock_run, make_episode):
        """Introductions are fingerprinted from the start of the file."""
        raw = np.array([1, 2, 0xFFFFFFFF], dtype="<u4").tobytes()
        mock_run.return_value = MagicMock(stdout=raw)
        episode = make_episode(intro_fingerprint_end=450)

        points = FFmpegWrapper().fingerprint(episode, AnalysisMode.INTRODUCTION)

        assert points.tolist() == [1, 2, 0xFFFFFFFF]
        args = mock_run.call_args[0][0]
        assert args[args.index("-ss") + 1] == "0.0"
        assert args[args.index("-t") + 1] == "450.0"
        assert "chromaprint" in args

    @patch("subprocess.run")
    def test_credits_window(self, mock_run, make_episode):
        """Credits are fingerprinted up to the end of the file."""
        mock_run.return_value = MagicMock(stdout=np.arange(4, dtype="<u4").tobytes())
        episode = make_episode(duration=1800.0, credits_fingerprint_start=1500)

        FFmpegWrapper().fingerprint(episode, AnalysisMode.CREDITS)

        args = mock_run.call_args[0][0]
        assert args[args.index("-ss") + 1] == "1500.0"
        assert args[args.index("-t") + 1] == "300.0"

    @patch("subprocess.run")
    def test_empty_output(self, mock_run, make_episode):
        """An empty fingerprint is an error."""
        mock_run.return_value = MagicMock(stdout=b"")

        with pytest.raises(FingerprintError, match="Invalid fingerprint"):
            FFmpegWrapper().fingerprint(make_episode(), AnalysisMode.INTRODUCTION)

    @patch("subprocess.run")
    def test_ffmpeg_failure(self, mock_run, make_episode):
        """ffmpeg failures are reported as fingerprint errors."""
        mock_run.side_effect = subprocess.CalledProcessError(1, "ffmpeg", stderr=b"boom")

        with pytest.raises(FingerprintError, match="boom"):
            FFmpegWrapper().fingerprint(make_episode(), AnalysisMode.INTRODUCTION)

    @patch("subprocess.run")
    def test_cache(self, mock_run, tmp_path, make_episode):
        """Fingerprints are cached per episode and mode."""
        mock_run.return_value = MagicMock(stdout=np.array([7, 8, 9], dtype="<u4").tobytes())
        wrapper = FFmpegWrapper(cache_dir=tmp_path)
        episode = make_episode(episode_id="abc")

        first = wrapper.fingerprint(episode, AnalysisMode.CREDITS)
        second = wrapper.fingerprint(episode, AnalysisMode.CREDITS)

        assert mock_run.call_count == 1
        assert second.tolist() == first.tolist() == [7, 8, 9]
        assert (tmp_path / "abc-credits").exists()
        assert not (tmp_path / "abc").exists()

    def test_from_config_cache_dir(self, tmp_path):
        """The cache lives under the data directory unless disabled."""
        config = Config()
        config.paths.data_dir = str(tmp_path)

        assert FFmpegWrapper.from_config(config).cache_dir == tmp_path / "cache"

        config.fingerprint.cache_fingerprints = False
        assert FFmpegWrapper.from_config(config).cache_dir is None


class TestBlackFrames:
    def test_parse_filters_by_minimum(self):
        """Only frames at least minimum percent black are kept."""
        frames = parse_black_frames(BLACKFRAME_OUTPUT, 85)

        assert [f.percentage for f in frames] == [99, 100]
        assert frames[0].time == pytest.approx(0.041708)

    def test_parse_no_frames(self):
        """Output without blackframe lines gives no frames."""
        assert parse_black_frames("frame=   48 fps=0.0\n", 85) == []

    @patch("subprocess.run")
    def test_detect_black_frames(self, mock_run, make_episode):
        """Scans the requested window and parses stderr."""
        mock_run.return_value = MagicMock(stderr=BLACKFRAME_OUTPUT)

        frames = FFmpegWrapper().detect_black_frames(
            make_episode(), TimeRange(start=1700, end=1702), 85
        )

        assert len(frames) == 2
        args = mock_run.call_args[0][0]
        assert args[args.index("-ss") + 1] == "1700.0"
        assert args[args.index("-t") + 1] == "2.0"
        assert "blackframe=amount=50" in args


class TestOutputDecoding:
    @patch("subprocess.run")
    def test_text_output_replaces_invalid_bytes(self, mock_run):
        """Text output is decoded leniently."""
        mock_run.return_value = MagicMock(stdout="{}")

        FFmpegWrapper().get_chapters("/media/ep.mkv")

        assert mock_run.call_args.kwargs["text"] is True
        assert mock_run.call_args.kwargs["errors"] == "replace"

    @patch("subprocess.run")
    def test_binary_output_not_decoded(self, mock_run, make_episode):
        """Raw fingerprints are read as bytes."""
        mock_run.return_value = MagicMock(stdout=np.arange(4, dtype="<u4").tobytes())

        FFmpegWrapper().fingerprint(make_episode(), AnalysisMode.INTRODUCTION)

        assert mock_run.call_args.kwargs["text"] is False
        assert mock_run.call_args.kwargs["errors"] is None

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    def test_non_utf8_metadata(self, fake_ffmpeg, make_episode):
        """Black frames are still parsed when stderr echoes non-UTF-8 tags."""
        wrapper = FFmpegWrapper(ffmpeg_path=fake_ffmpeg())
        episode = make_episode(path="/media/with-credits.mkv")

        frames = wrapper.detect_black_frames(episode, TimeRange(start=1700, end=1702), 85)

        assert len(frames) == 1
        assert frames[0].percentage == 100

    @pytest.mark.skipif(sys.platform == "win32", reason="needs a POSIX shell")
    def test_non_utf8_metadata_without_frames(self, fake_ffmpeg, make_episode):
        """Undecodable output without black frames gives no frames."""
        wrapper = FFmpegWrapper(ffmpeg_path=fake_ffmpeg())
        episode = make_episode(path="/media/plain.mkv")

        assert wrapper.detect_black_frames(episode, TimeRange(start=0, end=2), 85) == []


class TestFingerprintCache:
    @pytest.mark.parametrize("contents", ["", "\n", "12\nnot-a-number\n"])
    @patch("subprocess.run")
    def test_bad_cache_is_refreshed(self, mock_run, contents, tmp_path, make_episode):
        """Empty or unreadable cache entries are replaced by a new fingerprint."""
        mock_run.return_value = MagicMock(stdout=np.array([4, 5, 6], dtype="<u4").tobytes())
        (tmp_path / "abc").write_text(contents)
        wrapper = FFmpegWrapper(cache_dir=tmp_path)

        points = wrapper.fingerprint(make_episode(episode_id="abc"), AnalysisMode.INTRODUCTION)

        assert points.tolist() == [4, 5, 6]
        assert mock_run.call_count == 1
        assert (tmp_path / "abc").read_text().split() == ["4", "5", "6"]

    def test_empty_cache_without_ffmpeg(self, tmp_path, make_episode):
        """An empty cache entry is never returned as a valid fingerprint."""
        (tmp_path / "abc").write_text("")
        wrapper = FFmpegWrapper(ffmpeg_path=str(tmp_path / "missing-ffmpeg"), cache_dir=tmp_path)

        with pytest.raises(FingerprintError):
            wrapper.fingerprint(make_episode(episode_id="abc"), AnalysisMode.INTRODUCTION)

        assert not (tmp_path / "abc").exists()

    @patch("subprocess.run")
    def test_cache_write_leaves_no_partial_file(self, mock_run, tmp_path, make_episode):
        """The cache is written through a temporary file."""
        mock_run.return_value = MagicMock(stdout=np.array([1, 2], dtype="<u4").tobytes())
        wrapper = FFmpegWrapper(cache_dir=tmp_path / "cache")

        wrapper.fingerprint(make_episode(episode_id="abc"), AnalysisMode.CREDITS)

        assert sorted(p.name for p in (tmp_path / "cache").iterdir()) == ["abc-credits"]
