"""Tests for the ffmpeg transcode invoker and media probing.

WHY: The invoker is the only code that spawns the encoder. Its event
stream drives job progress and decides whether a job completes or
fails, so its contract (monotonic fractions, exactly one terminal event,
partial files cleaned up) is tested against real subprocesses.

HOW: Command construction and option parsing are tested directly. Run
behaviour uses ScriptedInvoker, which swaps the ffmpeg argv for a small
Python script that prints ``out_time=`` progress lines the way
``ffmpeg -progress pipe:1`` does, then exits with a chosen status.

RULES:
- No test needs ffmpeg or ffprobe installed
- Each subprocess test runs inside its own asyncio.run()
"""

import asyncio
import sys
import time
from pathlib import Path, PureWindowsPath

import pytest

from caption_burner.engine.probe import FFprobeProber, ProbeError, parse_probe_output
from caption_burner.engine.transcoder import (
    EncodeOptions,
    TranscodeFailed,
    TranscodeInvoker,
    TranscodeProgress,
    TranscodeSucceeded,
    escape_filter_path,
    parse_progress_seconds,
)

SUCCESS_SCRIPT = """
import pathlib, sys
for t in ("00:00:02.000000", "00:00:05.000000", "00:00:05.000000", "00:00:04.000000"):
    print("out_time=" + t, flush=True)
    print("progress=continue", flush=True)
sys.stderr.write("encoder chatter\\n")
pathlib.Path(sys.argv[1]).write_bytes(b"burned")
print("progress=end", flush=True)
"""

OVERRUN_SCRIPT = """
import pathlib, sys
print("out_time=00:00:12.000000", flush=True)
pathlib.Path(sys.argv[1]).write_bytes(b"burned")
"""

FAILURE_SCRIPT = """
import pathlib, sys
pathlib.Path(sys.argv[1]).write_bytes(b"partial")
sys.stderr.write("Unable to parse option value\\nboom: invalid filter\\n")
sys.exit(3)
"""

NO_OUTPUT_SCRIPT = """
print("progress=end", flush=True)
"""

SLOW_SCRIPT = """
import time
print("out_time=00:00:01.000000", flush=True)
time.sleep(10)
"""


class ScriptedInvoker(TranscodeInvoker):
    """TranscodeInvoker that runs a Python script instead of ffmpeg."""

    def __init__(self, script, **kwargs):
        super().__init__(**kwargs)
        self.script = script

    def build_command(self, input_path, subtitle_path, output_path, options):
        return [sys.executable, "-c", self.script, str(output_path)]


def _collect(invoker, tmp_path, duration=10.0, options=None):
    async def _run():
        events = invoker.run(
            tmp_path / "in.mp4",
            tmp_path / "subs.ass",
            tmp_path / "out.mp4",
            options or EncodeOptions(),
            duration,
        )
        return [event async for event in events]

    return asyncio.run(_run())


# ---------------------------------------------------------------------------
# EncodeOptions
# ---------------------------------------------------------------------------


class TestEncodeOptions:
    def test_defaults(self):
        opts = EncodeOptions.from_dict(None)
        assert (opts.format, opts.codec, opts.quality) == ("mp4", "h264", "medium")
        assert opts.crf == 23
        assert opts.encoder == "libx264"

    def test_case_insensitive(self):
        opts = EncodeOptions.from_dict({"format": "MOV", "codec": "H265", "quality": "High"})
        assert (opts.format, opts.codec, opts.quality) == ("mov", "h265", "high")
        assert opts.crf == 18
        assert opts.encoder == "libx265"

    def test_none_values_use_defaults(self):
        assert EncodeOptions.from_dict({"format": None, "fps": None}) == EncodeOptions()

    @pytest.mark.parametrize("data", [
        {"format": "avi"},
        {"codec": "mpeg2"},
        {"quality": "ultra"},
        {"format": "webm", "codec": "h264"},
        {"resolution": "1280x"},
        {"resolution": "0x720"},
        {"fps": 0},
        {"fps": -24},
        {"fps": True},
        {"fps": "fast"},
    ])
    def test_invalid(self, data):
        with pytest.raises(ValueError):
            EncodeOptions.from_dict(data)

    def test_webm_with_vp9(self):
        opts = EncodeOptions.from_dict({"format": "webm", "codec": "vp9", "quality": "low"})
        assert opts.encoder == "libvpx-vp9"
        assert opts.crf == 28

    def test_resolution_and_fps(self):
        opts = EncodeOptions.from_dict({"resolution": "1280X720", "fps": "30"})
        assert opts.resolution == "1280x720"
        assert opts.fps == 30.0


class TestProgressEvent:
    def test_percent(self):
        assert TranscodeProgress(0.5).percent == 50

    def test_percent_clamped(self):
        assert TranscodeProgress(1.2).percent == 99
        assert TranscodeProgress(-0.1).percent == 0


# ---------------------------------------------------------------------------
# Command line
# ---------------------------------------------------------------------------


class TestFilterPath:
    def test_plain_path_quoted(self):
        assert escape_filter_path(Path("/tmp/subs.ass")) == "'/tmp/subs.ass'"

    def test_colon_escaped(self):
        assert escape_filter_path(Path("/tmp/my:subs.ass")) == "'/tmp/my\\:subs.ass'"

    def test_windows_path(self):
        assert escape_filter_path(PureWindowsPath("C:/subs/a.ass")) == "'C\\:\\\\subs\\\\a.ass'"

    def test_single_quote(self):
        assert escape_filter_path(Path("/tmp/it's.ass")) == "'/tmp/it'\\''s.ass'"


class TestParseProgress:
    def test_progress_pipe_line(self):
        assert parse_progress_seconds("out_time=00:01:02.500000") == pytest.approx(62.5)

    def test_stats_line(self):
        assert parse_progress_seconds("frame=12 fps=30 time=01:00:10.00 bitrate=1k") == pytest.approx(3610.0)

    def test_unrelated_lines(self):
        assert parse_progress_seconds("out_time_ms=123456") is None
        assert parse_progress_seconds("progress=continue") is None


class TestBuildCommand:
    def test_default_command(self, tmp_path):
        invoker = TranscodeInvoker(binary="ffmpeg", preset="medium")
        subs = tmp_path / "subs.ass"
        cmd = invoker.build_command(Path("in.mp4"), subs, Path("out.mp4"), EncodeOptions())

        assert cmd[0] == "ffmpeg"
        assert cmd[cmd.index("-i") + 1] == "in.mp4"
        assert cmd[cmd.index("-vf") + 1] == "ass=" + escape_filter_path(subs.resolve())
        assert cmd[cmd.index("-c:v") + 1] == "libx264"
        assert cmd[cmd.index("-crf") + 1] == "23"
        assert cmd[cmd.index("-preset") + 1] == "medium"
        assert cmd[cmd.index("-pix_fmt") + 1] == "yuv420p"
        assert cmd[cmd.index("-c:a") + 1] == "copy"
        assert cmd[cmd.index("-progress") + 1] == "pipe:1"
        assert "-b:v" not in cmd
        assert "-r" not in cmd
        assert cmd[-1] == "out.mp4"

    def test_scale_before_subtitles(self, tmp_path):
        invoker = TranscodeInvoker(binary="ffmpeg")
        opts = EncodeOptions.from_dict({"resolution": "1280x720"})
        cmd = invoker.build_command(Path("in.mp4"), tmp_path / "s.ass", Path("out.mp4"), opts)
        assert cmd[cmd.index("-vf") + 1].startswith("scale=1280:720,ass='")

    def test_webm_vp9(self, tmp_path):
        invoker = TranscodeInvoker(binary="ffmpeg")
        opts = EncodeOptions.from_dict({"format": "webm", "codec": "vp9", "quality": "high"})
        cmd = invoker.build_command(Path("in.mp4"), tmp_path / "s.ass", Path("out.webm"), opts)
        assert cmd[cmd.index("-c:v") + 1] == "libvpx-vp9"
        assert cmd[cmd.index("-crf") + 1] == "18"
        assert cmd[cmd.index("-b:v") + 1] == "0"
        assert cmd[cmd.index("-c:a") + 1] == "libopus"

    @pytest.mark.parametrize("fps,expected", [(30, "30"), (29.97, "29.97")])
    def test_frame_rate(self, tmp_path, fps, expected):
        invoker = TranscodeInvoker(binary="ffmpeg")
        opts = EncodeOptions.from_dict({"fps": fps})
        cmd = invoker.build_command(Path("in.mp4"), tmp_path / "s.ass", Path("out.mp4"), opts)
        assert cmd[cmd.index("-r") + 1] == expected


# ---------------------------------------------------------------------------
# Running a process
# ---------------------------------------------------------------------------


class TestRun:
    def test_success_event_stream(self, tmp_path):
        events = _collect(ScriptedInvoker(SUCCESS_SCRIPT), tmp_path)

        assert events[:-1] == [
            TranscodeProgress(0.02),
            TranscodeProgress(0.2),
            TranscodeProgress(0.5),
        ]
        assert events[-1] == TranscodeSucceeded(tmp_path / "out.mp4")
        assert (tmp_path / "out.mp4").read_bytes() == b"burned"

    def test_fractions_strictly_increase_and_cap(self, tmp_path):
        events = _collect(ScriptedInvoker(OVERRUN_SCRIPT), tmp_path)
        fractions = [e.fraction for e in events if isinstance(e, TranscodeProgress)]

        assert fractions == [0.02, 0.99]
        assert isinstance(events[-1], TranscodeSucceeded)

    def test_unknown_duration_only_start_milestone(self, tmp_path):
        events = _collect(ScriptedInvoker(SUCCESS_SCRIPT), tmp_path, duration=0.0)
        assert events == [TranscodeProgress(0.02), TranscodeSucceeded(tmp_path / "out.mp4")]

    def test_non_zero_exit(self, tmp_path):
        events = _collect(ScriptedInvoker(FAILURE_SCRIPT), tmp_path)

        assert sum(isinstance(e, (TranscodeSucceeded, TranscodeFailed)) for e in events) == 1
        failure = events[-1]
        assert isinstance(failure, TranscodeFailed)
        assert failure.message.startswith("ffmpeg exited with code 3")
        assert "boom: invalid filter" in failure.message
        assert not (tmp_path / "out.mp4").exists()

    def test_missing_output(self, tmp_path):
        events = _collect(ScriptedInvoker(NO_OUTPUT_SCRIPT), tmp_path)
        assert isinstance(events[-1], TranscodeFailed)
        assert "no output" in events[-1].message

    def test_timeout_kills_process(self, tmp_path):
        started = time.monotonic()
        events = _collect(ScriptedInvoker(SLOW_SCRIPT, timeout_seconds=0.5), tmp_path)

        assert isinstance(events[-1], TranscodeFailed)
        assert "timed out" in events[-1].message
        assert time.monotonic() - started < 8

    def test_missing_binary(self, tmp_path):
        invoker = TranscodeInvoker(binary=str(tmp_path / "no-such-ffmpeg"))
        events = _collect(invoker, tmp_path)

        assert len(events) == 1
        assert isinstance(events[0], TranscodeFailed)
        assert "Could not start" in events[0].message

    def test_abandoned_iterator_kills_process(self, tmp_path):
        invoker = ScriptedInvoker(SLOW_SCRIPT)

        async def _run():
            events = invoker.run(tmp_path / "in.mp4", tmp_path / "s.ass", tmp_path / "out.mp4", EncodeOptions(), 10.0)
            first = await events.__anext__()
            await events.aclose()
            return first

        started = time.monotonic()
        first = asyncio.run(_run())

        assert first == TranscodeProgress(0.02)
        assert time.monotonic() - started < 8


# ---------------------------------------------------------------------------
# Probe
# ---------------------------------------------------------------------------


class TestProbe:
    def test_first_video_stream(self):
        info = parse_probe_output({
            "streams": [
                {"codec_type": "audio", "duration": "99"},
                {"codec_type": "video", "width": 1920, "height": 1080, "duration": "12.5"},
            ],
            "format": {"duration": "13.0"},
        })
        assert (info.width, info.height, info.duration) == (1920, 1080, 12.5)
        assert info.resolution == "1920x1080"

    def test_format_duration_fallback(self):
        info = parse_probe_output({
            "streams": [{"codec_type": "video", "width": 720, "height": 1280}],
            "format": {"duration": "8.25"},
        })
        assert info.duration == 8.25

    def test_defaults_when_missing(self):
        info = parse_probe_output({})
        assert (info.width, info.height, info.duration) == (1080, 1920, 0.0)

    def test_missing_binary_raises(self, tmp_path):
        prober = FFprobeProber(binary=str(tmp_path / "no-such-ffprobe"))
        with pytest.raises(ProbeError):
            asyncio.run(prober.probe(tmp_path / "in.mp4"))
