"""Transcode invoker — burns an ASS document into a video with ffmpeg.

WHY: The export job manager should not know how ffmpeg is driven, how
its progress output looks, or how failures surface. It only needs a
stream of events: some progress fractions, then exactly one terminal
outcome. Keeping that contract narrow lets tests feed synthetic event
streams into the manager and lets the engine be swapped.

HOW: TranscodeInvoker.run() is an async generator:
  1. build_command() assembles the ffmpeg argv (scale + ass filter,
     encoder from CODEC_MAP, CRF from CRF_MAP, machine-readable
     ``-progress pipe:1`` output on stdout)
  2. spawns ffmpeg with asyncio and drains stderr concurrently into a
     bounded tail buffer (used for error messages)
  3. parses ``out_time=HH:MM:SS.ffffff`` markers on stdout, divides by
     the probed duration and yields TranscodeProgress
  4. on exit yields TranscodeSucceeded or TranscodeFailed

RULES:
- Fractions are in [0, 0.99] and strictly increasing across yields;
  0.02 is yielded right after the process starts
- Unknown duration (<= 0) → only the 0.02 milestone, no interpolation
- Exactly one terminal event, always last
- Failed runs delete any partial output file
- Abandoning the iterator kills the subprocess
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Deque, Dict, List, Optional, Union

from caption_burner.config import (
    ENCODER_PRESET,
    FFMPEG_BINARY,
    TRANSCODE_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)

CRF_MAP: Dict[str, int] = {"low": 28, "medium": 23, "high": 18}

CODEC_MAP: Dict[str, str] = {
    "h264": "libx264",
    "h265": "libx265",
    "vp9": "libvpx-vp9",
    "av1": "libaom-av1",
}

OUTPUT_FORMATS = ("mp4", "mov", "webm")
WEBM_CODECS = ("vp9", "av1")

START_FRACTION = 0.02
MAX_FRACTION = 0.99
STDERR_TAIL_LINES = 20

_PROGRESS_RE = re.compile(r"(?:out_)?time=(\d+):(\d+):(\d+(?:\.\d+)?)")
_RESOLUTION_RE = re.compile(r"^(\d+)x(\d+)$")


@dataclass(frozen=True)
class EncodeOptions:
    """Output encode parameters for one burn-in.

    RULES:
    - format: mp4 | mov | webm
    - codec: h264 | h265 | vp9 | av1 (webm only with vp9 / av1)
    - quality: low | medium | high → CRF 28 / 23 / 18
    - resolution: optional "WIDTHxHEIGHT"; None keeps the source size
    - fps: optional positive frame rate
    """

    format: str = "mp4"
    codec: str = "h264"
    quality: str = "medium"
    resolution: Optional[str] = None
    fps: Optional[float] = None

    @property
    def crf(self) -> int:
        return CRF_MAP[self.quality]

    @property
    def encoder(self) -> str:
        return CODEC_MAP[self.codec]

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EncodeOptions":
        """Merge client overrides over the defaults, raising ValueError on bad values."""
        data = {k: v for k, v in (data or {}).items() if v is not None}

        fmt = str(data.get("format", cls.format)).lower()
        codec = str(data.get("codec", cls.codec)).lower()
        quality = str(data.get("quality", cls.quality)).lower()
        resolution = data.get("resolution")
        fps = data.get("fps")

        if fmt not in OUTPUT_FORMATS:
            raise ValueError("Unsupported output format {!r}; expected one of {}".format(
                fmt, ", ".join(OUTPUT_FORMATS)))
        if codec not in CODEC_MAP:
            raise ValueError("Unsupported codec {!r}; expected one of {}".format(
                codec, ", ".join(CODEC_MAP)))
        if quality not in CRF_MAP:
            raise ValueError("Unsupported quality {!r}; expected one of {}".format(
                quality, ", ".join(CRF_MAP)))
        if fmt == "webm" and codec not in WEBM_CODECS:
            raise ValueError("webm output requires the vp9 or av1 codec, got {!r}".format(codec))

        if resolution is not None:
            resolution = str(resolution).strip().lower()
            match = _RESOLUTION_RE.match(resolution)
            if not match or int(match.group(1)) <= 0 or int(match.group(2)) <= 0:
                raise ValueError("Invalid resolution {!r}; expected WIDTHxHEIGHT".format(data["resolution"]))

        if fps is not None:
            if isinstance(fps, bool):
                raise ValueError("Invalid fps {!r}".format(fps))
            try:
                fps = float(fps)
            except (TypeError, ValueError):
                raise ValueError("Invalid fps {!r}".format(fps)) from None
            if fps <= 0:
                raise ValueError("fps must be positive, got {}".format(fps))

        return cls(format=fmt, codec=codec, quality=quality, resolution=resolution, fps=fps)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": self.format,
            "codec": self.codec,
            "quality": self.quality,
            "resolution": self.resolution,
            "fps": self.fps,
        }


@dataclass(frozen=True)
class TranscodeProgress:
    """Non-terminal progress tick; fraction in [0, 1)."""

    fraction: float

    @property
    def percent(self) -> int:
        return max(0, min(99, int(self.fraction * 100)))


@dataclass(frozen=True)
class TranscodeSucceeded:
    """Terminal success; output_path holds the finished file."""

    output_path: Path


@dataclass(frozen=True)
class TranscodeFailed:
    """Terminal failure with a human-readable message."""

    message: str


TranscodeEvent = Union[TranscodeProgress, TranscodeSucceeded, TranscodeFailed]


def escape_filter_path(path: Path) -> str:
    """Quote a path for use inside an ffmpeg filter argument.

    Backslashes are doubled, colons escaped, and the result wrapped in
    single quotes; a literal single quote closes, escapes, and reopens.
    """
    text = str(path).replace("\\", "\\\\").replace(":", "\\:")
    text = text.replace("'", "'\\''")
    return "'{}'".format(text)


def parse_progress_seconds(line: str) -> Optional[float]:
    """Extract elapsed seconds from an ffmpeg progress or stats line."""
    match = _PROGRESS_RE.search(line)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def _remove_partial(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError as exc:
        logger.warning("Could not remove partial output %s: %s", path, exc)
    else:
        logger.info("Removed partial output %s", path)


class TranscodeInvoker:
    """Drive ffmpeg to burn a subtitle document into a video.

    WHY: One place owns the ffmpeg command line and the translation of
    its output into TranscodeEvents.

    RULES:
    - run() may be iterated once per call; each call spawns one process
    - timeout_seconds bounds the whole run; None disables it
    """

    def __init__(
        self,
        binary: str = FFMPEG_BINARY,
        preset: str = ENCODER_PRESET,
        timeout_seconds: Optional[float] = TRANSCODE_TIMEOUT_SECONDS,
    ) -> None:
        self.binary = binary
        self.preset = preset
        self.timeout_seconds = timeout_seconds if timeout_seconds and timeout_seconds > 0 else None

    def build_command(
        self,
        input_path: Path,
        subtitle_path: Path,
        output_path: Path,
        options: EncodeOptions,
    ) -> List[str]:
        """Assemble the ffmpeg argv for one burn-in."""
        filters = []
        if options.resolution:
            width, height = options.resolution.split("x")
            filters.append("scale={}:{}".format(width, height))
        filters.append("ass={}".format(escape_filter_path(Path(subtitle_path).resolve())))

        cmd = [
            self.binary, "-hide_banner", "-y",
            "-i", str(input_path),
            "-vf", ",".join(filters),
            "-c:v", options.encoder,
            "-crf", str(options.crf),
            "-preset", self.preset,
        ]
        if options.codec in WEBM_CODECS:
            # Constant-quality mode for libvpx / libaom
            cmd += ["-b:v", "0"]
        cmd += ["-pix_fmt", "yuv420p"]
        if options.fps:
            fps = options.fps
            cmd += ["-r", str(int(fps)) if float(fps).is_integer() else str(fps)]
        if options.format == "webm":
            cmd += ["-c:a", "libopus"]
        else:
            cmd += ["-c:a", "copy"]
        cmd += ["-progress", "pipe:1", "-nostats", str(output_path)]
        return cmd

    async def _drain(self, stream: Optional[asyncio.StreamReader], tail: Deque[str]) -> None:
        if stream is None:
            return
        async for raw in stream:
            line = raw.decode("utf-8", errors="replace").strip()
            if line:
                tail.append(line)

    async def run(
        self,
        input_path: Path,
        subtitle_path: Path,
        output_path: Path,
        options: EncodeOptions,
        duration: float = 0.0,
    ) -> AsyncIterator[TranscodeEvent]:
        """Run one burn-in and yield its events.

        Args:
            input_path: Source video.
            subtitle_path: Compiled ASS document.
            output_path: Destination file (overwritten).
            options: Encode parameters.
            duration: Probed source duration in seconds; <= 0 if unknown.

        Yields:
            TranscodeProgress events, then one TranscodeSucceeded or
            TranscodeFailed.
        """
        output_path = Path(output_path)
        cmd = self.build_command(Path(input_path), Path(subtitle_path), output_path, options)
        logger.debug("Running %s", " ".join(cmd))

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            yield TranscodeFailed("Could not start {}: {}".format(self.binary, exc))
            return

        tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        stderr_task = asyncio.create_task(self._drain(proc.stderr, tail))
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds if self.timeout_seconds else None

        def remaining() -> Optional[float]:
            if deadline is None:
                return None
            return max(0.0, deadline - loop.time())

        timed_out = False
        try:
            last = START_FRACTION
            yield TranscodeProgress(START_FRACTION)

            try:
                while True:
                    raw = await asyncio.wait_for(proc.stdout.readline(), remaining())
                    if not raw:
                        break
                    if duration <= 0:
                        continue
                    seconds = parse_progress_seconds(raw.decode("utf-8", errors="replace"))
                    if seconds is None:
                        continue
                    fraction = min(MAX_FRACTION, max(0.0, seconds / duration))
                    if fraction > last:
                        last = fraction
                        yield TranscodeProgress(fraction)

                await asyncio.wait_for(proc.wait(), remaining())
                await asyncio.wait_for(stderr_task, remaining())
            except asyncio.TimeoutError:
                timed_out = True
        finally:
            if proc.returncode is None:
                proc.kill()
                await proc.wait()
            if not stderr_task.done():
                stderr_task.cancel()

        if timed_out:
            _remove_partial(output_path)
            yield TranscodeFailed("ffmpeg timed out after {:.0f}s".format(self.timeout_seconds or 0))
            return

        if proc.returncode != 0:
            _remove_partial(output_path)
            message = "ffmpeg exited with code {}".format(proc.returncode)
            detail = "\n".join(tail)[-1000:]
            if detail:
                message = "{}: {}".format(message, detail)
            yield TranscodeFailed(message)
            return

        if not output_path.exists() or output_path.stat().st_size == 0:
            _remove_partial(output_path)
            yield TranscodeFailed("ffmpeg produced no output at {}".format(output_path))
            return

        yield TranscodeSucceeded(output_path)
