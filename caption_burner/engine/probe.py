"""Media probing via ffprobe.

WHY: The export pipeline needs the source video's pixel size (to lay out
captions and default the output resolution) and its duration (to turn
the engine's elapsed-time markers into progress fractions).

HOW: FFprobeProber runs ``ffprobe -print_format json -show_streams
-show_format`` as an asyncio subprocess and reads the first video stream.
BaseProber is the seam the job manager depends on, so tests can inject a
fake without spawning processes.

RULES:
- Missing width/height → 1080x1920 (vertical video default)
- Missing or unparsable duration → 0.0 (progress degrades to milestones)
- Non-zero exit, spawn failure, or invalid JSON → ProbeError
"""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from caption_burner.config import FFPROBE_BINARY

logger = logging.getLogger(__name__)

DEFAULT_WIDTH = 1080
DEFAULT_HEIGHT = 1920


class ProbeError(RuntimeError):
    """Raised when a media file cannot be probed."""


@dataclass(frozen=True)
class MediaInfo:
    """Geometry and length of a media file."""

    width: int
    height: int
    duration: float

    @property
    def resolution(self) -> str:
        return "{}x{}".format(self.width, self.height)


class BaseProber(ABC):
    """Abstract media prober."""

    @abstractmethod
    async def probe(self, path: Path) -> MediaInfo:
        """Return MediaInfo for the file at path or raise ProbeError."""


def _positive_int(value: Any) -> Optional[int]:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def _duration(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if number > 0 else None


def parse_probe_output(data: Dict[str, Any]) -> MediaInfo:
    """Extract MediaInfo from ffprobe's JSON document."""
    streams = data.get("streams") or []
    video = next((s for s in streams if s.get("codec_type") == "video"), {})
    fmt = data.get("format") or {}

    width = _positive_int(video.get("width")) or DEFAULT_WIDTH
    height = _positive_int(video.get("height")) or DEFAULT_HEIGHT
    duration = _duration(video.get("duration")) or _duration(fmt.get("duration")) or 0.0
    return MediaInfo(width=width, height=height, duration=duration)


class FFprobeProber(BaseProber):
    """Probe media with the ffprobe binary."""

    def __init__(self, binary: str = FFPROBE_BINARY) -> None:
        self.binary = binary

    async def probe(self, path: Path) -> MediaInfo:
        cmd = [
            self.binary, "-v", "error",
            "-print_format", "json",
            "-show_streams", "-show_format",
            str(path),
        ]
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ProbeError("Could not run {}: {}".format(self.binary, exc)) from exc

        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()[-500:]
            raise ProbeError("ffprobe failed for {} (exit {}): {}".format(path, proc.returncode, message))

        try:
            data = json.loads(stdout.decode("utf-8", errors="replace") or "{}")
        except json.JSONDecodeError as exc:
            raise ProbeError("ffprobe returned invalid JSON for {}".format(path)) from exc

        info = parse_probe_output(data)
        if info.duration <= 0:
            logger.warning("No duration reported for %s; progress will be coarse", path)
        return info
