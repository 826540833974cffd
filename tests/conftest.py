"""Shared pytest fixtures for caption-burner tests.

WHY: The export pipeline talks to ffprobe, ffmpeg, and the filesystem.
Most tests only care about how the job manager reacts to what those
collaborators report, so they get scripted fakes here instead.

HOW:
  sample_segments — three ordered, renderable captions
  video_file      — a small placeholder "video" on disk
  make_manager    — factory building an ExportJobManager wired to
                    FakeResolver, FakeProber, and FakeInvoker

FakeInvoker replays a script of events. The string "succeed" in the
script means "write the output file and yield TranscodeSucceeded", so
downloads have real bytes to stream.

RULES:
- No fixture spawns a subprocess
- All files live under pytest's tmp_path
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

from caption_burner.core.ir import CaptionSegment
from caption_burner.engine.probe import BaseProber, MediaInfo, ProbeError
from caption_burner.engine.transcoder import TranscodeProgress, TranscodeSucceeded
from caption_burner.export.jobs import InMemoryJobStore
from caption_burner.export.manager import ExportJobManager
from caption_burner.export.media import MediaNotFoundError, MediaResolver

SUCCEED = "succeed"
OUTPUT_BYTES = b"fake burned-in video bytes"


class FakeResolver(MediaResolver):
    """Resolves every ID in ``videos``; anything else is not found."""

    def __init__(self, videos: Dict[str, Path]) -> None:
        self.videos = videos

    def resolve(self, video_id: str) -> Path:
        if video_id not in self.videos:
            raise MediaNotFoundError("Video not found: {}".format(video_id))
        return self.videos[video_id]


class FakeProber(BaseProber):
    def __init__(self, info: Optional[MediaInfo] = None, error: Optional[str] = None) -> None:
        self.info = info or MediaInfo(width=1080, height=1920, duration=10.0)
        self.error = error
        self.calls: List[Path] = []

    async def probe(self, path: Path) -> MediaInfo:
        self.calls.append(path)
        if self.error:
            raise ProbeError(self.error)
        return self.info


class FakeInvoker:
    """Replays scripted transcode events.

    ``gate`` (an asyncio.Event created lazily inside the loop) holds the
    stream before its terminal event when ``hold`` is True.
    """

    def __init__(self, events: Optional[List[Any]] = None, hold: bool = False) -> None:
        self.events = events if events is not None else [
            TranscodeProgress(0.02),
            TranscodeProgress(0.5),
            SUCCEED,
        ]
        self.hold = hold
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[Dict[str, Any]] = []

    def release(self) -> None:
        if self.gate is not None:
            self.gate.set()

    async def run(self, input_path, subtitle_path, output_path, options, duration=0.0):
        self.calls.append({
            "input_path": input_path,
            "subtitle_path": subtitle_path,
            "output_path": output_path,
            "options": options,
            "duration": duration,
        })
        if self.hold and self.gate is None:
            self.gate = asyncio.Event()
        for event in self.events:
            await asyncio.sleep(0)
            if event == SUCCEED:
                if self.gate is not None:
                    await self.gate.wait()
                Path(output_path).write_bytes(OUTPUT_BYTES)
                yield TranscodeSucceeded(Path(output_path))
            else:
                if self.gate is not None and not isinstance(event, TranscodeProgress):
                    await self.gate.wait()
                yield event


@pytest.fixture
def sample_segments() -> List[CaptionSegment]:
    return [
        CaptionSegment(id="c1", text="Hello world", start_time=0.0, end_time=1.5),
        CaptionSegment(id="c2", text="This is a test", start_time=1.5, end_time=3.0),
        CaptionSegment(id="c3", text="Goodbye", start_time=3.0, end_time=4.25),
    ]


@pytest.fixture
def sample_captions() -> List[Dict[str, Any]]:
    """The same captions as sample_segments, in the camelCase wire shape."""
    return [
        {"id": "c1", "text": "Hello world", "startTime": 0.0, "endTime": 1.5},
        {"id": "c2", "text": "This is a test", "startTime": 1.5, "endTime": 3.0},
        {"id": "c3", "text": "Goodbye", "startTime": 3.0, "endTime": 4.25},
    ]


@pytest.fixture
def video_file(tmp_path) -> Path:
    path = tmp_path / "input.mp4"
    path.write_bytes(b"\x00\x00\x00\x18ftypmp42")
    return path


@pytest.fixture
def make_manager(tmp_path, video_file):
    """Factory: make_manager(invoker=None, prober=None, store=None) → (manager, invoker, prober)."""

    def _make(
        invoker: Optional[FakeInvoker] = None,
        prober: Optional[FakeProber] = None,
        store: Optional[InMemoryJobStore] = None,
        job_ttl_seconds: float = 3600,
    ):
        invoker = invoker or FakeInvoker()
        prober = prober or FakeProber()
        manager = ExportJobManager(
            store=store or InMemoryJobStore(),
            resolver=FakeResolver({"vid1": video_file}),
            prober=prober,
            invoker=invoker,
            exports_dir=tmp_path / "exports",
            public_prefix="/export",
            job_ttl_seconds=job_ttl_seconds,
        )
        return manager, invoker, prober

    return _make
