"""Caption Burner — styled, burned-in caption tracks for video.

WHY: Short-form video needs captions composited into the pixels, styled
per brand (reel pulses, classic lower thirds, slide-ins). Editors hand us
either a raw transcript or timed segments plus a nested style description,
and expect a finished video file back.

HOW: Three-stage pipeline — segment (derive timing from text), compile
(style + segments → ASS subtitle document), burn (ffmpeg renders the
document into the video inside an asynchronous export job). Each stage is
independently testable.

RULES:
- The compiler is a pure function of (segments, style, resolution)
- Export jobs report monotonic progress and exactly one terminal status
- The transcoding engine is an external subprocess, never linked in
"""

__version__ = "0.1.0"
