"""Configuration constants, directories, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. Directories, engine binaries, and job housekeeping
limits are plain module-level constants — not buried in logic — so both
humans and coding agents can modify them confidently.

HOW: python-dotenv loads the .env file on import. Constants are read from
the environment with sensible defaults. _env_int()/_env_float() give a
clear error when a numeric override is malformed.

RULES:
- All defaults can be overridden via environment variables
- Directories are Path objects; they are created lazily by their owners
- SUPPORTED_VIDEO_FORMATS lists accepted upload extensions (lowercase, with dot)
- DEFAULT_RESOLUTION matches the compiler's fallback (portrait 1080x1920)
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (where the process is started)
load_dotenv()


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable, raising ValueError on junk."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(
            "Environment variable {} must be an integer, got {!r}".format(name, raw)
        )


def _env_float(name: str, default: float) -> float:
    """Read a float environment variable, raising ValueError on junk."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(
            "Environment variable {} must be a number, got {!r}".format(name, raw)
        )


# ---------------------------------------------------------------------------
# Storage directories
# ---------------------------------------------------------------------------

UPLOAD_DIR = Path(os.getenv("CAPTION_UPLOAD_DIR", "uploads"))
EXPORTS_DIR = Path(os.getenv("CAPTION_EXPORTS_DIR", "data/exports"))

SUPPORTED_VIDEO_FORMATS: set[str] = {
    ".mp4", ".mov", ".webm", ".avi", ".mkv", ".m4v",
}
"""Video file extensions accepted for upload (lowercase, with dot)."""

MAX_UPLOAD_BYTES = _env_int("CAPTION_MAX_UPLOAD_BYTES", 500 * 1024 * 1024)

# ---------------------------------------------------------------------------
# Transcoding engine
# ---------------------------------------------------------------------------

FFMPEG_BINARY = os.getenv("FFMPEG_BINARY", "ffmpeg")
FFPROBE_BINARY = os.getenv("FFPROBE_BINARY", "ffprobe")
ENCODER_PRESET = os.getenv("FFMPEG_PRESET", "veryfast")
TRANSCODE_TIMEOUT_SECONDS = _env_float("TRANSCODE_TIMEOUT_SECONDS", 60 * 60)

DEFAULT_RESOLUTION = "1080x1920"

# ---------------------------------------------------------------------------
# Export jobs
# ---------------------------------------------------------------------------

JOB_TTL_SECONDS = _env_int("EXPORT_JOB_TTL_SECONDS", 24 * 3600)
MAX_JOBS = _env_int("EXPORT_MAX_JOBS", 200)
REAPER_INTERVAL_SECONDS = _env_int("EXPORT_REAPER_INTERVAL_SECONDS", 300)
PUBLIC_DOWNLOAD_PREFIX = os.getenv("EXPORT_PUBLIC_PREFIX", "/export")

# ---------------------------------------------------------------------------
# HTTP API
# ---------------------------------------------------------------------------

API_HOST = os.getenv("CAPTION_API_HOST", "0.0.0.0")
API_PORT = _env_int("CAPTION_API_PORT", 8000)
API_URL = os.getenv("CAPTION_BURNER_API_URL", "http://localhost:8000")
