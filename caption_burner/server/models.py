"""Pydantic request/response models for the HTTP API.

WHY: The FastAPI endpoints need typed schemas for request parsing,
response serialization, and automatic OpenAPI documentation.

HOW: Each endpoint pair (request + response) has its own model. Request
models accept the camelCase wire names clients send (``videoId``,
``startTime``) as aliases, and the snake_case names as well.

RULES:
- All models use Field(description=...) for OpenAPI documentation
- Captions, styles, and encode options are kept loosely typed here and
  validated by the domain layer, so a bad value yields 400 with the
  domain's error list instead of a generic 422
- Error bodies on job and video routes carry a machine-readable ``code``:
  job_not_found, not_ready, file_missing, invalid_captions,
  invalid_style, invalid_request, video_not_found, probe_failed
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class SubtitleFormat(str, Enum):
    """Subtitle document formats the compile endpoint can produce.

    RULES:
    - Values match keys in caption_burner.formatters.FORMATTERS exactly
    """

    ass = "ass"
    srt = "srt"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SegmentRequest(BaseModel):
    """Raw transcript plus timing options for caption segmentation."""

    transcript: str = Field(description="Transcript text; any whitespace separates words.")
    duration: float = Field(description="Video duration in seconds.")
    options: Optional[Dict[str, Any]] = Field(
        default=None,
        description=(
            "Timing options: maxSegmentDuration, minSegmentDuration, "
            "wordsPerMinute (camelCase or snake_case)."
        ),
    )


class CompileRequest(BaseModel):
    """Captions and style to compile into a subtitle document."""

    captions: List[Dict[str, Any]] = Field(
        description="Timed captions: {text, startTime, endTime, id?}.",
    )
    style: Optional[Union[str, Dict[str, Any]]] = Field(
        default=None,
        description="Preset name, nested style, or legacy flat style. Defaults to 'classic'.",
    )
    resolution: Optional[str] = Field(
        default=None,
        description="Target resolution as WIDTHxHEIGHT. Defaults to 1080x1920.",
    )
    format: SubtitleFormat = Field(
        default=SubtitleFormat.ass,
        description="Output subtitle format.",
    )
    force_high_contrast: bool = Field(
        default=False,
        alias="forceHighContrast",
        description="Render white text on black outline and box regardless of style colors.",
    )

    model_config = {"populate_by_name": True}


class StyleValidateRequest(BaseModel):
    """A caption style to validate."""

    style: Optional[Union[str, Dict[str, Any]]] = Field(
        default=None,
        description="Preset name, nested style, or legacy flat style.",
    )


class OutputOptions(BaseModel):
    """Encode overrides for a burn-in export."""

    format: Optional[str] = Field(default=None, description="mp4, mov, or webm. Default mp4.")
    codec: Optional[str] = Field(default=None, description="h264, h265, vp9, or av1. Default h264.")
    quality: Optional[str] = Field(default=None, description="low, medium, or high. Default medium.")
    resolution: Optional[str] = Field(default=None, description="WIDTHxHEIGHT; defaults to the source size.")
    fps: Optional[float] = Field(default=None, description="Output frame rate; defaults to the source rate.")


class BurnInRequest(BaseModel):
    """Request body for starting a burn-in export job."""

    video_id: str = Field(alias="videoId", description="ID returned by POST /videos.")
    captions: List[Dict[str, Any]] = Field(
        description="Non-empty list of timed captions: {text, startTime, endTime, id?}.",
    )
    style: Optional[Union[str, Dict[str, Any]]] = Field(
        default=None,
        description="Preset name, nested style, or legacy flat style. Defaults to 'classic'.",
    )
    output: Optional[OutputOptions] = Field(default=None, description="Encode overrides.")
    force_high_contrast: bool = Field(
        default=False,
        alias="forceHighContrast",
        description="Render white text on black outline and box regardless of style colors.",
    )

    model_config = {"populate_by_name": True}


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class VideoUploadResponse(BaseModel):
    """Response returned after storing an uploaded video."""

    video_id: str = Field(description="Opaque ID to reference this video in export requests.")
    filename: str = Field(description="Original uploaded filename.")
    size: int = Field(description="Stored size in bytes.")


class VideoMetadataResponse(BaseModel):
    """Geometry and length of a stored video, as reported by ffprobe."""

    video_id: str = Field(description="ID of the stored video.")
    width: int = Field(description="Frame width in pixels.")
    height: int = Field(description="Frame height in pixels.")
    duration: float = Field(description="Length in seconds; 0.0 if unknown.")


class CaptionOut(BaseModel):
    """One timed caption."""

    id: str = Field(description="Caption ID, unique within the list.")
    text: str = Field(description="Caption text.")
    start_time: float = Field(description="Start time in seconds.")
    end_time: float = Field(description="End time in seconds.")
    confidence: float = Field(description="Timing confidence 0–1.")


class SegmentResponse(BaseModel):
    """Derived caption segments."""

    segments: List[CaptionOut] = Field(description="Contiguous timed captions in order.")
    count: int = Field(description="Number of segments.")


class PresetListResponse(BaseModel):
    """Built-in style presets."""

    default: str = Field(description="Preset used when none is given.")
    presets: Dict[str, Dict[str, Any]] = Field(description="Fully populated nested styles by name.")


class StyleValidationResponse(BaseModel):
    """Result of validating a caption style."""

    is_valid: bool = Field(description="True if the style passed every rule.")
    errors: List[str] = Field(description="Every violation, prefixed by its field path.")
    style: Optional[Dict[str, Any]] = Field(
        default=None,
        description="The normalized style that was validated.",
    )


class JobCreatedResponse(BaseModel):
    """Response returned when a burn-in job is accepted.

    RULES:
    - status is always 'pending' and progress 0 on creation
    """

    job_id: str = Field(description="Job identifier for polling and download.")
    status: str = Field(description="Initial job status (always 'pending').")
    progress: int = Field(description="Initial progress (always 0).")

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "job_id": "job_550e8400e29b41d4a716446655440000",
                "status": "pending",
                "progress": 0,
            }
        ]
    }}


class JobResponse(BaseModel):
    """Export job status response.

    RULES:
    - progress is 0–100 and never decreases between polls
    - output_path and public_url are set only when status is 'completed'
    - error is set only when status is 'failed'
    """

    job_id: str = Field(description="Job identifier.")
    video_id: str = Field(description="Source video ID.")
    status: str = Field(description="pending, processing, completed, or failed.")
    progress: int = Field(description="Percent complete, 0–100.")
    created_at: float = Field(description="Creation timestamp (Unix epoch seconds).")
    updated_at: float = Field(description="Last update timestamp (Unix epoch seconds).")
    completed_at: Optional[float] = Field(default=None, description="Terminal-state timestamp.")
    output_path: Optional[str] = Field(default=None, description="Server-side path of the output file.")
    public_url: Optional[str] = Field(default=None, description="Download URL for the output file.")
    error: Optional[str] = Field(default=None, description="Failure message.")


class ErrorDetail(BaseModel):
    """Structured error payload for job routes."""

    error: str = Field(description="Human-readable error description.")
    code: str = Field(description="Machine-readable error category.")
    errors: Optional[List[str]] = Field(default=None, description="Individual validation errors, if any.")


class ErrorResponse(BaseModel):
    """Standard error response body."""

    detail: Union[ErrorDetail, str] = Field(description="Error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
