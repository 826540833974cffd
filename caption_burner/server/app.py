"""FastAPI application for caption segmentation, styling, and burn-in export.

WHY: Editors and automation tools need an HTTP surface to upload videos,
derive or compile captions, check styles, start burn-in exports, poll
their status, and download the result. FastAPI gives request parsing,
OpenAPI docs, and async handlers that can schedule pipeline tasks on the
same event loop.

HOW: A single FastAPI app with endpoints grouped by tags:
  videos    — POST /videos (multipart upload),
              GET /videos/{video_id}/metadata, GET /videos/{video_id}/stream,
              DELETE /videos/{video_id}
  captions  — POST /captions/segment, POST /captions/compile
  styles    — GET /styles/presets, POST /styles/validate
  export    — POST /export/burn-in, GET /export/jobs,
              GET /export/status/{job_id}, GET /export/{job_id}/download
  health    — GET /health
The job manager is a module-level singleton; its reaper runs as a
periodic task started in the lifespan.

RULES:
- Validation errors return 400 before any job is created
- Job routes distinguish job_not_found (404), not_ready (409), and
  file_missing (404) through the ``code`` field of the error body
- Downloads are streamed in chunks, never read fully into memory
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, List, NoReturn, Optional

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.responses import Response, StreamingResponse

from caption_burner import __version__
from caption_burner.config import API_HOST, API_PORT, REAPER_INTERVAL_SECONDS
from caption_burner.core.ir import CaptionSegment, SegmentOptions
from caption_burner.core.segmenter import segment_transcript
from caption_burner.engine.probe import ProbeError
from caption_burner.export.jobs import ExportJob, JobLimitError
from caption_burner.export.manager import (
    CaptionValidationError,
    ExportJobManager,
    JobNotFoundError,
    JobNotReadyError,
    OutputMissingError,
)
from caption_burner.export.media import LocalMediaStore, MediaNotFoundError, UnsupportedMediaError, iter_file
from caption_burner.formatters import FORMATTERS
from caption_burner.formatters.ass import AssFormatter
from caption_burner.server.models import (
    BurnInRequest,
    CaptionOut,
    CompileRequest,
    ErrorResponse,
    HealthResponse,
    JobCreatedResponse,
    JobResponse,
    PresetListResponse,
    SegmentRequest,
    SegmentResponse,
    StyleValidateRequest,
    StyleValidationResponse,
    VideoMetadataResponse,
    VideoUploadResponse,
)
from caption_burner.styles.model import StyleValidationError, ensure_valid, resolve_style, validate
from caption_burner.styles.presets import DEFAULT_PRESET, PRESETS

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and manager setup
# ---------------------------------------------------------------------------

media_store = LocalMediaStore()
manager = ExportJobManager(resolver=media_store)

_MEDIA_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
    ".m4v": "video/x-m4v",
    ".mkv": "video/x-matroska",
    ".avi": "video/x-msvideo",
}


async def _periodic_reap() -> None:
    """Reap expired export jobs every REAPER_INTERVAL_SECONDS."""
    while True:
        await asyncio.sleep(REAPER_INTERVAL_SECONDS)
        removed = manager.reap()
        if removed:
            logger.info("Reaped %d expired export job(s)", removed)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the periodic reaper on startup, cancel it on shutdown."""
    task = asyncio.create_task(_periodic_reap())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    lifespan=lifespan,
    title="caption-burner API",
    description=(
        "Derive caption timing from transcripts, compile styled ASS "
        "subtitles, and burn them into videos as asynchronous export jobs. "
        "Upload a video, start an export, poll for status, and download "
        "the result."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _job_to_response(job: ExportJob) -> JobResponse:
    """Convert an internal ExportJob dataclass to a JobResponse Pydantic model."""
    return JobResponse(
        job_id=job.job_id,
        video_id=job.video_id,
        status=job.status.value,
        progress=job.progress,
        created_at=job.created_at,
        updated_at=job.updated_at,
        completed_at=job.completed_at,
        output_path=str(job.output_path) if job.output_path else None,
        public_url=job.public_url,
        error=job.error,
    )


def _error(status_code: int, code: str, message: str, errors: Optional[List[str]] = None) -> NoReturn:
    detail = {"error": message, "code": code}
    if errors is not None:
        detail["errors"] = errors
    raise HTTPException(status_code=status_code, detail=detail)


def _parse_segments(captions: List[Any]) -> List[CaptionSegment]:
    """Parse loose caption dicts; malformed entries become a 400."""
    segments = []
    for index, item in enumerate(captions):
        try:
            segments.append(CaptionSegment.from_dict(item, index=index))
        except ValueError as exc:
            _error(400, "invalid_captions", "captions[{}]: {}".format(index, exc))
    return segments


def _infer_media_type(path: Path) -> str:
    return _MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream")


# ---------------------------------------------------------------------------
# Videos
# ---------------------------------------------------------------------------


@app.post(
    "/videos",
    response_model=VideoUploadResponse,
    status_code=201,
    tags=["videos"],
    summary="Upload a source video",
    description="Store a video for later burn-in. Returns the video_id to use in export requests.",
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported or empty file"},
    },
)
async def upload_video(
    file: UploadFile = File(description="Video file (.mp4, .mov, .webm, .avi, .mkv, .m4v)."),
) -> VideoUploadResponse:
    # Sanitize filename to prevent path traversal
    filename = Path(file.filename or "upload").name
    content = await file.read()
    try:
        video_id = await asyncio.to_thread(media_store.store_video, filename, content)
    except UnsupportedMediaError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return VideoUploadResponse(video_id=video_id, filename=filename, size=len(content))


@app.get(
    "/videos/{video_id}/metadata",
    response_model=VideoMetadataResponse,
    tags=["videos"],
    summary="Get source video metadata",
    description="Width, height, and duration of a stored video, read with ffprobe.",
    responses={
        400: {"model": ErrorResponse, "description": "File could not be probed"},
        404: {"model": ErrorResponse, "description": "Video not found"},
    },
)
async def get_video_metadata(video_id: str) -> VideoMetadataResponse:
    try:
        path = media_store.resolve(video_id)
    except MediaNotFoundError as exc:
        _error(404, "video_not_found", str(exc))
    try:
        info = await manager.prober.probe(path)
    except ProbeError as exc:
        _error(400, "probe_failed", str(exc))
    return VideoMetadataResponse(
        video_id=video_id, width=info.width, height=info.height, duration=info.duration
    )


@app.get(
    "/videos/{video_id}/stream",
    tags=["videos"],
    summary="Stream a stored source video",
    responses={
        404: {"model": ErrorResponse, "description": "Video not found"},
    },
)
async def stream_video(video_id: str) -> StreamingResponse:
    try:
        path = media_store.resolve(video_id)
    except MediaNotFoundError as exc:
        _error(404, "video_not_found", str(exc))
    return StreamingResponse(iter_file(path), media_type=_infer_media_type(path))


@app.delete(
    "/videos/{video_id}",
    status_code=204,
    tags=["videos"],
    summary="Delete a stored source video",
    responses={
        404: {"model": ErrorResponse, "description": "Video not found"},
    },
)
async def delete_video(video_id: str) -> Response:
    deleted = await asyncio.to_thread(media_store.delete_video, video_id)
    if not deleted:
        _error(404, "video_not_found", "Video not found: {}".format(video_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Captions
# ---------------------------------------------------------------------------


@app.post(
    "/captions/segment",
    response_model=SegmentResponse,
    tags=["captions"],
    summary="Derive caption timing from a transcript",
    description=(
        "Split a transcript into back-to-back timed captions sized by "
        "reading speed and capped at maxSegmentDuration."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid timing options"},
    },
)
async def segment_captions(request: SegmentRequest) -> SegmentResponse:
    try:
        options = SegmentOptions.from_dict(request.options)
        segments = segment_transcript(request.transcript, request.duration, options)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return SegmentResponse(
        segments=[CaptionOut(**s.to_dict()) for s in segments],
        count=len(segments),
    )


@app.post(
    "/captions/compile",
    tags=["captions"],
    summary="Compile captions into a subtitle document",
    description=(
        "Render timed captions with a style as an ASS document (used for "
        "burn-in) or a plain SRT file. Non-renderable captions are dropped."
    ),
    responses={
        200: {"content": {"text/x-ssa": {}, "application/x-subrip": {}}},
        400: {"model": ErrorResponse, "description": "Invalid captions or style"},
    },
)
async def compile_captions(request: CompileRequest) -> Response:
    segments = _parse_segments(request.captions)
    try:
        style = ensure_valid(resolve_style(request.style))
    except StyleValidationError as exc:
        _error(400, "invalid_style", str(exc), exc.errors)

    formatter_cls = FORMATTERS[request.format.value]
    if formatter_cls is AssFormatter:
        formatter = AssFormatter(force_high_contrast=request.force_high_contrast)
    else:
        formatter = formatter_cls()
    output = formatter.format(segments, style, request.resolution)[0]
    return Response(content=output.content, media_type=output.media_type)


# ---------------------------------------------------------------------------
# Styles
# ---------------------------------------------------------------------------


@app.get(
    "/styles/presets",
    response_model=PresetListResponse,
    tags=["styles"],
    summary="List built-in style presets",
)
async def list_presets() -> PresetListResponse:
    return PresetListResponse(default=DEFAULT_PRESET, presets=PRESETS)


@app.post(
    "/styles/validate",
    response_model=StyleValidationResponse,
    tags=["styles"],
    summary="Validate a caption style",
    description=(
        "Resolve a preset name, legacy flat style, or nested style, fill in "
        "defaults, and report every validation error."
    ),
)
async def validate_style(request: StyleValidateRequest) -> StyleValidationResponse:
    try:
        style = resolve_style(request.style)
    except StyleValidationError as exc:
        return StyleValidationResponse(is_valid=False, errors=exc.errors)
    result = validate(style)
    return StyleValidationResponse(is_valid=result.is_valid, errors=result.errors, style=style)


# ---------------------------------------------------------------------------
# Export jobs
# ---------------------------------------------------------------------------


@app.post(
    "/export/burn-in",
    response_model=JobCreatedResponse,
    status_code=201,
    tags=["export"],
    summary="Start a burn-in export",
    description=(
        "Validate captions, style, and output options, then start an "
        "asynchronous export job. Poll /export/status/{job_id} for progress."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Invalid captions, style, or output options"},
        429: {"model": ErrorResponse, "description": "Too many export jobs"},
    },
)
async def create_burn_in(request: BurnInRequest) -> JobCreatedResponse:
    output = request.output.model_dump(exclude_none=True) if request.output else None
    try:
        job = manager.create(
            request.video_id,
            request.captions,
            request.style,
            output=output,
            force_high_contrast=request.force_high_contrast,
        )
    except CaptionValidationError as exc:
        _error(400, "invalid_captions", str(exc), exc.errors)
    except StyleValidationError as exc:
        _error(400, "invalid_style", str(exc), exc.errors)
    except ValueError as exc:
        _error(400, "invalid_request", str(exc))
    except JobLimitError as exc:
        _error(429, "too_many_jobs", str(exc))

    return JobCreatedResponse(job_id=job.job_id, status=job.status.value, progress=job.progress)


@app.get(
    "/export/jobs",
    response_model=List[JobResponse],
    tags=["export"],
    summary="List export jobs",
    description="All known export jobs, oldest first.",
)
async def list_export_jobs() -> List[JobResponse]:
    return [_job_to_response(job) for job in manager.list_jobs()]


@app.get(
    "/export/status/{job_id}",
    response_model=JobResponse,
    tags=["export"],
    summary="Get export job status",
    description="Poll this endpoint to track progress. Progress never decreases.",
    responses={
        404: {"model": ErrorResponse, "description": "Job not found"},
    },
)
async def get_export_status(job_id: str) -> JobResponse:
    try:
        job = manager.get(job_id)
    except JobNotFoundError as exc:
        _error(404, "job_not_found", str(exc))
    return _job_to_response(job)


@app.get(
    "/export/{job_id}/download",
    tags=["export"],
    summary="Download a completed export",
    description="Stream the burned-in video of a completed job.",
    responses={
        404: {"model": ErrorResponse, "description": "Job not found, or output file missing"},
        409: {"model": ErrorResponse, "description": "Job not completed"},
    },
)
async def download_export(job_id: str) -> StreamingResponse:
    try:
        path = manager.open_output(job_id)
        chunks = manager.iter_output(job_id)
    except JobNotFoundError as exc:
        _error(404, "job_not_found", str(exc))
    except JobNotReadyError as exc:
        _error(409, "not_ready", str(exc))
    except OutputMissingError as exc:
        _error(404, "file_missing", str(exc))

    return StreamingResponse(
        chunks,
        media_type=_infer_media_type(path),
        headers={"Content-Disposition": 'attachment; filename="{}"'.format(path.name)},
    )


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


def run_api():
    """Entry point for caption-burner-api console script."""
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=API_HOST, port=API_PORT)
