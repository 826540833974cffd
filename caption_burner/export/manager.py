"""Export job manager — validates burn-in requests and runs their pipelines.

WHY: A burn-in takes far longer than an HTTP request should. Callers need
a job ID right away, a record they can poll, and a clear answer when
they ask for the output: "doesn't exist", "not ready", or "here it is".
Input mistakes must be rejected before any job exists; everything that
goes wrong afterwards must be recorded on the job instead of escaping to
an unrelated caller.

HOW: create() validates synchronously (captions, style, encode options),
allocates a job in the store, and schedules exactly one asyncio task per
job. The task runs the pipeline:
  processing (1%) → resolve media → probe → compile ASS → write the
  .ass file off the event loop → consume TranscodeInvoker events →
  completed (100%, output_path, public_url) | failed (error)
Progress ticks go through the store, which keeps them monotonic and
drops anything that arrives after a terminal state.

RULES:
- create() never blocks on media work and must be called on a running
  event loop
- One pipeline task per job ID; IDs are never reused
- Any exception inside a pipeline marks the job FAILED (never re-raised)
- No retries: a failed job is terminal; clients submit a new job
- Files written by a job are named after its ID, so jobs never collide
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union

from caption_burner.config import (
    EXPORTS_DIR,
    JOB_TTL_SECONDS,
    MAX_JOBS,
    PUBLIC_DOWNLOAD_PREFIX,
)
from caption_burner.core.ir import CaptionSegment
from caption_burner.engine.probe import BaseProber, FFprobeProber
from caption_burner.engine.transcoder import (
    EncodeOptions,
    TranscodeFailed,
    TranscodeInvoker,
    TranscodeProgress,
    TranscodeSucceeded,
)
from caption_burner.export.jobs import ExportJob, InMemoryJobStore, JobStatus, JobStore
from caption_burner.export.media import LocalMediaStore, MediaResolver, iter_file
from caption_burner.formatters.ass import compile_ass
from caption_burner.styles.model import ensure_valid, resolve_style

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 64 * 1024

CaptionInput = Union[CaptionSegment, Dict[str, Any]]


class CaptionValidationError(ValueError):
    """Raised when a caption list cannot be burned in.

    RULES:
    - errors lists every problem found, each prefixed with "captions[i]"
      or "captions"
    """

    def __init__(self, errors: List[str]) -> None:
        self.errors = list(errors)
        super().__init__("Invalid captions: {}".format("; ".join(self.errors)))


class JobNotFoundError(LookupError):
    """The job ID was never created (or has been reaped)."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__("Export job not found: {}".format(job_id))


class JobNotReadyError(RuntimeError):
    """The job exists but has no downloadable output in its current state."""

    def __init__(self, job_id: str, status: JobStatus) -> None:
        self.job_id = job_id
        self.status = status
        super().__init__("Export job {} is not ready (status: {})".format(job_id, status.value))


class OutputMissingError(RuntimeError):
    """The job completed but its output file is gone from disk."""

    def __init__(self, job_id: str, path: Optional[Path]) -> None:
        self.job_id = job_id
        self.path = path
        super().__init__("Output file for export job {} is missing".format(job_id))


def parse_captions(captions: Optional[Sequence[CaptionInput]]) -> List[CaptionSegment]:
    """Validate and convert a caption list for burn-in.

    RULES:
    - The list must be non-empty
    - Every caption needs non-empty text and 0 <= start_time < end_time
    - All problems are collected, not just the first
    """
    if not captions:
        raise CaptionValidationError(["captions: at least one caption is required"])

    segments: List[CaptionSegment] = []
    errors: List[str] = []
    for index, item in enumerate(captions):
        prefix = "captions[{}]".format(index)
        try:
            segment = item if isinstance(item, CaptionSegment) else CaptionSegment.from_dict(item, index=index)
        except (TypeError, ValueError, AttributeError) as exc:
            errors.append("{}: {}".format(prefix, exc))
            continue

        if not segment.text or not segment.text.strip():
            errors.append("{}: text must not be empty".format(prefix))
        if segment.start_time < 0:
            errors.append("{}: startTime must be >= 0".format(prefix))
        if segment.end_time <= segment.start_time:
            errors.append("{}: endTime must be greater than startTime".format(prefix))
        segments.append(segment)

    if errors:
        raise CaptionValidationError(errors)
    return segments


@dataclass(frozen=True)
class _BurnRequest:
    """Validated inputs carried from create() into the pipeline task."""

    video_id: str
    segments: List[CaptionSegment]
    style: Dict[str, Any]
    options: EncodeOptions
    force_high_contrast: bool


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _remove_file(path: Optional[Path]) -> None:
    if path is None:
        return
    try:
        Path(path).unlink()
    except FileNotFoundError:
        return
    except OSError:
        logger.warning("Failed to remove export file: %s", path)


class ExportJobManager:
    """Create, run, query, and reap burn-in export jobs.

    Collaborators are injected so tests can swap in fakes:
      store    — JobStore (in-memory by default)
      resolver — MediaResolver mapping video IDs to files
      prober   — BaseProber returning width/height/duration
      invoker  — object with an async-generator run() like TranscodeInvoker
    """

    def __init__(
        self,
        store: Optional[JobStore] = None,
        resolver: Optional[MediaResolver] = None,
        prober: Optional[BaseProber] = None,
        invoker: Optional[TranscodeInvoker] = None,
        exports_dir: Path = EXPORTS_DIR,
        public_prefix: str = PUBLIC_DOWNLOAD_PREFIX,
        job_ttl_seconds: float = JOB_TTL_SECONDS,
    ) -> None:
        self.store = store if store is not None else InMemoryJobStore(max_jobs=MAX_JOBS)
        self.resolver = resolver if resolver is not None else LocalMediaStore()
        self.prober = prober if prober is not None else FFprobeProber()
        self.invoker = invoker if invoker is not None else TranscodeInvoker()
        self.exports_dir = Path(exports_dir)
        self.public_prefix = public_prefix.rstrip("/")
        self.job_ttl_seconds = job_ttl_seconds
        self._tasks: Dict[str, asyncio.Task] = {}

    # -- creation -----------------------------------------------------------

    def create(
        self,
        video_id: str,
        captions: Sequence[CaptionInput],
        style: Any = None,
        output: Optional[Dict[str, Any]] = None,
        force_high_contrast: bool = False,
    ) -> ExportJob:
        """Validate a burn-in request, store a PENDING job, and start its pipeline.

        Raises:
            ValueError: Missing video ID or invalid output options.
            CaptionValidationError: Empty or malformed captions.
            StyleValidationError: Style fails validation.
            JobLimitError: The store is full.

        Returns:
            Snapshot of the new job (status PENDING, progress 0).
        """
        if not video_id or not str(video_id).strip():
            raise ValueError("videoId is required")
        segments = parse_captions(captions)
        resolved_style = ensure_valid(resolve_style(style))
        options = EncodeOptions.from_dict(output)

        job = self.store.create(str(video_id))
        request = _BurnRequest(
            video_id=str(video_id),
            segments=segments,
            style=resolved_style,
            options=options,
            force_high_contrast=force_high_contrast,
        )
        self._launch(job.job_id, request)
        return job

    def _launch(self, job_id: str, request: _BurnRequest) -> None:
        if job_id in self._tasks:
            raise RuntimeError("Pipeline already running for job {}".format(job_id))
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run_pipeline(job_id, request))
        self._tasks[job_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(job_id, None))

    # -- queries ------------------------------------------------------------

    def get(self, job_id: str) -> ExportJob:
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_jobs(self) -> List[ExportJob]:
        return self.store.list_jobs()

    async def wait(self, job_id: str) -> ExportJob:
        """Wait for a job's pipeline to finish and return the final record."""
        task = self._tasks.get(job_id)
        if task is not None:
            await task
        return self.get(job_id)

    def public_url(self, job_id: str) -> str:
        return "{}/{}/download".format(self.public_prefix, job_id)

    def open_output(self, job_id: str) -> Path:
        """Return the finished output file for a COMPLETED job.

        Raises:
            JobNotFoundError: Unknown job ID.
            JobNotReadyError: Job is pending, processing, or failed.
            OutputMissingError: Job completed but the file is gone.
        """
        job = self.get(job_id)
        if job.status != JobStatus.COMPLETED or job.output_path is None:
            raise JobNotReadyError(job_id, job.status)
        path = Path(job.output_path)
        if not path.is_file():
            raise OutputMissingError(job_id, path)
        return path

    def iter_output(self, job_id: str, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> Iterator[bytes]:
        """Byte stream of a completed job's output. Errors raise before any bytes."""
        path = self.open_output(job_id)
        return iter_file(path, chunk_size)

    # -- pipeline -----------------------------------------------------------

    async def _run_pipeline(self, job_id: str, request: _BurnRequest) -> None:
        """Run one burn-in from probe to terminal state.

        RULES:
        - Exactly one terminal update is applied by this method
        - Exceptions are logged and recorded, never propagated
        """
        try:
            self.store.update(job_id, status=JobStatus.PROCESSING, progress=1)
            logger.info("Export job %s started for video %s", job_id, request.video_id)

            input_path = self.resolver.resolve(request.video_id)
            info = await self.prober.probe(input_path)
            resolution = request.options.resolution or info.resolution

            document = compile_ass(
                request.segments,
                request.style,
                resolution,
                force_high_contrast=request.force_high_contrast,
            )
            subtitle_path = self.exports_dir / "{}.ass".format(job_id)
            await asyncio.to_thread(_write_text, subtitle_path, document)
            self.store.update(job_id, subtitle_path=subtitle_path)

            output_path = self.exports_dir / "{}.{}".format(job_id, request.options.format)
            await self._consume(job_id, input_path, subtitle_path, output_path, request.options, info.duration)
        except Exception as exc:
            logger.exception("Export job %s failed", job_id)
            self.store.update(job_id, status=JobStatus.FAILED, error=str(exc) or exc.__class__.__name__)

    async def _consume(
        self,
        job_id: str,
        input_path: Path,
        subtitle_path: Path,
        output_path: Path,
        options: EncodeOptions,
        duration: float,
    ) -> None:
        events = self.invoker.run(input_path, subtitle_path, output_path, options, duration)
        try:
            async for event in events:
                if isinstance(event, TranscodeProgress):
                    self.store.update(job_id, progress=event.percent)
                elif isinstance(event, TranscodeSucceeded):
                    self.store.update(
                        job_id,
                        status=JobStatus.COMPLETED,
                        output_path=Path(event.output_path),
                        public_url=self.public_url(job_id),
                    )
                    logger.info("Export job %s completed: %s", job_id, event.output_path)
                    return
                elif isinstance(event, TranscodeFailed):
                    self.store.update(job_id, status=JobStatus.FAILED, error=event.message)
                    logger.warning("Export job %s failed: %s", job_id, event.message)
                    return
        finally:
            await events.aclose()

        self.store.update(job_id, status=JobStatus.FAILED, error="Transcoder ended without a result")
        logger.warning("Export job %s: transcoder ended without a terminal event", job_id)

    # -- housekeeping -------------------------------------------------------

    def reap(self, max_age_seconds: Optional[float] = None) -> int:
        """Remove finished jobs older than max_age_seconds and their files.

        RULES:
        - Only terminal jobs are removed; TTL is measured from completed_at
        - File removal is best-effort
        - Returns the number of jobs removed
        """
        ttl = self.job_ttl_seconds if max_age_seconds is None else max_age_seconds
        removed = self.store.cleanup_expired(ttl)
        for job in removed:
            _remove_file(job.subtitle_path)
            _remove_file(job.output_path)
            logger.info("Reaped export job %s", job.job_id)
        return len(removed)
