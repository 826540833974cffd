"""Async HTTP client for the caption-burner API.

WHY: Scripts and the CLI's ``submit`` command drive remote burn-ins:
upload a video, start an export job, poll until it finishes, download the
result. This module wraps that workflow behind one client class so
callers don't need to know the routes or the error payloads.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. BurnInClient is an
async context manager — enter it to open the connection pool, exit to
close it. Each API step is a separate method:
upload_video → create_burn_in → poll_until_complete → download.

RULES:
- Always use the async context manager (async with BurnInClient() as client:)
- Polling uses exponential backoff: 1s initial, 1.5x factor, 10s max
- Non-2xx responses raise BurnInAPIError with the server's message
- A job that ends in "failed" raises ExportFailedError carrying its error
- Status callback (on_status) is optional; when provided, called with status strings
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx

from caption_burner.config import API_URL

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_POLL_INITIAL_INTERVAL_S = 1.0
_POLL_BACKOFF_FACTOR = 1.5
_POLL_MAX_INTERVAL_S = 10.0
_POLL_TIMEOUT_S = 60 * 60  # 60 minutes

_DOWNLOAD_CHUNK_SIZE = 64 * 1024


class BurnInAPIError(Exception):
    """Raised when the caption-burner API returns an error response.

    WHY: Callers need a typed exception to distinguish API rejections
    (validation, not-found, not-ready) from network failures.

    HOW: Wraps the HTTP status code, the human-readable message, and the
    machine-readable ``code`` when the server sends one.

    RULES:
    - Always include status_code and message
    - code is None when the error body has no "code" field
    """

    def __init__(self, status_code: int, message: str, code: str | None = None) -> None:
        self.status_code = status_code
        self.message = message
        self.code = code
        super().__init__(f"caption-burner API error {status_code}: {message}")


class ExportFailedError(Exception):
    """Raised when polling observes a job in the "failed" state.

    RULES:
    - job holds the final job record returned by the API
    """

    def __init__(self, job: dict[str, Any]) -> None:
        self.job = job
        super().__init__(f"Export {job.get('job_id')} failed: {job.get('error')}")


class ExportTimeoutError(TimeoutError):
    """Raised when polling exceeds the timeout."""


def _raise_for_error(resp: httpx.Response) -> None:
    if resp.status_code < 400:
        return
    message = resp.text
    code = None
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        detail = body.get("detail", body)
        if isinstance(detail, dict):
            message = str(detail.get("error") or detail.get("message") or message)
            code = detail.get("code")
        elif detail is not None:
            message = str(detail)
    raise BurnInAPIError(resp.status_code, message, code)


class BurnInClient:
    """Async client for the caption-burner HTTP API.

    RULES:
    - Use as: async with BurnInClient() as client: ...
    - base_url defaults to API_URL from config
    - transport is for tests (httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        poll_initial_interval: float = _POLL_INITIAL_INTERVAL_S,
        poll_max_interval: float = _POLL_MAX_INTERVAL_S,
        poll_timeout: float = _POLL_TIMEOUT_S,
    ) -> None:
        self._base_url = (base_url or API_URL).rstrip("/")
        self._transport = transport
        self._poll_initial_interval = poll_initial_interval
        self._poll_max_interval = poll_max_interval
        self._poll_timeout = poll_timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> BurnInClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(300.0, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "BurnInClient must be used as an async context manager: "
                "async with BurnInClient() as client: ..."
            )
        return self._client

    # ------------------------------------------------------------------
    # Step 1: Upload video
    # ------------------------------------------------------------------

    async def upload_video(
        self,
        file_path: Path,
        on_status: Callable[[str], None] | None = None,
    ) -> str:
        """Upload a video file and return its video_id."""
        client = self._ensure_client()
        file_path = Path(file_path)
        if on_status:
            on_status(f"Uploading {file_path.name}...")

        with open(file_path, "rb") as f:
            resp = await client.post("/videos", files={"file": (file_path.name, f)})

        _raise_for_error(resp)
        return resp.json()["video_id"]

    # ------------------------------------------------------------------
    # Step 2: Create burn-in job
    # ------------------------------------------------------------------

    async def create_burn_in(
        self,
        video_id: str,
        captions: list[dict[str, Any]],
        style: Any = None,
        output: dict[str, Any] | None = None,
        force_high_contrast: bool = False,
    ) -> str:
        """Start a burn-in export job and return its job_id.

        Args:
            video_id: ID returned by upload_video().
            captions: Caption dicts with text, startTime, endTime.
            style: Preset name, nested style, or legacy flat style.
            output: Optional encode overrides (format, codec, quality,
                    resolution, fps).
            force_high_contrast: Ask for white-on-black rendering.
        """
        client = self._ensure_client()
        body: dict[str, Any] = {
            "videoId": video_id,
            "captions": captions,
            "forceHighContrast": force_high_contrast,
        }
        if style is not None:
            body["style"] = style
        if output:
            body["output"] = output

        resp = await client.post("/export/burn-in", json=body)
        _raise_for_error(resp)
        return resp.json()["job_id"]

    async def get_job(self, job_id: str) -> dict[str, Any]:
        """Fetch the current job record."""
        client = self._ensure_client()
        resp = await client.get(f"/export/status/{job_id}")
        _raise_for_error(resp)
        return resp.json()

    # ------------------------------------------------------------------
    # Step 3: Poll until complete
    # ------------------------------------------------------------------

    async def poll_until_complete(
        self,
        job_id: str,
        on_status: Callable[[str], None] | None = None,
    ) -> dict[str, Any]:
        """Poll a job until it completes or fails.

        RULES:
        - Returns the job record when status is "completed"
        - Raises ExportFailedError when status is "failed"
        - Raises ExportTimeoutError after poll_timeout seconds
        """
        interval = self._poll_initial_interval
        start_time = time.monotonic()

        while True:
            elapsed = time.monotonic() - start_time
            if elapsed > self._poll_timeout:
                raise ExportTimeoutError(
                    f"Export {job_id} timed out after {elapsed:.0f}s "
                    f"(limit: {self._poll_timeout:.0f}s)"
                )

            job = await self.get_job(job_id)
            status = job.get("status")

            if on_status:
                if status == "pending":
                    on_status("Export queued...")
                elif status == "processing":
                    on_status(f"Rendering... {job.get('progress', 0)}%")
                elif status == "completed":
                    on_status("Export complete.")
                elif status == "failed":
                    on_status(f"Export failed: {job.get('error')}")

            if status == "completed":
                return job
            if status == "failed":
                raise ExportFailedError(job)

            await asyncio.sleep(interval)
            interval = min(interval * _POLL_BACKOFF_FACTOR, self._poll_max_interval)

    # ------------------------------------------------------------------
    # Step 4: Download
    # ------------------------------------------------------------------

    async def download(
        self,
        job_id: str,
        destination: Path,
        on_status: Callable[[str], None] | None = None,
    ) -> Path:
        """Stream a completed job's output to destination and return it."""
        client = self._ensure_client()
        destination = Path(destination)
        if on_status:
            on_status(f"Downloading to {destination}...")

        async with client.stream("GET", f"/export/{job_id}/download") as resp:
            if resp.status_code >= 400:
                await resp.aread()
                _raise_for_error(resp)
            destination.parent.mkdir(parents=True, exist_ok=True)
            with open(destination, "wb") as f:
                async for chunk in resp.aiter_bytes(_DOWNLOAD_CHUNK_SIZE):
                    f.write(chunk)

        return destination
