"""Input media storage and resolution.

WHY: Export jobs reference their source video by an opaque ID, not a
path. The job manager needs one question answered — "which file is this
ID?" — and must not care whether the answer comes from an upload
directory, a path given on the command line, or a blob store.

HOW: MediaResolver is the abstract seam. Two implementations:
  LocalMediaStore — stores uploads as "<uuid><ext>" in an upload
                    directory and resolves IDs back to those files
  PathResolver    — treats the ID itself as a filesystem path (CLI)

RULES:
- Unknown or missing media → MediaNotFoundError
- Upload IDs are 32-char lowercase hex; anything else never resolves
  (no path traversal through IDs)
- Uploads are checked against SUPPORTED_VIDEO_FORMATS and MAX_UPLOAD_BYTES
"""

from __future__ import annotations

import logging
import re
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator, Optional

from caption_burner.config import MAX_UPLOAD_BYTES, SUPPORTED_VIDEO_FORMATS, UPLOAD_DIR

logger = logging.getLogger(__name__)

_VIDEO_ID_RE = re.compile(r"^[0-9a-f]{32}$")


class MediaNotFoundError(LookupError):
    """Raised when a video ID does not resolve to a readable file."""


class UnsupportedMediaError(ValueError):
    """Raised when an upload has an unsupported extension or size."""


class MediaResolver(ABC):
    """Map an opaque video ID to a readable file path."""

    @abstractmethod
    def resolve(self, video_id: str) -> Path:
        """Return the file for video_id or raise MediaNotFoundError."""


class LocalMediaStore(MediaResolver):
    """Upload directory on local disk.

    RULES:
    - The directory is created lazily on first store
    - Each upload gets a fresh UUID; the original name is not kept
    """

    def __init__(
        self,
        upload_dir: Path = UPLOAD_DIR,
        max_bytes: int = MAX_UPLOAD_BYTES,
    ) -> None:
        self.upload_dir = Path(upload_dir)
        self.max_bytes = max_bytes

    def store_video(self, filename: str, content: bytes) -> str:
        """Save uploaded bytes and return the new video ID.

        Raises:
            UnsupportedMediaError: Bad extension, empty file, or too large.
        """
        ext = Path(filename or "").suffix.lower()
        if ext not in SUPPORTED_VIDEO_FORMATS:
            raise UnsupportedMediaError(
                "Unsupported file type '{}'. Supported: {}".format(
                    ext or filename, ", ".join(sorted(SUPPORTED_VIDEO_FORMATS))
                )
            )
        if not content:
            raise UnsupportedMediaError("Uploaded file is empty")
        if len(content) > self.max_bytes:
            raise UnsupportedMediaError(
                "Uploaded file is {} bytes; limit is {}".format(len(content), self.max_bytes)
            )

        self.upload_dir.mkdir(parents=True, exist_ok=True)
        video_id = uuid.uuid4().hex
        path = self.upload_dir / "{}{}".format(video_id, ext)
        path.write_bytes(content)
        logger.info("Stored upload %s as %s (%d bytes)", filename, path.name, len(content))
        return video_id

    def _find(self, video_id: str) -> Optional[Path]:
        if not _VIDEO_ID_RE.match(video_id or ""):
            return None
        if not self.upload_dir.is_dir():
            return None
        for path in sorted(self.upload_dir.glob("{}.*".format(video_id))):
            if path.is_file():
                return path
        return None

    def resolve(self, video_id: str) -> Path:
        path = self._find(video_id)
        if path is None:
            raise MediaNotFoundError("Video not found: {}".format(video_id))
        return path

    def delete_video(self, video_id: str) -> bool:
        """Remove a stored upload. Returns False if it did not exist."""
        path = self._find(video_id)
        if path is None:
            return False
        path.unlink()
        logger.info("Deleted upload %s", path.name)
        return True


def iter_file(path: Path, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
    """Read a file lazily in fixed-size chunks for streaming responses."""
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            yield chunk


class PathResolver(MediaResolver):
    """Resolve video IDs that are plain filesystem paths."""

    def resolve(self, video_id: str) -> Path:
        path = Path(video_id).expanduser()
        if not path.is_file():
            raise MediaNotFoundError("Video not found: {}".format(video_id))
        return path
