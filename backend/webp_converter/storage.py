"""Temporary file lifecycle: unique paths, scoped uploads and self-deleting responses."""
import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from fastapi import UploadFile
from fastapi.responses import FileResponse
from starlette.types import Receive, Scope, Send

from webp_converter import config as app_config
from webp_converter.conversion.models import UploadedImage
from webp_converter.errors import FileTooLargeError, TransmissionError
from webp_converter.validation import check_media_type

logger = logging.getLogger("converter.storage")

MAX_NAME_LENGTH = 100


def _safe_basename(name: str) -> str:
    """Last path component of a client supplied name, never empty."""
    base = Path((name or "").replace("\\", "/")).name.strip()
    if base in ("", ".", ".."):
        base = "upload"
    return base[-MAX_NAME_LENGTH:]


def unique_upload_path(original_name: str) -> Path:
    """Collision resistant path in UPLOAD_DIR: <ns timestamp>-<token>-<client name>."""
    return app_config.UPLOAD_DIR / f"{time.time_ns()}-{uuid.uuid4().hex[:8]}-{_safe_basename(original_name)}"


def unique_output_path() -> Path:
    return app_config.OUTPUT_DIR / f"{time.time_ns()}-{uuid.uuid4().hex}.{app_config.OUTPUT_EXTENSION}"


def remove_file(path: Optional[Path]) -> None:
    """Delete a temporary file. Missing files are ignored."""
    if path is None:
        return
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)


async def save_upload(file: UploadFile, dest: Path, max_bytes: int) -> int:
    """Copy an upload to dest in chunks. Removes the partial file and raises if it exceeds max_bytes."""
    if file.size is not None and file.size > max_bytes:
        raise FileTooLargeError(max_bytes, detail=f"{file.filename}: declared {file.size} bytes")
    total = 0
    try:
        with open(dest, "wb") as f:
            while chunk := await file.read(app_config.UPLOAD_CHUNK_SIZE):
                total += len(chunk)
                if total > max_bytes:
                    raise FileTooLargeError(max_bytes, detail=f"{file.filename}: over {max_bytes} bytes")
                f.write(chunk)
    except BaseException:
        remove_file(dest)
        raise
    return total


@asynccontextmanager
async def temporary_upload(file: Optional[UploadFile]) -> AsyncIterator[Optional[UploadedImage]]:
    """Receive the image part into temporary storage and delete it on every exit path.

    The media type is checked before anything is written. Yields None when the
    request carried no file so callers can report validation problems first.
    """
    if file is None:
        yield None
        return
    check_media_type(file)
    path = unique_upload_path(file.filename or "")
    size = await save_upload(file, path, app_config.MAX_IMAGE_SIZE_BYTES)
    logger.debug("Stored upload %s (%s bytes) at %s", file.filename, size, path.name)
    try:
        yield UploadedImage(
            path=path,
            original_name=file.filename or "",
            content_type=file.content_type or "",
            size=size,
        )
    finally:
        remove_file(path)


class CleanupFileResponse(FileResponse):
    """Attachment response that deletes its file once sent, or once sending failed."""

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except Exception as e:
            # Status line is already committed; all that is left is to log and clean up.
            err = TransmissionError(detail=str(e))
            logger.error("%s %s: %s", err.public_message, self.filename, e, exc_info=True)
        finally:
            remove_file(Path(self.path))
