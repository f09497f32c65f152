"""Per-request conversion models. Nothing here is persisted."""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class UploadedImage:
    """Uploaded image as written to temporary storage."""

    path: Path
    original_name: str
    content_type: str
    size: int


@dataclass(frozen=True)
class ConversionRequest:
    filename: str
    quality: int


@dataclass
class EncodedOutput:
    path: Path
    download_name: str  # <filename>.webp, sent in Content-Disposition
    size: Optional[int] = None
