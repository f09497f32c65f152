"""Request validation for the convert endpoint."""
import re
from typing import Any, Optional

from fastapi import UploadFile

from webp_converter import config as app_config
from webp_converter.conversion.models import ConversionRequest
from webp_converter.errors import InvalidFileTypeError, ValidationError

_INT_RE = re.compile(r"[-+]?[0-9]+")

FILENAME_REQUIRED = "Filename is required"
QUALITY_RANGE = f"Quality must be a number between {app_config.MIN_QUALITY} and {app_config.MAX_QUALITY}"


def _field_error(path: str, msg: str, value: Optional[str]) -> dict[str, Any]:
    error: dict[str, Any] = {"type": "field", "msg": msg, "path": path, "location": "body"}
    if value is not None:
        error["value"] = value
    return error


def parse_quality(value: Optional[str]) -> Optional[int]:
    """Return the quality as int if it is a whole number in range, else None."""
    if value is None or not _INT_RE.fullmatch(value):
        return None
    quality = int(value)
    if not app_config.MIN_QUALITY <= quality <= app_config.MAX_QUALITY:
        return None
    return quality


def validate_fields(filename: Optional[str], quality: Optional[str]) -> ConversionRequest:
    """Validate both fields, collecting every problem before raising."""
    errors: list[dict[str, Any]] = []
    if not filename:
        errors.append(_field_error("filename", FILENAME_REQUIRED, filename))
    parsed_quality = parse_quality(quality)
    if parsed_quality is None:
        errors.append(_field_error("quality", QUALITY_RANGE, quality))
    if errors:
        raise ValidationError(errors)
    return ConversionRequest(filename=filename, quality=parsed_quality)


def check_media_type(file: UploadFile) -> None:
    content_type = (file.content_type or "").lower()
    if not content_type.startswith("image/"):
        raise InvalidFileTypeError(detail=f"{file.filename}: declared type {content_type or 'none'}")
