"""Error taxonomy for the converter API.

Every failure a request can hit is a distinct exception type tagged with an
``ErrorKind``. Each carries the HTTP status it maps to and the message that is
safe to show the client; internal detail stays in ``detail`` and the logs.
"""
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    MISSING_FILE = "missing_file"
    UPLOAD_REJECTED = "upload_rejected"
    ENCODE = "encode"
    TRANSMISSION = "transmission"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"


class ConverterError(Exception):
    kind: ErrorKind
    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        self.public_message = message or self.public_message
        self.detail = detail
        super().__init__(detail or self.public_message)

    def to_content(self) -> dict[str, Any]:
        return {"error": self.public_message}


class ValidationError(ConverterError):
    """One or more form fields failed validation. Carries every problem found."""

    kind = ErrorKind.VALIDATION
    status_code = 400
    public_message = "Validation failed"

    def __init__(self, errors: list[dict[str, Any]]):
        self.errors = errors
        fields = ", ".join(e.get("path", "?") for e in errors)
        super().__init__(detail=f"Invalid fields: {fields}")

    def to_content(self) -> dict[str, Any]:
        return {"errors": self.errors}


class MissingFileError(ConverterError):
    kind = ErrorKind.MISSING_FILE
    status_code = 400
    public_message = "No image was provided"


class UploadRejectedError(ConverterError):
    """The upload itself was refused while being received."""

    kind = ErrorKind.UPLOAD_REJECTED
    status_code = 400
    public_message = "Upload rejected"


class InvalidFileTypeError(UploadRejectedError):
    public_message = "The file is not a valid image"


class FileTooLargeError(UploadRejectedError):
    def __init__(self, max_bytes: int, detail: Optional[str] = None):
        self.max_bytes = max_bytes
        super().__init__(f"The file is too large. Maximum {max_bytes // (1024 * 1024)}MB.", detail)


class EncodeError(ConverterError):
    kind = ErrorKind.ENCODE
    status_code = 500
    public_message = "Error processing image"


class TransmissionError(ConverterError):
    """Sending the response failed after it was committed. Logged, never returned."""

    kind = ErrorKind.TRANSMISSION
    public_message = "Error sending file"


class NotFoundError(ConverterError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    public_message = "Route not found"


class RateLimitExceededError(ConverterError):
    kind = ErrorKind.RATE_LIMITED
    status_code = 429

    def __init__(self, message: str, retry_after: int):
        self.retry_after = retry_after
        super().__init__(message)
