"""API route for image conversion."""
import logging
from typing import Optional

from fastapi import APIRouter, File, Form, UploadFile

from webp_converter import config as app_config
from webp_converter.conversion.service import get_conversion_service
from webp_converter.errors import MissingFileError
from webp_converter.storage import CleanupFileResponse, remove_file, temporary_upload, unique_output_path
from webp_converter.validation import validate_fields

logger = logging.getLogger("converter.api")
router = APIRouter(prefix="/api", tags=["converter"])


@router.post("/convert", response_class=CleanupFileResponse)
async def convert_image(
    image: Optional[UploadFile] = File(None, description="Image to convert (image/*, max 10 MB)"),
    filename: Optional[str] = Form(None, description="Download name without extension"),
    quality: Optional[str] = Form(None, description="WebP quality, 1-100"),
):
    """Convert one uploaded image to WebP and return it as an attachment.

    The upload is deleted as soon as the encoder is done with it (or as soon as
    the request is rejected); the output is deleted once it has been sent.
    """
    async with temporary_upload(image) as upload:
        conversion = validate_fields(filename, quality)
        if upload is None:
            raise MissingFileError()
        svc = get_conversion_service()
        try:
            output = await svc.convert(upload, conversion, unique_output_path())
        finally:
            remove_file(upload.path)
    logger.info("Sending %s (%s -> %s bytes)", output.download_name, upload.size, output.size)
    return CleanupFileResponse(
        output.path,
        media_type=app_config.OUTPUT_MEDIA_TYPE,
        filename=output.download_name,
    )
