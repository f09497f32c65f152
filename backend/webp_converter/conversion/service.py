"""Image to WebP conversion, run on a bounded worker pool."""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Optional

from PIL import Image

from webp_converter import config as app_config
from webp_converter.conversion.models import ConversionRequest, EncodedOutput, UploadedImage
from webp_converter.errors import EncodeError

logger = logging.getLogger("converter.service")


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)


def _webp_compatible(img: Image.Image) -> Image.Image:
    """WebP stores RGB or RGBA only. Keep alpha when the source has any."""
    if img.mode in ("RGB", "RGBA"):
        return img
    if img.mode in ("LA", "PA") or "transparency" in img.info:
        return img.convert("RGBA")
    return img.convert("RGB")


class ConversionService:
    """Encodes uploaded images to WebP without blocking the event loop."""

    def __init__(self, max_workers: Optional[int] = None):
        self.max_workers = max_workers or app_config.MAX_WORKERS
        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="webp-encode")
        logger.info("ConversionService initialized with max_workers=%s", self.max_workers)

    @staticmethod
    def encode(src: Path, dest: Path, quality: int) -> int:
        """Blocking encode of src into dest. Returns the output size in bytes.

        Only the first frame of multi-frame sources is written. Any failure
        removes the partial output and is raised as EncodeError.
        """
        try:
            with Image.open(src) as img:
                out_img = _webp_compatible(img)
                out_img.save(str(dest), format="WEBP", quality=quality, method=app_config.WEBP_METHOD)
            size = dest.stat().st_size
        except Exception as e:
            _discard(dest)
            raise EncodeError(detail=f"{src.name}: {e}") from e
        logger.info("Converted %s -> %s (quality=%s, %s bytes)", src.name, dest.name, quality, size)
        return size

    async def convert(self, upload: UploadedImage, request: ConversionRequest, dest: Path) -> EncodedOutput:
        """Encode on the worker pool, bounded by CONVERSION_TIMEOUT."""
        future = self._executor.submit(self.encode, upload.path, dest, request.quality)
        try:
            size = await asyncio.wait_for(asyncio.wrap_future(future), timeout=app_config.CONVERSION_TIMEOUT)
        except asyncio.CancelledError:
            # Request went away; the worker cannot be interrupted, so drop its output once it finishes.
            future.add_done_callback(lambda _: _discard(dest))
            raise
        except asyncio.TimeoutError:
            future.add_done_callback(lambda _: _discard(dest))
            raise EncodeError(detail=f"{upload.path.name}: timed out after {app_config.CONVERSION_TIMEOUT}s") from None
        return EncodedOutput(
            path=dest,
            download_name=f"{request.filename}.{app_config.OUTPUT_EXTENSION}",
            size=size,
        )

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)


# Singleton
_conversion_service: Optional[ConversionService] = None


def get_conversion_service() -> ConversionService:
    global _conversion_service
    if _conversion_service is None:
        _conversion_service = ConversionService()
    return _conversion_service


def shutdown_conversion_service() -> None:
    global _conversion_service
    if _conversion_service is not None:
        _conversion_service.shutdown()
        _conversion_service = None
