"""Command line client: send an image to a running converter and save the WebP result.

Usage:
    webp-convert test-image.jpg --quality 80 --output converted-image.webp
"""
import argparse
import logging
import mimetypes
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx

logger = logging.getLogger("converter.client")

DEFAULT_URL = "http://localhost:3000/api/convert"


@dataclass
class ConversionResult:
    output_path: Path
    original_size: int
    converted_size: int

    @property
    def reduction_percent(self) -> float:
        if not self.original_size:
            return 0.0
        return (1 - self.converted_size / self.original_size) * 100


class ConversionFailed(Exception):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Status {status_code}: {body}")


def convert_file(
    image_path: Path,
    output_path: Path,
    filename: Optional[str] = None,
    quality: int = 80,
    url: str = DEFAULT_URL,
    client: Optional[httpx.Client] = None,
    timeout: float = 120.0,
) -> ConversionResult:
    """POST image_path to the converter and stream the response into output_path."""
    content_type = mimetypes.guess_type(image_path.name)[0] or "application/octet-stream"
    data = {"filename": filename or output_path.stem, "quality": str(quality)}
    own_client = client is None
    http = client or httpx.Client(timeout=timeout)
    try:
        with open(image_path, "rb") as f:
            files = {"image": (image_path.name, f, content_type)}
            with http.stream("POST", url, data=data, files=files) as resp:
                if resp.status_code != 200:
                    resp.read()
                    raise ConversionFailed(resp.status_code, resp.text)
                with open(output_path, "wb") as out:
                    for chunk in resp.iter_bytes():
                        out.write(chunk)
    finally:
        if own_client:
            http.close()
    return ConversionResult(
        output_path=output_path,
        original_size=image_path.stat().st_size,
        converted_size=output_path.stat().st_size,
    )


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Convert an image to WebP using the converter API.")
    parser.add_argument("image", type=Path, help="Image file to upload")
    parser.add_argument("--url", default=DEFAULT_URL, help=f"Convert endpoint (default: {DEFAULT_URL})")
    parser.add_argument("--filename", help="Download name without extension (default: output stem)")
    parser.add_argument("--quality", type=int, default=80, help="WebP quality 1-100 (default: 80)")
    parser.add_argument("--output", type=Path, help="Where to write the result (default: <image>.webp)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(message)s")
    if not args.image.is_file():
        logger.error("Error: image not found at %s", args.image)
        return 1
    output = args.output or args.image.with_suffix(".webp")

    logger.info("Sending request to convert image...")
    try:
        result = convert_file(args.image, output, filename=args.filename, quality=args.quality, url=args.url)
    except ConversionFailed as e:
        logger.error("Error converting image:\nStatus: %s\nResponse: %s", e.status_code, e.body)
        return 1
    except httpx.HTTPError as e:
        logger.error("Error converting image: %s", e)
        return 1

    logger.info("Success! Converted image saved to %s", result.output_path)
    logger.info("File size comparison:")
    logger.info("Original (%s): %.2f KB", args.image.name, result.original_size / 1024)
    logger.info("Converted (%s): %.2f KB", result.output_path.name, result.converted_size / 1024)
    logger.info("Reduction: %.2f%%", result.reduction_percent)
    return 0


if __name__ == "__main__":
    sys.exit(main())
