import asyncio
import threading
import time

import pytest

from webp_converter import config as app_config
from webp_converter.conversion.models import ConversionRequest, UploadedImage
from webp_converter.conversion.service import ConversionService
from webp_converter.errors import EncodeError, ErrorKind
from tests.conftest import convert_form, leftover_files


def test_encode_writes_webp(tmp_path, make_png):
    src = tmp_path / "in.png"
    src.write_bytes(make_png())
    dest = tmp_path / "out.webp"
    size = ConversionService.encode(src, dest, 50)
    assert size == dest.stat().st_size
    assert dest.read_bytes()[8:12] == b"WEBP"


def test_encode_failure_is_encode_error(tmp_path):
    src = tmp_path / "broken.png"
    src.write_bytes(b"\x89PNG\r\n\x1a\n not really a png")
    dest = tmp_path / "out.webp"
    with pytest.raises(EncodeError) as exc_info:
        ConversionService.encode(src, dest, 80)
    assert exc_info.value.kind is ErrorKind.ENCODE
    assert exc_info.value.status_code == 500
    assert "broken.png" in exc_info.value.detail
    assert not dest.exists()


def test_convert_endpoint_hides_codec_error(client, temp_dirs):
    resp = client.post(
        "/api/convert",
        data=convert_form(),
        files={"image": ("photo.png", b"definitely not pixels", "image/png")},
    )
    assert resp.status_code == 500
    assert resp.json() == {"error": "Error processing image"}
    assert leftover_files(temp_dirs) == []


def test_convert_returns_encoded_output(tmp_path, make_png):
    src = tmp_path / "in.png"
    src.write_bytes(make_png())
    upload = UploadedImage(path=src, original_name="in.png", content_type="image/png", size=src.stat().st_size)
    svc = ConversionService(max_workers=1)
    try:
        output = asyncio.run(svc.convert(upload, ConversionRequest("result", 60), tmp_path / "x.webp"))
    finally:
        svc.shutdown(wait=True)
    assert output.download_name == "result.webp"
    assert output.size == output.path.stat().st_size


def test_convert_timeout_discards_late_output(tmp_path, monkeypatch):
    monkeypatch.setattr(app_config, "CONVERSION_TIMEOUT", 0.05)

    def slow_encode(src, dest, quality):
        time.sleep(0.3)
        dest.write_bytes(b"late")
        return 4

    monkeypatch.setattr(ConversionService, "encode", staticmethod(slow_encode))
    src = tmp_path / "in.png"
    src.write_bytes(b"x")
    dest = tmp_path / "late.webp"
    upload = UploadedImage(path=src, original_name="in.png", content_type="image/png", size=1)
    svc = ConversionService(max_workers=1)
    with pytest.raises(EncodeError, match="timed out"):
        asyncio.run(svc.convert(upload, ConversionRequest("late", 80), dest))
    svc.shutdown(wait=True)
    assert not dest.exists()


def test_cancelled_convert_discards_late_output(tmp_path, monkeypatch):
    started = threading.Event()
    release = threading.Event()

    def blocked_encode(src, dest, quality):
        started.set()
        release.wait(5)
        dest.write_bytes(b"late")
        return 4

    monkeypatch.setattr(ConversionService, "encode", staticmethod(blocked_encode))
    src = tmp_path / "in.png"
    src.write_bytes(b"x")
    dest = tmp_path / "abandoned.webp"
    upload = UploadedImage(path=src, original_name="in.png", content_type="image/png", size=1)
    svc = ConversionService(max_workers=1)

    async def cancel_mid_encode():
        task = asyncio.create_task(svc.convert(upload, ConversionRequest("gone", 80), dest))
        await asyncio.to_thread(started.wait, 5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(cancel_mid_encode())
    release.set()
    svc.shutdown(wait=True)
    assert not dest.exists()
