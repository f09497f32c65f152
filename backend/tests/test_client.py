import pytest
from PIL import Image

from webp_converter.client import ConversionFailed, ConversionResult, convert_file, main


def test_convert_file_saves_webp(client, make_png, tmp_path):
    src = tmp_path / "test-image.png"
    src.write_bytes(make_png(size=(90, 60)))
    out = tmp_path / "converted-image.webp"

    result = convert_file(src, out, quality=70, url="/api/convert", client=client)

    assert result.output_path == out
    assert result.original_size == src.stat().st_size
    assert result.converted_size == out.stat().st_size > 0
    with Image.open(out) as img:
        assert img.format == "WEBP"
        assert img.size == (90, 60)


def test_convert_file_reports_rejection(client, tmp_path):
    src = tmp_path / "notes.txt"
    src.write_text("not an image")

    with pytest.raises(ConversionFailed) as exc_info:
        convert_file(src, tmp_path / "notes.webp", url="/api/convert", client=client)

    assert exc_info.value.status_code == 400
    assert "not a valid image" in exc_info.value.body
    assert not (tmp_path / "notes.webp").exists()


def test_reduction_percent():
    assert ConversionResult(output_path=None, original_size=1000, converted_size=250).reduction_percent == 75.0
    assert ConversionResult(output_path=None, original_size=0, converted_size=10).reduction_percent == 0.0


def test_main_with_missing_image(tmp_path):
    assert main([str(tmp_path / "missing.jpg")]) == 1
