import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from webp_converter import config as app_config
from webp_converter.main import create_app


@pytest.fixture(autouse=True)
def temp_dirs(tmp_path, monkeypatch):
    upload_dir = tmp_path / "uploads"
    output_dir = tmp_path / "output"
    upload_dir.mkdir()
    output_dir.mkdir()
    monkeypatch.setattr(app_config, "UPLOAD_DIR", upload_dir)
    monkeypatch.setattr(app_config, "OUTPUT_DIR", output_dir)
    return upload_dir, output_dir


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def app():
    return create_app()


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def make_png():
    def _make(size=(64, 48), color=(200, 30, 30), mode="RGB", fmt="PNG", **save_kw):
        img = Image.new(mode, size, color)
        buf = io.BytesIO()
        img.save(buf, format=fmt, **save_kw)
        return buf.getvalue()

    return _make


def convert_form(filename="converted-image", quality="80"):
    data = {}
    if filename is not None:
        data["filename"] = filename
    if quality is not None:
        data["quality"] = quality
    return data


def leftover_files(temp_dirs):
    upload_dir, output_dir = temp_dirs
    return list(upload_dir.iterdir()) + list(output_dir.iterdir())
