import asyncio
import io

import httpx
import pytest
from PIL import Image

from tests.conftest import convert_form, leftover_files

CASES = [
    ((40, 30), (255, 0, 0)),
    ((48, 34), (0, 255, 0)),
    ((56, 38), (0, 0, 255)),
    ((64, 42), (255, 255, 0)),
]


@pytest.mark.anyio
async def test_concurrent_requests_with_same_filename_do_not_collide(app, make_png, temp_dirs):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as ac:

        async def send(size, color):
            return await ac.post(
                "/api/convert",
                data=convert_form(filename="same", quality="90"),
                files={"image": ("same.png", make_png(size=size, color=color), "image/png")},
            )

        responses = await asyncio.gather(*(send(size, color) for size, color in CASES))

    for resp, (size, color) in zip(responses, CASES):
        assert resp.status_code == 200
        assert resp.headers["content-disposition"] == 'attachment; filename="same.webp"'
        with Image.open(io.BytesIO(resp.content)) as img:
            assert img.size == size
            pixel = img.convert("RGB").getpixel((size[0] // 2, size[1] // 2))
        assert all(abs(got - want) < 40 for got, want in zip(pixel, color))
    assert leftover_files(temp_dirs) == []
