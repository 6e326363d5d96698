from __future__ import annotations

import os
from io import BytesIO

import pytest
from PIL import Image

os.environ.setdefault("REPLICATE_API_TOKEN", "test-token")


def make_image(width: int, height: int, fmt: str = "PNG", color=(200, 40, 40)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (width, height), color).save(buf, format=fmt)
    return buf.getvalue()


def image_size(data: bytes) -> tuple[int, int]:
    with Image.open(BytesIO(data)) as img:
        return img.size


def image_format(data: bytes) -> str | None:
    with Image.open(BytesIO(data)) as img:
        return img.format


@pytest.fixture
def png_256() -> bytes:
    return make_image(256, 256)
