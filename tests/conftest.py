from io import BytesIO

import pytest
from PIL import Image

from image_utils import load_image_reference


def make_png(color=(34, 139, 34), size=(4, 4)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def leaf_image(png_bytes):
    return load_image_reference("leaf.png", "image/png", png_bytes)


class FakeClock:
    def __init__(self, start_ms=1_700_000_000_000):
        self.now = start_ms

    def __call__(self):
        return self.now

    def advance_minutes(self, minutes):
        self.now += int(minutes * 60 * 1000)


@pytest.fixture
def clock():
    return FakeClock()
