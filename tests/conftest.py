from io import BytesIO

import pytest
from PIL import Image

from app import app

RED = (255, 0, 0, 255)
GREEN = (0, 255, 0, 255)
BLUE = (0, 0, 255, 255)
PURPLE = (128, 0, 128, 255)


def encode_png(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def make_png():
    def _make(color=RED, size=(8, 8)) -> bytes:
        return encode_png(Image.new("RGBA", size, color))

    return _make


@pytest.fixture
def corner_overlay_png():
    """Transparent 8x8 overlay with an opaque purple top-left quarter."""
    image = Image.new("RGBA", (8, 8), (0, 0, 0, 0))
    image.paste(Image.new("RGBA", (4, 4), PURPLE), (0, 0))
    return encode_png(image)


@pytest.fixture
def overlay_dir(tmp_path, corner_overlay_png):
    for stem in ("WeedGreen", "PurpleHaze", "AcapulcoGold"):
        (tmp_path / f"{stem}.png").write_bytes(corner_overlay_png)
    return tmp_path


@pytest.fixture(autouse=True)
def clear_dependency_overrides():
    yield
    app.dependency_overrides.clear()


def close_to(pixel, expected, tolerance=2):
    return all(abs(a - b) <= tolerance for a, b in zip(pixel, expected))
