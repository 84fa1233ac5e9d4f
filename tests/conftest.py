from io import BytesIO

import numpy as np
import pytest
from PIL import Image


@pytest.fixture
def anyio_backend():
    return 'asyncio'


def _make_image(width: int, height: int, image_format: str = 'PNG', mode: str = 'RGBA',
                color: int | tuple[int, ...] | None = None, seed: int | None = None) -> bytes:
    if seed is not None:
        channels = len(mode)
        pixels = np.random.default_rng(seed).integers(0, 256, size=(height, width, channels), dtype=np.uint8)
        image = Image.fromarray(pixels)
    else:
        default_color = (200, 40, 40, 255)[:len(mode)]
        image = Image.new(mode, (width, height), default_color if color is None else color)

    result = BytesIO()
    image.save(result, format=image_format)
    return result.getvalue()


@pytest.fixture
def make_image():
    """ Returns a function that encodes a synthetic image: solid colour, or random noise when `seed` is set """
    return _make_image
