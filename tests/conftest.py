"""Shared fixtures for building test images in memory."""

import io

import numpy as np
import pytest
from PIL import Image  # type: ignore


def _encode(image: Image.Image, fmt: str, **params) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format=fmt, **params)
    return buf.getvalue()


@pytest.fixture
def encode():
    """Return a helper that encodes a Pillow image to bytes."""
    return _encode


@pytest.fixture
def noise_image():
    """Factory for seeded random-noise images, which compress poorly."""

    def make(width: int, height: int, mode: str = "RGB", seed: int = 0) -> Image.Image:
        rng = np.random.default_rng(seed)
        channels = len(mode)
        arr = rng.integers(0, 256, size=(height, width, channels), dtype=np.uint8)
        if mode == "RGBA":
            arr[..., 3] = 255
        return Image.fromarray(arr)

    return make


@pytest.fixture
def gradient_image():
    """Factory for smooth RGB gradients with a little seeded noise."""

    def make(width: int, height: int, seed: int = 0) -> Image.Image:
        rng = np.random.default_rng(seed)
        x = np.linspace(0, 255, width, dtype=np.float32)[None, :]
        y = np.linspace(0, 255, height, dtype=np.float32)[:, None]
        arr = np.zeros((height, width, 3), dtype=np.float32)
        arr[..., 0] = x
        arr[..., 1] = y
        arr[..., 2] = (x + y) / 2
        arr += rng.normal(0, 6, size=arr.shape)
        return Image.fromarray(np.clip(arr, 0, 255).astype(np.uint8))

    return make


@pytest.fixture
def translucent_png(encode):
    """32x32 RGBA PNG whose left half is half-transparent red."""
    img = Image.new("RGBA", (32, 32), color=(0, 0, 255, 255))
    img.paste(Image.new("RGBA", (16, 32), color=(255, 0, 0, 128)), (0, 0))
    return encode(img, "PNG")
