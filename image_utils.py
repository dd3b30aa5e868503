# image_utils.py
from __future__ import annotations

import numpy as np
from PIL import Image, ImageFilter

from errors import InvalidBufferSize

# ITU-R BT.601 luma weights
_LUMA = np.array([0.299, 0.587, 0.114], dtype=np.float64)


def check_rgba_size(image_data: bytes, width: int, height: int) -> None:
    expected = width * height * 4
    if len(image_data) != expected:
        raise InvalidBufferSize(expected=expected, actual=len(image_data))


def rgba_to_array(image_data: bytes, width: int, height: int) -> np.ndarray:
    check_rgba_size(image_data, width, height)
    return np.frombuffer(bytes(image_data), dtype=np.uint8).reshape(height, width, 4)


def rgba_to_gray(image_data: bytes, width: int, height: int) -> np.ndarray:
    """
    RGBA8 (row-major, no padding) -> HxW uint8 luma.

    Rounds half up, like the browser-side converter, so a pure white pixel
    stays 255.
    """
    rgba = rgba_to_array(image_data, width, height)
    luma = rgba[..., :3].astype(np.float64) @ _LUMA
    return np.clip(np.floor(luma + 0.5), 0, 255).astype(np.uint8)


def crop_gray(gray: np.ndarray, x: int, y: int, w: int, h: int) -> np.ndarray:
    h_img, w_img = gray.shape[:2]
    x2 = min(x + w, w_img)
    y2 = min(y + h, h_img)
    return gray[y:y2, x:x2]


def upscale(gray: np.ndarray, scale: float) -> np.ndarray:
    h, w = gray.shape[:2]
    new_w = int(w * scale)
    new_h = int(h * scale)
    img = Image.fromarray(gray)
    return np.asarray(img.resize((new_w, new_h), resample=Image.Resampling.LANCZOS))


def crop_rgba(image_data: bytes, width: int, height: int, x: int, y: int, w: int, h: int) -> bytes:
    # Clipped to the image, like crop_gray; an origin outside yields an empty crop.
    rgba = rgba_to_array(image_data, width, height)
    x0 = min(max(0, x), width)
    y0 = min(max(0, y), height)
    return rgba[y0:min(y0 + h, height), x0:min(x0 + w, width)].tobytes()


def unsharpen_rgba(image_data: bytes, width: int, height: int, amount: float) -> bytes:
    """Unsharp mask with a Gaussian of radius `amount` and threshold 1."""
    rgba = rgba_to_array(image_data, width, height)
    img = Image.fromarray(rgba)
    sharp = img.filter(ImageFilter.UnsharpMask(radius=amount, percent=100, threshold=1))
    return sharp.tobytes()
