"""Image encoding helpers for vision API payloads."""
from __future__ import annotations

import base64
from io import BytesIO

from PIL import Image

MIN_JPEG_QUALITY = 10
MAX_JPEG_QUALITY = 95


def encode_jpeg_base64(image: Image.Image, quality: int = 70) -> str:
    """Encode an image as base64 JPEG (alpha is dropped)."""

    quality = max(MIN_JPEG_QUALITY, min(MAX_JPEG_QUALITY, int(quality)))
    rgb = image if image.mode == "RGB" else image.convert("RGB")
    try:
        with BytesIO() as buffer:
            rgb.save(buffer, format="JPEG", quality=quality)
            encoded = base64.b64encode(buffer.getvalue()).decode("utf-8")
    finally:
        if rgb is not image:
            rgb.close()
    return encoded


__all__ = ["encode_jpeg_base64"]
