"""Fit an image under a byte budget by re-encoding it at decreasing quality.

JPEG is re-encoded at the qualities in ``QUALITY_STEPS`` until one output is
small enough. PNG is lossless, so each step only varies the zlib compression
level; an oversized PNG usually runs out of steps and raises
``BudgetExceededError``.
"""
from __future__ import annotations

import enum
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, NamedTuple, Optional, Union

from PIL import Image

from caption_errors import (
    BudgetExceededError,
    ImageDecodeError,
    ImageIOError,
    UnsupportedFormatError,
)

log = logging.getLogger(__name__)

DEFAULT_BUDGET = 4 * 1024 * 1024

# 95, 85, ... 15: everything above 5 in steps of 10
QUALITY_STEPS = tuple(range(95, 5, -10))


class ImageFormat(enum.Enum):
    JPEG = "jpeg"
    PNG = "png"

    @property
    def mime(self) -> str:
        return f"image/{self.value}"

    @classmethod
    def from_name(cls, name: Union[str, "ImageFormat"]) -> "ImageFormat":
        """Resolve ``jpg``, ``.JPEG``, ``png``... to a format; anything else is unsupported."""
        if isinstance(name, cls):
            return name
        key = str(name).strip().lower()
        if key and not key.startswith("."):
            key = "." + key
        try:
            return _EXTENSIONS[key]
        except KeyError:
            raise UnsupportedFormatError(str(name)) from None

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "ImageFormat":
        suffix = Path(path).suffix
        if not suffix:
            raise UnsupportedFormatError("")
        return cls.from_name(suffix)


_EXTENSIONS = {
    ".jpg": ImageFormat.JPEG,
    ".jpeg": ImageFormat.JPEG,
    ".png": ImageFormat.PNG,
}


@dataclass(frozen=True)
class ImageAsset:
    data: bytes
    format: ImageFormat
    path: Optional[str] = None

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "ImageAsset":
        # format first: unsupported files are rejected without being read
        fmt = ImageFormat.from_path(path)
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise ImageIOError(f"Failed to read image file {path}: {e}") from e
        return cls(data=data, format=fmt, path=str(path))


class EncodingAttempt(NamedTuple):
    quality: int
    data: bytes


def decode_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Failed to decode image: {e}") from e
    return img


def _png_compress_level(quality: int) -> int:
    # 95 -> 9, 85 -> 8, ... 15 -> 1: strongest zlib level first
    return min(9, max(1, quality // 10))


def encode(img: Image.Image, fmt: ImageFormat, quality: int) -> bytes:
    buf = io.BytesIO()
    if fmt is ImageFormat.JPEG:
        # JPEG has no alpha or palette
        if img.mode not in ("RGB", "L", "CMYK"):
            img = img.convert("RGB")
        img.save(buf, format="JPEG", quality=quality)
    elif fmt is ImageFormat.PNG:
        img.save(buf, format="PNG", compress_level=_png_compress_level(quality))
    else:
        raise UnsupportedFormatError(str(fmt))
    return buf.getvalue()


def iter_attempts(img: Image.Image, fmt: ImageFormat) -> Iterator[EncodingAttempt]:
    """Yield one re-encoding per step of ``QUALITY_STEPS``, highest quality first."""
    for quality in QUALITY_STEPS:
        yield EncodingAttempt(quality, encode(img, fmt, quality))


def fit(asset: ImageAsset, budget: int = DEFAULT_BUDGET) -> bytes:
    """Return bytes of ``asset`` no longer than ``budget``.

    The original bytes come back untouched when they already fit. Otherwise the
    first attempt that fits is returned, so higher qualities win.
    """
    if budget <= 0:
        raise ValueError("budget must be > 0")
    fmt = ImageFormat.from_name(asset.format)
    if len(asset.data) <= budget:
        return asset.data

    img = decode_image(asset.data)
    with img:
        for attempt in iter_attempts(img, fmt):
            log.debug("%s quality=%d -> %d bytes (budget %d)",
                      fmt.name, attempt.quality, len(attempt.data), budget)
            if len(attempt.data) <= budget:
                return attempt.data
    raise BudgetExceededError(budget)
