import base64
import binascii
from pathlib import Path
from typing import Tuple, Union

from caption_errors import UnsupportedFormatError
from image_fit import DEFAULT_BUDGET, ImageAsset, ImageFormat, fit


def prefix_for(fmt: Union[str, ImageFormat]) -> str:
    return f"data:{ImageFormat.from_name(fmt).mime};base64,"


def wrap(data: bytes, fmt: Union[str, ImageFormat]) -> str:
    """Wrap encoded image bytes as ``data:<mime>;base64,<payload>``."""
    prefix = prefix_for(fmt)
    return prefix + base64.b64encode(data).decode("ascii")


def unwrap(uri: str) -> Tuple[ImageFormat, bytes]:
    """Split a data URI produced by ``wrap`` back into its format and bytes."""
    for fmt in ImageFormat:
        prefix = prefix_for(fmt)
        if uri.startswith(prefix):
            try:
                return fmt, base64.b64decode(uri[len(prefix):], validate=True)
            except binascii.Error as e:
                raise ValueError(f"Invalid base64 payload: {e}") from e
    head = uri.split(",", 1)[0]
    raise UnsupportedFormatError(head)


def encode_image_file(path: Union[str, Path], budget: int = DEFAULT_BUDGET) -> str:
    """Read ``path``, shrink it under ``budget`` bytes if needed and return its data URI."""
    asset = ImageAsset.from_path(path)
    return wrap(fit(asset, budget), asset.format)
