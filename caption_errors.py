"""Error types raised while preparing an image and asking the model for a caption.

Every failure is terminal for a run; the CLI catches ``CaptionError`` once and
prints a diagnostic.
"""
from __future__ import annotations

from typing import Optional


class CaptionError(Exception):
    """Base class for all captioning failures."""


class ConfigError(CaptionError):
    pass


class ImageIOError(CaptionError, OSError):
    pass


class UnsupportedFormatError(CaptionError):
    def __init__(self, ext: str):
        self.ext = ext
        super().__init__(f"Unsupported image format: {ext or '(no extension)'}")


class DecodeError(CaptionError):
    pass


class ImageDecodeError(DecodeError):
    pass


class ResponseDecodeError(DecodeError):
    pass


class BudgetExceededError(CaptionError):
    def __init__(self, budget: int):
        self.budget = budget
        super().__init__(f"Could not compress image below {budget} bytes")


class HttpError(CaptionError):
    """Transport failure (status is None) or a non-2xx response."""

    def __init__(self, status: Optional[int], body: str):
        self.status = status
        self.body = body
        if status is None:
            msg = f"Request failed: {body}"
        else:
            msg = f"Request failed with status {status}: {body}"
        super().__init__(msg)


class MissingDataError(CaptionError):
    pass
