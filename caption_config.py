"""Run configuration, captured once from CLI options and the environment."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from caption_errors import ConfigError
from caption_prompt import DEFAULT_CONTENT_COUNT, DEFAULT_TITLE_COUNT, resolve_prompt
from image_fit import DEFAULT_BUDGET

API_URL = "https://dashscope.aliyuncs.com/compatible-mode/v1/chat/completions"
API_MODEL = "qwen-vl-plus"
API_KEY_ENV = "YUMO_IMG_CAPTION_QWEN_API_KEY"
DEFAULT_TIMEOUT = 120.0
BASE64_OUTPUT = "base64.txt"


def mask_secret(value: str, scope: int = 12) -> str:
    """Replace the last ``scope`` characters with ``*`` (all of them if the value is short)."""
    if len(value) <= scope:
        return "*" * len(value)
    return value[:-scope] + "*" * scope


@dataclass(frozen=True)
class CaptionConfig:
    api_key: str = field(repr=False)
    file: str
    url: str = API_URL
    model: str = API_MODEL
    prompt: str = ""
    title_count: int = DEFAULT_TITLE_COUNT
    content_count: int = DEFAULT_CONTENT_COUNT
    max_bytes: int = DEFAULT_BUDGET
    timeout: float = DEFAULT_TIMEOUT
    show_info: bool = False
    save_base64: bool = False

    @classmethod
    def from_env(cls, file: str, env: Optional[Mapping[str, str]] = None, **options) -> "CaptionConfig":
        env = os.environ if env is None else env
        api_key = (env.get(API_KEY_ENV) or "").strip()
        if not api_key:
            raise ConfigError(
                f"Environment variable {API_KEY_ENV} is not set; create an API key in the "
                "Alibaba Cloud DashScope console and export it."
            )
        return cls(api_key=api_key, file=file, **options)

    @property
    def abs_file(self) -> str:
        return str(Path(self.file).resolve()) if self.file else ""

    @property
    def resolved_prompt(self) -> str:
        return resolve_prompt(self.prompt, self.title_count, self.content_count)

    @property
    def masked_key(self) -> str:
        return mask_secret(self.api_key)

    @property
    def base_url(self) -> str:
        """The endpoint URL with a trailing ``/chat/completions`` removed (what the SDK expects)."""
        url = self.url.rstrip("/")
        suffix = "/chat/completions"
        if url.endswith(suffix):
            url = url[: -len(suffix)]
        return url
