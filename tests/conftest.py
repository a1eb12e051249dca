import io
import random

import pytest
from PIL import Image


def noise_image(width: int, height: int, mode: str = "RGB", seed: int = 0) -> Image.Image:
    """Random pixels: compresses badly, so sizes stay large at every quality."""
    channels = len(mode)
    data = random.Random(seed).randbytes(width * height * channels)
    return Image.frombytes(mode, (width, height), data)


def to_bytes(img: Image.Image, fmt: str, **params) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format=fmt, **params)
    return buf.getvalue()


@pytest.fixture
def big_jpeg() -> bytes:
    return to_bytes(noise_image(640, 480), "JPEG", quality=100, subsampling=0)


@pytest.fixture
def big_png() -> bytes:
    return to_bytes(noise_image(256, 256), "PNG")


@pytest.fixture
def small_png() -> bytes:
    return to_bytes(Image.new("RGB", (8, 8), (200, 30, 30)), "PNG")


@pytest.fixture
def chat_payload() -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1735000000,
        "model": "qwen-vl-plus",
        "system_fingerprint": None,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": "标题: 北京初雪\n描述: 近日，北京迎来初雪。"},
                "finish_reason": "stop",
                "logprobs": None,
            }
        ],
        "usage": {
            "prompt_tokens": 1210,
            "completion_tokens": 31,
            "total_tokens": 1241,
            "prompt_tokens_details": {"cached_tokens": 0},
        },
    }
