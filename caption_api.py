"""Chat-completion request/response handling for the vision caption call.

The request body is OpenAI-compatible (DashScope's compatible mode accepts it
as is). Responses are interpreted from the raw status and body so that error
bodies reach the user verbatim.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx
import orjson
from openai import APIConnectionError, APIStatusError, OpenAI

from caption_config import CaptionConfig
from caption_errors import HttpError, MissingDataError, ResponseDecodeError
from caption_prompt import DESCRIPTION_LABEL, TITLE_LABEL

log = logging.getLogger(__name__)

OK_STATUSES = (200, 201)


@dataclass
class Message:
    role: str
    content: str


@dataclass
class Choice:
    index: int
    message: Message
    finish_reason: Optional[str] = None
    logprobs: Any = None


@dataclass
class Usage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    prompt_tokens_details: Optional[Dict[str, Any]] = None
    completion_tokens_details: Optional[Dict[str, Any]] = None


@dataclass
class ChatResponse:
    id: str
    object: str
    created: int
    model: str
    choices: List[Choice]
    usage: Usage
    system_fingerprint: Optional[str] = None


def _split_labelled(text: str, label: str) -> Optional[str]:
    for line in text.splitlines():
        line = line.strip()
        for sep in (":", "："):
            head = label + sep
            if line.startswith(head):
                return line[len(head):].strip()
    return None


@dataclass(frozen=True)
class CaptionResult:
    text: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    cached_tokens: Optional[int] = None
    model: str = ""
    response_id: str = ""
    finish_reason: Optional[str] = field(default=None, compare=False)

    @property
    def title(self) -> Optional[str]:
        return _split_labelled(self.text, TITLE_LABEL)

    @property
    def description(self) -> Optional[str]:
        return _split_labelled(self.text, DESCRIPTION_LABEL)


def build_request(model: str, prompt: str, data_uri: str) -> Dict[str, Any]:
    """One user message: the image part first, then the prompt text."""
    return {
        "model": model,
        "messages": [
            {
                "role": "user",
                "content": [
                    {"type": "image_url", "image_url": {"url": data_uri}},
                    {"type": "text", "text": prompt},
                ],
            }
        ],
    }


def _as_details(value: Any, name: str) -> Optional[Dict[str, Any]]:
    if value is not None and not isinstance(value, dict):
        raise ResponseDecodeError(f"usage.{name} is not an object: {value!r}")
    return value


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ResponseDecodeError(f"message.content is not a string: {value!r}")
    return value


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ResponseDecodeError(f"usage.{name} is not an integer: {value!r}")
    return value


def parse_response(payload: Dict[str, Any]) -> ChatResponse:
    """Map a decoded chat-completion payload onto ``ChatResponse``.

    Raises ``MissingDataError`` when there is no choice or no usage block.
    """
    raw_choices = payload.get("choices") or []
    if not raw_choices:
        raise MissingDataError("Response contains no choices")
    usage = payload.get("usage")
    if not isinstance(usage, dict):
        raise MissingDataError("Response contains no usage information")

    choices: List[Choice] = []
    try:
        for i, c in enumerate(raw_choices):
            msg = c.get("message") or {}
            choices.append(Choice(
                index=c.get("index", i),
                message=Message(role=msg.get("role", ""), content=_as_text(msg.get("content"))),
                finish_reason=c.get("finish_reason"),
                logprobs=c.get("logprobs"),
            ))
    except AttributeError as e:
        raise ResponseDecodeError(f"Malformed choices: {e}") from e

    return ChatResponse(
        id=payload.get("id", ""),
        object=payload.get("object", ""),
        created=payload.get("created", 0),
        model=payload.get("model", ""),
        system_fingerprint=payload.get("system_fingerprint"),
        choices=choices,
        usage=Usage(
            prompt_tokens=_as_int(usage.get("prompt_tokens"), "prompt_tokens"),
            completion_tokens=_as_int(usage.get("completion_tokens"), "completion_tokens"),
            total_tokens=_as_int(usage.get("total_tokens"), "total_tokens"),
            prompt_tokens_details=_as_details(usage.get("prompt_tokens_details"), "prompt_tokens_details"),
            completion_tokens_details=_as_details(
                usage.get("completion_tokens_details"), "completion_tokens_details"),
        ),
    )


def interpret_response(status: int, body: bytes) -> CaptionResult:
    if status not in OK_STATUSES:
        raise HttpError(status, body.decode("utf-8", errors="replace"))
    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError as e:
        raise ResponseDecodeError(f"Failed to parse JSON response: {e}") from e
    if not isinstance(payload, dict):
        raise ResponseDecodeError("JSON response is not an object")

    resp = parse_response(payload)
    first = resp.choices[0]
    details = resp.usage.prompt_tokens_details or {}
    return CaptionResult(
        text=first.message.content,
        prompt_tokens=resp.usage.prompt_tokens,
        completion_tokens=resp.usage.completion_tokens,
        total_tokens=resp.usage.total_tokens,
        cached_tokens=details.get("cached_tokens"),
        model=resp.model,
        response_id=resp.id,
        finish_reason=first.finish_reason,
    )


def openai_client(config: CaptionConfig, http_client: Optional[httpx.Client] = None) -> OpenAI:
    # no retries: every failure is reported once
    return OpenAI(
        api_key=config.api_key,
        base_url=config.base_url,
        timeout=config.timeout,
        max_retries=0,
        http_client=http_client,
    )


def request_caption(config: CaptionConfig, request: Dict[str, Any],
                    http_client: Optional[httpx.Client] = None) -> CaptionResult:
    """POST ``request`` to the configured endpoint and interpret the reply."""
    log.debug("POST %s model=%s", config.url, request.get("model"))
    with openai_client(config, http_client) as client:
        try:
            # absolute URL: the SDK posts to it as given instead of joining it to base_url
            response = client.post(config.url, cast_to=httpx.Response, body=request)
        except APIStatusError as e:
            status, body = e.status_code, e.response.content
        except APIConnectionError as e:
            reason = f"{e} ({e.__cause__})" if e.__cause__ else str(e)
            raise HttpError(None, reason) from e
        else:
            status, body = response.status_code, response.content
    log.debug("HTTP %s, %d bytes", status, len(body))
    return interpret_response(status, body)
