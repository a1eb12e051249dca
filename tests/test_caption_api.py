import httpx
import orjson
import pytest

from caption_api import build_request, interpret_response, parse_response, request_caption
from caption_config import API_URL, CaptionConfig
from caption_errors import HttpError, MissingDataError, ResponseDecodeError

DATA_URI = "data:image/png;base64,aGVsbG8="


def make_config(**kw) -> CaptionConfig:
    return CaptionConfig(api_key="sk-test-0123456789abcdef", file="x.png", **kw)


def test_build_request_puts_image_before_text():
    req = build_request("qwen-vl-plus", "describe", DATA_URI)
    assert req["model"] == "qwen-vl-plus"
    assert len(req["messages"]) == 1
    msg = req["messages"][0]
    assert msg["role"] == "user"
    assert msg["content"] == [
        {"type": "image_url", "image_url": {"url": DATA_URI}},
        {"type": "text", "text": "describe"},
    ]


def test_interpret_success(chat_payload):
    result = interpret_response(200, orjson.dumps(chat_payload))
    assert result.text.startswith("标题: 北京初雪")
    assert (result.prompt_tokens, result.completion_tokens, result.total_tokens) == (1210, 31, 1241)
    assert result.cached_tokens == 0
    assert result.model == "qwen-vl-plus"
    assert result.finish_reason == "stop"
    assert result.title == "北京初雪"
    assert result.description == "近日，北京迎来初雪。"


def test_created_is_accepted(chat_payload):
    assert interpret_response(201, orjson.dumps(chat_payload)).total_tokens == 1241


def test_rate_limited_body_is_not_parsed():
    with pytest.raises(HttpError) as exc:
        interpret_response(429, b"Too Many Requests <not json>")
    assert exc.value.status == 429
    assert exc.value.body == "Too Many Requests <not json>"


def test_invalid_json():
    with pytest.raises(ResponseDecodeError):
        interpret_response(200, b"{not json")


def test_json_that_is_not_an_object():
    with pytest.raises(ResponseDecodeError):
        interpret_response(200, b"[1, 2]")


def test_empty_choices(chat_payload):
    chat_payload["choices"] = []
    with pytest.raises(MissingDataError):
        interpret_response(200, orjson.dumps(chat_payload))


def test_missing_usage(chat_payload):
    del chat_payload["usage"]
    with pytest.raises(MissingDataError):
        interpret_response(200, orjson.dumps(chat_payload))


def test_non_integer_usage(chat_payload):
    chat_payload["usage"]["total_tokens"] = "many"
    with pytest.raises(ResponseDecodeError):
        interpret_response(200, orjson.dumps(chat_payload))


def test_parse_response_keeps_wire_fields(chat_payload):
    resp = parse_response(chat_payload)
    assert resp.id == "chatcmpl-1"
    assert resp.object == "chat.completion"
    assert resp.choices[0].message.role == "assistant"
    assert resp.usage.prompt_tokens_details == {"cached_tokens": 0}
    assert resp.usage.completion_tokens_details is None


def test_caption_without_labels_has_no_title(chat_payload):
    chat_payload["choices"][0]["message"]["content"] = "A cat on a sofa."
    result = interpret_response(200, orjson.dumps(chat_payload))
    assert result.title is None
    assert result.description is None


def test_base_url_strips_endpoint():
    assert make_config().base_url == "https://dashscope.aliyuncs.com/compatible-mode/v1"
    assert make_config(url="http://localhost:8000/v1/").base_url == "http://localhost:8000/v1"


def test_request_caption_posts_to_endpoint(chat_payload):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=chat_payload)

    config = make_config()
    req = build_request(config.model, "describe", DATA_URI)
    result = request_caption(config, req, http_client=httpx.Client(transport=httpx.MockTransport(handler)))

    assert result.total_tokens == 1241
    assert len(seen) == 1
    sent = seen[0]
    assert sent.method == "POST"
    assert str(sent.url) == API_URL
    assert sent.headers["Authorization"] == "Bearer sk-test-0123456789abcdef"
    assert sent.headers["Content-Type"].startswith("application/json")
    body = orjson.loads(sent.content)
    assert body["model"] == "qwen-vl-plus"
    assert body["messages"] == req["messages"]


def test_request_caption_http_error_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(429, content=b'{"error": {"message": "slow down"}}')

    with pytest.raises(HttpError) as exc:
        request_caption(make_config(), build_request("m", "p", DATA_URI),
                        http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    assert exc.value.status == 429
    assert "slow down" in exc.value.body
    assert len(calls) == 1


def test_request_caption_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(HttpError) as exc:
        request_caption(make_config(), build_request("m", "p", DATA_URI),
                        http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    assert exc.value.status is None


def test_request_caption_posts_to_custom_url_as_given(chat_payload):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200, json=chat_payload)

    config = make_config(url="https://example.com/api/v2/caption")
    request_caption(config, build_request("m", "p", DATA_URI),
                    http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    assert seen == ["https://example.com/api/v2/caption"]


def test_connection_error_keeps_cause():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("name or service not known", request=request)

    with pytest.raises(HttpError) as exc:
        request_caption(make_config(), build_request("m", "p", DATA_URI),
                        http_client=httpx.Client(transport=httpx.MockTransport(handler)))
    assert "name or service not known" in exc.value.body


@pytest.mark.parametrize("key", ["prompt_tokens_details", "completion_tokens_details"])
def test_token_details_must_be_objects(chat_payload, key):
    chat_payload["usage"][key] = [1]
    with pytest.raises(ResponseDecodeError):
        interpret_response(200, orjson.dumps(chat_payload))


def test_null_token_details_allowed(chat_payload):
    chat_payload["usage"]["prompt_tokens_details"] = None
    assert interpret_response(200, orjson.dumps(chat_payload)).cached_tokens is None


def test_content_parts_list_rejected(chat_payload):
    chat_payload["choices"][0]["message"]["content"] = [{"type": "text", "text": "hi"}]
    with pytest.raises(ResponseDecodeError):
        interpret_response(200, orjson.dumps(chat_payload))


def test_null_content_is_empty_caption(chat_payload):
    chat_payload["choices"][0]["message"]["content"] = None
    result = interpret_response(200, orjson.dumps(chat_payload))
    assert result.text == ""
    assert result.title is None
