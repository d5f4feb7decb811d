import base64
import threading
import time

import pytest
import requests
from unittest.mock import MagicMock

from trafficjam.errors import CallTimeoutError, ModelError, ModelTimeoutError
from trafficjam.vlm.client import SYSTEM_PROMPT, VLMClient


def _response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload
    response.text = str(payload)
    return response


def _client(session, **kwargs):
    kwargs.setdefault("max_retries", 2)
    return VLMClient(
        model="llama3.2-vision",
        base_url="http://ollama:11434/v1/",
        api_key="test-key",
        session=session,
        retry_backoff_seconds=0,
        **kwargs,
    )


def _chat(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def test_complete_sends_prompt_and_image():
    session = MagicMock()
    session.post.return_value = _response(payload=_chat('{"Title": "Cam"}'))
    client = _client(session)

    text = client.complete("Describe", b"\xff\xd8\xff", "image/jpeg; charset=binary")

    assert text == '{"Title": "Cam"}'
    args, kwargs = session.post.call_args
    assert args[0] == "http://ollama:11434/v1/chat/completions"
    assert kwargs["headers"]["Authorization"] == "Bearer test-key"
    payload = kwargs["json"]
    assert payload["model"] == "llama3.2-vision"
    assert payload["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
    text_part, image_part = payload["messages"][1]["content"]
    assert text_part == {"type": "text", "text": "Describe"}
    encoded = base64.b64encode(b"\xff\xd8\xff").decode("ascii")
    assert image_part["image_url"]["url"] == f"data:image/jpeg;base64,{encoded}"


def test_complete_without_image_sends_text_only():
    session = MagicMock()
    session.post.return_value = _response(payload=_chat("ok"))
    _client(session).complete("Describe", b"")
    content = session.post.call_args.kwargs["json"]["messages"][1]["content"]
    assert content == [{"type": "text", "text": "Describe"}]


def test_complete_returns_empty_text_when_no_content():
    session = MagicMock()
    session.post.return_value = _response(payload=_chat(None))
    assert _client(session).complete("Describe") == ""


def test_complete_joins_content_parts():
    session = MagicMock()
    session.post.return_value = _response(payload=_chat([{"type": "text", "text": "a"}, "b"]))
    assert _client(session).complete("Describe") == "ab"


def test_complete_retries_then_raises_model_error():
    session = MagicMock()
    session.post.return_value = _response(status_code=500, payload={"error": "api_key=sk-abcdefghijklmnop"})
    client = _client(session, max_retries=3)

    with pytest.raises(ModelError) as excinfo:
        client.complete("Describe")

    assert session.post.call_count == 3
    assert "HTTP 500" in str(excinfo.value)
    assert "sk-abcdefghijklmnop" not in str(excinfo.value)


def test_complete_recovers_after_transient_failure():
    session = MagicMock()
    session.post.side_effect = [requests.ConnectionError("reset"), _response(payload=_chat("ok"))]
    assert _client(session).complete("Describe") == "ok"


def test_timeout_is_a_distinct_error_kind():
    session = MagicMock()
    session.post.side_effect = requests.Timeout("slow")
    with pytest.raises(ModelTimeoutError) as excinfo:
        _client(session, timeout_seconds=5).complete("Describe")
    assert isinstance(excinfo.value, CallTimeoutError)
    assert session.post.call_args.kwargs["timeout"] == 5


def test_zero_retries_still_makes_one_attempt():
    session = MagicMock()
    session.post.return_value = _response(status_code=503, payload={"error": "busy"})
    client = _client(session, max_retries=0)

    with pytest.raises(ModelError):
        client.complete("Describe")

    assert client.max_retries == 1
    assert session.post.call_count == 1


def test_stop_event_cuts_retry_backoff_short():
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("reset")
    stop_event = threading.Event()
    stop_event.set()
    client = VLMClient(
        model="llama3.2-vision",
        base_url="http://ollama:11434/v1",
        session=session,
        max_retries=3,
        retry_backoff_seconds=60,
        stop_event=stop_event,
    )

    started = time.monotonic()
    with pytest.raises(ModelError):
        client.complete("Describe")

    assert time.monotonic() - started < 5
    assert session.post.call_count == 1
