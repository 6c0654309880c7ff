import httpx
import pytest

from commonplace.llm import LLMClient, TranscriptionError, _extract_json


def test_chat_json_request_shape(llm, fake_openai):
    """JSON mode requests carry both prompts and the auth header."""
    fake_openai.queue({"title": "Groceries"})

    result = llm.chat_json("gpt-test", "system prompt", "milk and eggs", temperature=0.2)

    assert result == {"title": "Groceries"}
    request = fake_openai.requests[0]
    assert request.url == "https://llm.test/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer test-key"

    payload = fake_openai.request_json()
    assert payload["model"] == "gpt-test"
    assert payload["temperature"] == 0.2
    assert payload["response_format"] == {"type": "json_object"}
    assert payload["messages"] == [
        {"role": "system", "content": "system prompt"},
        {"role": "user", "content": "milk and eggs"},
    ]
    assert "max_tokens" not in payload


def test_chat_json_strips_code_fence(llm, fake_openai):
    fake_openai.queue('```json\n{"answer": "yes"}\n```')
    assert llm.chat_json("gpt-test", "s", "u") == {"answer": "yes"}


def test_chat_json_rejects_non_object(llm, fake_openai):
    fake_openai.queue("[1, 2, 3]")
    with pytest.raises(ValueError):
        llm.chat_json("gpt-test", "s", "u")


def test_chat_text(llm, fake_openai):
    fake_openai.queue("  Ideas \n")

    assert llm.chat_text("gpt-test", "s", "u", max_tokens=20) == "Ideas"
    payload = fake_openai.request_json()
    assert payload["max_tokens"] == 20
    assert "response_format" not in payload


def test_empty_content_raises(llm, fake_openai):
    fake_openai.queue("")
    with pytest.raises(ValueError, match="No response from model"):
        llm.chat_text("gpt-test", "s", "u")


def test_http_error_raises(llm, fake_openai):
    fake_openai.queue(500)
    with pytest.raises(httpx.HTTPStatusError):
        llm.chat_json("gpt-test", "s", "u")


def test_missing_api_key(fake_openai):
    client = httpx.Client(transport=httpx.MockTransport(fake_openai.handler))
    llm = LLMClient(api_key="", client=client)

    assert llm.enabled is False
    with pytest.raises(RuntimeError):
        llm.chat_text("gpt-test", "s", "u")
    assert fake_openai.requests == []


def test_transcribe(llm, fake_openai):
    fake_openai.queue("  remember to buy milk \n")

    assert llm.transcribe(b"audio-bytes", "memo.webm") == "remember to buy milk"
    request = fake_openai.requests[0]
    assert request.url.path == "/v1/audio/transcriptions"
    assert b"memo.webm" in request.content
    assert b"audio-bytes" in request.content


def test_transcribe_failure(llm, fake_openai):
    fake_openai.queue(502)
    with pytest.raises(TranscriptionError, match="Failed to transcribe audio"):
        llm.transcribe(b"audio-bytes")


def test_transcribe_network_error(llm, fake_openai):
    fake_openai.queue(httpx.ConnectError("unreachable"))
    with pytest.raises(TranscriptionError):
        llm.transcribe(b"audio-bytes")


def test_extract_json_plain():
    assert _extract_json(' {"a": 1} ') == {"a": 1}
