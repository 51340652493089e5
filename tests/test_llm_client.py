import asyncio
import json
import time

import httpx
import pytest

from interviewer.infrastructure.llm import OpenRouterClient, VertexRestClient, extract_json
from interviewer.interview.errors import LLMRequestError, MalformedResponseError
from interviewer.interview.schemas import EVALUATION_SCHEMA


MESSAGES = [
    {"role": "system", "content": "You are an interviewer."},
    {"role": "assistant", "content": "What is a closure?"},
    {"role": "user", "content": "A function with captured scope"},
]


def _openrouter(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenRouterClient(api_key="test-key", model="test/model", http_client=http)


def _vertex(handler, monkeypatch):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    client = VertexRestClient(project="demo", location="us-central1", model="gemini-test", http_client=http)
    monkeypatch.setattr(client, "_ensure_token", lambda: "token-123")
    return client


def test_extract_json_recovers_object_from_prose():
    assert extract_json('Sure! ```json\n{"score": 4}\n``` hope that helps') == {"score": 4}


def test_extract_json_raises_with_raw_text():
    with pytest.raises(MalformedResponseError) as exc_info:
        extract_json("no braces here")
    assert exc_info.value.raw_text == "no braces here"


def test_openrouter_requires_api_key():
    with pytest.raises(ValueError):
        OpenRouterClient(api_key="")


@pytest.mark.asyncio
async def test_openrouter_sends_strict_json_schema():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["auth"] = request.headers["Authorization"]
        return httpx.Response(200, json={"choices": [{"message": {"content": '{"score": 7}'}}]})

    client = _openrouter(handler)
    result = await client.generate_json(MESSAGES, "answer_evaluation", EVALUATION_SCHEMA)
    await client.aclose()

    assert result == {"score": 7}
    assert seen["auth"] == "Bearer test-key"
    assert seen["body"]["model"] == "test/model"
    assert seen["body"]["messages"] == MESSAGES
    assert seen["body"]["response_format"]["json_schema"]["name"] == "answer_evaluation"
    assert seen["body"]["response_format"]["json_schema"]["strict"] is True


@pytest.mark.asyncio
async def test_openrouter_http_error_is_request_error():
    client = _openrouter(lambda request: httpx.Response(429, text="rate limited"))

    with pytest.raises(LLMRequestError) as exc_info:
        await client.generate_json(MESSAGES, "answer_evaluation", EVALUATION_SCHEMA)
    assert exc_info.value.status_code == 429


@pytest.mark.asyncio
async def test_openrouter_error_inside_ok_body():
    client = _openrouter(lambda request: httpx.Response(200, json={"error": {"message": "upstream", "code": 502}}))

    with pytest.raises(LLMRequestError):
        await client.generate_json(MESSAGES, "answer_evaluation", EVALUATION_SCHEMA)


@pytest.mark.asyncio
async def test_openrouter_transport_failure_is_request_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = _openrouter(handler)

    with pytest.raises(LLMRequestError):
        await client.generate_json(MESSAGES, "answer_evaluation", EVALUATION_SCHEMA)


@pytest.mark.asyncio
async def test_openrouter_missing_choices_is_malformed():
    client = _openrouter(lambda request: httpx.Response(200, json={"id": "x"}))

    with pytest.raises(MalformedResponseError) as exc_info:
        await client.generate_json(MESSAGES, "answer_evaluation", EVALUATION_SCHEMA)
    assert exc_info.value.is_json


@pytest.mark.asyncio
async def test_vertex_maps_roles_and_schema(monkeypatch):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "candidates": [{"content": {"parts": [{"text": '{"score": 5, "feedback": "ok"}'}]}}],
        })

    client = _vertex(handler, monkeypatch)
    result = await client.generate_json(MESSAGES, "answer_evaluation", EVALUATION_SCHEMA)

    assert result == {"score": 5, "feedback": "ok"}
    assert seen["url"].endswith("/publishers/google/models/gemini-test:generateContent")
    assert seen["auth"] == "Bearer token-123"
    body = seen["body"]
    assert body["systemInstruction"]["parts"][0]["text"] == "You are an interviewer."
    assert [c["role"] for c in body["contents"]] == ["model", "user"]
    assert body["generationConfig"]["responseMimeType"] == "application/json"
    assert "additionalProperties" not in body["generationConfig"]["responseSchema"]


@pytest.mark.asyncio
async def test_vertex_error_status(monkeypatch):
    client = _vertex(lambda request: httpx.Response(403, text="denied"), monkeypatch)

    with pytest.raises(LLMRequestError) as exc_info:
        await client.generate_content(MESSAGES)
    assert exc_info.value.status_code == 403


@pytest.mark.asyncio
async def test_vertex_prose_reply_is_malformed(monkeypatch):
    client = _vertex(lambda request: httpx.Response(200, json={
        "candidates": [{"content": {"parts": [{"text": "I think the answer deserves a 6."}]}}],
    }), monkeypatch)

    with pytest.raises(MalformedResponseError) as exc_info:
        await client.generate_json(MESSAGES, "answer_evaluation", EVALUATION_SCHEMA)
    assert "deserves a 6" in exc_info.value.raw_text


@pytest.mark.asyncio
async def test_vertex_token_refresh_does_not_block_event_loop(monkeypatch):
    client = _vertex(lambda request: httpx.Response(200, json={
        "candidates": [{"content": {"parts": [{"text": '{"score": 5}'}]}}],
    }), monkeypatch)

    def slow_refresh():
        time.sleep(0.2)
        return "token-123"

    monkeypatch.setattr(client, "_ensure_token", slow_refresh)
    ticks = 0

    async def ticker():
        nonlocal ticks
        while True:
            await asyncio.sleep(0.01)
            ticks += 1

    ticking = asyncio.create_task(ticker())
    try:
        assert await client.generate_json(MESSAGES, "answer_evaluation", EVALUATION_SCHEMA) == {"score": 5}
    finally:
        ticking.cancel()

    assert ticks >= 5
