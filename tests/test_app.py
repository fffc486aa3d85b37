"""Smoke tests for the FastAPI front-end.

The ASGI app hands every request to the same Dispatcher as the raw server,
so these cover the end-to-end scenarios through a real HTTP client.
"""

from typing import List

import pytest
from httpx import ASGITransport, AsyncClient

from fakes import FakeUpstream
from ghostllm.app import create_app
from ghostllm.config import GatewayConfig
from ghostllm.wire import HttpMethod, HttpRequest, HttpResponse


def _client(config: GatewayConfig, upstream: FakeUpstream) -> AsyncClient:
    app = create_app(config, transport=upstream.transport)
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_chat_local_fallback(config: GatewayConfig, upstream: FakeUpstream) -> None:
    """With Ollama down the local provider still answers."""
    async with _client(config, upstream) as client:
        resp = await client.post(
            "/v1/chat/completions",
            json={"model": "llama2", "messages": [{"role": "user", "content": "Hello"}]},
        )

    assert resp.status_code == 200
    data = resp.json()
    assert data["id"].startswith("chatcmpl-")
    assert data["choices"][0]["message"]["content"] == (
        "Hello! Ollama is not available, this is a fallback response."
    )
    assert data["usage"]["total_tokens"] == 30
    assert resp.headers["access-control-allow-origin"] == "*"


@pytest.mark.asyncio
async def test_chat_without_credential(config: GatewayConfig, upstream: FakeUpstream) -> None:
    async with _client(config, upstream) as client:
        resp = await client.post(
            "/v1/chat/completions",
            json={"model": "gpt-4", "messages": [{"role": "user", "content": "Hello"}]},
        )

    assert resp.status_code == 500
    assert resp.json()["error"]["message"] == "OpenAI API key not configured"
    assert upstream.requests == []


@pytest.mark.asyncio
async def test_chat_claude(keyed_config: GatewayConfig, upstream: FakeUpstream) -> None:
    upstream.reply("/v1/messages", {"content": [{"type": "text", "text": "Hi"}]})

    async with _client(keyed_config, upstream) as client:
        resp = await client.post(
            "/v1/chat/completions",
            json={
                "model": "claude-3-sonnet",
                "messages": [
                    {"role": "system", "content": "Be brief."},
                    {"role": "user", "content": "Hello"},
                ],
            },
        )

    assert resp.status_code == 200
    assert resp.json()["choices"][0]["message"]["content"] == "Hi"
    sent = upstream.last_json()
    assert sent["messages"] == [{"role": "user", "content": "Hello"}]
    assert sent["max_tokens"] == 4096


@pytest.mark.asyncio
async def test_health(config: GatewayConfig, upstream: FakeUpstream) -> None:
    async with _client(config, upstream) as client:
        resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.content == (
        b'{"status":"healthy","service":"GhostLLM v0.2.0","gpu_enabled":true}'
    )


@pytest.mark.asyncio
async def test_preflight(config: GatewayConfig, upstream: FakeUpstream) -> None:
    async with _client(config, upstream) as client:
        resp = await client.options("/v1/chat/completions")

    assert resp.status_code == 200
    assert resp.content == b""
    assert resp.headers["access-control-allow-methods"] == "GET, POST, PUT, DELETE, OPTIONS"
    assert resp.headers["access-control-allow-headers"] == "Content-Type, Authorization"


@pytest.mark.asyncio
async def test_not_found(config: GatewayConfig, upstream: FakeUpstream) -> None:
    async with _client(config, upstream) as client:
        resp = await client.get("/nope")

    assert resp.status_code == 404
    assert resp.json() == {"error": {"message": "Not Found", "type": "not_found", "code": 404}}


@pytest.mark.asyncio
async def test_task_endpoint(config: GatewayConfig, upstream: FakeUpstream) -> None:
    async with _client(config, upstream) as client:
        resp = await client.post(
            "/v1/zeke/code/explain", json={"code": "print(1)", "model": "llama2"}
        )

    assert resp.status_code == 200
    data = resp.json()
    assert data["type"] == "code_explanation"
    assert data["provider"] == "ollama"


@pytest.mark.asyncio
async def test_to_http_request_keeps_query(config: GatewayConfig, upstream: FakeUpstream) -> None:
    app = create_app(config, transport=upstream.transport)
    captured: List[HttpRequest] = []

    original = app.state.dispatcher.dispatch

    async def spy(request: HttpRequest) -> HttpResponse:
        captured.append(request)
        return await original(request)

    app.state.dispatcher.dispatch = spy
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        await client.get("/health?verbose=1", headers={"X-Trace": "abc"})

    assert captured[0].path == "/health?verbose=1"
    assert captured[0].method is HttpMethod.GET
    assert captured[0].header("x-trace") == "abc"
