"""FastAPI front-end for the GhostLLM gateway.

An alternative to the raw connection loop in ghostllm.server: a single
catch-all route converts each ASGI request into an HttpRequest and hands it
to the same Dispatcher, so routing, provider adapters, task layer and error
envelopes behave identically under either front-end.

Run with uvicorn's factory mode::

    uvicorn --factory ghostllm.app:create_app
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
from fastapi import FastAPI, Request, Response

from ghostllm.config import GatewayConfig, load_config
from ghostllm.dispatcher import Dispatcher
from ghostllm.provider import build_adapters
from ghostllm.telemetry import setup_logging
from ghostllm.wire import HttpMethod, HttpRequest

CONFIG_PATH_ENV = "GHOSTLLM_CONFIG"

ALL_METHODS = [method.value for method in HttpMethod]


async def to_http_request(request: Request) -> HttpRequest:
    """Convert an ASGI request into the gateway's HttpRequest."""
    path = request.url.path
    if request.url.query:
        path = "{}?{}".format(path, request.url.query)
    headers = {name: value for name, value in request.headers.items()}
    return HttpRequest(
        method=HttpMethod.parse(request.method),
        path=path,
        version="HTTP/{}".format(request.scope.get("http_version", "1.1")),
        headers=headers,
        body=await request.body(),
    )


def create_app(
    config: Optional[GatewayConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the ASGI application around one configuration snapshot.

    Args:
        config: Gateway configuration. Loaded from $GHOSTLLM_CONFIG (or
            defaults) when omitted.
        transport: Optional httpx transport for upstream calls.
    """
    if config is None:
        config = load_config(os.getenv(CONFIG_PATH_ENV))

    dispatcher = Dispatcher(config, build_adapters(config, transport))

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        setup_logging(config.log_file, config.log_level, config.log_json)
        yield

    app = FastAPI(
        title="GhostLLM",
        version="0.2.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.dispatcher = dispatcher

    @app.api_route("/{path:path}", methods=ALL_METHODS, include_in_schema=False)
    async def gateway(request: Request) -> Response:
        http_request = await to_http_request(request)
        http_response = await dispatcher.dispatch(http_request)
        return Response(
            content=http_response.body,
            status_code=http_response.status,
            headers=http_response.headers,
        )

    return app
