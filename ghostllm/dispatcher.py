"""Request dispatch: select and run the handler for a parsed request.

Routing policy, in order:

1. OPTIONS on any path is a CORS preflight.
2. Exact path match against the endpoint table. A matched path with a
   method it does not accept is rejected with 405 before the body is read.
3. Paths under /v1/zeke/ go to the task layer; task endpoints accept POST only.
4. Anything else is 404.

Every failure is turned into an error envelope here, so a handler never
takes the connection down with it.
"""

import json
import time
from dataclasses import dataclass
from functools import partial
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Mapping, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ghostllm.config import GatewayConfig
from ghostllm.errors import (
    GatewayError,
    InvalidRequestError,
    MethodNotAllowedError,
    NotFoundError,
)
from ghostllm.models import (
    ChatRequest,
    CompletionRequest,
    HealthResponse,
    ModelList,
    Provider,
)
from ghostllm.provider import ProviderAdapter, call_completion, call_provider
from ghostllm.tasks import (
    TASK_PREFIX,
    TASK_ROUTES,
    TaskKind,
    parse_task_request,
    run_task,
    task_error,
)
from ghostllm.telemetry import log_request, logger
from ghostllm.wire import (
    HttpMethod,
    HttpRequest,
    HttpResponse,
    cors_preflight,
    error_response,
    json_response,
)

Handler = Callable[[HttpRequest], Awaitable[HttpResponse]]

ModelT = TypeVar("ModelT", bound=BaseModel)


@dataclass(frozen=True)
class Route:
    handler: Handler
    methods: FrozenSet[HttpMethod]


def json_body(request: HttpRequest) -> Dict[str, Any]:
    """Decode the request body as a JSON object.

    Raises:
        InvalidRequestError: If the body is empty, not JSON, or not an object.
    """
    if not request.body:
        raise InvalidRequestError("Request body required")
    try:
        payload = json.loads(request.body)
    except ValueError:
        raise InvalidRequestError("Invalid JSON") from None
    if not isinstance(payload, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    return payload


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    if location:
        return "Invalid field '{}': {}".format(location, first.get("msg", "invalid"))
    return str(first.get("msg", "Invalid request"))


def validate(model_cls: Type[ModelT], payload: Dict[str, Any]) -> ModelT:
    """Validate ``payload`` against ``model_cls``, raising InvalidRequestError."""
    try:
        return model_cls.model_validate(payload)
    except ValidationError as exc:
        raise InvalidRequestError(_describe(exc)) from None


class Dispatcher:
    """Routes HttpRequests to handlers and renders their responses."""

    def __init__(
        self,
        config: GatewayConfig,
        adapters: Mapping[Provider, ProviderAdapter],
    ) -> None:
        self.config = config
        self.adapters = adapters
        get_only = frozenset({HttpMethod.GET})
        post_only = frozenset({HttpMethod.POST})
        self._routes: Dict[str, Route] = {
            "/health": Route(self.health, get_only),
            "/v1/models": Route(self.models, get_only),
            "/v1/chat/completions": Route(self.chat_completions, post_only),
            "/v1/completions": Route(self.completions, post_only),
        }

    def match(self, request: HttpRequest) -> Handler:
        """Select exactly one handler for ``request``."""
        if request.method is HttpMethod.OPTIONS:
            return self.preflight

        route = self._routes.get(request.path)
        if route is not None:
            if request.method not in route.methods:
                return partial(self._reject, MethodNotAllowedError, "Method Not Allowed")
            return route.handler

        if request.path.startswith(TASK_PREFIX):
            kind = TASK_ROUTES.get(request.path)
            if kind is None:
                return partial(self._reject, NotFoundError, "Task endpoint not found")
            if request.method is not HttpMethod.POST:
                return partial(self._reject, MethodNotAllowedError, "Method Not Allowed")
            return partial(self.task, kind)

        return partial(self._reject, NotFoundError, "Not Found")

    async def dispatch(self, request: HttpRequest) -> HttpResponse:
        """Run the matched handler and convert any failure into an envelope."""
        started = time.perf_counter()
        handler = self.match(request)
        error = None
        try:
            response = await handler(request)
            outcome = "success" if response.status < 400 else "error"
        except GatewayError as exc:
            response = error_response(exc.status, exc.message, exc.kind)
            outcome = exc.kind
            error = exc.message
        except Exception as exc:
            logger.exception(
                "Unhandled error for %s %s", request.method.value, request.path
            )
            response = error_response(500, "Internal server error", "internal_error")
            outcome = "internal_error"
            error = str(exc)

        log_request(
            method=request.method.value,
            path=request.path,
            status=response.status,
            outcome=outcome,
            error=error,
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        return response

    async def _reject(
        self, error_cls: Type[GatewayError], message: str, request: HttpRequest
    ) -> HttpResponse:
        raise error_cls(message)

    async def preflight(self, request: HttpRequest) -> HttpResponse:
        return cors_preflight()

    async def health(self, request: HttpRequest) -> HttpResponse:
        # gpu_enabled is advertised, not probed
        return json_response(200, HealthResponse(service=self.config.service_name))

    async def models(self, request: HttpRequest) -> HttpResponse:
        listing = ModelList()
        for adapter in self.adapters.values():
            listing.data.extend(await adapter.list_models())
        return json_response(200, listing)

    async def chat_completions(self, request: HttpRequest) -> HttpResponse:
        payload = json_body(request)
        if "messages" not in payload:
            raise InvalidRequestError("Messages field required")
        chat = validate(ChatRequest, payload)
        result = await call_provider(self.adapters, chat)
        return json_response(200, result.response)

    async def completions(self, request: HttpRequest) -> HttpResponse:
        payload = json_body(request)
        if "prompt" not in payload:
            raise InvalidRequestError("Prompt field required")
        completion = validate(CompletionRequest, payload)
        _, response = await call_completion(self.adapters, completion)
        return json_response(200, response)

    async def task(self, kind: TaskKind, request: HttpRequest) -> HttpResponse:
        payload = json_body(request)
        try:
            task = parse_task_request(kind, payload)
        except ValidationError as exc:
            raise InvalidRequestError(_describe(exc)) from None

        try:
            envelope = await run_task(kind, task, self.adapters)
        except GatewayError as exc:
            # reported in the task envelope; the request itself succeeds
            logger.error("Task %s failed: %s", kind.value, exc.message)
            return json_response(200, task_error(exc.message))
        return json_response(200, envelope)
