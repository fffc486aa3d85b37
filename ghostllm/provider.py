"""Provider adapters for the upstream LLM APIs.

Each adapter translates a canonical (OpenAI-shaped) chat request into one
vendor's wire format, performs the upstream call, and normalizes the reply
back into a canonical ChatResponse:

    build(request) -> UpstreamRequest
    call(upstream) -> raw reply bytes
    normalize(reply, request) -> ChatResponse

Only the first completion candidate is read. Unless the upstream reports real
usage in OpenAI form, usage counters are fixed placeholders.

The local (Ollama) adapter answers chat and completion requests with a canned
reply when the backend is unreachable; malformed replies are never masked
there. Its model listing falls back to a fixed list on any failure.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, Union

import httpx

from ghostllm.config import GatewayConfig, ProviderConfig
from ghostllm.errors import (
    ConfigurationError,
    GatewayError,
    TransportError,
    TranslationError,
    UpstreamError,
)
from ghostllm.models import (
    ChatChoice,
    ChatMessage,
    ChatRequest,
    ChatResponse,
    CompletionChoice,
    CompletionRequest,
    CompletionResponse,
    ModelInfo,
    Provider,
    UsageInfo,
    completion_id,
    now,
)
from ghostllm.router import resolve_provider
from ghostllm.telemetry import logger

CLAUDE_API_VERSION = "2023-06-01"
CLAUDE_DEFAULT_MAX_TOKENS = 4096
LOCAL_DEFAULT_TEMPERATURE = 0.7

LOCAL_CHAT_FALLBACK = "Hello! Ollama is not available, this is a fallback response."
LOCAL_COMPLETION_FALLBACK = "This is a fallback response from GhostLLM."

_LOCAL_FALLBACK_REPLIES: Dict[str, Dict[str, Any]] = {
    "/api/chat": {
        "model": "llama2",
        "created_at": "2023-08-04T19:22:45.499127Z",
        "message": {"role": "assistant", "content": LOCAL_CHAT_FALLBACK},
        "done": True,
    },
    "/api/generate": {
        "model": "llama2",
        "created_at": "2023-08-04T19:22:45.499127Z",
        "response": LOCAL_COMPLETION_FALLBACK,
        "done": True,
    },
    "/api/tags": {
        "models": [
            {
                "name": "llama2",
                "modified_at": "2023-08-04T19:22:45.085406Z",
                "size": 3826793677,
            }
        ]
    },
}

_JSON_HEADERS = {"Content-Type": "application/json"}


def placeholder_usage() -> UsageInfo:
    """Return the fixed usage counters reported when real accounting is absent."""
    return UsageInfo(prompt_tokens=10, completion_tokens=20, total_tokens=30)


@dataclass
class UpstreamRequest:
    """A fully built request to an upstream provider."""

    url: str
    payload: Optional[Dict[str, Any]] = None
    method: str = "POST"
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)

    @property
    def content(self) -> Optional[bytes]:
        """The JSON-encoded payload as sent on the wire."""
        if self.payload is None:
            return None
        return json.dumps(self.payload).encode("utf-8")


@dataclass
class ProviderResult:
    """Result returned by call_provider."""

    provider: Provider
    response: ChatResponse


def _decode(reply: bytes, label: str) -> Dict[str, Any]:
    try:
        data = json.loads(reply)
    except ValueError:
        raise TranslationError("Failed to parse {} response".format(label)) from None
    if not isinstance(data, dict):
        raise TranslationError("Failed to parse {} response".format(label))
    return data


def _dig(data: Any, *path: Union[str, int], label: str) -> Any:
    """Walk ``path`` through nested JSON, raising TranslationError on a miss."""
    node = data
    for key in path:
        if isinstance(key, int):
            found = isinstance(node, list) and len(node) > key
        else:
            found = isinstance(node, dict) and key in node
        if not found:
            raise TranslationError("Invalid {} response format".format(label))
        node = node[key]
    return node


def _text(data: Any, *path: Union[str, int], label: str) -> str:
    value = _dig(data, *path, label=label)
    if not isinstance(value, str):
        raise TranslationError("Invalid {} response format".format(label))
    return value


def chat_response(
    model: str,
    content: str,
    finish_reason: str = "stop",
    usage: Optional[UsageInfo] = None,
) -> ChatResponse:
    """Build a canonical single-choice chat response."""
    return ChatResponse(
        id=completion_id(),
        created=now(),
        model=model,
        choices=[
            ChatChoice(
                message=ChatMessage(role="assistant", content=content),
                finish_reason=finish_reason,
            )
        ],
        usage=usage or placeholder_usage(),
    )


def completion_from_chat(response: ChatResponse) -> CompletionResponse:
    """Re-shape a chat response as a text-completion response."""
    return CompletionResponse(
        id=response.id,
        created=response.created,
        model=response.model,
        choices=[
            CompletionChoice(
                text=choice.message.content, finish_reason=choice.finish_reason
            )
            for choice in response.choices[:1]
        ],
        usage=response.usage,
    )


class ProviderAdapter(ABC):
    """Base class for one upstream provider."""

    provider: Provider
    label: str = ""
    owned_by: str = ""
    catalog: Tuple[str, ...] = ()
    missing_credential_message: str = ""

    def __init__(
        self,
        config: ProviderConfig,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self.timeout = timeout
        self._transport = transport

    def _credential(self) -> str:
        """Return the configured credential or raise ConfigurationError."""
        if not self.config.configured:
            logger.error(self.missing_credential_message)
            raise ConfigurationError(self.missing_credential_message)
        return self.config.api_key or ""

    def _url(self, endpoint: str) -> str:
        return "{}{}".format(self.config.base_url.rstrip("/"), endpoint)

    @abstractmethod
    def build(self, request: ChatRequest) -> UpstreamRequest:
        """Translate a canonical request into the provider's wire format."""

    @abstractmethod
    def normalize(self, reply: bytes, request: ChatRequest) -> ChatResponse:
        """Translate the provider's reply into a canonical response."""

    async def call(self, upstream: UpstreamRequest) -> bytes:
        """Send ``upstream`` and return the raw reply body.

        Raises:
            TransportError: If the upstream cannot be reached or times out.
            UpstreamError: If the upstream answers with a non-2xx status.
        """
        logger.debug("%s %s", upstream.method, upstream.url)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                resp = await client.request(
                    upstream.method,
                    upstream.url,
                    content=upstream.content,
                    headers=upstream.headers,
                    params=upstream.params or None,
                )
        except httpx.TransportError as exc:
            logger.error("Failed to call %s API at %s: %s", self.label, upstream.url, exc)
            raise TransportError("{} API request failed".format(self.label)) from exc

        if resp.is_error:
            logger.error("%s API returned HTTP %s", self.label, resp.status_code)
            raise UpstreamError(
                "{} API returned HTTP {}".format(self.label, resp.status_code),
                upstream_status=resp.status_code,
            )
        return resp.content

    async def chat(self, request: ChatRequest) -> ChatResponse:
        upstream = self.build(request)
        reply = await self.call(upstream)
        return self.normalize(reply, request)

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """Serve a text completion by sending the prompt as one user message."""
        chat = ChatRequest(
            model=request.model,
            messages=[ChatMessage(role="user", content=request.prompt)],
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            provider=self.provider,
        )
        return completion_from_chat(await self.chat(chat))

    async def list_models(self) -> List[ModelInfo]:
        return [ModelInfo(id=name, owned_by=self.owned_by) for name in self.catalog]


class LocalAdapter(ProviderAdapter):
    """Host-local inference through the Ollama HTTP API."""

    provider = Provider.LOCAL
    label = "Ollama"
    owned_by = "ollama"

    @staticmethod
    def _options(
        temperature: Optional[float], max_tokens: Optional[int]
    ) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "temperature": (
                temperature if temperature is not None else LOCAL_DEFAULT_TEMPERATURE
            )
        }
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        return options

    def build(self, request: ChatRequest) -> UpstreamRequest:
        return UpstreamRequest(
            url=self._url("/api/chat"),
            payload={
                "model": request.model,
                "messages": [m.model_dump() for m in request.messages],
                "stream": False,
                "options": self._options(request.temperature, request.max_tokens),
            },
            headers=dict(_JSON_HEADERS),
        )

    def build_completion(self, request: CompletionRequest) -> UpstreamRequest:
        return UpstreamRequest(
            url=self._url("/api/generate"),
            payload={
                "model": request.model,
                "prompt": request.prompt,
                "stream": False,
                "options": self._options(request.temperature, request.max_tokens),
            },
            headers=dict(_JSON_HEADERS),
        )

    async def _call_or_fallback(self, upstream: UpstreamRequest, endpoint: str) -> bytes:
        """Call the backend, substituting a canned reply only if it is unreachable."""
        try:
            return await self.call(upstream)
        except TransportError:
            logger.warning(
                "Ollama is not reachable at %s, answering with fallback reply",
                self.config.base_url,
            )
            return json.dumps(_LOCAL_FALLBACK_REPLIES[endpoint]).encode("utf-8")

    def normalize(self, reply: bytes, request: ChatRequest) -> ChatResponse:
        data = _decode(reply, self.label)
        content = _text(data, "message", "content", label=self.label)
        return chat_response(request.model, content)

    def normalize_completion(
        self, reply: bytes, request: CompletionRequest
    ) -> CompletionResponse:
        data = _decode(reply, self.label)
        text = _text(data, "response", label=self.label)
        return CompletionResponse(
            id=completion_id(),
            created=now(),
            model=request.model,
            choices=[CompletionChoice(text=text)],
            usage=placeholder_usage(),
        )

    async def chat(self, request: ChatRequest) -> ChatResponse:
        reply = await self._call_or_fallback(self.build(request), "/api/chat")
        return self.normalize(reply, request)

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        reply = await self._call_or_fallback(
            self.build_completion(request), "/api/generate"
        )
        return self.normalize_completion(reply, request)

    def _parse_tags(self, reply: bytes) -> List[ModelInfo]:
        data = _decode(reply, self.label)
        entries = _dig(data, "models", label=self.label)
        if not isinstance(entries, list):
            raise TranslationError("Invalid Ollama response format")
        return [
            ModelInfo(id=_text(entry, "name", label=self.label), owned_by=self.owned_by)
            for entry in entries
        ]

    async def list_models(self) -> List[ModelInfo]:
        """List installed Ollama models.

        Any failure to obtain or read the tag listing yields the fallback
        listing, so the hosted catalogs are still served.
        """
        upstream = UpstreamRequest(url=self._url("/api/tags"), method="GET")
        try:
            return self._parse_tags(await self.call(upstream))
        except GatewayError as exc:
            logger.warning(
                "Could not list Ollama models (%s), answering with fallback list",
                exc.message,
            )
            fallback = json.dumps(_LOCAL_FALLBACK_REPLIES["/api/tags"]).encode("utf-8")
            return self._parse_tags(fallback)


def _openai_usage(raw: Any) -> UsageInfo:
    keys = ("prompt_tokens", "completion_tokens", "total_tokens")
    if isinstance(raw, dict) and all(isinstance(raw.get(k), int) for k in keys):
        return UsageInfo(**{k: raw[k] for k in keys})
    return placeholder_usage()


class OpenAIAdapter(ProviderAdapter):
    """OpenAI chat completions. The canonical schema is already its wire format."""

    provider = Provider.OPENAI
    label = "OpenAI"
    owned_by = "openai"
    catalog = ("gpt-4", "gpt-4-turbo", "gpt-3.5-turbo", "gpt-3.5-turbo-16k")
    missing_credential_message = "OpenAI API key not configured"

    def _auth_headers(self, credential: str) -> Dict[str, str]:
        return {"Authorization": "Bearer {}".format(credential)}

    def build(self, request: ChatRequest) -> UpstreamRequest:
        credential = self._credential()
        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": [m.model_dump() for m in request.messages],
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens
        payload["stream"] = False

        headers = dict(_JSON_HEADERS)
        headers.update(self._auth_headers(credential))
        return UpstreamRequest(
            url=self._url("/chat/completions"), payload=payload, headers=headers
        )

    def normalize(self, reply: bytes, request: ChatRequest) -> ChatResponse:
        data = _decode(reply, self.label)
        choice = _dig(data, "choices", 0, label=self.label)
        content = _text(choice, "message", "content", label=self.label)
        finish_reason = choice.get("finish_reason") or "stop"
        return chat_response(
            request.model, content, finish_reason, _openai_usage(data.get("usage"))
        )


class CopilotAdapter(OpenAIAdapter):
    """GitHub Copilot chat, which speaks the OpenAI wire format."""

    provider = Provider.COPILOT
    label = "GitHub Copilot"
    owned_by = "github"
    catalog = ()
    missing_credential_message = "GitHub token not configured"

    def _auth_headers(self, credential: str) -> Dict[str, str]:
        return {
            "Authorization": "token {}".format(credential),
            "Accept": "application/vnd.github.v3+json",
        }


class ClaudeAdapter(ProviderAdapter):
    """Anthropic Messages API.

    System-role messages are dropped from the outgoing conversation; they are
    not moved into the separate ``system`` field.
    """

    provider = Provider.CLAUDE
    label = "Claude"
    owned_by = "anthropic"
    catalog = ("claude-3-opus", "claude-3-sonnet", "claude-3-haiku", "claude-2")
    missing_credential_message = "Claude API key not configured"

    def build(self, request: ChatRequest) -> UpstreamRequest:
        credential = self._credential()
        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": [
                m.model_dump() for m in request.messages if m.role != "system"
            ],
            "max_tokens": (
                request.max_tokens
                if request.max_tokens is not None
                else CLAUDE_DEFAULT_MAX_TOKENS
            ),
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature

        headers = dict(_JSON_HEADERS)
        headers["x-api-key"] = credential
        headers["anthropic-version"] = CLAUDE_API_VERSION
        return UpstreamRequest(url=self._url("/messages"), payload=payload, headers=headers)

    def normalize(self, reply: bytes, request: ChatRequest) -> ChatResponse:
        data = _decode(reply, self.label)
        text = _text(data, "content", 0, "text", label=self.label)
        finish_reason = "length" if data.get("stop_reason") == "max_tokens" else "stop"
        return chat_response(request.model, text, finish_reason)


class GoogleAdapter(ProviderAdapter):
    """Google Generative Language API (Gemini / PaLM chat models)."""

    provider = Provider.GOOGLE
    label = "Google AI"
    owned_by = "google"
    catalog = ("gemini-pro", "gemini-pro-vision", "text-bison-001", "chat-bison-001")
    missing_credential_message = "Google AI API key not configured"

    def build(self, request: ChatRequest) -> UpstreamRequest:
        credential = self._credential()
        payload: Dict[str, Any] = {
            "contents": [
                {
                    "role": "model" if m.role == "assistant" else "user",
                    "parts": [{"text": m.content}],
                }
                for m in request.messages
            ]
        }
        generation: Dict[str, Any] = {}
        if request.temperature is not None:
            generation["temperature"] = request.temperature
        if request.max_tokens is not None:
            generation["maxOutputTokens"] = request.max_tokens
        if generation:
            payload["generationConfig"] = generation

        return UpstreamRequest(
            url=self._url("/models/{}:generateContent".format(request.model)),
            payload=payload,
            headers=dict(_JSON_HEADERS),
            params={"key": credential},
        )

    def normalize(self, reply: bytes, request: ChatRequest) -> ChatResponse:
        data = _decode(reply, self.label)
        candidate = _dig(data, "candidates", 0, label=self.label)
        text = _text(candidate, "content", "parts", 0, "text", label=self.label)
        finish_reason = "length" if candidate.get("finishReason") == "MAX_TOKENS" else "stop"
        return chat_response(request.model, text, finish_reason)


ADAPTER_CLASSES: Dict[Provider, Type[ProviderAdapter]] = {
    Provider.LOCAL: LocalAdapter,
    Provider.OPENAI: OpenAIAdapter,
    Provider.CLAUDE: ClaudeAdapter,
    Provider.GOOGLE: GoogleAdapter,
    Provider.COPILOT: CopilotAdapter,
}


def build_adapters(
    config: GatewayConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict[Provider, ProviderAdapter]:
    """Instantiate one adapter per provider from the configuration snapshot.

    Args:
        config: The gateway configuration.
        transport: Optional httpx transport shared by every adapter.

    Returns:
        A registry keyed by Provider.
    """
    return {
        provider: adapter_cls(
            config.provider(provider),
            timeout=config.request_timeout,
            transport=transport,
        )
        for provider, adapter_cls in ADAPTER_CLASSES.items()
    }


async def call_provider(
    adapters: Mapping[Provider, ProviderAdapter],
    request: ChatRequest,
) -> ProviderResult:
    """Resolve the provider for ``request`` and run its adapter.

    Raises:
        GatewayError: Any configuration, transport, upstream or translation
            failure raised by the adapter.
    """
    provider = resolve_provider(request.model, request.provider)
    logger.info(
        "Routing request to %s provider for model: %s", provider.value, request.model
    )
    response = await adapters[provider].chat(request)
    return ProviderResult(provider=provider, response=response)


async def call_completion(
    adapters: Mapping[Provider, ProviderAdapter],
    request: CompletionRequest,
) -> Tuple[Provider, CompletionResponse]:
    """Resolve the provider for a text completion and run it."""
    provider = resolve_provider(request.model)
    logger.info(
        "Routing completion to %s provider for model: %s", provider.value, request.model
    )
    return provider, await adapters[provider].complete(request)
