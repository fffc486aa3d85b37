"""Configuration loader for the GhostLLM gateway.

Builds an immutable GatewayConfig snapshot once at startup from built-in
defaults, an optional JSON or YAML config file, and GHOSTLLM_* environment
overrides. Provider credentials are read from the environment variable each
provider names and are resolved at load time.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import yaml

from ghostllm.models import Provider

# provider -> (base_url, credential env var)
DEFAULT_PROVIDERS: Dict[Provider, Tuple[str, Optional[str]]] = {
    Provider.LOCAL: ("http://127.0.0.1:11434", None),
    Provider.OPENAI: ("https://api.openai.com/v1", "OPENAI_API_KEY"),
    Provider.CLAUDE: ("https://api.anthropic.com/v1", "ANTHROPIC_API_KEY"),
    Provider.GOOGLE: ("https://generativelanguage.googleapis.com/v1", "GOOGLE_API_KEY"),
    Provider.COPILOT: ("https://api.github.com/copilot", "GITHUB_TOKEN"),
}

DEFAULT_OLLAMA_HOST = "127.0.0.1"
DEFAULT_OLLAMA_PORT = 11434


@dataclass(frozen=True)
class ProviderConfig:
    """Configuration for a single upstream provider."""

    name: str
    base_url: str
    api_key_env: Optional[str] = None
    api_key: Optional[str] = None

    @property
    def configured(self) -> bool:
        """Return True if a credential is available for this provider."""
        return bool(self.api_key)


def _default_providers() -> Dict[str, ProviderConfig]:
    return {
        provider.value: ProviderConfig(
            name=provider.value, base_url=base_url, api_key_env=key_env
        )
        for provider, (base_url, key_env) in DEFAULT_PROVIDERS.items()
    }


@dataclass(frozen=True)
class GatewayConfig:
    """Top-level gateway configuration."""

    host: str = "127.0.0.1"
    port: int = 8080
    service_name: str = "GhostLLM v0.2.0"
    request_timeout: float = 30.0
    recv_buffer_size: int = 8192
    max_request_bytes: int = 1024 * 1024
    log_file: str = "logs/ghostllm.log"
    log_level: str = "info"
    log_json: bool = False
    providers: Dict[str, ProviderConfig] = field(default_factory=_default_providers)

    def provider(self, provider: Provider) -> ProviderConfig:
        """Return the configuration for ``provider``."""
        return self.providers[provider.value]


def _read_document(path: Path) -> Dict[str, Any]:
    with open(path) as f:
        if path.suffix in (".yaml", ".yml"):
            raw = yaml.safe_load(f)
        else:
            raw = json.load(f)

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("Config file must contain an object: {}".format(path))
    return raw


def _as_int(value: Any, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def _as_float(value: Any, fallback: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return fallback


def _as_bool(value: Any, fallback: bool) -> bool:
    if value is None:
        return fallback
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("true", "1", "yes")


def _load_providers(
    raw: Dict[str, Any], env: Mapping[str, str]
) -> Dict[str, ProviderConfig]:
    overrides: Dict[Provider, Dict[str, Any]] = {}
    for name, prov in raw.get("providers", {}).items():
        overrides[Provider.parse(name)] = prov or {}

    ollama_host = env.get("GHOSTLLM_OLLAMA_HOST", raw.get("ollama_host"))
    ollama_port = env.get("GHOSTLLM_OLLAMA_PORT", raw.get("ollama_port"))

    providers: Dict[str, ProviderConfig] = {}
    for provider, (default_url, default_key_env) in DEFAULT_PROVIDERS.items():
        prov = overrides.get(provider, {})
        base_url = prov.get("base_url", default_url)
        if provider is Provider.LOCAL and (ollama_host or ollama_port):
            base_url = "http://{}:{}".format(
                ollama_host or DEFAULT_OLLAMA_HOST,
                _as_int(ollama_port, DEFAULT_OLLAMA_PORT),
            )

        api_key_env = prov.get("api_key_env", default_key_env)
        providers[provider.value] = ProviderConfig(
            name=provider.value,
            base_url=base_url.rstrip("/"),
            api_key_env=api_key_env,
            api_key=env.get(api_key_env) if api_key_env else None,
        )
    return providers


def load_config(
    path: Optional[Union[str, Path]] = None,
    env: Optional[Mapping[str, str]] = None,
) -> GatewayConfig:
    """Load the gateway configuration.

    Args:
        path: Optional JSON or YAML config file. Without one, defaults are used.
        env: Environment mapping for overrides and credentials. Defaults to
            ``os.environ``.

    Returns:
        A frozen GatewayConfig snapshot.

    Raises:
        FileNotFoundError: If ``path`` is given but does not exist.
        ValueError: If the config file contains invalid data.
    """
    if env is None:
        env = os.environ

    raw: Dict[str, Any] = {}
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        raw = _read_document(path)

    defaults = GatewayConfig()

    return GatewayConfig(
        host=env.get("GHOSTLLM_HOST", raw.get("host", defaults.host)),
        port=_as_int(env.get("GHOSTLLM_PORT", raw.get("port")), defaults.port),
        service_name=raw.get("service_name", defaults.service_name),
        request_timeout=_as_float(
            env.get("GHOSTLLM_REQUEST_TIMEOUT", raw.get("request_timeout")),
            defaults.request_timeout,
        ),
        recv_buffer_size=_as_int(
            raw.get("recv_buffer_size"), defaults.recv_buffer_size
        ),
        max_request_bytes=_as_int(
            raw.get("max_request_bytes"), defaults.max_request_bytes
        ),
        log_file=raw.get("log_file", defaults.log_file),
        log_level=env.get("GHOSTLLM_LOG_LEVEL", raw.get("log_level", defaults.log_level)),
        log_json=_as_bool(
            env.get("GHOSTLLM_LOG_JSON", raw.get("log_json")), defaults.log_json
        ),
        providers=_load_providers(raw, env),
    )
