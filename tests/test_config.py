"""Tests for the configuration loader."""

import dataclasses
import json
from pathlib import Path

import pytest

from fakes import OLLAMA_URL, TEST_KEYS
from ghostllm.config import GatewayConfig, load_config
from ghostllm.models import Provider


def test_defaults_without_file() -> None:
    """With no file and an empty environment every default applies."""
    config = load_config(env={})

    assert config.host == "127.0.0.1"
    assert config.port == 8080
    assert config.service_name == "GhostLLM v0.2.0"
    assert config.request_timeout == 30.0
    assert config.provider(Provider.LOCAL).base_url == "http://127.0.0.1:11434"
    assert config.provider(Provider.OPENAI).base_url == "https://api.openai.com/v1"
    assert set(config.providers) == {p.value for p in Provider}
    assert not any(p.configured for p in config.providers.values())


def test_load_config_success(config_path: str) -> None:
    """Loading a valid config file returns a populated GatewayConfig."""
    config = load_config(config_path, env={})

    assert config.provider(Provider.LOCAL).base_url == OLLAMA_URL
    assert config.log_file.endswith("ghostllm.log")


def test_load_config_missing_file() -> None:
    """Loading from a nonexistent path raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        load_config("/tmp/nonexistent_ghostllm_config.json", env={})


def test_load_yaml_config(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(
        "host: 0.0.0.0\n"
        "port: 9090\n"
        "log_level: debug\n"
        "providers:\n"
        "  openai:\n"
        "    base_url: https://openai.proxy.test/v1/\n"
    )
    config = load_config(path, env={})

    assert config.host == "0.0.0.0"
    assert config.port == 9090
    assert config.log_level == "debug"
    assert config.provider(Provider.OPENAI).base_url == "https://openai.proxy.test/v1"


def test_non_object_document_rejected(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(["not", "an", "object"]))

    with pytest.raises(ValueError, match="must contain an object"):
        load_config(path, env={})


def test_unknown_provider_section_rejected(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"providers": {"mystery": {"base_url": "http://x"}}}))

    with pytest.raises(ValueError, match="Unknown provider"):
        load_config(path, env={})


def test_local_alias_in_provider_section(tmp_path: Path) -> None:
    """The local backend can be configured under the name "local"."""
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"providers": {"local": {"base_url": "http://gpu-box:11434/"}}})
    )
    config = load_config(path, env={})

    assert config.provider(Provider.LOCAL).base_url == "http://gpu-box:11434"


def test_env_overrides_file(config_path: str) -> None:
    env = {
        "GHOSTLLM_HOST": "0.0.0.0",
        "GHOSTLLM_PORT": "9000",
        "GHOSTLLM_REQUEST_TIMEOUT": "5",
        "GHOSTLLM_LOG_LEVEL": "warn",
        "GHOSTLLM_LOG_JSON": "true",
        "GHOSTLLM_OLLAMA_HOST": "ollama.internal",
        "GHOSTLLM_OLLAMA_PORT": "11500",
    }
    config = load_config(config_path, env=env)

    assert config.host == "0.0.0.0"
    assert config.port == 9000
    assert config.request_timeout == 5.0
    assert config.log_level == "warn"
    assert config.log_json is True
    assert config.provider(Provider.LOCAL).base_url == "http://ollama.internal:11500"


def test_invalid_numbers_fall_back(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"port": "not-a-port", "request_timeout": None}))
    config = load_config(path, env={})

    assert config.port == 8080
    assert config.request_timeout == 30.0


def test_provider_api_key_from_env(config_path: str) -> None:
    """Credentials are resolved from each provider's environment variable."""
    config = load_config(config_path, env=TEST_KEYS)

    assert config.provider(Provider.OPENAI).api_key == "sk-test-openai"
    assert config.provider(Provider.CLAUDE).api_key == "sk-ant-test"
    assert config.provider(Provider.GOOGLE).api_key == "google-test-key"
    assert config.provider(Provider.COPILOT).api_key == "ghp-test-token"
    assert config.provider(Provider.OPENAI).configured


def test_provider_api_key_missing(config: GatewayConfig) -> None:
    """Without the environment variable the provider is not configured."""
    openai = config.provider(Provider.OPENAI)

    assert openai.api_key is None
    assert not openai.configured
    assert config.provider(Provider.LOCAL).api_key_env is None


def test_custom_api_key_env(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps({"providers": {"claude": {"api_key_env": "MY_CLAUDE_KEY"}}})
    )
    config = load_config(path, env={"MY_CLAUDE_KEY": "sk-custom"})

    assert config.provider(Provider.CLAUDE).api_key == "sk-custom"


def test_config_is_frozen(config: GatewayConfig) -> None:
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.port = 1  # type: ignore[misc]
