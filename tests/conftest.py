"""Shared test fixtures for the GhostLLM gateway tests."""

import json
from pathlib import Path
from typing import Dict, Iterator, Optional

import pytest

from fakes import TEST_KEYS, FakeUpstream
from ghostllm.config import GatewayConfig, load_config
from ghostllm.dispatcher import Dispatcher
from ghostllm.provider import build_adapters
from ghostllm.telemetry import logger


def make_config(tmp_path: Path, overrides: Optional[Dict] = None) -> str:
    """Write a minimal test config and return its path."""
    config = {
        "ollama_host": "ollama.test",
        "ollama_port": 11434,
        "log_file": str(tmp_path / "ghostllm.log"),
    }
    if overrides:
        config.update(overrides)

    path = tmp_path / "config.json"
    path.write_text(json.dumps(config))
    return str(path)


@pytest.fixture()
def config_path(tmp_path: Path) -> str:
    """Return the path to a temporary test config file."""
    return make_config(tmp_path)


@pytest.fixture()
def config(config_path: str) -> GatewayConfig:
    """A config with no provider credentials."""
    return load_config(config_path, env={})


@pytest.fixture()
def keyed_config(config_path: str) -> GatewayConfig:
    """A config with a credential for every hosted provider."""
    return load_config(config_path, env=TEST_KEYS)


@pytest.fixture()
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
def dispatcher(config: GatewayConfig, upstream: FakeUpstream) -> Dispatcher:
    return Dispatcher(config, build_adapters(config, upstream.transport))


@pytest.fixture()
def keyed_dispatcher(keyed_config: GatewayConfig, upstream: FakeUpstream) -> Dispatcher:
    return Dispatcher(keyed_config, build_adapters(keyed_config, upstream.transport))


@pytest.fixture()
def restore_logger() -> Iterator[None]:
    """Undo handler and level changes made to the gateway logger."""
    handlers = list(logger.handlers)
    level = logger.level
    yield
    for handler in logger.handlers:
        if handler not in handlers:
            handler.close()
    logger.handlers = handlers
    logger.setLevel(level)
