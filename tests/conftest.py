"""Shared test fixtures for the terminal assistant tests."""

import json
from pathlib import Path
from typing import Dict, Optional

import pytest

from termai.config import AssistantConfig, load_config


def _make_config(tmp_path: Path, overrides: Optional[Dict] = None) -> str:
    """Write a minimal test config and return its path."""
    config = {
        "default_profile": "test",
        "profiles": {
            "test": {
                "provider": "openai",
                "api_key_env": "TEST_API_KEY",
                "endpoint": "https://llm.example.com/v1/chat/completions",
                "model": "test-model",
                "max_tokens": 256,
                "temperature": 0.2,
            },
            "local": {
                "provider": "ollama",
                "model": "llama3",
            },
        },
        "redaction": {"enabled": True, "label": "[REDACTED]"},
        "validation": {"enabled": True, "allow_dangerous": False},
        "log_file": str(tmp_path / "test.log"),
    }
    if overrides:
        config.update(overrides)

    path = tmp_path / "test_config.json"
    path.write_text(json.dumps(config))
    return str(path)


@pytest.fixture()
def test_config_path(tmp_path: Path) -> str:
    """Return the path to a temporary test config file."""
    return _make_config(tmp_path)


@pytest.fixture()
def test_config(test_config_path: str) -> AssistantConfig:
    """Return a loaded test AssistantConfig."""
    return load_config(test_config_path)
