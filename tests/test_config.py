"""Tests for environment-driven configuration."""

import os

import pytest

from baker_street.config import ConfigError, get_config


@pytest.fixture
def no_env_file(tmp_path):
    return tmp_path / "missing.env"


def test_defaults(no_env_file):
    config = get_config(no_env_file)
    assert config["provider_url"] == "http://localhost:5001"
    assert config["provider_format"] == "openai"
    assert config["timeout"] == 120.0
    assert config["reveal_interval_ms"] == 40
    assert config["max_development_chapters"] == 6
    assert config["similarity_threshold"] == 0.1
    assert config["location"] == "221B Baker Street"


def test_environment_overrides(monkeypatch, no_env_file):
    monkeypatch.setenv("LLM_PROVIDER_URL", "http://llm:9000")
    monkeypatch.setenv("LLM_PROVIDER_FORMAT", "koboldcpp")
    monkeypatch.setenv("MAX_DEVELOPMENT_CHAPTERS", "3")
    monkeypatch.setenv("SIMILARITY_THRESHOLD", "0.25")
    monkeypatch.setenv("LLM_API_KEY", "")
    config = get_config(no_env_file)
    assert config["provider_url"] == "http://llm:9000"
    assert config["provider_format"] == "koboldcpp"
    assert config["max_development_chapters"] == 3
    assert config["similarity_threshold"] == 0.25
    assert config["api_key"] == ""


def test_env_file_is_loaded(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("CASE_LOCATION=Scotland Yard\nREVEAL_INTERVAL_MS=15\n")
    try:
        config = get_config(env_file)
    finally:
        # load_dotenv writes into os.environ; undo it for later tests
        os.environ.pop("CASE_LOCATION", None)
        os.environ.pop("REVEAL_INTERVAL_MS", None)
    assert config["location"] == "Scotland Yard"
    assert config["reveal_interval_ms"] == 15


@pytest.mark.parametrize("name, value", [
    ("LLM_TIMEOUT", "soon"),
    ("REVEAL_INTERVAL_MS", "0"),
    ("MAX_DEVELOPMENT_CHAPTERS", "0"),
    ("LLM_PROVIDER_FORMAT", "anthropic"),
])
def test_invalid_values(monkeypatch, no_env_file, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigError, match=name):
        get_config(no_env_file)
