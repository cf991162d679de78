"""Runtime configuration (LLM connection, reveal pacing, progression limits).

Defaults are merged with environment variables; a ``.env`` file at the
project root is loaded first with python-dotenv. Nothing is persisted.
"""

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

ROOT = Path(__file__).parent.parent

_CONFIG_DEFAULTS: dict[str, Any] = {
    "provider_url": "http://localhost:5001",
    "api_key": "",
    "provider_format": "openai",
    "model": "",
    "timeout": 120.0,
    "reveal_interval_ms": 40,
    "max_development_chapters": 6,
    "similarity_threshold": 0.1,
    "location": "221B Baker Street",
}

# config key -> (environment variable, converter)
_ENV_KEYS: dict[str, tuple[str, type]] = {
    "provider_url": ("LLM_PROVIDER_URL", str),
    "api_key": ("LLM_API_KEY", str),
    "provider_format": ("LLM_PROVIDER_FORMAT", str),
    "model": ("LLM_MODEL", str),
    "timeout": ("LLM_TIMEOUT", float),
    "reveal_interval_ms": ("REVEAL_INTERVAL_MS", int),
    "max_development_chapters": ("MAX_DEVELOPMENT_CHAPTERS", int),
    "similarity_threshold": ("SIMILARITY_THRESHOLD", float),
    "location": ("CASE_LOCATION", str),
}

PROVIDER_FORMATS = ("koboldcpp", "openai")


class ConfigError(ValueError):
    """Raised when an environment value cannot be used."""


def get_config(env_file: Path | None = None) -> dict[str, Any]:
    """Return defaults merged with environment overrides."""
    load_dotenv(env_file or ROOT / ".env")
    config = dict(_CONFIG_DEFAULTS)
    for key, (env_name, convert) in _ENV_KEYS.items():
        raw = os.getenv(env_name)
        if raw is None or raw == "":
            continue
        try:
            config[key] = convert(raw)
        except ValueError as e:
            raise ConfigError(f"{env_name}={raw!r} is not a valid {convert.__name__}") from e

    if config["provider_format"] not in PROVIDER_FORMATS:
        raise ConfigError(
            f"LLM_PROVIDER_FORMAT must be one of {', '.join(PROVIDER_FORMATS)}"
        )
    if config["reveal_interval_ms"] <= 0:
        raise ConfigError("REVEAL_INTERVAL_MS must be positive")
    if config["max_development_chapters"] < 1:
        raise ConfigError("MAX_DEVELOPMENT_CHAPTERS must be at least 1")
    return config
