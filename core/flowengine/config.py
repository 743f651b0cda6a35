"""Shared flow engine configuration utilities.

Centralises reading of ~/.flowengine/configuration.json so that the CLI, the
runtime and individual node plugins agree on limits and LLM settings.
"""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from flowengine.variables.extractor import ExtractionOptions

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_MAX_TOKENS = 1000

# ---------------------------------------------------------------------------
# Low-level config file access
# ---------------------------------------------------------------------------

ENGINE_CONFIG_FILE = Path.home() / ".flowengine" / "configuration.json"


def get_engine_config_file(path: Path | None = None) -> dict[str, Any]:
    """Load engine configuration from ~/.flowengine/configuration.json."""
    config_path = path or ENGINE_CONFIG_FILE
    if not config_path.exists():
        return {}
    try:
        with open(config_path, encoding="utf-8-sig") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


# ---------------------------------------------------------------------------
# Derived helpers
# ---------------------------------------------------------------------------


def get_preferred_model() -> str:
    """Return the configured LLM model string (e.g. 'openai/gpt-4o-mini')."""
    llm = get_engine_config_file().get("llm", {})
    if llm.get("provider") and llm.get("model"):
        return f"{llm['provider']}/{llm['model']}"
    return llm.get("model") or DEFAULT_MODEL


def get_max_tokens() -> int:
    """Return the configured max_tokens, falling back to DEFAULT_MAX_TOKENS."""
    return get_engine_config_file().get("llm", {}).get("max_tokens", DEFAULT_MAX_TOKENS)


def get_api_key() -> str | None:
    """Return the API key from the environment variable named in configuration."""
    llm = get_engine_config_file().get("llm", {})
    api_key_env_var = llm.get("api_key_env_var")
    if api_key_env_var:
        return os.environ.get(api_key_env_var)
    return None


# ---------------------------------------------------------------------------
# EngineConfig – shared by the executor and node plugins
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """Engine limits and LLM defaults."""

    # LLM
    model: str = field(default_factory=get_preferred_model)
    temperature: float = 0.7
    max_tokens: int = field(default_factory=get_max_tokens)
    api_key: str | None = field(default_factory=get_api_key)
    api_base: str | None = None

    # HTTP request node (milliseconds)
    http_timeout_ms: int = 10_000
    http_min_timeout_ms: int = 1_000
    http_max_timeout_ms: int = 60_000

    # Delay node (milliseconds)
    max_delay_ms: int = 300_000
    max_wait_ms: int = 600_000
    poll_interval_ms: int = 1_000

    # Loop node
    loop_max_iterations: int = 100
    loop_iteration_ceiling: int = 1_000

    extraction: ExtractionOptions = field(default_factory=ExtractionOptions)
    max_event_history: int = 1_000

    @classmethod
    def from_file(cls, path: Path | None = None) -> "EngineConfig":
        """Build a config from the configuration file, keeping defaults for missing keys."""
        data = get_engine_config_file(path)
        llm = data.get("llm", {})
        limits = data.get("limits", {})
        variables = data.get("variables", {})

        kwargs: dict[str, Any] = {}
        if llm.get("model"):
            kwargs["model"] = (
                f"{llm['provider']}/{llm['model']}" if llm.get("provider") else llm["model"]
            )
        for key in ("temperature", "max_tokens", "api_base"):
            if key in llm:
                kwargs[key] = llm[key]
        if llm.get("api_key_env_var"):
            kwargs["api_key"] = os.environ.get(llm["api_key_env_var"])

        known = {f.name for f in fields(cls)}
        for key, value in limits.items():
            if key in known and key not in ("extraction", "model"):
                kwargs[key] = value

        option_names = {f.name for f in fields(ExtractionOptions)}
        kwargs["extraction"] = ExtractionOptions(
            **{k: v for k, v in variables.items() if k in option_names}
        )
        return cls(**kwargs)
