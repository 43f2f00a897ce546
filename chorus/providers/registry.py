"""Model registry and TOML configuration loader.

Loads model definitions from models.toml and chat defaults from
defaults.toml, and builds providers from registry entries.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path

from chorus.providers.base import ModelProvider
from chorus.providers.litellm_provider import LiteLLMProvider
from chorus.schemas.models import ChatConfig, ModelConfig

# Default config directory relative to the chorus package
_CONFIG_DIR = Path(__file__).parent.parent / "config"

# Environment overrides for chat defaults
MODEL_ENV = "CHORUS_MODEL"
BLOB_DIR_ENV = "CHORUS_BLOB_DIR"


def load_models(config_path: Path | None = None) -> dict[str, ModelConfig]:
    """Load the model registry from a TOML file.

    Args:
        config_path: Path to models.toml. Defaults to chorus/config/models.toml.

    Returns:
        Dictionary mapping model keys to ModelConfig instances.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML structure is invalid.
    """
    path = config_path or _CONFIG_DIR / "models.toml"
    if not path.exists():
        raise FileNotFoundError(f"Model registry not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    models_section = raw.get("models")
    if not models_section or not isinstance(models_section, dict):
        raise ValueError(f"No [models] section found in {path}")

    return {
        key: ModelConfig(**entry)
        for key, entry in models_section.items()
        if isinstance(entry, dict)
    }


def load_chat_config(config_path: Path | None = None) -> ChatConfig:
    """Load chat defaults from a TOML file, then apply environment overrides.

    Args:
        config_path: Path to defaults.toml. Defaults to chorus/config/defaults.toml.

    Raises:
        FileNotFoundError: If the config file does not exist.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Chat config not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    chat_section = dict(raw.get("chat", {}))
    if os.environ.get(MODEL_ENV):
        chat_section["default_model"] = os.environ[MODEL_ENV]
    if os.environ.get(BLOB_DIR_ENV):
        chat_section["blob_dir"] = os.environ[BLOB_DIR_ENV]

    return ChatConfig(**chat_section)


def create_provider(config: ModelConfig, *, timeout: int = 120) -> ModelProvider:
    """Build the provider adapter for a registry entry."""
    return LiteLLMProvider(config, timeout=timeout)


def resolve_model(registry: dict[str, ModelConfig], key: str) -> ModelConfig:
    """Look up a model by registry key or by LiteLLM model id.

    Raises:
        KeyError: If no entry matches.
    """
    if key in registry:
        return registry[key]
    for config in registry.values():
        if config.model == key:
            return config
    raise KeyError(f"Unknown model: {key}")
