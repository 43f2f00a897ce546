"""Chorus provider layer.

Providers are the only way models are called. All backends go through
LiteLLMProvider via the ModelProvider interface.
"""

from chorus.providers.base import ModelProvider
from chorus.providers.litellm_provider import LiteLLMProvider
from chorus.providers.registry import (
    create_provider,
    load_chat_config,
    load_models,
    resolve_model,
)

__all__ = [
    "LiteLLMProvider",
    "ModelProvider",
    "create_provider",
    "load_chat_config",
    "load_models",
    "resolve_model",
]
