"""Model and chat configuration schemas.

Loaded from the TOML registry in chorus/config/. Capability flags describe
what a model accepts; the orchestrator uses them, the provider adapter honors
them when building requests.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ModelConfig(BaseModel):
    """Configuration for a single model in the registry."""

    provider: str = Field(description="Provider identifier (e.g. 'anthropic', 'openai', 'ollama')")
    model: str = Field(description="LiteLLM model identifier (e.g. 'anthropic/claude-sonnet-4-5')")
    display_name: str = Field(description="Human-friendly model name for CLI output")
    api_key_env: str = Field(default="", description="Environment variable name holding the API key")
    api_base: str = Field(default="", description="Custom API base URL (empty = provider default)")
    stream: bool = Field(
        default=True, description="False replays a batch response through the stream interface"
    )
    supports_vision: bool = Field(default=False, description="Whether the model accepts image input")
    supports_tools: bool = Field(default=False, description="Whether the model supports tool calling")
    supports_reasoning: bool = Field(
        default=False, description="Whether the model emits reasoning traces"
    )
    supports_system_message: bool = Field(
        default=True, description="Whether the model accepts a system role message"
    )
    image_model: str = Field(
        default="", description="LiteLLM image model identifier (empty = no image generation)"
    )
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    top_p: float | None = Field(default=None, ge=0.0, le=1.0)
    max_output_tokens: int | None = Field(default=None, gt=0)


class ChatConfig(BaseModel):
    """Defaults applied to every completion request."""

    default_model: str = Field(default="", description="Registry key used when none is given")
    max_steps: int = Field(
        default=0, ge=0, description="Maximum model steps per request (0 = unbounded)"
    )
    timeout: int = Field(default=120, gt=0, description="Per-call timeout in seconds")
    blob_dir: str = Field(
        default="~/.chorus/blobs", description="Directory for materialized images"
    )
    prefer_hosted_guidance: bool = Field(
        default=False,
        description="Selects the capability-error message variant pointing at hosted models",
    )
