"""Error taxonomy and classification for completion requests.

Failures arrive in many shapes: litellm API-call exceptions, error events in
the middle of a stream, vendor text about unsupported input, or any other
exception. They are mapped to a small closed set:

- ApiError: the provider's call layer rejected the request.
- CapabilityError: the model does not accept the given input modality.
- ProviderError: anything else, wrapped with provider and request context.

Tool-execution failures are not part of this hierarchy; they are recorded on
their tool-call part and never raised.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import litellm

from chorus.schemas.content import ContentParts

logger = logging.getLogger(__name__)

# Vendor message returned when image input is sent to a text-only model
IMAGE_INPUT_UNSUPPORTED = (
    "Invalid content type. image_url is only supported by certain models."
)

# litellm exception classes that mean "the call layer rejected the request"
_API_CALL_ERRORS: tuple[type[Exception], ...] = (
    litellm.AuthenticationError,
    litellm.BadRequestError,
    litellm.NotFoundError,
    litellm.RateLimitError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
    litellm.APIConnectionError,
    litellm.Timeout,
    litellm.APIError,
)

# Pre-written copy for the image-input capability error, keyed by variant
CAPABILITY_MESSAGES: dict[str, str] = {
    "model_not_support_image": (
        "The current model does not support image input. Switch to a hosted "
        "vision model, or pick a model marked with vision support."
    ),
    "model_not_support_image_2": (
        "The current model does not support image input. Please pick a model "
        "that supports vision."
    ),
}


class ChorusError(Exception):
    """Base class for classified completion failures.

    ``content_parts`` holds whatever the engine had built before the failure,
    so callers can still render the partial response.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.content_parts: ContentParts = []


class ApiError(ChorusError):
    """The provider's call layer rejected the request."""

    def __init__(self, message: str, response_body: Any = None) -> None:
        super().__init__(message)
        self.response_body = response_body


class ImageGenerationUnsupported(ApiError):
    """The provider has no image generation capability."""


class CapabilityError(ChorusError):
    """The model does not accept the given input modality."""

    def __init__(self, code: str, variant: str) -> None:
        super().__init__(CAPABILITY_MESSAGES[variant])
        self.code = code
        self.variant = variant

    @classmethod
    def image_input(cls, prefer_hosted_guidance: bool) -> CapabilityError:
        variant = "model_not_support_image" if prefer_hosted_guidance else "model_not_support_image_2"
        return cls("model_not_support_image", variant)


class ProviderError(ChorusError):
    """An unclassified failure, wrapped with provider and request context."""

    def __init__(
        self,
        message: str,
        provider_name: str,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.provider_name = provider_name
        self.context = context or {}


def is_api_call_error(error: object) -> bool:
    """Whether *error* is a litellm API-call exception."""
    return isinstance(error, _API_CALL_ERRORS)


def response_body(error: BaseException) -> Any:
    """Best-effort raw response body carried by a provider exception."""
    body = getattr(error, "body", None)
    if body is not None:
        return body
    response = getattr(error, "response", None)
    text = getattr(response, "text", None) if response is not None else None
    if isinstance(text, str) and text:
        return text
    return getattr(error, "message", None) or str(error)


def classify_stream_error(
    error: object, provider_name: str, context: str = ""
) -> ChorusError:
    """Map a mid-stream error event payload to a ChorusError.

    Args:
        error: The error carried by the stream event (exception or raw value).
        provider_name: Display name of the provider, for the message.
        context: Optional suffix describing where the failure occurred.

    Returns:
        The classified error; the caller raises it.
    """
    if isinstance(error, ChorusError):
        return error
    if is_api_call_error(error):
        return ApiError(f"Error from {provider_name}{context}", response_body(error))
    return ApiError(f"Error from {provider_name}{context}: {error}")


def classify_call_error(
    exc: BaseException,
    provider_name: str,
    *,
    prefer_hosted_guidance: bool,
) -> ChorusError | None:
    """Map an exception escaping a completion request.

    Returns the classified error, or None when the exception is unexpected
    and must be reported to the diagnostics sink before being wrapped.
    """
    if isinstance(exc, CapabilityError):
        return exc
    if _mentions_image_input_unsupported(exc):
        return CapabilityError.image_input(prefer_hosted_guidance)
    if isinstance(exc, ChorusError):
        return exc
    if is_api_call_error(exc):
        return ApiError(f"Error from {provider_name}", response_body(exc))
    return None


def _mentions_image_input_unsupported(exc: BaseException) -> bool:
    if IMAGE_INPUT_UNSUPPORTED in str(exc):
        return True
    body = exc.response_body if isinstance(exc, ApiError) else getattr(exc, "body", None)
    if body is None:
        return False
    if not isinstance(body, str):
        body = json.dumps(body, default=str)
    return IMAGE_INPUT_UNSUPPORTED in body
