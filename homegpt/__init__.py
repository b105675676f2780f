"""HomeGPT - async gateway client for a local Ollama inference backend.

Usage:
    >>> from homegpt import OllamaClient
    >>>
    >>> client = OllamaClient(base_url="http://localhost:11434", model="mistral")
    >>> answer = await client.ask("Why is the sky blue?")
    >>> print(answer)
"""

__version__ = "1.0.0"

from homegpt.core.client import OllamaClient
from homegpt.core.config import GatewayConfig, resolve_config
from homegpt.core.exceptions import (
    BackendTimeoutError,
    ErrorKind,
    ExternalServiceError,
    GatewayError,
    UnclassifiedError,
    UploadTooLargeError,
    ValidationError,
    classify,
    validate_required,
)
from homegpt.core.messages import ConversationMessage, GenerationOptions, Role
from homegpt.core.result import Result, capture
from homegpt.core.uploads import StoredUpload, store_upload

__all__ = [
    "__version__",
    # Client
    "OllamaClient",
    "GatewayConfig",
    "resolve_config",
    # Messages
    "ConversationMessage",
    "GenerationOptions",
    "Role",
    # Results
    "Result",
    "capture",
    # Uploads
    "StoredUpload",
    "store_upload",
    # Exceptions
    "ErrorKind",
    "GatewayError",
    "ValidationError",
    "UploadTooLargeError",
    "ExternalServiceError",
    "BackendTimeoutError",
    "UnclassifiedError",
    "classify",
    "validate_required",
]
