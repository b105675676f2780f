"""Simple configuration for the gateway client."""

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "llama2"
DEFAULT_TIMEOUT_MS = 30_000
HEALTH_TIMEOUT_MS = 5_000


@dataclass
class GatewayConfig:
    """Configuration for the inference gateway client.

    Args:
        base_url: Base URL of the Ollama-compatible backend
        model: Model used by chat, generate and ask calls
        timeout_ms: Deadline for chat and generate calls in milliseconds
        health_timeout_ms: Fixed deadline for health probes in milliseconds
    """

    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    health_timeout_ms: int = HEALTH_TIMEOUT_MS

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000

    @property
    def health_timeout_s(self) -> float:
        return self.health_timeout_ms / 1000

    def to_public_dict(self) -> dict:
        """Wire view of the config, as reported by the health routes."""
        return {
            "baseUrl": self.base_url,
            "model": self.model,
            "timeout": self.timeout_ms,
        }


def _env_timeout_ms() -> int | None:
    raw = os.environ.get("OLLAMA_TIMEOUT_MS")
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer OLLAMA_TIMEOUT_MS={raw!r}")
        return None
    if value <= 0:
        logger.warning(f"Ignoring non-positive OLLAMA_TIMEOUT_MS={raw!r}")
        return None
    return value


def resolve_config(
    base_url: str | None = None,
    model: str | None = None,
    timeout_ms: int | None = None,
) -> GatewayConfig:
    """Build a GatewayConfig from explicit overrides, then environment, then defaults.

    Never raises: bad environment values are logged and skipped.
    """
    if timeout_ms is not None and timeout_ms <= 0:
        logger.warning(f"Ignoring non-positive timeout_ms={timeout_ms!r}")
        timeout_ms = None

    return GatewayConfig(
        base_url=base_url or os.environ.get("OLLAMA_BASE_URL") or DEFAULT_BASE_URL,
        model=model or os.environ.get("OLLAMA_MODEL") or DEFAULT_MODEL,
        timeout_ms=timeout_ms or _env_timeout_ms() or DEFAULT_TIMEOUT_MS,
    )
