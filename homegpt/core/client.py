"""Ollama-compatible client: the single point of contact with the inference backend."""

import asyncio
import dataclasses
import json
import logging
import threading
import time
from collections.abc import Sequence
from typing import Any

import httpx

from homegpt.core.config import GatewayConfig, resolve_config
from homegpt.core.exceptions import BackendTimeoutError, ExternalServiceError, ValidationError
from homegpt.core.logging import REQUEST_ID_HEADER, current_request_id
from homegpt.core.messages import (
    OMITTED,
    MessageLike,
    OptionsLike,
    ask_messages,
    build_chat_request,
    build_generate_request,
    user_prompt_messages,
)

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "Request timeout: backend took too long to respond"


class OllamaClient:
    """Async client for the backend's chat, generate and tags endpoints.

    The client holds no connection state between calls; each operation opens
    its own ``httpx.AsyncClient``. The only mutable field is the model name,
    swapped under a lock by :meth:`set_model`. Calls read the model once when
    they start, so a concurrent swap only affects later calls.

    Args:
        config: Fully resolved configuration. When omitted, it is built from
            the keyword overrides, then the environment, then defaults.
        base_url: Override for ``OLLAMA_BASE_URL``
        model: Override for ``OLLAMA_MODEL``
        timeout_ms: Override for ``OLLAMA_TIMEOUT_MS``
        transport: Optional httpx transport used for every request
    """

    def __init__(
        self,
        config: GatewayConfig | None = None,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout_ms: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if config is not None:
            self._config = dataclasses.replace(config)
        else:
            self._config = resolve_config(base_url=base_url, model=model, timeout_ms=timeout_ms)
        self._transport = transport
        self._lock = threading.Lock()

    @property
    def base_url(self) -> str:
        return self._config.base_url.rstrip("/")

    @property
    def model(self) -> str:
        with self._lock:
            return self._config.model

    def set_model(self, name: str) -> None:
        """Swap the model used by subsequent chat, generate and ask calls."""
        with self._lock:
            previous, self._config.model = self._config.model, name
        logger.info(f"Default model changed from {previous} to {name}")

    def get_config(self) -> GatewayConfig:
        """Return a copy of the current configuration."""
        with self._lock:
            return dataclasses.replace(self._config)

    def _http_client(self, timeout: float | None = None) -> httpx.AsyncClient:
        kwargs: dict[str, Any] = {"transport": self._transport}
        if timeout is not None:
            kwargs["timeout"] = httpx.Timeout(timeout)
        return httpx.AsyncClient(**kwargs)

    @staticmethod
    def _encode(body: dict[str, Any]) -> bytes:
        """Serialize a request body before anything is sent.

        Raises:
            ValidationError: If a caller-supplied value has no JSON form
        """
        try:
            return json.dumps(body, allow_nan=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Request is not JSON-serializable: {e}", field="options") from e

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        rid = current_request_id()
        if rid is not None:
            headers[REQUEST_ID_HEADER] = rid
        return headers

    async def _post(self, path: str, body: dict[str, Any]) -> httpx.Response:
        """POST ``body`` under the configured deadline and log the outcome.

        On expiry the in-flight request is cancelled. Cancellation of the
        calling task is not intercepted and propagates unchanged.

        Raises:
            ValidationError: If ``body`` cannot be encoded as JSON
            BackendTimeoutError: If the deadline elapses first
            ExternalServiceError: On any other transport failure
        """
        url = f"{self.base_url}{path}"
        deadline_s = self._config.timeout_s
        content = self._encode(body)
        model = body.get("model")
        start = time.perf_counter()

        try:
            async with self._http_client(timeout=deadline_s) as client:
                response = await asyncio.wait_for(
                    client.post(url, content=content, headers=self._headers()),
                    timeout=deadline_s,
                )

        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.error(f"POST {path} model={model} timed out after {self._config.timeout_ms} ms")
            raise BackendTimeoutError(TIMEOUT_MESSAGE, upstream=self.base_url) from e

        except httpx.HTTPError as e:
            logger.error(f"POST {path} model={model} failed: {e!r}")
            raise ExternalServiceError(
                f"Ollama request failed: {str(e) or e.__class__.__name__}",
                upstream=self.base_url,
            ) from e

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(f"POST {path} model={model} -> {response.status_code} ({elapsed_ms:.0f} ms)")
        return response

    def _decode(self, response: httpx.Response) -> Any:
        """Check the status and decode the JSON body.

        Raises:
            ExternalServiceError: On a non-success status or a malformed body
        """
        if not response.is_success:
            logger.error(f"Backend returned {response.status_code} {response.reason_phrase}")
            raise ExternalServiceError(
                f"Ollama API error: {response.status_code} {response.reason_phrase}",
                upstream=self.base_url,
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Backend returned invalid JSON: {e}")
            raise ExternalServiceError(
                f"Ollama request failed: invalid JSON in response ({e})",
                upstream=self.base_url,
            ) from e

    async def chat(
        self,
        messages: Sequence[MessageLike],
        options: OptionsLike | None = None,
    ) -> str:
        """Send a conversation to ``/api/chat`` and return the assistant's reply text.

        ``temperature`` defaults to 0.7; caller options override it per field.
        Envelope metadata (durations, token counts) is discarded.

        Raises:
            ValidationError: If a message has an unknown role or options have no
                JSON form
            BackendTimeoutError: If the backend misses the deadline
            ExternalServiceError: On backend or transport failure
        """
        body = build_chat_request(self.model, messages, options)
        response = await self._post("/api/chat", body)
        data = self._decode(response)

        try:
            content = data["message"]["content"]
        except (KeyError, TypeError) as e:
            logger.error(f"Unexpected chat response structure: {e!r}")
            raise ExternalServiceError(
                "Ollama request failed: unexpected response structure",
                upstream=self.base_url,
            ) from e
        if not isinstance(content, str):
            raise ExternalServiceError(
                "Ollama request failed: message content is not a string",
                upstream=self.base_url,
            )
        return content

    async def generate(self, prompt: str, options: OptionsLike | None = None) -> str:
        """Single user prompt through :meth:`chat`."""
        return await self.chat(user_prompt_messages(prompt), options)

    async def ask(self, question: str, context: str | None = None) -> str:
        """Answer ``question``, optionally grounded by a system ``context`` message."""
        return await self.chat(ask_messages(question, context))

    async def generate_direct(
        self,
        model: str,
        prompt: str,
        stream: Any = False,
        options: Any = OMITTED,
    ) -> Any:
        """Pass a raw completion request to ``/api/generate``.

        Nothing is injected: model, prompt, stream and options go out exactly
        as given, and the decoded backend body comes back untouched. Leave
        ``options`` unset to omit the field; ``None`` is sent as null.

        Raises:
            ValidationError: If options cannot be encoded as JSON
            BackendTimeoutError: If the backend misses the deadline
            ExternalServiceError: On backend or transport failure
        """
        body = build_generate_request(model, prompt, stream, options)
        response = await self._post("/api/generate", body)
        return self._decode(response)

    async def is_healthy(self) -> bool:
        """Probe ``/api/tags`` with a short fixed deadline. Never raises."""
        url = f"{self.base_url}/api/tags"
        deadline_s = self._config.health_timeout_s
        try:
            async with self._http_client(timeout=deadline_s) as client:
                response = await asyncio.wait_for(client.get(url), timeout=deadline_s)
            return response.is_success
        except Exception as e:
            logger.warning(f"Health check against {url} failed: {e!r}")
            return False

    async def list_models(self) -> list[str]:
        """Names of the models the backend reports. Any failure yields an empty list."""
        url = f"{self.base_url}/api/tags"
        try:
            async with self._http_client() as client:
                response = await client.get(url)
            if not response.is_success:
                raise ExternalServiceError(
                    f"Failed to fetch models: {response.status_code} {response.reason_phrase}",
                    upstream=self.base_url,
                    status_code=response.status_code,
                )
            data = response.json()
        except Exception as e:
            logger.warning(f"Error fetching Ollama models: {e!r}")
            return []

        models = data.get("models") if isinstance(data, dict) else None
        if not isinstance(models, list):
            logger.warning("Model listing has no 'models' array")
            return []
        return [
            entry["name"]
            for entry in models
            if isinstance(entry, dict) and isinstance(entry.get("name"), str)
        ]
