"""Tests for the ask, chat, generate and single-chat routes against a mocked backend."""

import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from app.config import Settings
from app.main import create_app, get_client
from homegpt.core.client import OllamaClient

BASE_URL = "http://ollama.test:11434"

TAGS = {"models": [{"name": "llama2:latest"}, {"name": "mistral:latest"}]}


class FakeOllama:
    """Routes backend paths to canned responses and records what was sent."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.chat_reply = "Paris is the capital of France."
        self.generate_payload = {
            "model": "mistral",
            "response": "Because of Rayleigh scattering.",
            "done": True,
            "context": [1, 2, 3],
            "total_duration": 1234,
        }
        self.status = 200

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status != 200:
            return httpx.Response(self.status)
        if request.url.path == "/api/chat":
            return httpx.Response(
                200,
                json={"message": {"role": "assistant", "content": self.chat_reply}, "done": True},
            )
        if request.url.path == "/api/generate":
            return httpx.Response(200, json=self.generate_payload)
        if request.url.path == "/api/tags":
            return httpx.Response(200, json=TAGS)
        return httpx.Response(404)

    def bodies(self, path: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


@pytest.fixture
def backend():
    return FakeOllama()


def _test_client(handler, timeout_ms: int = 30_000) -> TestClient:
    settings = Settings(ollama_base_url=BASE_URL, ollama_model="llama2", _env_file=None)
    ollama = OllamaClient(
        base_url=BASE_URL,
        model="llama2",
        timeout_ms=timeout_ms,
        transport=httpx.MockTransport(handler),
    )
    return TestClient(create_app(settings=settings, client=ollama))


@pytest.fixture
def client(backend):
    return _test_client(backend)


def _refuse(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


# --- Health probes ---


@pytest.mark.parametrize(
    "path, message",
    [
        ("/api/chat", "Chat API endpoint - Ready for conversation"),
        ("/api/ask", "Ask API endpoint - Ready to answer questions"),
        ("/api/generate", "Generate API endpoint - Ready to generate responses"),
    ],
)
def test_health_probe_healthy(client, path, message):
    response = client.get(path)

    assert response.status_code == 200
    assert response.json() == {
        "message": message,
        "status": "healthy",
        "availableModels": ["llama2:latest", "mistral:latest"],
        "config": {"baseUrl": BASE_URL, "model": "llama2", "timeout": 30000},
    }


def test_health_probe_unavailable_backend_is_not_an_error():
    client = _test_client(_refuse)

    response = client.get("/api/chat")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "unavailable"
    assert data["availableModels"] == []


# --- POST /api/chat ---


def test_chat_success(client, backend):
    response = client.post("/api/chat", json={"message": "What is the capital of France?"})

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Paris is the capital of France."
    assert data["userMessage"] == "What is the capital of France?"
    assert data["conversationLength"] == 1
    assert data["timestamp"].endswith("Z")

    sent = backend.bodies("/api/chat")[0]
    assert sent["messages"] == [{"role": "user", "content": "What is the capital of France?"}]
    assert sent["stream"] is False
    assert sent["options"] == {"temperature": 0.7}


def test_chat_builds_conversation_in_order(client, backend):
    response = client.post(
        "/api/chat",
        json={
            "message": "What did I just ask you?",
            "systemPrompt": "You are terse.",
            "messages": [
                {"role": "user", "content": "Hello, how are you?"},
                {"role": "assistant", "content": "I'm doing well."},
            ],
        },
    )

    assert response.status_code == 200
    assert response.json()["conversationLength"] == 4
    assert backend.bodies("/api/chat")[0]["messages"] == [
        {"role": "system", "content": "You are terse."},
        {"role": "user", "content": "Hello, how are you?"},
        {"role": "assistant", "content": "I'm doing well."},
        {"role": "user", "content": "What did I just ask you?"},
    ]


@pytest.mark.parametrize("body", [{}, {"message": ""}, {"message": "   "}, {"messages": []}])
def test_chat_missing_message_is_rejected_before_backend_call(client, backend, body):
    response = client.post("/api/chat", json=body)

    assert response.status_code == 400
    data = response.json()
    assert data["error"]["type"] == "validation_error"
    assert "message" in data["error"]["message"]
    assert backend.requests == []


def test_chat_unknown_history_role_is_rejected(client, backend):
    response = client.post(
        "/api/chat",
        json={"message": "Hi", "messages": [{"role": "wizard", "content": "Abracadabra"}]},
    )

    assert response.status_code == 400
    assert response.json()["error"]["type"] == "validation_error"
    assert backend.requests == []


def test_chat_invalid_json(client, backend):
    response = client.post(
        "/api/chat",
        content="not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert "Invalid JSON" in response.json()["error"]["message"]
    assert backend.requests == []


def test_chat_body_must_be_object(client):
    response = client.post("/api/chat", json=["not", "a", "dict"])

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Request body must be a JSON object"


def test_chat_backend_500_is_502(client, backend):
    backend.status = 500

    response = client.post("/api/chat", json={"message": "Hi"})

    assert response.status_code == 502
    data = response.json()
    assert data["error"]["type"] == "external_service_error"
    assert "500" in data["error"]["message"]
    assert data["upstream"] == BASE_URL


def test_chat_unreachable_backend_is_502():
    client = _test_client(_refuse)

    response = client.post("/api/chat", json={"message": "Hi"})

    assert response.status_code == 502
    assert response.json()["error"]["type"] == "external_service_error"


def test_chat_timeout_is_generic_500():
    async def hang(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(3600)
        return httpx.Response(200)

    client = _test_client(hang, timeout_ms=50)

    response = client.post("/api/chat", json={"message": "Hi"})

    assert response.status_code == 500
    data = response.json()
    assert data["error"]["type"] == "timeout_error"
    assert data["error"]["message"] == "Request timeout: backend took too long to respond"


# --- POST /api/ask ---


def test_ask_with_context(client, backend):
    response = client.post("/api/ask", json={"question": "Which city?", "context": "France"})

    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Paris is the capital of France."
    assert data["question"] == "Which city?"
    assert "timestamp" in data
    assert backend.bodies("/api/chat")[0]["messages"] == [
        {"role": "system", "content": "Context: France"},
        {"role": "user", "content": "Which city?"},
    ]


def test_ask_without_context(client, backend):
    client.post("/api/ask", json={"question": "Which city?"})

    assert len(backend.bodies("/api/chat")[0]["messages"]) == 1


def test_ask_missing_question(client, backend):
    response = client.post("/api/ask", json={"context": "France"})

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "Missing required fields: question"
    assert backend.requests == []


# --- POST /api/generate ---


def test_generate_returns_backend_payload_verbatim(client, backend):
    response = client.post("/api/generate", json={"model": "mistral", "prompt": "Why is the sky blue?"})

    assert response.status_code == 200
    assert response.json() == backend.generate_payload
    assert backend.bodies("/api/generate")[0] == {
        "model": "mistral",
        "prompt": "Why is the sky blue?",
        "stream": False,
    }


def test_generate_forwards_empty_options(client, backend):
    client.post("/api/generate", json={"model": "mistral", "prompt": "Hi", "options": {}})

    assert backend.bodies("/api/generate")[0]["options"] == {}


def test_generate_forwards_options_unmodified(client, backend):
    options = {"temperature": 0.3, "num_predict": 200, "stop": ["###"]}

    client.post("/api/generate", json={"model": "llama2", "prompt": "Hi", "options": options})

    assert backend.bodies("/api/generate")[0]["options"] == options


@pytest.mark.parametrize(
    "body, missing",
    [
        ({"prompt": "Hi"}, "model"),
        ({"model": "mistral"}, "prompt"),
        ({"model": " ", "prompt": "Hi"}, "model"),
        ({}, "model, prompt"),
    ],
)
def test_generate_missing_fields(client, backend, body, missing):
    response = client.post("/api/generate", json=body)

    assert response.status_code == 400
    assert response.json()["error"]["message"] == f"Missing required fields: {missing}"
    assert backend.requests == []


def test_generate_forwards_explicit_null_options(client, backend):
    client.post("/api/generate", json={"model": "m", "prompt": "p", "options": None})

    assert backend.bodies("/api/generate")[0] == {"model": "m", "prompt": "p", "stream": False, "options": None}


@pytest.mark.parametrize("stream", ["yes", 1, None, True])
def test_generate_forwards_stream_as_sent(client, backend, stream):
    client.post("/api/generate", json={"model": "m", "prompt": "p", "stream": stream})

    sent = backend.bodies("/api/generate")[0]
    assert sent["stream"] == stream
    assert type(sent["stream"]) is type(stream)
    assert "options" not in sent


def test_generate_forwards_non_object_options_untouched(client, backend):
    client.post("/api/generate", json={"model": "m", "prompt": "p", "options": [1, 2]})

    assert backend.bodies("/api/generate")[0]["options"] == [1, 2]


def test_generate_rejects_non_string_prompt(client, backend):
    response = client.post("/api/generate", json={"model": "m", "prompt": ["p"]})

    assert response.status_code == 400
    assert "prompt" in response.json()["error"]["message"]
    assert backend.requests == []


def test_generate_backend_error(client, backend):
    backend.status = 404

    response = client.post("/api/generate", json={"model": "missing", "prompt": "Hi"})

    assert response.status_code == 502


# --- /single-chat ---


def test_single_chat_get(client):
    response = client.get("/single-chat")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")


def test_single_chat_returns_completion_text(client, backend):
    response = client.post(
        "/single-chat",
        content="Why is the sky blue?",
        headers={"Content-Type": "text/plain"},
    )

    assert response.status_code == 200
    assert response.text == "Because of Rayleigh scattering."
    assert backend.bodies("/api/generate")[0] == {
        "model": "llama2",
        "prompt": "Why is the sky blue?",
        "stream": False,
    }


def test_single_chat_blank_body(client, backend):
    response = client.post("/single-chat", content="  ", headers={"Content-Type": "text/plain"})

    assert response.status_code == 400
    assert backend.requests == []


def test_single_chat_missing_response_field(client, backend):
    backend.generate_payload = {"done": True}

    response = client.post("/single-chat", content="Hi", headers={"Content-Type": "text/plain"})

    assert response.status_code == 502


# --- Unclassified failures ---


def _broken_client():
    raise RuntimeError("state lost")


def test_unexpected_exception_is_unclassified_500(backend):
    settings = Settings(ollama_base_url=BASE_URL, _env_file=None)
    app = create_app(settings=settings, client=OllamaClient(base_url=BASE_URL, transport=httpx.MockTransport(backend)))
    app.dependency_overrides[get_client] = _broken_client
    client = TestClient(app, raise_server_exceptions=False)

    response = client.post("/api/chat", json={"message": "Hi"})

    assert response.status_code == 500
    assert response.json() == {
        "error": {"type": "unclassified_error", "message": "An unexpected error occurred"}
    }
    assert backend.requests == []
