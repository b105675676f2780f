"""Example: hold a short conversation through the gateway client."""

import asyncio

from homegpt import ConversationMessage, GatewayError, OllamaClient, Role


async def main():
    """Send a two-turn conversation and print the reply."""
    client = OllamaClient(base_url="http://localhost:11434", model="llama2")

    if not await client.is_healthy():
        print("Ollama is not reachable at", client.base_url)
        return

    print("Available models:", ", ".join(await client.list_models()) or "(none)")

    messages = [
        ConversationMessage(role=Role.SYSTEM, content="You are a helpful assistant."),
        ConversationMessage(role=Role.USER, content="What is the capital of France?"),
        ConversationMessage(role=Role.ASSISTANT, content="The capital of France is Paris."),
        ConversationMessage(role=Role.USER, content="And its population?"),
    ]

    try:
        reply = await client.chat(messages, {"temperature": 0.2, "max_tokens": 100})
    except GatewayError as e:
        print(f"Request failed ({e.kind.value}, HTTP {e.http_status}): {e.message}")
        return

    print(f"\nAssistant: {reply}")


if __name__ == "__main__":
    asyncio.run(main())
