"""Example: raw generation with the backend's own response envelope."""

import asyncio

from homegpt import OllamaClient, capture


async def main():
    """Ask for a completion and print timing details from the backend."""
    client = OllamaClient()

    result = await capture(client.generate_direct("mistral", "Why is the sky blue?", options={"temperature": 0.7}))
    if not result.ok:
        print(f"Generation failed: {result.error.message}")
        return

    payload = result.value
    print(payload.get("response", ""))
    if "eval_count" in payload:
        print(f"\nTokens generated: {payload['eval_count']}")
    if "total_duration" in payload:
        print(f"Total duration: {payload['total_duration'] / 1e9:.2f}s")


if __name__ == "__main__":
    asyncio.run(main())
