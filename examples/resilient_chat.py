"""
Example: Resilient Chat

This example shows the chat service riding out backend trouble: retries
with backoff, the circuit breaker, and the error history that ends up in
the health snapshot.
"""

import asyncio
import logging

from aura_chat_sdk import ErrorType, ResilientChatService, ServiceError, get_api_key


async def example_streaming_chat(service: ResilientChatService):
    """Stream a reply, counting audio as it arrives."""
    print("=== Streaming Chat ===\n")

    audio_bytes = 0
    async for chunk in service.send_message_stream("Give me one calming breathing exercise."):
        if chunk.text:
            print(chunk.text, end="", flush=True)
        if chunk.audio:
            audio_bytes += len(chunk.audio)
    print(f"\n\nAudio received: {audio_bytes} bytes")


async def example_custom_error_handler(service: ResilientChatService):
    """Route audio errors to your own handler."""
    print("\n=== Custom Error Handler ===\n")

    def on_audio_error(error):
        print(f"Audio problem ({error.severity_value}): {error.user_message}")

    service.error_service.register_error_handler(ErrorType.AUDIO, on_audio_error)
    response = await service.send_message("Say hello in one sentence.")
    print(response.text)


def example_health(service: ResilientChatService):
    print("\n=== Health ===\n")
    health = service.get_health()
    print(f"Initialized: {health.is_initialized}")
    print(f"Circuit: {health.circuit_breaker_state} (failures: {health.failure_count})")
    for error in health.last_errors:
        print(f"  {error.timestamp} [{error.type}/{error.severity}] {error.message}")


async def main():
    logging.basicConfig(level=logging.WARNING)
    service = ResilientChatService()

    try:
        await service.initialize(get_api_key())
        await example_streaming_chat(service)
        await example_custom_error_handler(service)
    except ServiceError as e:
        # Only the sanitized message is shown to users
        print(f"Error: {e.user_message}")
    finally:
        example_health(service)
        await service.destroy()


if __name__ == "__main__":
    asyncio.run(main())
