"""CLI entry point for the Aura chat client."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from .config.settings import ChatServiceConfig, get_api_key, get_error_store_path
from .reliability.error_service import ErrorService
from .reliability.errors import ServiceError
from .reliability.storage import JsonFileStore
from .services.chat_service import ResilientChatService


def build_error_service() -> ErrorService:
    """ErrorService persisting its history to the CLI error store file."""
    return ErrorService(store=JsonFileStore(get_error_store_path()), install_hooks=True)


def build_service(model: Optional[str] = None) -> ResilientChatService:
    config = ChatServiceConfig(model=model) if model else ChatServiceConfig()
    return ResilientChatService(config=config, error_service=build_error_service())


async def send_text(text: str, model: Optional[str] = None, stream: bool = False) -> int:
    """Send a message and print the reply."""
    service = build_service(model)
    try:
        await service.initialize(get_api_key())
        if stream:
            audio_bytes = 0
            async for chunk in service.send_message_stream(text):
                if chunk.text:
                    print(chunk.text, end='', flush=True)
                if chunk.audio:
                    audio_bytes += len(chunk.audio)
            print()  # New line at the end
            if audio_bytes:
                print(f"[audio: {audio_bytes} bytes]")
        else:
            response = await service.send_message(text)
            print(response.text)
            if response.audio:
                print(f"[audio: {len(response.audio)} bytes]")
        return 0
    except ServiceError as e:
        print(f"Error: {e.user_message}", file=sys.stderr)
        return 1
    finally:
        await service.destroy()


def show_health(model: Optional[str] = None) -> int:
    """Print the health snapshot of a fresh (uninitialized) service."""
    service = build_service(model)
    print(service.get_health().model_dump_json(indent=2))
    return 0


def show_errors(clear: bool = False) -> int:
    error_service = build_error_service()
    if clear:
        error_service.clear_stored_errors()
        print("Stored errors cleared.")
        return 0

    errors = error_service.get_stored_errors()
    if not errors:
        print("No stored errors.")
        return 0

    print(f"Stored errors ({len(errors)}):")
    print("-" * 50)
    for error in errors:
        print(f"{error.timestamp} [{error.type}/{error.severity}] {error.message}")
        print(f"   {error.user_message}")
        if error.context:
            print(f"   context: {json.dumps(error.context, default=str)}")
    return 0


def main():
    """Main CLI function."""
    parser = argparse.ArgumentParser(description="Aura chat client CLI")
    parser.add_argument('--model', help='Model name (e.g., "gemini-2.5-flash")')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    send_parser = subparsers.add_parser('send', help='Send a message and print the reply')
    send_parser.add_argument('text', help='Message text')

    stream_parser = subparsers.add_parser('stream', help='Send a message and stream the reply')
    stream_parser.add_argument('text', help='Message text')

    subparsers.add_parser('health', help='Show service health')

    errors_parser = subparsers.add_parser('errors', help='Show the stored error history')
    errors_parser.add_argument('--clear', action='store_true', help='Clear the stored errors')

    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    if args.command == 'send':
        code = asyncio.run(send_text(args.text, args.model))
    elif args.command == 'stream':
        code = asyncio.run(send_text(args.text, args.model, stream=True))
    elif args.command == 'health':
        code = show_health(args.model)
    elif args.command == 'errors':
        code = show_errors(args.clear)
    else:
        parser.print_help()
        code = 0

    sys.exit(code)


if __name__ == "__main__":
    main()
