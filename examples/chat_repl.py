"""Interactive chat against a local streaming backend.

Demonstrates:
- Building a ChatClient from TIDEMARK_* settings
- Rendering the raw reply live while it streams
- Listing past conversations by title

Usage:
    uv run examples/chat_repl.py --url http://localhost:7452 --trace
"""

import argparse
import asyncio
import sys

from tidemark.chat import ChatClient
from tidemark.events import ContentDeltaEvent, ExchangeCompleteEvent, ServiceDetectedEvent
from tidemark.settings import Settings, configure_logging


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from tidemark.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


async def main():
    parser = argparse.ArgumentParser(description="Tidemark chat")
    parser.add_argument("--url", default=None)
    parser.add_argument("--trace", action="store_true")
    args = parser.parse_args()

    overrides = {"base_url": args.url} if args.url else {}
    settings = Settings(**overrides)
    configure_logging(settings)
    if args.trace:
        setup_tracing("tidemark-chat")

    client = ChatClient.from_settings(settings)
    conversation = await client.start_conversation()

    print("Tidemark chat (/list shows conversations)\n")

    while True:
        try:
            user_input = input("You: ")
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        if user_input.strip() == "/list":
            for c in await client.store.list_conversations():
                print(f"  [{c.conversation_id}] {c.title} ({c.message_count} messages)")
            continue
        if not user_input.strip():
            continue

        print("Assistant: ", end="")
        async with client.stream(conversation.conversation_id, user_input) as events:
            async for event in events:
                if isinstance(event, ServiceDetectedEvent):
                    print(f"[{event.service}] ", end="")
                elif isinstance(event, ContentDeltaEvent):
                    sys.stdout.write(event.content)
                    sys.stdout.flush()
                elif isinstance(event, ExchangeCompleteEvent):
                    print(f"\n\n{event.result.text}\n")


if __name__ == "__main__":
    asyncio.run(main())
