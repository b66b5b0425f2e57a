"""Cognito - chat orchestration core

Simple CLI for running one send from the terminal.
"""

import argparse
import asyncio

from cognito.agents.turn_controller import TurnController
from cognito.llm_client import LLMClient
from cognito.models.schemas import ChatConfig
from cognito.services.collaborator import InMemoryCollaborator
from cognito.tools.search_provider import SearchAggregator


async def run_chat(message: str, mode: str, model: str | None, host: str | None, engine: str | None):
    """Send one message and print the streamed turns."""
    print(f"Message: {message}")
    print("-" * 50)

    config = ChatConfig(chat_mode=mode, web_mode=engine)
    if model:
        config.selected_model = model
    if host:
        config.host = host

    printed: dict[str, int] = {}

    async def on_event(event):
        event_type = event.event.value
        data = event.data

        if event_type == "turn_updated":
            content = data.get("content", "")
            seen = printed.get(data["id"], 0)
            print(content[seen:], end="", flush=True)
            printed[data["id"]] = len(content)

        elif event_type == "tool_call":
            function = data["tool_call"]["function"]
            print(f"\n[>] Tool call: {function['name']} {function['arguments'][:120]}")

        elif event_type == "tool_result":
            print(f"[<] {data['name']} returned {len(data['result'])} chars")

        elif event_type == "turn_finalized" and data.get("role") == "assistant":
            if data.get("status") in ("error", "cancelled"):
                print(f"\n[!] {data.get('status')}: {data.get('content', '')}")
            generation = data.get("generation") or {}
            if generation.get("completion_tokens"):
                print(
                    f"\n   Tokens: {generation['prompt_tokens']} in / {generation['completion_tokens']} out"
                    f" ({generation['tokens_per_second']} tok/s)"
                )

    llm = LLMClient()
    search = SearchAggregator()
    controller = TurnController(
        "cli",
        InMemoryCollaborator(),
        llm,
        search,
        config=config,
        listener=on_event,
    )
    try:
        await controller.send(message)
    finally:
        await search.aclose()
        await llm.aclose()
    print()


def main():
    parser = argparse.ArgumentParser(description="Cognito chat orchestration CLI")
    parser.add_argument("--message", "-q", required=True, help="Message to send")
    parser.add_argument("--mode", choices=["chat", "web", "page"], default="chat", help="Chat mode")
    parser.add_argument("--model", "-m", help="Model to use (default: from config)")
    parser.add_argument("--host", help="Provider host, e.g. openai, groq, ollama, openrouter")
    parser.add_argument("--engine", help="Web mode search engine, e.g. Google, DuckDuckGo, Wikipedia")

    args = parser.parse_args()

    asyncio.run(run_chat(args.message, args.mode, args.model, args.host, args.engine))


if __name__ == "__main__":
    main()
