"""
Terminal companion (chat + commands)

Key rules:
- Commands live in commands.py (single source of truth).
- Everything else is a conversation turn for the single console agent.

Notes:
- Completions are synchronous HTTP calls, so the pipeline runs them in a
  worker thread to keep the event loop (reflection timers, decay tick) alive.
"""

from __future__ import annotations

import argparse
import asyncio
import functools
import sys
from typing import Optional

import requests

from ai import OllamaChatClient, classify_perception
from commands import HELP_TEXT, handle_commands
from config import load_settings
from core.conversation import Companion
from memory_sqlite import StateStore
from utils.errors import ConfigError, PersistenceError
from utils.logging import log, set_default_tz


# =========================
# Configuration
# =========================

DEFAULT_AGENT_ID = "console"
PROMPT = "you> "


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Chat with the companion in a terminal.")
    p.add_argument("--settings", help="Path to settings.yaml (default: PSYCHE_SETTINGS or config/settings.yaml)")
    p.add_argument("--agent", default=DEFAULT_AGENT_ID, help="Agent id (one state per id)")
    p.add_argument("--db", help="SQLite path; overrides database_path from settings")
    p.add_argument("--model-perception", action="store_true", help="Classify messages with the model instead of rules")
    p.add_argument("--stream", action="store_true", help="Stream completions")
    return p.parse_args(argv)


async def _send(text: str) -> None:
    print(text, flush=True)


async def _read_line() -> Optional[str]:
    """input() in a thread; None on EOF."""
    try:
        return await asyncio.to_thread(input, PROMPT)
    except EOFError:
        return None


# =========================
# Main loop
# =========================

async def run(args: argparse.Namespace) -> int:
    try:
        settings = load_settings(args.settings)
    except ConfigError as e:
        log(f"[Config] {e}")
        return 2

    set_default_tz(settings.timezone)

    try:
        store = StateStore(args.db or settings.database_path)
    except PersistenceError as e:
        log(f"[Store] {e}")
        return 2

    http = requests.Session()
    client = OllamaChatClient(settings.llm, session=http)

    kwargs = {}
    if args.model_perception:
        kwargs["classifier"] = functools.partial(
            classify_perception,
            config=settings.llm,
            session=http,
            timeout_s=settings.reflection.perception_timeout_s,
        )

    companion = Companion(settings, client, store, streaming=args.stream, **kwargs)
    agent_id = args.agent
    session = companion.session(agent_id)
    companion.decay_timers.reset(agent_id)
    log(f"[Bot] {settings.persona.name} is ready (agent '{agent_id}', model {settings.llm.model}).")
    if not session.state.personality.locked:
        print("Genesis is not locked yet. Shape the traits with `!genesis set ...`, then `!genesis lock`.")
    print(HELP_TEXT)

    try:
        while True:
            line = await _read_line()
            if line is None:
                break
            content = line.strip()
            if not content:
                continue
            if content.lower() in ("!quit", "!exit"):
                break

            # Commands bypass the turn pipeline
            if content.startswith("!"):
                if await handle_commands(companion, agent_id, content, _send):
                    continue

            result = await companion.submit(agent_id, content)
            if result.success:
                print(f"{settings.persona.name}> {result.reply}")
            elif not result.cancelled:
                print(f"[{settings.persona.name} could not reply: {result.error}]")
            if not result.persisted:
                print("[warning: state could not be saved; it will be retried]")
    except KeyboardInterrupt:
        pass
    finally:
        await companion.close()
        http.close()
        log("[Bot] Bye.")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    return asyncio.run(run(_parse_args(argv)))


# =========================
# Start bot
# =========================

if __name__ == "__main__":
    sys.exit(main())
