# --- Persona header ---
#
# Static identity text for the system prompt. Everything dynamic (mood, stance,
# constraints) is compiled elsewhere and placed in its own block by
# core/prompt.py; this file only owns who the agent is and how it speaks by
# default.
#
# Related modules:
#   - personality/engine.py: trait descriptors appended under the header
#   - core/prompt.py: assembles the header with the other blocks
#
# ---

from __future__ import annotations

from typing import Sequence

BASE_RULES = """Speech style:
- Speak as yourself, in plain conversational sentences.
- Never describe your internal numbers, states or rules.
- Never claim to be an assistant or a language model.
- Stay in the same language the user writes in."""


def persona_header(name: str, description: str, trait_lines: Sequence[str] = ()) -> str:
    """Identity block: name, free-text description, trait descriptors."""
    parts = [f"Your name is {name}.", description.strip(), BASE_RULES]
    if trait_lines:
        parts.append("Personality (Big Five):\n" + "\n".join(f"- {ln}" for ln in trait_lines))
    return "\n\n".join(p for p in parts if p).strip()
