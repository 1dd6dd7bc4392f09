"""commands.py

All console command handling lives here.

Important design rule:
- bot.py routes anything starting with "!" here BEFORE it reaches the turn
  pipeline; commands never count as conversation turns.

Commands in this file:
- !mood                          -> emotion, intimacy and fatigue readout
- !genesis                       -> show traits and whether genesis is locked
- !genesis set trait=value ...   -> edit traits (only before lock)
- !genesis lock                  -> lock the current traits as genesis
- !reset confirm                 -> factory reset (state, history, notes)
- !prompt                        -> last prompt snapshot (blocks + params)
- !reflect                       -> run reflection now instead of waiting
- !help                          -> this list
"""

from __future__ import annotations

import json
from typing import Awaitable, Callable, Dict

from core.conversation import Companion
from personality.traits import TRAIT_NAMES
from utils.errors import GenesisLockedError, PersistenceError

Send = Callable[[str], Awaitable[None]]

HELP_TEXT = (
    "Commands:\n"
    "  !mood                         current mood, closeness, tiredness\n"
    "  !genesis                      show traits / lock status\n"
    "  !genesis set openness=0.7 ... edit traits before the lock\n"
    "  !genesis lock                 lock the starting traits\n"
    "  !reset confirm                wipe everything for this agent\n"
    "  !prompt                       show the last prompt snapshot\n"
    "  !reflect                      reflect on recent turns now\n"
    "  !quit                         exit"
)


def parse_trait_assignments(text: str) -> Dict[str, float]:
    """'openness=0.7 extraversion=.4' -> {"openness": 0.7, "extraversion": 0.4}.

    Unknown trait names and non-numeric values raise ValueError.
    """
    values: Dict[str, float] = {}
    for part in text.replace(",", " ").split():
        if "=" not in part:
            raise ValueError(f"expected trait=value, got '{part}'")
        name, raw = part.split("=", 1)
        name = name.strip().lower()
        if name not in TRAIT_NAMES:
            raise ValueError(f"unknown trait '{name}'")
        values[name] = float(raw)
    if not values:
        raise ValueError("no traits given")
    return values


async def _handle_mood(companion: Companion, agent_id: str, send: Send) -> bool:
    """Handle !mood command."""
    session = companion.session(agent_id)
    state = session.state
    now = companion.clock()
    ts = now.timestamp()

    emotion = state.emotion
    intimacy = state.intimacy
    laziness = companion.biorhythm.laziness(now)
    relation = companion.intimacy.relation_state(intimacy.intimacy)

    lines = [
        f"Mood: {companion.emotion.label(emotion)} ({companion.emotion.intensity(emotion)})",
        f"  valence {emotion.valence:+.2f} | arousal {emotion.arousal:.2f} | resentment {emotion.resentment:.2f}",
        f"Relationship: {relation.value} (intimacy {intimacy.intimacy:.3f}, "
        f"growth efficiency {companion.intimacy.growth_efficiency(intimacy, ts):.2f}%)",
    ]
    if intimacy.is_cooling(ts):
        lines.append(f"  cooling for another {intimacy.cooling_remaining_minutes(ts)} min")
    if companion.emotion.is_meltdown(emotion):
        lines.append("  !! meltdown")
    lines.append(f"Tiredness: {laziness:.2f} ({companion.biorhythm.phase(now)})")
    if session.dirty:
        lines.append("(unsaved changes: the last save failed)")
    await send("\n".join(lines))
    return True


async def _handle_genesis(companion: Companion, agent_id: str, content: str, send: Send) -> bool:
    """Handle !genesis command."""
    arg = content[len("!genesis"):].strip()
    arg_lower = arg.lower()

    if not arg:
        profile = companion.session(agent_id).state.personality
        status = "locked" if profile.locked else "not locked (edit with !genesis set, then !genesis lock)"
        await send(f"Traits: {profile.traits}\nGenesis: {status}")
        return True

    try:
        if arg_lower == "lock":
            state = await companion.lock_genesis(agent_id)
            await send(f"Genesis locked: {state.traits}")
            return True

        if arg_lower.startswith("set"):
            try:
                values = parse_trait_assignments(arg[3:])
            except ValueError as e:
                await send(f"Usage: !genesis set openness=0.7 extraversion=0.4 ({e})")
                return True
            state = await companion.edit_traits(agent_id, values)
            await send(f"Traits: {state.traits}")
            return True
    except GenesisLockedError as e:
        await send(f"{e}.")
        return True

    await send("Usage: `!genesis`, `!genesis set trait=value ...`, `!genesis lock`")
    return True


async def _handle_reset(companion: Companion, agent_id: str, content: str, send: Send) -> bool:
    """Handle !reset command."""
    arg = content[len("!reset"):].strip().lower()
    if arg != "confirm":
        await send("This wipes mood, closeness, traits, history and notes. Type `!reset confirm` to do it.")
        return True
    try:
        await companion.factory_reset(agent_id)
    except PersistenceError as e:
        await send(f"Reset failed: {e}")
        return True
    await send("Done. Starting over.")
    return True


async def _handle_prompt(companion: Companion, agent_id: str, send: Send) -> bool:
    """Handle !prompt command."""
    snapshot = companion.session(agent_id).last_snapshot
    if snapshot is None:
        await send("No prompt yet.")
        return True
    params = json.dumps(snapshot.params.to_options())
    await send(
        f"{snapshot.system_prompt}\n\n"
        f"-- params {params} | history {snapshot.history_count} | ~{snapshot.estimated_tokens} tokens"
    )
    return True


async def _handle_reflect(companion: Companion, agent_id: str, send: Send) -> bool:
    """Handle !reflect command."""
    companion.reflections.cancel(agent_id)
    committed = await companion.reflect(agent_id)
    await send("Reflection stored." if committed else "Nothing to reflect on.")
    return True


async def handle_commands(
    companion: Companion,
    agent_id: str,
    content: str,
    send: Send,
) -> bool:
    """
    Central command router.
    Returns True if a command was handled (caller should not start a turn).
    """
    content_lower = content.lower()

    if content_lower.startswith("!mood"):
        return await _handle_mood(companion, agent_id, send)

    if content_lower.startswith("!genesis"):
        return await _handle_genesis(companion, agent_id, content, send)

    if content_lower.startswith("!reset"):
        return await _handle_reset(companion, agent_id, content, send)

    if content_lower.startswith("!prompt"):
        return await _handle_prompt(companion, agent_id, send)

    if content_lower.startswith("!reflect"):
        return await _handle_reflect(companion, agent_id, send)

    if content_lower.startswith("!help"):
        await send(HELP_TEXT)
        return True

    return False
