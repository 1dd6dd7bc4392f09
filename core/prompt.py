"""core/prompt.py

Prompt assembly. Pure templating: every value arrives pre-decided in a
PromptFields struct and is placed into one of four disjoint blocks:

    persona header | current state | behavior constraints | tone valve

The user's text is never interpolated into a directive block; it only ever
appears as a `role=user` message built by `build_messages`.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from core.compass import ReactionResult, ToneConstraints, ToneLevel
from core.expression import ExpressionProfile
from core.generation import GenerationParams
from core.patterns import avoidance_lines


@dataclass(frozen=True)
class PromptFields:
    persona_header: str
    mood_description: str
    relation_state: str
    intimacy: float
    local_time: str
    phase: str
    laziness: float
    reaction: ReactionResult
    tone: ToneLevel
    tone_constraints: ToneConstraints
    profile: ExpressionProfile
    memory_notes: Tuple[str, ...] = ()
    proactivity: float = 0.3
    implication_ratio: float = 0.2


@dataclass(frozen=True)
class PromptBlocks:
    persona_header: str
    current_state: str
    behavior_constraints: str
    tone_valve: str

    def system_prompt(self) -> str:
        blocks = (self.persona_header, self.current_state, self.behavior_constraints, self.tone_valve)
        return "\n\n".join(b for b in blocks if b).strip()

    def components(self) -> Dict[str, str]:
        return {
            "persona_header": self.persona_header,
            "current_state": self.current_state,
            "behavior_constraints": self.behavior_constraints,
            "tone_valve": self.tone_valve,
        }


def _block(title: str, lines: Sequence[str]) -> str:
    body = "\n".join(f"- {ln}" for ln in lines if ln)
    return f"[{title}]\n{body}" if body else ""


def assemble(fields: PromptFields) -> PromptBlocks:
    state_lines: List[str] = [
        fields.mood_description,
        f"Relationship: {fields.relation_state} (closeness {fields.intimacy:.2f})",
        f"Local time: {fields.local_time} ({fields.phase}, tiredness {fields.laziness:.2f})",
        f"Proactivity: {fields.proactivity:.2f}; implied-meaning ratio: {fields.implication_ratio:.2f}",
    ]
    if fields.memory_notes:
        state_lines.append("Things you remember: " + "; ".join(fields.memory_notes))

    behavior_lines: List[str] = [f"mode: {fields.profile.mode}"]
    behavior_lines.extend(fields.profile.to_constraints())
    behavior_lines.extend(fields.reaction.directives)
    behavior_lines.extend(avoidance_lines())

    tone_lines: List[str] = [f"tone: {fields.tone.value}"]
    tone_lines.extend(fields.tone_constraints.lines())

    return PromptBlocks(
        persona_header=fields.persona_header.strip(),
        current_state=_block("Current state", state_lines),
        behavior_constraints=_block("Behavior constraints", behavior_lines),
        tone_valve=_block("Tone valve", tone_lines),
    )


def tail_reminder(profile: ExpressionProfile, tone_constraints: ToneConstraints) -> str:
    """Short restatement of the hard limits, placed after the history."""
    limit = min(profile.max_sentences, tone_constraints.max_sentences)
    lines = [f"Reply in at most {limit} sentence(s)."]
    if tone_constraints.forbid_apology:
        lines.append("Do not apologize.")
    if tone_constraints.forbid_emoji or not profile.emoji_allowed:
        lines.append("No emoji.")
    return "[Reminder] " + " ".join(lines)


def build_messages(
    system_prompt: str,
    history: Sequence[Mapping[str, str]],
    user_text: str,
    reminder: Optional[str] = None,
) -> List[Dict[str, str]]:
    msgs: List[Dict[str, str]] = [{"role": "system", "content": system_prompt}]
    for m in history:
        role = str(m.get("role", ""))
        if role not in ("user", "assistant"):
            continue
        msgs.append({"role": role, "content": str(m.get("content", ""))})
    if reminder:
        msgs.append({"role": "system", "content": reminder})
    msgs.append({"role": "user", "content": user_text})
    return msgs


# -------------------------
# Snapshot (debug log of what was actually sent)
# -------------------------


def estimate_tokens(text: str) -> int:
    # ~4 chars per token is close enough for logging
    return (len(text or "") + 3) // 4


@dataclass(frozen=True)
class PromptSnapshot:
    system_prompt: str
    history_count: int
    estimated_tokens: int
    components: Dict[str, str]
    params: GenerationParams
    timestamp: float
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def capture(
        cls,
        blocks: PromptBlocks,
        messages: Sequence[Mapping[str, str]],
        params: GenerationParams,
        timestamp: float,
    ) -> "PromptSnapshot":
        total = sum(estimate_tokens(str(m.get("content", ""))) for m in messages)
        return cls(
            system_prompt=blocks.system_prompt(),
            history_count=max(0, sum(1 for m in messages if m.get("role") in ("user", "assistant")) - 1),
            estimated_tokens=total,
            components=blocks.components(),
            params=params,
            timestamp=timestamp,
        )

    def to_json(self) -> str:
        return json.dumps(
            {
                "timestamp": self.timestamp,
                "estimated_tokens": self.estimated_tokens,
                "history_count": self.history_count,
                "params": self.params.to_options(),
                "components": self.components,
                **self.extra,
            },
            ensure_ascii=False,
        )
