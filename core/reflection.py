"""core/reflection.py

Background reflection: after a quiet period, summarize the pending turns with
the completion service and extract memory notes plus a small intimacy
adjustment. The analysis is pure apart from the completion call; committing
the result is the session's job (under its lock, with a version check).
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from ai import CompletionService, extract_first_json_object, clean_special_tokens
from utils.errors import CompletionError
from utils.helpers import clamp
from utils.logging import log

MAX_INTIMACY_DELTA = 0.02
MAX_MEMORIES = 3

_REFLECTION_SYSTEM_PROMPT = (
    "You review a finished stretch of conversation between a user and a companion. "
    "Return EXACTLY one JSON object and nothing else.\n\n"
    "Schema:\n"
    "{\n"
    "  \"memories_to_store\": [\"short third-person facts about the user worth remembering\"],\n"
    "  \"intimacy_delta\": -0.02..0.02,\n"
    "  \"milestone\": \"short phrase or empty\"\n"
    "}\n\n"
    "Rules:\n"
    "- At most 3 memories, each under 20 words.\n"
    "- intimacy_delta is positive only for genuinely warm, open exchanges.\n"
)


@dataclass(frozen=True)
class ConversationTurn:
    user_message: str
    ai_response: str
    user_valence: float = 0.0


@dataclass(frozen=True)
class ReflectionResult:
    memories: Tuple[str, ...] = field(default_factory=tuple)
    intimacy_delta: float = 0.0
    milestone: str = ""

    @property
    def has_updates(self) -> bool:
        return bool(self.memories) or abs(self.intimacy_delta) > 0.001 or bool(self.milestone)

    @classmethod
    def from_mapping(cls, obj: object) -> "ReflectionResult":
        if not isinstance(obj, dict):
            return cls()
        raw = obj.get("memories_to_store", [])
        memories: List[str] = []
        if isinstance(raw, list):
            for m in raw:
                s = str(m).strip()[:200]
                if s and s not in memories:
                    memories.append(s)
                if len(memories) == MAX_MEMORIES:
                    break
        try:
            delta = float(obj.get("intimacy_delta", 0.0) or 0.0)
        except (TypeError, ValueError):
            delta = 0.0
        milestone = str(obj.get("milestone", "") or "").strip()[:120]
        return cls(
            memories=tuple(memories),
            intimacy_delta=clamp(delta, -MAX_INTIMACY_DELTA, MAX_INTIMACY_DELTA),
            milestone=milestone,
        )


def _transcript(turns: Sequence[ConversationTurn]) -> str:
    lines = []
    for t in turns[-12:]:
        lines.append(f"user: {t.user_message.strip()[:300]}")
        lines.append(f"companion: {t.ai_response.strip()[:300]}")
    return "\n".join(lines)


def analyze_turns(client: CompletionService, turns: Sequence[ConversationTurn]) -> ReflectionResult:
    """Blocking; run in a worker thread. Failures yield an empty result."""
    if not turns:
        return ReflectionResult()
    try:
        raw = client.complete(
            _REFLECTION_SYSTEM_PROMPT,
            [{"role": "user", "content": _transcript(turns)}],
            temperature=0.3,
            max_tokens=600,
        )
    except CompletionError as e:
        log(f"[Reflect] analysis failed: {e}")
        return ReflectionResult()

    js = extract_first_json_object(clean_special_tokens(raw))
    if not js:
        return ReflectionResult()
    try:
        return ReflectionResult.from_mapping(json.loads(js))
    except ValueError:
        return ReflectionResult()
