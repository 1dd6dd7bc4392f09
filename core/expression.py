"""core/expression.py

Compile effective traits + relationship + hostility into an ExpressionProfile:
a small, bounded set of style constraints for one reply.

Precedence: crisis (SAFETY) > hostility (TERMINATING) > normal.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from core.compass import ToneLevel
from personality.traits import PersonalityTraits
from utils.helpers import clamp, round_half_up

HOSTILE_RESENTMENT = 0.6
DISTANT_INTIMACY = 0.3
EMOJI_INTIMACY = 0.4
PLAYFUL_INTIMACY = 0.5


@dataclass(frozen=True)
class ExpressionProfile:
    max_sentences: int = 3
    metaphor_density: float = 0.0
    emotional_leakage: float = 0.0
    initiative_allowed: bool = False
    emoji_allowed: bool = False
    playful_allowed: bool = False
    roleplay_allowed: bool = False
    mode: str = "normal"

    def to_constraints(self) -> Tuple[str, ...]:
        lines = [
            f"max_sentences: {self.max_sentences}",
            f"metaphor_density: {self.metaphor_density:.2f}",
            f"emotional_leakage: {self.emotional_leakage:.2f}",
        ]
        if self.metaphor_density <= 0.0:
            lines.append("forbid_metaphor: true")
        if not self.initiative_allowed:
            lines.append("forbid_new_topics: true")
        if not self.emoji_allowed:
            lines.append("forbid_emoji: true")
        if not self.playful_allowed:
            lines.append("forbid_teasing: true")
        if not self.roleplay_allowed:
            lines.append("forbid_roleplay_actions: true")
        return tuple(lines)


TERMINATING = ExpressionProfile(max_sentences=1, mode="terminating")

# Crisis replies: short, plain, no play
SAFETY = ExpressionProfile(max_sentences=3, mode="safety")


def compile_profile(
    traits: PersonalityTraits,
    intimacy: float,
    resentment: float,
    *,
    meltdown: bool = False,
    tone: ToneLevel = ToneLevel.NORMAL,
    crisis: bool = False,
) -> ExpressionProfile:
    """`traits` must already be the effective (fused, fatigue-suppressed) view."""
    if crisis:
        return SAFETY
    if meltdown or tone is ToneLevel.HOSTILE or resentment > HOSTILE_RESENTMENT:
        return TERMINATING

    distant = intimacy < DISTANT_INTIMACY
    o, e, n = traits.openness, traits.extraversion, traits.neuroticism

    return ExpressionProfile(
        max_sentences=int(clamp(round_half_up(e * 3.0 + 1.0), 1, 5)),
        metaphor_density=clamp(o * (0.3 if distant else 0.8), 0.0, 1.0),
        emotional_leakage=clamp(n * 0.6, 0.0, 1.0),
        initiative_allowed=not distant and e > 0.5,
        emoji_allowed=intimacy > EMOJI_INTIMACY,
        playful_allowed=not distant and o > 0.5 and intimacy > PLAYFUL_INTIMACY,
        roleplay_allowed=not distant and o > 0.6,
        mode="distant" if distant else "normal",
    )
