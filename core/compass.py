"""core/compass.py

Hostility handling: the reaction compass (dominance x heat -> social stance)
and the tone valve (a coarse NORMAL / COLD / HOSTILE gate).

Both are table-driven. The prompt receives enumerated directives, never
free prose generated from the user's message.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

from config.loader import CompassConfig
from personality.traits import PersonalityTraits
from utils.helpers import clamp


class SocialStance(str, Enum):
    EXPLOSIVE = "explosive"
    COLD_DISMISSAL = "cold_dismissal"
    VULNERABLE = "vulnerable"
    WITHDRAWAL = "withdrawal"
    NEUTRAL = "neutral"


class ToneLevel(str, Enum):
    NORMAL = "normal"
    COLD = "cold"
    HOSTILE = "hostile"


# Directives per stance. Keys are stable; values are the prompt lines.
STANCE_DIRECTIVES: Dict[SocialStance, Tuple[str, ...]] = {
    SocialStance.EXPLOSIVE: (
        "stance: confront",
        "state displeasure directly",
        "no explanations",
        "no apologies",
    ),
    SocialStance.COLD_DISMISSAL: (
        "stance: dismiss",
        "minimal reply",
        "no questions",
        "do not continue the topic",
    ),
    SocialStance.VULNERABLE: (
        "stance: hurt",
        "express that it hurt",
        "do not attack back",
    ),
    SocialStance.WITHDRAWAL: (
        "stance: withdraw",
        "perfunctory reply",
        "steer toward ending the conversation",
    ),
    SocialStance.NEUTRAL: (),
}


@dataclass(frozen=True)
class ReactionResult:
    dominance: float
    heat: float
    stance: SocialStance

    @property
    def directives(self) -> Tuple[str, ...]:
        return STANCE_DIRECTIVES[self.stance]

    def __str__(self) -> str:
        return f"ReactionResult(stance={self.stance.value}, D={self.dominance:.2f}, H={self.heat:.2f})"


@dataclass(frozen=True)
class ToneConstraints:
    max_sentences: int
    forbid_apology: bool
    forbid_metaphor: bool
    forbid_emoji: bool
    forbid_initiative: bool

    def lines(self) -> Tuple[str, ...]:
        return (
            f"max_sentences: {self.max_sentences}",
            f"forbid_apology: {str(self.forbid_apology).lower()}",
            f"forbid_metaphor: {str(self.forbid_metaphor).lower()}",
            f"forbid_emoji: {str(self.forbid_emoji).lower()}",
            f"forbid_initiative: {str(self.forbid_initiative).lower()}",
        )


TONE_CONSTRAINTS: Dict[ToneLevel, ToneConstraints] = {
    ToneLevel.NORMAL: ToneConstraints(5, False, False, False, False),
    ToneLevel.COLD: ToneConstraints(2, False, True, True, True),
    ToneLevel.HOSTILE: ToneConstraints(1, True, True, True, True),
}


# -------------------------
# Reaction compass
# -------------------------

CONFLICT_OFFENSIVENESS = 3


def dominance(traits: PersonalityTraits, intimacy: float, resentment: float) -> float:
    return clamp(
        (1.0 - traits.agreeableness) * 0.4
        + traits.extraversion * 0.2
        + (1.0 - intimacy) * 0.3
        + resentment * 0.5,
        0.0,
        1.0,
    )


def heat(traits: PersonalityTraits, arousal: float) -> float:
    return clamp(traits.neuroticism * 0.6 + arousal * 0.4, 0.0, 1.0)


def stance_for(d: float, h: float) -> SocialStance:
    if d > 0.5 and h > 0.5:
        return SocialStance.EXPLOSIVE
    if d > 0.5:
        return SocialStance.COLD_DISMISSAL
    if h > 0.5:
        return SocialStance.VULNERABLE
    return SocialStance.WITHDRAWAL


def react(
    traits: PersonalityTraits,
    intimacy: float,
    resentment: float,
    arousal: float,
    offensiveness: int,
) -> ReactionResult:
    """Stance for this turn; neutral (D = H = 0) when there is no conflict."""
    if offensiveness < CONFLICT_OFFENSIVENESS:
        return ReactionResult(dominance=0.0, heat=0.0, stance=SocialStance.NEUTRAL)

    d = dominance(traits, intimacy, resentment)
    h = heat(traits, arousal)
    return ReactionResult(dominance=d, heat=h, stance=stance_for(d, h))


# -------------------------
# Tone valve
# -------------------------


class ToneValve:
    def __init__(self, config: CompassConfig = CompassConfig()):
        self.config = config

    def level(self, resentment: float, laziness: float, offensiveness: int) -> ToneLevel:
        cfg = self.config
        if offensiveness > cfg.hostile_offensiveness or resentment > cfg.hostile_resentment:
            return ToneLevel.HOSTILE
        if laziness > cfg.cold_laziness or resentment > cfg.cold_resentment:
            return ToneLevel.COLD
        return ToneLevel.NORMAL

    @staticmethod
    def constraints(level: ToneLevel) -> ToneConstraints:
        return TONE_CONSTRAINTS[level]
