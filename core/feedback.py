"""core/feedback.py

Infer implicit feedback on the previous reply from how the user answered,
and turn it into arguments for PersonalityEngine.evolve.

Signals come from the perception record and message lengths only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from core.expression import ExpressionProfile
from core.perception import Need, PerceptionRecord, SocialEvent
from personality.traits import TraitActivation


class FeedbackType(str, Enum):
    ENGAGED = "engaged"
    DISENGAGED = "disengaged"
    ANNOYED = "annoyed"
    SATISFIED = "satisfied"
    WANT_TO_END = "want_to_end"
    NEUTRAL = "neutral"


POSITIVE = frozenset({FeedbackType.ENGAGED, FeedbackType.SATISFIED})
NEGATIVE = frozenset({FeedbackType.DISENGAGED, FeedbackType.ANNOYED, FeedbackType.WANT_TO_END})


@dataclass(frozen=True)
class FeedbackSignal:
    type: FeedbackType
    intensity: float

    @property
    def direction(self) -> int:
        if self.type in POSITIVE:
            return 1
        if self.type in NEGATIVE:
            return -1
        return 0


def infer_feedback(
    perception: PerceptionRecord,
    user_length: int,
    previous_reply_length: Optional[int],
    response_delay_s: float,
) -> FeedbackSignal:
    """Later rules override earlier ones, strongest evidence last."""
    kind = FeedbackType.NEUTRAL
    intensity = 0.5

    if previous_reply_length:
        ratio = user_length / float(previous_reply_length)
        if ratio > 1.5:
            kind, intensity = FeedbackType.ENGAGED, 0.7
        elif ratio < 0.2 and user_length < 10:
            kind, intensity = FeedbackType.DISENGAGED, 0.6

    if kind is FeedbackType.NEUTRAL:
        if response_delay_s > 30 * 60:
            kind, intensity = FeedbackType.DISENGAGED, 0.5
        elif response_delay_s < 10 and user_length > 10:
            kind, intensity = FeedbackType.ENGAGED, 0.6

    if perception.underlying_need is Need.END_CONVERSATION or perception.has(SocialEvent.NEGLECT):
        kind, intensity = FeedbackType.WANT_TO_END, 0.6
    if perception.has(SocialEvent.PRAISE):
        kind, intensity = FeedbackType.SATISFIED, 0.8
    if perception.offensiveness >= 3 or perception.has(SocialEvent.BOUNDARY):
        kind, intensity = FeedbackType.ANNOYED, 0.9

    return FeedbackSignal(type=kind, intensity=intensity)


def behavior_of(profile: Optional[ExpressionProfile], need: Optional[Need] = None) -> str:
    """Which behavior preset the previous reply most likely exercised."""
    if profile is None:
        return "serious"
    if need in (Need.COMFORT, Need.VENT):
        return "empathetic"
    if profile.playful_allowed:
        return "humorous"
    if profile.metaphor_density >= 0.5:
        return "creative"
    return "serious"


def evolution_args(
    signal: FeedbackSignal,
    behavior: str,
) -> Optional[Tuple[int, float, TraitActivation]]:
    """(direction, magnitude, activation) for evolve, or None when there is nothing to learn."""
    if signal.direction == 0:
        return None
    return signal.direction, signal.intensity, TraitActivation.from_behavior(behavior)
