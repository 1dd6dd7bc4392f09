"""emotion.py

Deterministic affect engine: Valence-Arousal-Resentment (VAR).

- valence    [-1, 1]  unpleasant (-) <-> pleasant (+)
- arousal    [0, 1]   calm <-> activated (baseline 0.5)
- resentment [0, 1]   accumulated grievance; suppresses positive valence

One update step is: time decay toward baseline, the apology valve, the
resentment delta, meltdown gating, resentment suppression, then the soft
boundary. Everything is clamped afterwards.

States are immutable; every operation returns a new EmotionState. The engine
holds only its config, so one instance can serve every agent.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Optional, Tuple

from config.loader import EmotionConfig
from core.perception import PerceptionRecord, SocialEvent
from utils.helpers import clamp, now_ts, sigmoid


@dataclass(frozen=True)
class EmotionState:
    valence: float = 0.0
    arousal: float = 0.5
    resentment: float = 0.0
    last_updated: float = 0.0

    def clamped(self) -> "EmotionState":
        return replace(
            self,
            valence=clamp(self.valence, -1.0, 1.0),
            arousal=clamp(self.arousal, 0.0, 1.0),
            resentment=clamp(self.resentment, 0.0, 1.0),
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "valence": self.valence,
            "arousal": self.arousal,
            "resentment": self.resentment,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, float]) -> "EmotionState":
        return cls(
            valence=float(data.get("valence", 0.0)),
            arousal=float(data.get("arousal", 0.5)),
            resentment=float(data.get("resentment", 0.0)),
            last_updated=float(data.get("last_updated", 0.0)),
        )


class EmotionEngine:
    """VAR update rules. Pure: no I/O, no shared mutable state."""

    # Quadrant labels, checked in order
    _GUIDANCE: Dict[str, str] = {
        "excited": "Energetic and bright. Quick, lively replies.",
        "happy": "Content and warm. Relaxed, friendly tone.",
        "sad": "Low and quiet. Short, subdued replies.",
        "irritated": "Irritated and impatient. Keep it brief.",
        "tense": "Keyed up. Direct and a little clipped.",
        "calm": "Calm and steady. Clear and grounded.",
    }

    def __init__(self, config: EmotionConfig = EmotionConfig()):
        self.config = config

    # -------------------------
    # Core ops
    # -------------------------

    def decay(self, current: EmotionState, elapsed_s: float, now: Optional[float] = None) -> EmotionState:
        """Relax toward baseline over `elapsed_s` seconds. Negative elapsed counts as 0."""
        cfg = self.config
        hours = min(max(0.0, float(elapsed_s)) / 3600.0, cfg.max_decay_hours)

        v, a, r = current.valence, current.arousal, current.resentment
        if hours > 0.0:
            v += (cfg.valence_baseline - v) * min(1.0, cfg.valence_decay_rate * hours)
            a += (cfg.arousal_baseline - a) * min(1.0, cfg.arousal_decay_rate * hours)
            r *= cfg.resentment_decay_factor ** hours

        return EmotionState(
            valence=v,
            arousal=a,
            resentment=r,
            last_updated=current.last_updated if now is None else now,
        ).clamped()

    def update(
        self,
        current: EmotionState,
        dv: float,
        da: float,
        dr: float,
        elapsed_s: float,
        events: Iterable[SocialEvent] = (),
        *,
        now: Optional[float] = None,
    ) -> EmotionState:
        """Apply one stimulus after decaying for `elapsed_s` seconds."""
        cfg = self.config
        now = now_ts() if now is None else now
        events = frozenset(events)

        state = self.decay(current, elapsed_s, now=now)
        v, a, r = state.valence, state.arousal, state.resentment

        if SocialEvent.APOLOGY in events:
            r *= 1.0 - clamp(cfg.apology_discharge, 0.0, 1.0)

        r = clamp(r + float(dr), 0.0, 1.0)

        dv = float(dv)
        if dv > 0.0:
            if self._meltdown(v, r):
                dv = 0.0
            else:
                dv *= 1.0 - sigmoid(cfg.suppression_steepness * (r - cfg.suppression_midpoint))

        v = v + dv * (1.0 - abs(v)) ** cfg.soft_boundary_exponent

        da = float(da)
        headroom = (1.0 - a) if da > 0.0 else a
        a = a + da * max(0.0, headroom) ** cfg.soft_boundary_exponent

        return EmotionState(valence=v, arousal=a, resentment=r, last_updated=now).clamped()

    def _meltdown(self, valence: float, resentment: float) -> bool:
        return resentment > self.config.meltdown_resentment and valence < self.config.meltdown_valence

    def is_meltdown(self, state: EmotionState) -> bool:
        """Derived flag: high resentment and deeply negative valence at the same time."""
        return self._meltdown(state.valence, state.resentment)

    def stimulus_from_perception(
        self,
        perception: PerceptionRecord,
        intimacy: float = 0.0,
    ) -> Tuple[float, float, float]:
        """Map a perception record to a (dv, da, dr) stimulus.

        Closer relationships buffer the swing; offensiveness at or above the
        hostility threshold feeds resentment in proportion to severity.
        """
        cfg = self.config
        buffer = 1.0 - clamp(intimacy, 0.0, 1.0) * 0.5
        trust = 0.5 + 0.5 * perception.confidence

        dv = perception.surface_valence * cfg.stimulus_weight * trust * buffer
        da = (perception.surface_arousal - cfg.arousal_baseline) * cfg.stimulus_weight * trust
        dr = 0.0

        if perception.offensiveness >= cfg.hostile_offensiveness:
            dv -= perception.severity * cfg.stimulus_weight
            da += perception.severity * 0.3
            dr += cfg.resentment_increase * 2.0 * perception.severity

        if perception.has(SocialEvent.NEGLECT):
            dr += cfg.resentment_increase * 0.5
        if perception.has(SocialEvent.PRAISE):
            dv += 0.1 * buffer

        return dv, da, dr

    # -------------------------
    # Introspection / prompt text
    # -------------------------

    @staticmethod
    def label(state: EmotionState) -> str:
        v, a = state.valence, state.arousal
        if v > 0.3 and a >= 0.5:
            return "excited"
        if v > 0.3:
            return "happy"
        if v < -0.3 and a < 0.5:
            return "sad"
        if v < -0.3:
            return "irritated"
        if a > 0.6:
            return "tense"
        return "calm"

    def intensity(self, state: EmotionState) -> str:
        strong = abs(state.valence) > 0.6 or state.arousal > 0.7
        return "strong" if strong else "mild"

    def description(self, state: EmotionState) -> str:
        label = self.label(state)
        guidance = self._GUIDANCE[label]
        return (
            f"Mood: {label} ({self.intensity(state)}). Guidance: {guidance} "
            f"(valence={state.valence:+.2f}, arousal={state.arousal:.2f}, "
            f"resentment={state.resentment:.2f})"
        )

    def meltdown_response(self, turn_index: int = 0) -> str:
        responses = self.config.meltdown_responses or ("......",)
        return responses[int(turn_index) % len(responses)]

    @staticmethod
    def metrics(state: EmotionState) -> Dict[str, float]:
        """Numeric snapshot for logs."""
        return {
            "valence": round(state.valence, 4),
            "arousal": round(state.arousal, 4),
            "resentment": round(state.resentment, 4),
            "distance_from_neutral": round(math.hypot(state.valence, state.arousal - 0.5), 4),
        }
