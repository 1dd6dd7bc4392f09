"""personality/engine.py

Genesis lock, slow trait evolution and the read-only "effective" view.

Once genesis is locked, traits only move through `evolve`. Direct edits and a
second lock raise GenesisLockedError and leave the profile unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, List, Optional

from config.loader import PersonalityConfig
from personality.traits import TRAIT_NAMES, GenesisTraits, PersonalityTraits, TraitActivation
from utils.errors import GenesisLockedError
from utils.helpers import clamp, now_ts
from utils.logging import log

# Fatigue suppression weight per trait; agreeableness and neuroticism are not suppressed
FATIGUE_WEIGHTS: Dict[str, float] = {
    "openness": 0.9,
    "conscientiousness": 0.8,
    "extraversion": 0.5,
    "agreeableness": 0.0,
    "neuroticism": 0.0,
}

_DESCRIPTORS: Dict[str, tuple] = {
    "openness": (
        "Openness",
        "prefers concrete, practical wording; sticks to facts",
        "balances imagination with practicality",
        "imaginative; enjoys metaphor and playful images",
    ),
    "conscientiousness": (
        "Conscientiousness",
        "casual and improvised",
        "organised but flexible",
        "precise, careful, attentive to detail",
    ),
    "extraversion": (
        "Extraversion",
        "reserved and brief; a good listener",
        "moderately forthcoming; keeps the conversation moving",
        "warm, talkative and lively",
    ),
    "agreeableness": (
        "Agreeableness",
        "independent and blunt",
        "friendly but keeps boundaries",
        "gentle and supportive; good at comforting",
    ),
    "neuroticism": (
        "Emotional sensitivity",
        "even-tempered and calm",
        "normal ups and downs; empathetic",
        "sensitive; lets vulnerability show",
    ),
}


@dataclass(frozen=True)
class PersonalityProfile:
    traits: PersonalityTraits = PersonalityTraits()
    genesis: Optional[GenesisTraits] = None
    last_shift: float = 0.0

    @property
    def locked(self) -> bool:
        return self.genesis is not None


class PersonalityEngine:
    def __init__(self, config: PersonalityConfig = PersonalityConfig()):
        self.config = config

    # -------------------------
    # Genesis
    # -------------------------

    def lock_genesis(
        self,
        profile: PersonalityProfile,
        traits: Optional[PersonalityTraits] = None,
        now: Optional[float] = None,
    ) -> PersonalityProfile:
        """One-time capture of the starting traits. A second call raises."""
        if profile.locked:
            raise GenesisLockedError("Genesis traits are already locked")
        now = now_ts() if now is None else now
        chosen = (traits or profile.traits).clamped()
        log(f"[Personality] Genesis locked: {chosen}")
        return replace(profile, traits=chosen, genesis=GenesisTraits(traits=chosen, locked_at=now))

    def edit_traits(self, profile: PersonalityProfile, values: Dict[str, float]) -> PersonalityProfile:
        """Direct user assignment; only allowed before genesis is locked."""
        if profile.locked:
            raise GenesisLockedError("Traits are locked; they can only change through evolution")
        return replace(profile, traits=profile.traits.with_traits(values))

    # -------------------------
    # Evolution
    # -------------------------

    def effective_plasticity(self, traits: PersonalityTraits) -> float:
        cfg = self.config
        decay = (1.0 - cfg.plasticity_decay) ** (traits.total_interactions / float(cfg.plasticity_decay_interval))
        return max(cfg.min_plasticity, traits.plasticity * decay)

    def shift_readiness(self, elapsed_since_last_shift: float) -> float:
        """P(t): 0 inside the shift cooldown, 1 afterwards."""
        return 0.0 if elapsed_since_last_shift < self.config.shift_cooldown_s else 1.0

    def evolve(
        self,
        current: PersonalityTraits,
        direction: int,
        magnitude: float,
        activation: TraitActivation,
        intimacy: float,
        elapsed_since_last_shift: float,
    ) -> PersonalityTraits:
        """ΔT_i = D · M · A_i · I · P(t) · plasticity_eff, negatives weighted heavier."""
        cfg = self.config
        d = 1.0 if direction > 0 else (-1.0 if direction < 0 else 0.0)
        m = clamp(magnitude, 0.0, 1.0)
        i = clamp(intimacy, 0.0, 1.0)
        p = self.shift_readiness(elapsed_since_last_shift)
        plasticity = self.effective_plasticity(current)
        weight = cfg.negative_feedback_weight if d < 0 else 1.0
        cap = cfg.max_change_per_feedback

        changed: Dict[str, float] = {}
        for name in TRAIT_NAMES:
            delta = d * m * activation.weight(name) * i * p * plasticity * weight
            delta = clamp(delta, -cap, cap)
            changed[name] = clamp(getattr(current, name) + delta, 0.0, 1.0)

        return replace(current, total_interactions=current.total_interactions + 1, **changed)

    # -------------------------
    # Views
    # -------------------------

    def effective_traits(self, traits: PersonalityTraits, intimacy: float = 0.0, fatigue: float = 0.0) -> PersonalityTraits:
        """Intimacy fusion, then fatigue suppression. Never written back."""
        cfg = self.config
        i = clamp(intimacy, 0.0, 1.0)
        fused = replace(
            traits,
            extraversion=traits.extraversion + cfg.fusion_extraversion * i,
            agreeableness=traits.agreeableness + cfg.fusion_agreeableness * i,
            neuroticism=traits.neuroticism + cfg.fusion_neuroticism * i,
        ).clamped()

        f = clamp(fatigue, 0.0, 1.0)
        if f <= 0.0:
            return fused
        return fused.with_traits(
            {name: getattr(fused, name) * (1.0 - f * FATIGUE_WEIGHTS[name]) for name in TRAIT_NAMES}
        )

    @staticmethod
    def should_clear_fatigue(valence: float, crisis: bool) -> bool:
        """Crisis interrupt: deep distress overrides sleepiness."""
        return crisis or valence < -0.6

    @staticmethod
    def describe(traits: PersonalityTraits) -> List[str]:
        lines = []
        for name in TRAIT_NAMES:
            label, low, mid, high = _DESCRIPTORS[name]
            value = getattr(traits, name)
            if value < 0.35:
                text = low
            elif value < 0.65:
                text = mid
            else:
                text = high
            lines.append(f"{label}: {text} ({value:.2f})")
        return lines
