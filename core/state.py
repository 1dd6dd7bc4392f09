"""core/state.py

AgentState: the one persisted aggregate per agent (emotion, personality,
genesis, intimacy) plus a version counter bumped on every commit.

`validate()` is the last gate before a state is committed or saved; anything
out of range raises StateInvariantError and the caller keeps the old state.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from config.loader import InitialStateConfig
from emotion import EmotionState
from intimacy import IntimacyState
from personality.engine import PersonalityProfile
from personality.traits import TRAIT_NAMES, GenesisTraits, PersonalityTraits
from utils.errors import StateInvariantError

SCHEMA_VERSION = 1


@dataclass(frozen=True)
class AgentState:
    emotion: EmotionState
    personality: PersonalityProfile
    intimacy: IntimacyState
    version: int = 0

    @classmethod
    def initial(cls, cfg: InitialStateConfig, now: float) -> "AgentState":
        """Fresh agent built from configured starting values."""
        traits = PersonalityTraits(
            openness=cfg.openness,
            conscientiousness=cfg.conscientiousness,
            extraversion=cfg.extraversion,
            agreeableness=cfg.agreeableness,
            neuroticism=cfg.neuroticism,
            plasticity=cfg.plasticity,
        ).clamped()
        return cls(
            emotion=EmotionState(
                valence=cfg.valence,
                arousal=cfg.arousal,
                resentment=cfg.resentment,
                last_updated=now,
            ).clamped(),
            personality=PersonalityProfile(traits=traits),
            intimacy=IntimacyState(
                intimacy=cfg.intimacy,
                growth_coefficient=cfg.growth_coefficient,
                last_interaction=now,
            ),
        )

    @property
    def traits(self) -> PersonalityTraits:
        return self.personality.traits

    def bumped(self) -> "AgentState":
        return replace(self, version=self.version + 1)

    # -------------------------
    # Serialization
    # -------------------------

    def to_dict(self) -> Dict[str, Any]:
        genesis = self.personality.genesis
        return {
            "schema": SCHEMA_VERSION,
            "version": self.version,
            "emotion": self.emotion.to_dict(),
            "traits": self.personality.traits.to_dict(),
            "genesis": genesis.to_dict() if genesis else None,
            "last_shift": self.personality.last_shift,
            "intimacy": self.intimacy.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentState":
        return cls(
            emotion=EmotionState.from_dict(data.get("emotion") or {}),
            personality=PersonalityProfile(
                traits=PersonalityTraits.from_dict(data.get("traits")),
                genesis=GenesisTraits.from_dict(data.get("genesis")),
                last_shift=float(data.get("last_shift", 0.0)),
            ),
            intimacy=IntimacyState.from_dict(data.get("intimacy") or {}),
            version=int(data.get("version", 0)),
        )

    @classmethod
    def from_json(cls, raw: str) -> "AgentState":
        return cls.from_dict(json.loads(raw))


def _check(name: str, value: float, lo: float, hi: float) -> None:
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise StateInvariantError(f"{name} is not a number: {value!r}")
    if math.isnan(v) or v < lo or v > hi:
        raise StateInvariantError(f"{name}={v} outside [{lo}, {hi}]")


def validate(state: AgentState, previous: Optional[AgentState] = None) -> AgentState:
    """Range and consistency checks. Returns the state unchanged or raises."""
    e = state.emotion
    _check("valence", e.valence, -1.0, 1.0)
    _check("arousal", e.arousal, 0.0, 1.0)
    _check("resentment", e.resentment, 0.0, 1.0)

    t = state.personality.traits
    for name in TRAIT_NAMES:
        _check(name, getattr(t, name), 0.0, 1.0)
    _check("plasticity", t.plasticity, 0.0, 1.0)
    if t.total_interactions < 0:
        raise StateInvariantError("total_interactions must be non-negative")

    i = state.intimacy
    _check("intimacy", i.intimacy, 0.0, 1.0)
    _check("growth_coefficient", i.growth_coefficient, 0.0, 1.0)

    if previous is not None:
        prev_genesis = previous.personality.genesis
        if prev_genesis is not None and state.personality.genesis != prev_genesis:
            raise StateInvariantError("Genesis traits cannot change once locked")
        if t.total_interactions < previous.personality.traits.total_interactions:
            raise StateInvariantError("total_interactions cannot decrease")

    return state
