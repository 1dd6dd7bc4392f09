"""personality/traits.py

Five-factor trait values plus the plasticity that governs how fast they move.

All trait values live in [0, 1]. `TraitActivation` says which traits a given
kind of reply exercised; it weights the per-trait change in `evolve`.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Dict, Optional

from utils.helpers import clamp

TRAIT_NAMES = ("openness", "conscientiousness", "extraversion", "agreeableness", "neuroticism")


@dataclass(frozen=True)
class PersonalityTraits:
    openness: float = 0.5
    conscientiousness: float = 0.5
    extraversion: float = 0.5
    agreeableness: float = 0.5
    neuroticism: float = 0.5
    plasticity: float = 0.01
    total_interactions: int = 0

    def clamped(self) -> "PersonalityTraits":
        values = {name: clamp(getattr(self, name), 0.0, 1.0) for name in TRAIT_NAMES}
        return replace(
            self,
            plasticity=clamp(self.plasticity, 0.0, 1.0),
            total_interactions=max(0, int(self.total_interactions)),
            **values,
        )

    def trait_map(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in TRAIT_NAMES}

    def with_traits(self, values: Dict[str, float]) -> "PersonalityTraits":
        return replace(self, **{k: v for k, v in values.items() if k in TRAIT_NAMES}).clamped()

    def dominant_trait(self) -> str:
        values = self.trait_map()
        return max(values, key=values.get)

    @classmethod
    def from_sliders(cls, humor: float, formality: float, plasticity: float = 0.01) -> "PersonalityTraits":
        """Build a starting profile from two user-facing sliders in [0, 1]."""
        humor = clamp(humor, 0.0, 1.0)
        formality = clamp(formality, 0.0, 1.0)
        return cls(
            openness=0.5 + humor * 0.3,
            conscientiousness=0.3 + formality * 0.5,
            extraversion=0.5 + humor * 0.2 - formality * 0.2,
            agreeableness=0.6,
            neuroticism=0.4,
            plasticity=plasticity,
        ).clamped()

    def to_dict(self) -> Dict[str, float]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, float]]) -> "PersonalityTraits":
        data = data or {}
        return cls(
            **{name: float(data.get(name, 0.5)) for name in TRAIT_NAMES},
            plasticity=float(data.get("plasticity", 0.01)),
            total_interactions=int(data.get("total_interactions", 0)),
        )

    def __str__(self) -> str:
        return (
            f"BigFive(O:{self.openness:.2f}, C:{self.conscientiousness:.2f}, "
            f"E:{self.extraversion:.2f}, A:{self.agreeableness:.2f}, N:{self.neuroticism:.2f})"
        )


@dataclass(frozen=True)
class GenesisTraits:
    """Immutable snapshot of the traits at lock time."""

    traits: PersonalityTraits
    locked_at: float

    def to_dict(self) -> Dict[str, object]:
        return {"traits": self.traits.to_dict(), "locked_at": self.locked_at}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, object]]) -> Optional["GenesisTraits"]:
        if not data:
            return None
        return cls(
            traits=PersonalityTraits.from_dict(data.get("traits")),  # type: ignore[arg-type]
            locked_at=float(data.get("locked_at", 0.0)),  # type: ignore[arg-type]
        )


@dataclass(frozen=True)
class TraitActivation:
    openness: float = 0.0
    conscientiousness: float = 0.0
    extraversion: float = 0.0
    agreeableness: float = 0.0
    neuroticism: float = 0.0

    @classmethod
    def creative(cls) -> "TraitActivation":
        return cls(openness=1.0)

    @classmethod
    def humorous(cls) -> "TraitActivation":
        return cls(openness=0.6, extraversion=0.8)

    @classmethod
    def serious(cls) -> "TraitActivation":
        return cls(conscientiousness=0.8, extraversion=0.2)

    @classmethod
    def empathetic(cls) -> "TraitActivation":
        return cls(agreeableness=0.9, neuroticism=0.4)

    @classmethod
    def from_behavior(cls, behavior: str) -> "TraitActivation":
        presets = {
            "creative": cls.creative,
            "humorous": cls.humorous,
            "serious": cls.serious,
            "empathetic": cls.empathetic,
        }
        factory = presets.get(str(behavior).strip().lower())
        return factory() if factory else cls()

    def weight(self, trait: str) -> float:
        return float(getattr(self, trait, 0.0))
