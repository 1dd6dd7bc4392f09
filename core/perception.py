"""core/perception.py

Structured record that every perception producer (keyword rules in
triggers.py, the model classifier in ai.py) must emit.

The engine never reads raw user text for decisions; it only reads this record.
Malformed producer output degrades to `PerceptionRecord.default()`:
offensiveness 0, need CHITCHAT, confidence 0.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Iterable

from utils.helpers import clamp


class Need(str, Enum):
    CHITCHAT = "chitchat"
    COMFORT = "comfort"
    VENT = "vent"
    ADVICE = "advice"
    SHARE_JOY = "share_joy"
    END_CONVERSATION = "end_conversation"


class SocialEvent(str, Enum):
    APOLOGY = "apology"
    PRAISE = "praise"
    NEGLECT = "neglect"
    THIRD_PARTY_MENTION = "third_party_mention"
    BOUNDARY = "boundary"
    CRISIS = "crisis"
    PROMPT_INJECTION = "prompt_injection"


def _parse_enum(enum_cls, raw: Any, default):
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError:
        return default


@dataclass(frozen=True)
class PerceptionRecord:
    offensiveness: int = 0
    underlying_need: Need = Need.CHITCHAT
    surface_valence: float = 0.0
    surface_arousal: float = 0.3
    social_events: FrozenSet[SocialEvent] = field(default_factory=frozenset)
    confidence: float = 0.0

    @classmethod
    def default(cls) -> "PerceptionRecord":
        return cls()

    @property
    def severity(self) -> float:
        """Offensiveness normalized to [0, 1]; the single severity scale used downstream."""
        return clamp(self.offensiveness / 10.0, 0.0, 1.0)

    @property
    def is_crisis(self) -> bool:
        return SocialEvent.CRISIS in self.social_events

    def has(self, event: SocialEvent) -> bool:
        return event in self.social_events

    @classmethod
    def build(
        cls,
        *,
        offensiveness: Any = 0,
        underlying_need: Any = Need.CHITCHAT,
        surface_valence: Any = 0.0,
        surface_arousal: Any = 0.3,
        social_events: Iterable[Any] = (),
        confidence: Any = 0.0,
    ) -> "PerceptionRecord":
        """Clamp and coerce loosely typed values into a valid record."""
        try:
            off = int(round(float(offensiveness)))
        except (TypeError, ValueError):
            off = 0
        need = underlying_need if isinstance(underlying_need, Need) else _parse_enum(Need, underlying_need, Need.CHITCHAT)

        events = set()
        for ev in social_events or ():
            parsed = ev if isinstance(ev, SocialEvent) else _parse_enum(SocialEvent, ev, None)
            if parsed is not None:
                events.add(parsed)

        return cls(
            offensiveness=max(0, min(10, off)),
            underlying_need=need,
            surface_valence=clamp(surface_valence, -1.0, 1.0),
            surface_arousal=clamp(surface_arousal, 0.0, 1.0),
            social_events=frozenset(events),
            confidence=clamp(confidence, 0.0, 1.0),
        )

    @classmethod
    def from_mapping(cls, obj: Any) -> "PerceptionRecord":
        """Normalize external producer output. Anything unusable yields the default."""
        if not isinstance(obj, dict):
            return cls.default()

        events = obj.get("social_events", [])
        if not isinstance(events, (list, tuple, set, frozenset)):
            events = []

        return cls.build(
            offensiveness=obj.get("offensiveness", 0),
            underlying_need=obj.get("underlying_need", "chitchat"),
            surface_valence=obj.get("surface_valence", 0.0),
            surface_arousal=obj.get("surface_arousal", 0.3),
            social_events=events,
            confidence=obj.get("confidence", 0.0),
        )

    def to_dict(self) -> dict:
        return {
            "offensiveness": self.offensiveness,
            "underlying_need": self.underlying_need.value,
            "surface_valence": self.surface_valence,
            "surface_arousal": self.surface_arousal,
            "social_events": sorted(e.value for e in self.social_events),
            "confidence": self.confidence,
        }
