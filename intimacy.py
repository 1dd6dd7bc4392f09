"""intimacy.py

Relationship closeness between the agent and its user.

Goals:
- Slow, diminishing-returns growth: ΔI = Q · E · T · B(I)
- Hostile events cut intimacy, damage the growth coefficient and open a
  cooling window during which the coefficient cannot recover.
- Natural regression while the user is away.
- Style hints (proactivity / implication ratio) and a coarse relation state
  for the prompt.

All functions are pure: they take an IntimacyState and return a new one.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Optional

from config.loader import IntimacyConfig
from core.perception import PerceptionRecord, SocialEvent
from utils.helpers import clamp, now_ts


class RelationState(str, Enum):
    CLOSE = "close"
    NORMAL = "normal"
    DISTANT = "distant"
    TERMINATING = "terminating"


@dataclass(frozen=True)
class IntimacyState:
    intimacy: float = 0.0
    growth_coefficient: float = 1.0
    cooling_until: Optional[float] = None
    last_interaction: float = 0.0
    total_interactions: int = 0
    last_regression: float = 0.0

    def is_cooling(self, now: float) -> bool:
        return self.cooling_until is not None and now < self.cooling_until

    def cooling_remaining_minutes(self, now: float) -> int:
        if self.cooling_until is None:
            return 0
        return max(0, int((self.cooling_until - now) // 60))

    def to_dict(self) -> Dict[str, object]:
        return {
            "intimacy": self.intimacy,
            "growth_coefficient": self.growth_coefficient,
            "cooling_until": self.cooling_until,
            "last_interaction": self.last_interaction,
            "total_interactions": self.total_interactions,
            "last_regression": self.last_regression,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "IntimacyState":
        cooling = data.get("cooling_until")
        return cls(
            intimacy=float(data.get("intimacy", 0.0)),
            growth_coefficient=float(data.get("growth_coefficient", 1.0)),
            cooling_until=None if cooling is None else float(cooling),
            last_interaction=float(data.get("last_interaction", 0.0)),
            total_interactions=int(data.get("total_interactions", 0)),
            last_regression=float(data.get("last_regression", 0.0)),
        )


@dataclass(frozen=True)
class IntimacyStyle:
    proactivity: float
    implication_ratio: float
    linguistic_closeness: float


class IntimacyEngine:
    def __init__(self, config: IntimacyConfig = IntimacyConfig()):
        self.config = config

    # -------------------------
    # Growth
    # -------------------------

    def band(self, state: IntimacyState) -> float:
        """B(I) = β · (1 - I)^0.5 · G"""
        cfg = self.config
        return cfg.base_growth_rate * (1.0 - clamp(state.intimacy, 0.0, 1.0)) ** 0.5 * state.growth_coefficient

    def time_factor(self, hours_since_last: float) -> float:
        cfg = self.config
        return max(cfg.min_time_factor, 1.0 - max(0.0, hours_since_last) * cfg.time_decay_per_hour)

    def grow(
        self,
        current: IntimacyState,
        quality: float,
        valence: float,
        hours_since_last: float,
        now: Optional[float] = None,
    ) -> IntimacyState:
        cfg = self.config
        now = now_ts() if now is None else now
        cooling = current.is_cooling(now)

        q = clamp(quality, cfg.min_quality, cfg.max_quality)
        e = 1.0 + clamp(valence, -1.0, 1.0) * cfg.valence_weight
        t = self.time_factor(hours_since_last)
        b = self.band(current)

        delta = q * e * t * b
        if cooling:
            delta *= cfg.cooling_growth_factor
        delta = clamp(delta, 0.0, cfg.max_growth_per_interaction)

        g = current.growth_coefficient
        if not cooling and g < 1.0:
            g = min(1.0, g + cfg.growth_recovery)

        return IntimacyState(
            intimacy=clamp(current.intimacy + delta, 0.0, 1.0),
            growth_coefficient=clamp(g, 0.0, 1.0),
            cooling_until=current.cooling_until if cooling else None,
            last_interaction=now,
            total_interactions=current.total_interactions + 1,
        )

    # -------------------------
    # Hostility / absence
    # -------------------------

    def penalize(self, current: IntimacyState, severity: float, now: Optional[float] = None) -> IntimacyState:
        """Hostile event with severity s in [0, 1]."""
        cfg = self.config
        now = now_ts() if now is None else now
        s = clamp(severity, 0.0, 1.0)

        cooling_hours = cfg.cooling_base_hours + cfg.cooling_severity_hours * s
        until = now + cooling_hours * 3600.0
        if current.cooling_until is not None and current.cooling_until > until:
            until = current.cooling_until

        return IntimacyState(
            intimacy=clamp(current.intimacy - s * cfg.hostile_intimacy_penalty, 0.0, 1.0),
            growth_coefficient=clamp(current.growth_coefficient - s * cfg.hostile_growth_penalty, 0.0, 1.0),
            cooling_until=until,
            last_interaction=now,
            total_interactions=current.total_interactions + 1,
        )

    def regress(self, current: IntimacyState, now: Optional[float] = None) -> IntimacyState:
        """Natural regression once the user has been away for at least an hour.

        Only the time since the later of the last interaction and the last
        regression is charged, so repeated ticks never double count.
        """
        cfg = self.config
        now = now_ts() if now is None else now
        if (now - current.last_interaction) / 3600.0 < 1.0:
            return current

        start = max(current.last_interaction, current.last_regression)
        hours = max(0.0, (now - start) / 3600.0)

        rate = cfg.natural_regression_per_hour
        if current.is_cooling(now):
            rate *= cfg.cooling_regression_multiplier
        drop = rate * min(hours, 24.0)

        cooling_until = current.cooling_until
        if cooling_until is not None and now >= cooling_until:
            cooling_until = None

        return replace(
            current,
            intimacy=clamp(current.intimacy - drop, 0.0, 1.0),
            cooling_until=cooling_until,
            last_regression=now,
        )

    # -------------------------
    # Derived signals
    # -------------------------

    @staticmethod
    def quality_from(perception: PerceptionRecord, valence: float) -> float:
        """Interaction quality Q in [0.5, 1.5] from the perception record and current mood."""
        q = 1.0
        if perception.has(SocialEvent.PRAISE):
            q += 0.3
        if perception.has(SocialEvent.NEGLECT):
            q -= 0.3
        if perception.has(SocialEvent.APOLOGY):
            q += 0.1
        q += 0.2 * perception.surface_valence * perception.confidence
        q += 0.1 * clamp(valence, -1.0, 1.0)
        return clamp(q, 0.5, 1.5)

    def relation_state(self, intimacy: float, *, terminating: bool = False) -> RelationState:
        if terminating:
            return RelationState.TERMINATING
        if intimacy >= self.config.high_threshold:
            return RelationState.CLOSE
        if intimacy < self.config.low_threshold:
            return RelationState.DISTANT
        return RelationState.NORMAL

    @staticmethod
    def style_hints(state: IntimacyState) -> IntimacyStyle:
        i = clamp(state.intimacy, 0.0, 1.0)
        return IntimacyStyle(
            proactivity=0.3 + i * 0.6,
            implication_ratio=0.2 + i * 0.6,
            linguistic_closeness=i,
        )

    def growth_efficiency(self, state: IntimacyState, now: float) -> float:
        """Current growth efficiency in percent (for status output)."""
        hours = max(0.0, (now - state.last_interaction) / 3600.0)
        eff = self.time_factor(hours) * self.band(state) * 100.0
        if state.is_cooling(now):
            eff *= self.config.cooling_growth_factor
        return eff
