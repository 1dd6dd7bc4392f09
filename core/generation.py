"""core/generation.py

Mood-dependent sampling parameters for the completion call.

Soft adjustments first (negative mood shortens, arousal shifts temperature,
intimacy scales length), then the two hard overrides which always win:
valence < -0.6 caps the reply at 20 tokens, arousal > 0.8 sets
temperature 1.1.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict

from config.loader import GenerationConfig
from utils.helpers import clamp

EXTREME_NEGATIVE_VALENCE = -0.6
NEGATIVE_VALENCE = -0.3
EXTREME_HIGH_AROUSAL = 0.8
HIGH_AROUSAL = 0.7
LOW_AROUSAL = 0.3

SHUTDOWN_MAX_TOKENS = 20
AGITATED_TEMPERATURE = 1.1


@dataclass(frozen=True)
class GenerationParams:
    temperature: float
    top_p: float
    max_tokens: int
    presence_penalty: float = 0.0
    # Hard overrides in force; the retry keeps them
    agitated: bool = False
    shutdown: bool = False

    def reduced(self) -> "GenerationParams":
        """Cheaper parameters for the single retry after a failed completion."""
        temperature = min(self.temperature, 0.7)
        max_tokens = max(SHUTDOWN_MAX_TOKENS, self.max_tokens // 2)
        if self.agitated:
            temperature = AGITATED_TEMPERATURE
        if self.shutdown:
            max_tokens = SHUTDOWN_MAX_TOKENS
        return replace(self, temperature=temperature, max_tokens=max_tokens)

    def to_options(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "num_predict": self.max_tokens,
        }
        if self.presence_penalty:
            out["presence_penalty"] = self.presence_penalty
        return out


class GenerationPolicy:
    def __init__(
        self,
        config: GenerationConfig = GenerationConfig(),
        intimacy_low: float = 0.3,
        intimacy_high: float = 0.7,
    ):
        self.config = config
        self.intimacy_low = intimacy_low
        self.intimacy_high = intimacy_high

    def params(self, valence: float, arousal: float, intimacy: float, *, proactive: bool = False) -> GenerationParams:
        cfg = self.config
        ceiling = cfg.max_tokens
        temperature = cfg.temperature
        max_tokens = ceiling
        presence = 0.0

        if valence < EXTREME_NEGATIVE_VALENCE:
            temperature = 0.6
            presence = 0.3
        elif valence < NEGATIVE_VALENCE:
            max_tokens = int(clamp(round(max_tokens * 0.5), 50, 256))

        if arousal > EXTREME_HIGH_AROUSAL:
            max_tokens = int(clamp(round(max_tokens * 1.3), 256, ceiling))
        elif arousal > HIGH_AROUSAL:
            temperature = clamp(temperature - 0.1, 0.5, 1.0)
        elif arousal < LOW_AROUSAL:
            temperature = clamp(temperature + 0.05, 0.5, 1.0)

        if valence >= EXTREME_NEGATIVE_VALENCE:
            if intimacy < self.intimacy_low:
                max_tokens = int(round(max_tokens * 0.7))
            elif intimacy > self.intimacy_high:
                max_tokens = int(clamp(round(max_tokens * 1.2), 512, ceiling))

        if proactive:
            temperature = 0.7
            max_tokens = 256

        # Hard overrides
        shutdown = valence < EXTREME_NEGATIVE_VALENCE
        agitated = arousal > EXTREME_HIGH_AROUSAL
        if shutdown:
            max_tokens = SHUTDOWN_MAX_TOKENS
        if agitated:
            temperature = AGITATED_TEMPERATURE

        return GenerationParams(
            temperature=temperature,
            top_p=cfg.top_p,
            max_tokens=max(1, max_tokens),
            presence_penalty=presence,
            agitated=agitated,
            shutdown=shutdown,
        )

    def history_length(self, intimacy: float) -> int:
        if intimacy > self.intimacy_high:
            return self.config.history_length_close
        return self.config.history_length
