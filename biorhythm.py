"""biorhythm.py

Circadian fatigue ("laziness") and the derived tolerance score.

    08:00 - 22:00   awake, laziness 0
    22:00 - 01:00   eased rise to the peak
    01:00 - 05:00   plateau at the peak (0.9)
    05:00 - 08:00   eased fall back to 0

The curve is continuous; easing is smoothstep so there are no jumps at the
phase boundaries.
"""

from __future__ import annotations

from datetime import datetime, time as dtime
from typing import Union

from config.loader import BioRhythmConfig
from core.perception import Need
from utils.helpers import clamp, local_now

TimeLike = Union[datetime, dtime, float, int]

# Hours on the shifted clock (hours before 08:00 count as hour + 24)
_RISE_START = 22.0
_PLATEAU_START = 25.0
_PLATEAU_END = 29.0
_WAKE = 32.0


def _smoothstep(x: float) -> float:
    x = clamp(x, 0.0, 1.0)
    return x * x * (3.0 - 2.0 * x)


def _hour_of(t: TimeLike) -> float:
    if isinstance(t, (datetime, dtime)):
        return t.hour + t.minute / 60.0 + t.second / 3600.0
    return float(t) % 24.0


class BioRhythm:
    def __init__(self, config: BioRhythmConfig = BioRhythmConfig()):
        self.config = config

    def laziness(self, t: TimeLike) -> float:
        """Fatigue level in [0, peak] for a wall-clock time (datetime, time or hour float)."""
        peak = self.config.peak_laziness
        h = _hour_of(t)
        if h < 8.0:
            h += 24.0

        if h < _RISE_START:
            return 0.0
        if h < _PLATEAU_START:
            return peak * _smoothstep((h - _RISE_START) / (_PLATEAU_START - _RISE_START))
        if h < _PLATEAU_END:
            return peak
        return peak * (1.0 - _smoothstep((h - _PLATEAU_END) / (_WAKE - _PLATEAU_END)))

    def current_laziness(self, tz_name: str) -> float:
        return self.laziness(local_now(tz_name))

    @staticmethod
    def phase(t: TimeLike) -> str:
        h = _hour_of(t)
        if h < 8.0:
            h += 24.0
        if h < 10.0:
            return "morning"
        if h < _RISE_START:
            return "awake"
        if h < _PLATEAU_START:
            return "winding_down"
        if h < _PLATEAU_END:
            return "deep_night"
        return "waking_up"

    def tolerance(self, laziness: float, need: Need, topic_repeated: bool = False) -> float:
        """How much patience is left for this turn, in [0, 1]."""
        cfg = self.config
        t = 1.0 - laziness
        if need in (Need.COMFORT, Need.VENT):
            t -= cfg.comfort_penalty
        if topic_repeated:
            t -= cfg.repeat_penalty
        return clamp(t, 0.0, 1.0)
