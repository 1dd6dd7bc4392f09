"""Common utility helpers used across the project."""

from __future__ import annotations

import math
import time
from datetime import datetime
from typing import TYPE_CHECKING

import pytz

if TYPE_CHECKING:
    from pytz.tzinfo import BaseTzInfo

__all__ = ["clamp", "now_ts", "get_current_time", "local_now", "round_half_up", "sigmoid"]


def clamp(value: float, lo: float, hi: float) -> float:
    """Clamp a value between lo and hi (inclusive)."""
    try:
        v = float(value)
    except (TypeError, ValueError):
        v = 0.0
    if math.isnan(v):
        v = lo
    return max(lo, min(hi, v))


def now_ts() -> float:
    """Return current Unix timestamp in seconds."""
    return time.time()


def local_now(tz_name: str = "Europe/Copenhagen") -> datetime:
    """Current wall-clock time in the given timezone."""
    tz: BaseTzInfo = pytz.timezone(tz_name)
    return datetime.now(tz)


def get_current_time(tz_name: str = "Europe/Copenhagen") -> str:
    """Get current time as HH:MM string in the specified timezone."""
    return local_now(tz_name).strftime("%H:%M")


def round_half_up(x: float) -> int:
    # round() in Python is banker's rounding; 2.5 must become 3 here.
    return int(math.floor(float(x) + 0.5))


def sigmoid(x: float) -> float:
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    e = math.exp(x)
    return e / (1.0 + e)
