"""Logging utilities for the companion engine."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import pytz

if TYPE_CHECKING:
    from pytz.tzinfo import BaseTzInfo

# Default timezone for timestamps
DEFAULT_TZ: BaseTzInfo = pytz.timezone("Europe/Copenhagen")


def set_default_tz(tz_name: str) -> None:
    """Switch the timestamp zone (called once at start-up from settings)."""
    global DEFAULT_TZ
    DEFAULT_TZ = pytz.timezone(tz_name)


def _stamp(tz: BaseTzInfo | None) -> str:
    return datetime.now(tz or DEFAULT_TZ).strftime("%Y-%m-%d %H:%M:%S")


def log(message: str, tz: BaseTzInfo | None = None) -> None:
    """Print console messages with a local timestamp."""
    print(f"[{_stamp(tz)}] {message}")


def log_user(agent_id: str, content: str) -> None:
    log(f"[USER] ({agent_id}): {content}")


def log_ai(agent_id: str, reply: str) -> None:
    log(f"[AI] ({agent_id}): {reply}")


def log_to_file(
    filepath: str | Path,
    message: str,
    *,
    tz: BaseTzInfo | None = None,
    create_parents: bool = True,
) -> None:
    """Append a timestamped message to a file."""
    ts = _stamp(tz)

    path = Path(filepath)
    try:
        if create_parents:
            path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(f"[{ts}] {message}\n")
    except OSError as e:
        # Logging should never break a turn
        print(f"[{ts}] log write failed: {e} | path={filepath}")
