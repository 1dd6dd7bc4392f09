# utils package - shared utilities for the companion engine
from utils.helpers import clamp, now_ts, get_current_time, local_now, round_half_up, sigmoid
from utils.logging import log, log_user, log_ai, log_to_file, DEFAULT_TZ
from utils.errors import (
    PsycheError,
    ConfigError,
    GenesisLockedError,
    StateInvariantError,
    CompletionError,
    PersistenceError,
    ClassificationError,
    log_error,
)

__all__ = [
    # helpers
    "clamp",
    "now_ts",
    "get_current_time",
    "local_now",
    "round_half_up",
    "sigmoid",
    # logging
    "log",
    "log_user",
    "log_ai",
    "log_to_file",
    "DEFAULT_TZ",
    # errors
    "PsycheError",
    "ConfigError",
    "GenesisLockedError",
    "StateInvariantError",
    "CompletionError",
    "PersistenceError",
    "ClassificationError",
    "log_error",
]
