"""
Error types and reporting helpers for the companion engine.

This module provides:
- Standardized error base class (`PsycheError`) for all custom exceptions
- One subclass per failure mode the turn pipeline distinguishes
- Logging helper for error events (`log_error`)

Usage Examples:
---------------

1. Raising a custom error:
	from utils.errors import GenesisLockedError
	raise GenesisLockedError("genesis traits are already locked")

2. Logging an error with traceback:
	from utils.errors import log_error
	try:
		...
	except PersistenceError as exc:
		log_error("Failed to save agent state.", exc)

Recoverable errors (`CompletionError`, `PersistenceError`) are surfaced to the
caller; the in-memory agent state is never rolled forward on failure.
"""

from __future__ import annotations
import traceback

from utils.logging import log

__all__ = [
	"PsycheError",
	"ConfigError",
	"GenesisLockedError",
	"StateInvariantError",
	"CompletionError",
	"PersistenceError",
	"ClassificationError",
	"log_error",
]


class PsycheError(Exception):
	"""Base exception for engine errors."""
	def __init__(self, message: str, *, cause: Exception | None = None):
		super().__init__(message)
		self.cause = cause


class ConfigError(PsycheError):
	"""Settings file missing or malformed."""


class GenesisLockedError(PsycheError):
	"""Direct trait edit or second genesis lock after the one-time lock."""


class StateInvariantError(PsycheError):
	"""A candidate state violates a range or consistency invariant."""


class CompletionError(PsycheError):
	"""Completion service failed after the retry. Recoverable: state is untouched."""
	recoverable = True


class PersistenceError(PsycheError):
	"""State store read/write failed."""


class ClassificationError(PsycheError):
	"""Perception producer returned nothing usable."""


def log_error(message: str, exc: Exception | None = None) -> None:
	"""Log an error with traceback if available."""
	if exc:
		tb = ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))
		log(f"[ERROR] {message}\n{tb}")
	else:
		log(f"[ERROR] {message}")
