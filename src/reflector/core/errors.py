from __future__ import annotations


class ReflectorError(Exception):
    """Base class for errors raised by the reflection core."""


class TurnValidationError(ReflectorError, ValueError):
    """The caller supplied an incomplete turn request."""


class OracleError(ReflectorError, RuntimeError):
    """The language model backend failed to produce a reply."""
