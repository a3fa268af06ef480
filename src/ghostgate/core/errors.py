"""Core error types.

Most faults in the core degrade silently (policy falls back to defaults,
shadow history is skipped), so these exceptions rarely reach callers.
"""

from __future__ import annotations


class GhostGateError(Exception):
    """Base class for ghostgate errors."""


class PolicyUnavailableError(GhostGateError):
    """The settings backend could not produce a usable settings value."""


class ShadowSerializationError(GhostGateError, ValueError):
    """A shadow record could not be encoded or decoded."""
