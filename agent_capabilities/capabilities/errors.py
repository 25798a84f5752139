"""Error types for the capability package.

Only setup-time problems are errors. Policy denials are returned as
``EnforcementResult`` values and never raised.
"""

from __future__ import annotations


class CapabilityError(Exception):
    """Base error for all capability exceptions."""


class CapabilityConfigurationError(CapabilityError, ValueError):
    """Raised when capability configuration is malformed (bad enum value, bad shape)."""


class UnknownPresetError(CapabilityConfigurationError):
    """Raised when a capability preset name is not recognized."""

    def __init__(self, name: str, known: tuple[str, ...]) -> None:
        super().__init__(f"Unknown capability preset: '{name}' (expected one of {', '.join(known)})")
        self.name = name
