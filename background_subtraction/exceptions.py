"""
Exception types raised by the background subtraction package.
"""

from typing import Any


class BackgroundSubtractionError(Exception):
    """Base class for all background subtraction errors."""


class ConfigurationParseError(BackgroundSubtractionError, ValueError):
    """A configuration value is not a valid value of its declared type."""

    def __init__(self, key: str, value: Any, expected_type: type, reason: str = ""):
        self.key = key
        self.value = value
        self.expected_type = expected_type
        reason = reason or f"is not a valid {expected_type.__name__}"
        super().__init__(f"Invalid value for '{key}': {value!r} {reason}")


class UnsupportedVariantError(BackgroundSubtractionError):
    """The requested algorithm cannot be built with the installed OpenCV."""

    def __init__(self, variant, reason: str):
        self.variant = variant
        self.reason = reason
        super().__init__(f"{variant.name} algorithm is not available: {reason}")
