"""Exception types raised by pyramidreg."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid or unsupported registration configuration.

    Raised before any pipeline work begins. Callers exit with a failure
    status.
    """


class UnsupportedStrategyError(ConfigurationError):
    """A strategy kind has no entry in the dispatch table.

    Attributes:
        tag: Domain error tag, e.g. ``pyramidreg:invalidSimilaritySettings``.
        kind: The offending enumerated value.
    """

    def __init__(self, tag: str, kind: object, message: str):
        super().__init__(f"{tag}: {message} ({kind!r})")
        self.tag = tag
        self.kind = kind


class RegistrationEngineError(RuntimeError):
    """Numerical failure inside the registration engine."""
