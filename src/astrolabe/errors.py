"""Exception hierarchy for ephemeris invocation and parsing."""

from __future__ import annotations

_RAW_EXCERPT = 500


class EphemerisError(Exception):
    """Base class for errors raised while obtaining chart data.

    ``stage`` names the request that failed (``positions`` or ``houses``);
    ``raw`` keeps a bounded excerpt of the offending input for logging.
    """

    def __init__(self, message: str, *, stage: str | None = None, raw: str | None = None) -> None:
        super().__init__(message)
        self.stage = stage
        self.raw = raw[:_RAW_EXCERPT] if raw else raw

    def __str__(self) -> str:
        message = super().__str__()
        if self.stage:
            message = f"[{self.stage}] {message}"
        if self.raw:
            message = f"{message} (raw: {self.raw!r})"
        return message


class ConfigurationError(EphemerisError):
    """External calculator is missing or not executable. Not retried."""


class EphemerisInvocationError(EphemerisError):
    """Calculator exited non-zero, timed out, or printed nothing."""


class EphemerisParseError(EphemerisError):
    """Calculator output was present but lacked usable numeric content."""


class UnreconciledHouseFrame(EphemerisError):
    """House cusps could not be aligned with ASC/MC and the caller required it."""
