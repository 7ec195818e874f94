"""Typed failures raised while computing or reconciling charts."""

from __future__ import annotations


class ChartError(RuntimeError):
    """Base class for every failure the chart engine reports to its callers."""


class UnresolvableLocation(ChartError):
    """Raised when a free-text place cannot be geocoded."""


class UnresolvableTimeZone(ChartError):
    """Raised when no IANA time zone can be derived for resolved coordinates."""


class InvalidLocalTime(ChartError):
    """Raised when a local date/time does not name a real instant in its zone."""


class InvalidHouseSystem(ChartError):
    """Raised for house-system selectors the ephemeris does not support."""


class HouseCalculationFailed(ChartError):
    """Raised when house cusps were requested but could not be computed."""


class BodyComputationFailed(ChartError):
    """Raised by the ephemeris library for a single body.

    The adapter catches it and leaves the body out of ``positions``.
    """

    def __init__(self, body: str, message: str) -> None:
        super().__init__(f"{body}: {message}")
        self.body = body


class MalformedLegacyRecord(ChartError):
    """Raised when a stored event document cannot be decoded."""


class MissingReconstructibleInputs(ChartError):
    """Raised when neither stored inputs nor a legacy UTC date are available."""


class ServiceMisconfigured(ChartError):
    """Raised when a production collaborator lacks required configuration."""
