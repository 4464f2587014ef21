"""Exceptions raised by the analysis layer."""


class WakeError(Exception):
    """Base class for analysis errors."""


class ConfigurationError(WakeError):
    """Invalid analysis request, e.g. beamlets on a species that is not a beam."""


class InvalidRange(WakeError, ValueError):
    """Malformed axis bounds or limit vectors."""
