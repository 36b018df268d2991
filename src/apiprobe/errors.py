from __future__ import annotations


class ApiProbeError(Exception):
    """Base class for errors raised by apiprobe."""


class ConfigurationError(ApiProbeError):
    """Raised when a run configuration is out of bounds or malformed."""


class RunInProgressError(ApiProbeError):
    """Raised when a run is started while another one is still active."""


class CaseFormatError(ApiProbeError):
    """Raised when a test case document cannot be read."""
