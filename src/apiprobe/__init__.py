from apiprobe.config import DefaultPlaceholders, RunConfiguration
from apiprobe.engine import ApiTestEngine
from apiprobe.errors import ApiProbeError, CaseFormatError, ConfigurationError, RunInProgressError
from apiprobe.models import (
    ErrorKind,
    ExecutionOutcome,
    Parameter,
    ParameterLocation,
    RequestDescriptor,
    ResultKey,
    TestCase,
    VariableOverrides,
)
from apiprobe.results import ResultAggregator

__version__ = "0.1.0"

__all__ = [
    "ApiProbeError",
    "ApiTestEngine",
    "CaseFormatError",
    "ConfigurationError",
    "DefaultPlaceholders",
    "ErrorKind",
    "ExecutionOutcome",
    "Parameter",
    "ParameterLocation",
    "RequestDescriptor",
    "ResultAggregator",
    "ResultKey",
    "RunConfiguration",
    "RunInProgressError",
    "TestCase",
    "VariableOverrides",
]
