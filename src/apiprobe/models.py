"""Value types shared by the request builder, executor, scheduler and sweeper."""

from __future__ import annotations

import itertools
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional, Tuple, Union

# JSON-shaped payloads: str | int | float | bool | None | list | dict.
JsonValue = Union[str, int, float, bool, None, list, dict]

Identity = Tuple[Optional[str], str]

ALL_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


class ParameterLocation(str, Enum):
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    BODY = "body"

    @classmethod
    def parse(cls, value: str) -> ParameterLocation:
        return cls(str(value).strip().lower())


class ErrorKind(str, Enum):
    """Why an execution attempt produced no usable response."""

    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    CANCELLED = "cancelled"
    INVALID_REQUEST = "invalid_request"


@dataclass(frozen=True)
class Parameter:
    name: str
    location: ParameterLocation
    required: bool = False
    schema: Mapping[str, Any] = field(default_factory=dict, hash=False)
    example: Any = field(default=None, hash=False)

    @property
    def kind(self) -> str:
        schema_type = self.schema.get("type")
        schema_format = self.schema.get("format")
        if schema_format in {"email", "date", "uuid"}:
            return schema_format
        if schema_format == "date-time":
            return "dateTime"
        if schema_type in {"integer", "number", "boolean"}:
            return schema_type
        return "string"

    def declared_value(self) -> Any:
        """Example or default carried by the parameter declaration itself."""
        if self.example is not None:
            return self.example
        for key in ("example", "default"):
            if self.schema.get(key) is not None:
                return self.schema[key]
        return None


@dataclass(frozen=True)
class TestCase:
    """One (method, path) unit of work produced by the schema derivation step."""

    __test__ = False

    path: str
    method: str | None = None
    name: str = ""
    parameters: tuple[Parameter, ...] = ()
    body_variables: Mapping[str, Any] | None = field(default=None, hash=False)
    tags: tuple[str, ...] = ()

    @property
    def identity(self) -> Identity:
        return (self.method, self.path)

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return f"{self.method or '*'} {self.path}"

    def parameters_in(self, location: ParameterLocation) -> list[Parameter]:
        return [param for param in self.parameters if param.location is location]

    def path_parameter(self, name: str) -> Parameter | None:
        for param in self.parameters_in(ParameterLocation.PATH):
            if param.name == name:
                return param
        return None


@dataclass(frozen=True)
class VariableOverrides:
    """User-supplied values for one test case, split by location.

    Path values may be a list of candidates; the scheduler then runs one
    request per combination.
    """

    path: Mapping[str, Any] = field(default_factory=dict)
    query: Mapping[str, Any] = field(default_factory=dict)
    header: Mapping[str, Any] = field(default_factory=dict)
    body: Mapping[str, Any] = field(default_factory=dict)

    def for_location(self, location: ParameterLocation) -> Mapping[str, Any]:
        return {
            ParameterLocation.PATH: self.path,
            ParameterLocation.QUERY: self.query,
            ParameterLocation.HEADER: self.header,
            ParameterLocation.BODY: self.body,
        }[location]

    def has_path_candidates(self) -> bool:
        return any(_is_candidate_list(value) for value in self.path.values())

    def path_combinations(self, names: Sequence[str]) -> list[dict[str, str]]:
        values_per_name: list[list[str]] = []
        for name in names:
            raw = self.path.get(name)
            if _is_candidate_list(raw):
                values = [str(v) for v in raw if str(v).strip() != ""]
            elif raw is None:
                values = []
            else:
                values = [str(raw)] if str(raw).strip() != "" else []
            values_per_name.append(values or [""])
        return [dict(zip(names, combo)) for combo in itertools.product(*values_per_name)]

    def with_path(self, values: Mapping[str, str]) -> VariableOverrides:
        return replace(self, path=dict(values))


EMPTY_OVERRIDES = VariableOverrides()


def _is_candidate_list(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


@dataclass(frozen=True)
class ResultKey:
    """Aggregator key: test identity plus the fan-out method and combination, if any."""

    identity: Identity
    method: str | None = None
    combination: str | None = None

    @property
    def path(self) -> str:
        return self.identity[1]

    def label(self) -> str:
        method = self.method or self.identity[0] or "*"
        text = f"{method} {self.path}"
        if self.combination:
            text += f" [{self.combination}]"
        return text


def combination_key(values: Mapping[str, str]) -> str:
    return "&".join(f"{name}={values[name]}" for name in sorted(values))


@dataclass(frozen=True)
class RequestDescriptor:
    method: str
    url: str
    path: str
    query: str
    headers: tuple[tuple[str, str], ...]
    body: str | None = None
    body_value: Any = field(default=None, hash=False, compare=False)

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return None


@dataclass(frozen=True)
class ExecutionOutcome:
    """Immutable record of one completed or aborted request attempt."""

    success: bool
    method: str
    status: int = 0
    response_time_ms: int = 0
    response_headers: Mapping[str, str] = field(default_factory=dict)
    response_body: Any = None
    response_text: str = ""
    error: str | None = None
    error_kind: ErrorKind | None = None
    request_url: str | None = None
    request_path: str | None = None
    request_query: str | None = None
    actual_body: Any = None
    completed_at: float = field(default_factory=time.monotonic)

    @staticmethod
    def received(
        request: RequestDescriptor,
        status: int,
        elapsed_ms: int,
        headers: Mapping[str, str],
        body: Any,
        text: str,
    ) -> ExecutionOutcome:
        return ExecutionOutcome(
            success=True,
            method=request.method,
            status=status,
            response_time_ms=elapsed_ms,
            response_headers=dict(headers),
            response_body=body,
            response_text=text,
            request_url=request.url,
            request_path=request.path,
            request_query=request.query,
            actual_body=request.body_value,
        )

    @staticmethod
    def failed(
        request: RequestDescriptor | None,
        kind: ErrorKind,
        message: str,
        elapsed_ms: int = 0,
        method: str = "",
    ) -> ExecutionOutcome:
        return ExecutionOutcome(
            success=False,
            method=request.method if request is not None else method,
            response_time_ms=elapsed_ms,
            error=message,
            error_kind=kind,
            request_url=request.url if request is not None else None,
            request_path=request.path if request is not None else None,
            request_query=request.query if request is not None else None,
            actual_body=request.body_value if request is not None else None,
        )

    @property
    def cancelled(self) -> bool:
        return self.error_kind is ErrorKind.CANCELLED

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "method": self.method,
            "status": self.status,
            "response_time_ms": self.response_time_ms,
            "response_headers": dict(self.response_headers),
            "response": self.response_body,
            "error": self.error,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "request_url": self.request_url,
            "request_path": self.request_path,
            "request_query": self.request_query,
            "actual_body": self.actual_body,
        }
