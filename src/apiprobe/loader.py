"""Reads already-normalized test cases and plain endpoint lists."""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from apiprobe.errors import CaseFormatError
from apiprobe.models import ALL_METHODS, Parameter, ParameterLocation, TestCase

_KNOWN_METHODS = set(ALL_METHODS) | {"HEAD", "OPTIONS", "TRACE", "CONNECT"}
_ENDPOINT_RE = re.compile(r"^\[?(?P<method>[A-Za-z]+)\]?\s+(?P<path>\S+)$")


def load_test_cases(path: Path | str) -> list[TestCase]:
    source = Path(path)
    if not source.exists():
        raise CaseFormatError(f"Test case file not found: {source}")
    text = source.read_text(encoding="utf-8")
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise CaseFormatError(f"Failed to parse {source}: {exc}") from exc
    if parsed is None:
        return []
    if isinstance(parsed, Mapping):
        parsed = parsed.get("testCases", parsed.get("test_cases"))
    if not isinstance(parsed, list):
        raise CaseFormatError("Expected a list of test cases or a 'testCases' list.")
    return [case_from_mapping(entry, index) for index, entry in enumerate(parsed)]


def case_from_mapping(entry: Any, index: int = 0) -> TestCase:
    if not isinstance(entry, Mapping):
        raise CaseFormatError(f"Test case #{index} must be a mapping.")
    path = entry.get("path")
    if not isinstance(path, str) or not path.strip():
        raise CaseFormatError(f"Test case #{index} requires a non-empty 'path'.")
    method = entry.get("method")
    if method is not None:
        method = str(method).strip().upper() or None
    body = entry.get("bodyVariables", entry.get("body_variables"))
    if body is not None and not isinstance(body, Mapping):
        raise CaseFormatError(f"Test case #{index}: 'bodyVariables' must be a mapping.")
    return TestCase(
        path=path.strip(),
        method=method,
        name=str(entry.get("name") or ""),
        parameters=tuple(_parameter(raw, index) for raw in entry.get("parameters") or ()),
        body_variables=dict(body) if body is not None else None,
        tags=tuple(str(tag) for tag in entry.get("tags") or ()),
    )


def _parameter(raw: Any, index: int) -> Parameter:
    if not isinstance(raw, Mapping) or not raw.get("name"):
        raise CaseFormatError(f"Test case #{index}: every parameter needs a 'name'.")
    try:
        location = ParameterLocation.parse(raw.get("in", "query"))
    except ValueError as exc:
        raise CaseFormatError(f"Test case #{index}: unknown parameter location {raw.get('in')!r}") from exc
    schema = raw.get("schema") or {}
    if not schema and raw.get("type"):
        # Swagger 2 puts type/format on the parameter itself
        schema = {key: raw[key] for key in ("type", "format", "default") if key in raw}
    return Parameter(
        name=str(raw["name"]),
        location=location,
        required=bool(raw.get("required", False)),
        schema=dict(schema),
        example=raw.get("example"),
    )


def parse_endpoint_list(text: str) -> list[TestCase]:
    """One endpoint per line: ``/path``, ``METHOD /path`` or ``[METHOD] /path``."""
    test_cases: list[TestCase] = []
    seen: set[tuple[str | None, str]] = set()
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        method = None
        path = line
        match = _ENDPOINT_RE.match(line)
        if match and match.group("method").upper() in _KNOWN_METHODS:
            method = match.group("method").upper()
            path = match.group("path")
        if not path.startswith("/"):
            path = "/" + path
        test_case = TestCase(path=path, method=method)
        if test_case.identity in seen:
            continue
        seen.add(test_case.identity)
        test_cases.append(test_case)
    return test_cases


def load_endpoint_list(path: Path | str) -> list[TestCase]:
    source = Path(path)
    if not source.exists():
        raise CaseFormatError(f"Endpoint list not found: {source}")
    return parse_endpoint_list(source.read_text(encoding="utf-8"))
