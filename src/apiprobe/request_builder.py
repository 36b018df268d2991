"""Turns a TestCase plus overrides into a concrete request descriptor.

Building is free of I/O. With ``use_random_values`` off, identical inputs
always give an identical descriptor.
"""

from __future__ import annotations

import json
import re
import shlex
from collections.abc import Mapping
from typing import Any
from urllib.parse import quote, urlsplit

from apiprobe.config import RunConfiguration
from apiprobe.models import (
    BODY_METHODS,
    EMPTY_OVERRIDES,
    ParameterLocation,
    RequestDescriptor,
    TestCase,
    VariableOverrides,
)
from apiprobe.placeholders import PlaceholderResolver, is_set, kind_of_name, kind_of_value

PATH_VARIABLE_RE = re.compile(r"\{([^}]+)\}")

DEFAULT_HEADERS: tuple[tuple[str, str], ...] = (("Accept", "application/json"),)

# encodeURIComponent leaves these unescaped
_COMPONENT_SAFE = "-_.!~*'()"


def path_variables(path: str) -> list[str]:
    return PATH_VARIABLE_RE.findall(path)


def split_base_url(base_url: str) -> tuple[str, str]:
    """Return (scheme://host[:port], path prefix without trailing slash)."""
    parts = urlsplit(base_url)
    if not parts.scheme or not parts.netloc:
        return base_url.rstrip("/"), ""
    return f"{parts.scheme}://{parts.netloc}", parts.path.rstrip("/")


def stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(stringify(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return str(value)


def build_request(
    test_case: TestCase,
    config: RunConfiguration,
    overrides: VariableOverrides | None = None,
    *,
    method: str | None = None,
    resolver: PlaceholderResolver | None = None,
) -> RequestDescriptor:
    overrides = overrides or EMPTY_OVERRIDES
    resolver = resolver or PlaceholderResolver.for_config(config)
    http_method = (method or test_case.method or "GET").upper()

    resolved_path = _resolve_path(test_case, overrides, resolver)
    query_pairs = _resolve_parameters(test_case, ParameterLocation.QUERY, overrides, resolver)
    query = "&".join(
        f"{quote(name, safe=_COMPONENT_SAFE)}={quote(value, safe=_COMPONENT_SAFE)}"
        for name, value in query_pairs
    )

    origin, prefix = split_base_url(config.base_url)
    if not resolved_path.startswith("/"):
        resolved_path = "/" + resolved_path
    full_path = f"{prefix}{resolved_path}" or "/"
    url = f"{origin}{full_path}"
    if query:
        url = f"{url}?{query}"

    body_value = None
    body_text = None
    if http_method in BODY_METHODS and test_case.body_variables is not None:
        body_value = _resolve_body(test_case.body_variables, overrides.body, resolver)
        body_text = json.dumps(body_value, separators=(",", ":"), ensure_ascii=False)

    header_pairs = _resolve_parameters(test_case, ParameterLocation.HEADER, overrides, resolver)
    headers = _build_headers(config, header_pairs, has_body=body_text is not None)

    return RequestDescriptor(
        method=http_method,
        url=url,
        path=full_path,
        query=query,
        headers=headers,
        body=body_text,
        body_value=body_value,
    )


def _resolve_path(test_case: TestCase, overrides: VariableOverrides, resolver: PlaceholderResolver) -> str:
    def substitute(match: re.Match) -> str:
        name = match.group(1)
        param = test_case.path_parameter(name)
        kind = param.kind if param is not None and param.schema else kind_of_name(name)
        value = resolver.resolve(kind, overrides.path.get(name), use_defaults=False)
        return "" if value is None else stringify(value)

    return PATH_VARIABLE_RE.sub(substitute, test_case.path)


def _resolve_parameters(
    test_case: TestCase,
    location: ParameterLocation,
    overrides: VariableOverrides,
    resolver: PlaceholderResolver,
) -> list[tuple[str, str]]:
    supplied = overrides.for_location(location)
    pairs: list[tuple[str, str]] = []
    seen: set[str] = set()
    for param in test_case.parameters_in(location):
        seen.add(param.name)
        override = supplied.get(param.name)
        if not is_set(override):
            override = param.declared_value()
        value = resolver.resolve(param.kind, override, use_defaults=False)
        if is_set(value):
            pairs.append((param.name, stringify(value)))
    # overrides for names the test case does not declare are still sent
    for name, value in supplied.items():
        if name not in seen and is_set(value):
            pairs.append((name, stringify(value)))
    return pairs


def _resolve_body(template: Mapping[str, Any], supplied: Mapping[str, Any], resolver: PlaceholderResolver) -> dict[str, Any]:
    body: dict[str, Any] = {}
    for name, sample in template.items():
        override = supplied.get(name)
        if isinstance(sample, (dict, list)) and not is_set(override):
            body[name] = sample
            continue
        value = resolver.resolve(kind_of_value(sample), override)
        if value is not None:
            body[name] = value
    return body


def _build_headers(
    config: RunConfiguration,
    header_params: list[tuple[str, str]],
    *,
    has_body: bool,
) -> tuple[tuple[str, str], ...]:
    # custom headers replace the defaults instead of merging with them
    base = config.custom_headers if config.custom_headers else DEFAULT_HEADERS
    headers: list[tuple[str, str]] = list(base)
    for name, value in header_params:
        headers = [(k, v) for k, v in headers if k.lower() != name.lower()]
        headers.append((name, value))
    present = {k.lower() for k, _ in headers}
    if has_body and "content-type" not in present:
        headers.append(("Content-Type", "application/json"))
    if "accept" not in present:
        headers.append(("Accept", "application/json"))
    return tuple(headers)


def to_curl(request: RequestDescriptor) -> str:
    parts = ["curl", "-X", request.method, shlex.quote(request.url)]
    for name, value in request.headers:
        parts.extend(["-H", shlex.quote(f"{name}: {value}")])
    if request.body is not None:
        parts.extend(["--data-raw", shlex.quote(request.body)])
    return " ".join(parts)
