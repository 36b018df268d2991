"""Run configuration: bounds checking, header parsing and YAML loading."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from apiprobe.errors import ConfigurationError

logger = logging.getLogger(__name__)

MIN_WORKERS, MAX_WORKERS = 1, 10
MIN_DELAY_MS, MAX_DELAY_MS = 0, 10_000
MIN_TIMEOUT_MS, MAX_TIMEOUT_MS = 1_000, 120_000

PLACEHOLDER_KINDS = ("string", "integer", "number", "boolean", "email", "date", "dateTime", "uuid")


@dataclass(frozen=True)
class DefaultPlaceholders:
    """Per-kind literal used when a variable has no override.

    A field set to None falls through to the built-in fallback for that kind.
    """

    string: Any = "string"
    integer: Any = 0
    number: Any = 0
    boolean: Any = True
    email: Any = "user@example.com"
    date: Any = "2023-01-01"
    dateTime: Any = "2023-01-01T00:00:00Z"
    uuid: Any = "123e4567-e89b-12d3-a456-426614174000"

    def for_kind(self, kind: str) -> Any:
        if kind not in PLACEHOLDER_KINDS:
            return None
        return getattr(self, kind)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> DefaultPlaceholders:
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        aliases = {"date-time": "dateTime", "date_time": "dateTime"}
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = aliases.get(key, key)
            if name not in known:
                raise ConfigurationError(f"Unknown placeholder kind: {key}")
            values[name] = value
        return cls(**values)


@dataclass(frozen=True)
class RunConfiguration:
    base_url: str
    custom_headers: tuple[tuple[str, str], ...] = ()
    workers: int = 10
    delay_between_requests: int = 100
    timeout: int = 30_000
    use_random_values: bool = False
    allow_delete_in_all_methods: bool = False
    default_placeholders: DefaultPlaceholders = field(default_factory=DefaultPlaceholders)

    def __post_init__(self) -> None:
        base_url = str(self.base_url or "").strip()
        while base_url.endswith("/"):
            base_url = base_url[:-1]
        if not base_url:
            raise ConfigurationError("base_url is required")
        object.__setattr__(self, "base_url", base_url)
        object.__setattr__(self, "custom_headers", parse_custom_headers(self.custom_headers))
        _check_range("workers", self.workers, MIN_WORKERS, MAX_WORKERS)
        _check_range("delay_between_requests", self.delay_between_requests, MIN_DELAY_MS, MAX_DELAY_MS)
        _check_range("timeout", self.timeout, MIN_TIMEOUT_MS, MAX_TIMEOUT_MS)

    @property
    def delay_seconds(self) -> float:
        return self.delay_between_requests / 1000


def _check_range(name: str, value: Any, lower: int, upper: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if not lower <= value <= upper:
        raise ConfigurationError(f"{name} must be between {lower} and {upper}, got {value}")


def parse_custom_headers(value: Any) -> tuple[tuple[str, str], ...]:
    """Normalize custom headers given as text, a mapping or a list of pairs.

    Text is one ``Key: Value`` per line; lines without a colon are ignored.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        pairs = []
        for line in value.splitlines():
            key, sep, rest = line.partition(":")
            if not sep or not key.strip():
                continue
            pairs.append((key.strip(), rest.strip()))
        return tuple(pairs)
    if isinstance(value, Mapping):
        return tuple((str(k), str(v)) for k, v in value.items())
    pairs = []
    for item in value:
        if isinstance(item, str):
            pairs.extend(parse_custom_headers(item))
            continue
        try:
            key, header_value = item
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid header entry: {item!r}") from exc
        pairs.append((str(key), str(header_value)))
    return tuple(pairs)


_KEY_ALIASES = {
    "baseUrl": "base_url",
    "customHeaders": "custom_headers",
    "headers": "custom_headers",
    "delayBetweenRequests": "delay_between_requests",
    "delay": "delay_between_requests",
    "useRandomValues": "use_random_values",
    "allowDeleteInAllMethods": "allow_delete_in_all_methods",
    "defaultPlaceholders": "default_placeholders",
}


def configuration_from_mapping(data: Mapping[str, Any], **overrides: Any) -> RunConfiguration:
    values: dict[str, Any] = {}
    known = {f.name for f in fields(RunConfiguration)}
    for key, value in data.items():
        name = _KEY_ALIASES.get(key, key)
        if name not in known:
            logger.warning("Ignoring unknown configuration key %r", key)
            continue
        values[name] = value
    values.update({key: value for key, value in overrides.items() if value is not None})
    if not isinstance(values.get("default_placeholders", DefaultPlaceholders()), DefaultPlaceholders):
        values["default_placeholders"] = DefaultPlaceholders.from_mapping(values["default_placeholders"])
    if "base_url" not in values:
        raise ConfigurationError("base_url is required")
    try:
        return RunConfiguration(**values)
    except TypeError as exc:
        raise ConfigurationError(str(exc)) from exc


def load_run_configuration(config_path: Path | str, **overrides: Any) -> RunConfiguration:
    """Load a YAML run configuration; keyword overrides win over file values."""
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")
    try:
        parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse configuration file: {exc}") from exc
    if parsed is None:
        parsed = {}
    if not isinstance(parsed, Mapping):
        raise ConfigurationError("Configuration root must be a mapping.")
    return configuration_from_mapping(parsed, **overrides)
