from __future__ import annotations

import random
import re
import string
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any

from apiprobe.config import DefaultPlaceholders, RunConfiguration

BUILTIN_FALLBACKS: dict[str, Any] = {
    "string": "",
    "integer": 0,
    "number": 0,
    "boolean": False,
    "email": "",
    "date": "",
    "dateTime": "",
    "uuid": "",
}

_UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_EPOCH = date(2000, 1, 1)


def is_set(value: Any) -> bool:
    return value is not None and value != ""


def kind_of_value(value: Any) -> str | None:
    """Infer a placeholder kind from a sample value; None for structured values."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        if _UUID_RE.match(value):
            return "uuid"
        if _DATETIME_RE.match(value):
            return "dateTime"
        if _DATE_RE.match(value):
            return "date"
        if _EMAIL_RE.match(value):
            return "email"
        return "string"
    return None


def kind_of_name(name: str) -> str | None:
    lowered = name.lower()
    if "uuid" in lowered or "guid" in lowered:
        return "uuid"
    if "email" in lowered:
        return "email"
    if lowered.endswith(("datetime", "_at", "timestamp")):
        return "dateTime"
    if "date" in lowered:
        return "date"
    return None


class PlaceholderResolver:
    """Turns a variable kind into a concrete value.

    Priority: explicit override, random value (only with ``use_random_values``),
    configured default placeholder, built-in fallback.
    """

    def __init__(
        self,
        use_random_values: bool = False,
        defaults: DefaultPlaceholders | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.use_random_values = use_random_values
        self.defaults = defaults or DefaultPlaceholders()
        self.rng = rng or random.Random()

    @classmethod
    def for_config(cls, config: RunConfiguration, rng: random.Random | None = None) -> PlaceholderResolver:
        return cls(config.use_random_values, config.default_placeholders, rng)

    def resolve(self, kind: str | None, override: Any = None, *, use_defaults: bool = True) -> Any:
        if is_set(override):
            return override
        if self.use_random_values:
            return self.random_value(kind)
        if not use_defaults or kind is None:
            return None
        return self.default_value(kind)

    def default_value(self, kind: str) -> Any:
        configured = self.defaults.for_kind(kind)
        if configured is not None:
            return configured
        return BUILTIN_FALLBACKS.get(kind, "")

    def random_value(self, kind: str | None) -> Any:
        rng = self.rng
        if kind == "integer":
            return rng.randint(1, 10_000)
        if kind == "number":
            return round(rng.uniform(0, 10_000), 2)
        if kind == "boolean":
            return rng.choice([True, False])
        if kind == "email":
            return f"user{rng.randint(1, 99_999)}@example.com"
        if kind == "date":
            return (_EPOCH + timedelta(days=rng.randint(0, 365 * 30))).isoformat()
        if kind == "dateTime":
            moment = datetime(2000, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=rng.randint(0, 30 * 365 * 86_400))
            return moment.strftime("%Y-%m-%dT%H:%M:%SZ")
        if kind == "uuid":
            return str(uuid.UUID(int=rng.getrandbits(128), version=4))
        # "string" and unknown kinds get an opaque token
        return "".join(rng.choice(string.ascii_lowercase + string.digits) for _ in range(8))
