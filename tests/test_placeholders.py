import random
import uuid
from datetime import date, datetime

from apiprobe.config import DefaultPlaceholders
from apiprobe.placeholders import PlaceholderResolver, kind_of_name, kind_of_value


def test_override_wins():
    resolver = PlaceholderResolver(use_random_values=True)
    assert resolver.resolve("integer", "42") == "42"


def test_configured_default_then_builtin_fallback():
    resolver = PlaceholderResolver(defaults=DefaultPlaceholders(string=None, integer=7))
    assert resolver.resolve("integer") == 7
    assert resolver.resolve("string") == ""


def test_no_defaults_when_disabled():
    resolver = PlaceholderResolver()
    assert resolver.resolve("string", "", use_defaults=False) is None


def test_random_values_are_type_valid():
    resolver = PlaceholderResolver(use_random_values=True, rng=random.Random(3))
    assert isinstance(resolver.resolve("integer"), int)
    assert isinstance(resolver.resolve("number"), float)
    assert isinstance(resolver.resolve("boolean"), bool)
    assert "@" in resolver.resolve("email")
    date.fromisoformat(resolver.resolve("date"))
    datetime.strptime(resolver.resolve("dateTime"), "%Y-%m-%dT%H:%M:%SZ")
    assert uuid.UUID(resolver.resolve("uuid")).version == 4
    token = resolver.resolve(None)
    assert isinstance(token, str) and len(token) == 8


def test_seeded_generator_repeats():
    first = PlaceholderResolver(use_random_values=True, rng=random.Random(5))
    second = PlaceholderResolver(use_random_values=True, rng=random.Random(5))
    assert [first.resolve("uuid") for _ in range(3)] == [second.resolve("uuid") for _ in range(3)]


def test_kind_inference():
    assert kind_of_value(True) == "boolean"
    assert kind_of_value(3) == "integer"
    assert kind_of_value(1.5) == "number"
    assert kind_of_value("2024-01-02") == "date"
    assert kind_of_value("2024-01-02T10:00:00Z") == "dateTime"
    assert kind_of_value("a@b.io") == "email"
    assert kind_of_value("123e4567-e89b-12d3-a456-426614174000") == "uuid"
    assert kind_of_value({"a": 1}) is None
    assert kind_of_name("userUuid") == "uuid"
    assert kind_of_name("id") is None
