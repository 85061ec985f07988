"""Tests for equality strategies."""

from dataclasses import dataclass

import pytest

from atomflux.equality import deep_equal, never_equal, resolve_equality, shallow_equal, strict_equal


@dataclass
class Point:
    x: int
    y: int


class TestStrict:
    def test_scalars_by_value(self):
        assert strict_equal(1, 1)
        assert strict_equal("a", "a")
        assert strict_equal(float("nan"), float("nan"))
        assert not strict_equal(1, 1.0)

    def test_containers_by_identity(self):
        a = [1]
        assert strict_equal(a, a)
        assert not strict_equal([1], [1])


class TestShallow:
    def test_first_level(self):
        assert shallow_equal({"id": 1}, {"id": 1})
        assert shallow_equal([1, "a"], [1, "a"])
        assert shallow_equal(Point(1, 2), Point(1, 2))
        assert not shallow_equal({"a": [1]}, {"a": [1]})

    def test_length_mismatch(self):
        assert not shallow_equal([1], [1, 2])
        assert not shallow_equal({"a": 1}, {"a": 1, "b": 2})


class TestDeep:
    def test_nested(self):
        assert deep_equal({"a": [1, {"b": 2}]}, {"a": [1, {"b": 2}]})
        assert not deep_equal({"a": [1, {"b": 2}]}, {"a": [1, {"b": 3}]})


class TestResolve:
    def test_default_is_strict(self):
        assert resolve_equality(None) is strict_equal

    def test_names(self):
        assert resolve_equality("shallow") is shallow_equal
        assert resolve_equality("deep") is deep_equal

    def test_callable_used_as_is(self):
        assert resolve_equality(never_equal) is never_equal

    def test_unknown_name(self):
        with pytest.raises(ValueError):
            resolve_equality("fuzzy")
