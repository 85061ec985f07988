"""Equality strategies for change detection.

"strict" compares immutable scalars by value and everything else by
identity. "shallow" additionally compares the first level of mappings,
sequences and dataclasses with strict equality. "deep" recurses.
A callable is used as-is.
"""

from __future__ import annotations

import dataclasses
import math
from collections.abc import Mapping, Set
from typing import Any, Callable, Literal, Union

Equals = Callable[[Any, Any], bool]
EqualityOption = Union[Literal["strict", "shallow", "deep"], Equals, None]

_SCALARS = (str, bytes, int, float, complex, bool, type(None))
_SEQUENCES = (list, tuple)


def strict_equal(a: Any, b: Any) -> bool:
    if a is b:
        return True
    if type(a) is not type(b) or not isinstance(a, _SCALARS):
        return False
    if isinstance(a, float) and math.isnan(a) and math.isnan(b):
        return True
    return a == b


def _compare(a: Any, b: Any, item_equal: Equals) -> bool:
    if strict_equal(a, b):
        return True
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if len(a) != len(b):
            return False
        for key, value in a.items():
            if key not in b or not item_equal(value, b[key]):
                return False
        return True
    if isinstance(a, _SEQUENCES) and isinstance(b, _SEQUENCES):
        if type(a) is not type(b) or len(a) != len(b):
            return False
        return all(item_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, Set) and isinstance(b, Set):
        return a == b
    if dataclasses.is_dataclass(a) and not isinstance(a, type) and type(a) is type(b):
        return all(
            item_equal(getattr(a, f.name), getattr(b, f.name)) for f in dataclasses.fields(a)
        )
    return False


def shallow_equal(a: Any, b: Any, item_equal: Equals = strict_equal) -> bool:
    return _compare(a, b, item_equal)


def deep_equal(a: Any, b: Any) -> bool:
    if _compare(a, b, deep_equal):
        return True
    # Value objects that define their own __eq__ (Decimal, datetime, ...)
    if type(a) is type(b) and type(a).__eq__ is not object.__eq__:
        try:
            return bool(a == b)
        except Exception:
            return False
    return False


def never_equal(a: Any, b: Any) -> bool:
    return False


_STRATEGIES: dict[str, Equals] = {
    "strict": strict_equal,
    "shallow": shallow_equal,
    "deep": deep_equal,
}


def resolve_equality(option: EqualityOption) -> Equals:
    """Turn an equality option into a comparison function (default: strict)."""
    if option is None:
        return strict_equal
    if callable(option):
        return option
    try:
        return _STRATEGIES[option]
    except KeyError:
        raise ValueError(f"Unknown equality strategy: {option!r}") from None
