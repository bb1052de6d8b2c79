from collections.abc import Mapping, Sequence, Set
from numbers import Number
from typing import Any


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality between two canonical answer payloads.

    Mappings and sets are compared without regard to order, lists and tuples
    element by element. Booleans are never equal to numbers, so a stored
    ``1`` does not match a submitted ``True``.
    """
    if a is b:
        return True
    if a is None or b is None:
        return False

    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b

    if isinstance(a, Number) and isinstance(b, Number):
        return a == b

    if isinstance(a, str) or isinstance(b, str):
        return isinstance(a, str) and isinstance(b, str) and a == b

    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[key], b[key]) for key in a)

    if isinstance(a, Set) and isinstance(b, Set):
        if len(a) != len(b):
            return False
        remaining = list(b)
        for item in a:
            for index, candidate in enumerate(remaining):
                if deep_equal(item, candidate):
                    del remaining[index]
                    break
            else:
                return False
        return True

    if isinstance(a, Sequence) and isinstance(b, Sequence):
        if len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))

    return False
