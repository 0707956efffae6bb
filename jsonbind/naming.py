"""
Property naming strategies.

A naming strategy rewrites internal attribute names into external JSON
names on output. Input keys are mapped back through the descriptor's
name table; undeclared keys fall back to ``to_attribute_name``.
"""

from __future__ import annotations

import re
from enum import Enum


class Naming(str, Enum):
    SNAKE_CASE = "snake_case"
    UPPER_CAMEL_CASE = "upper_camel_case"
    LOWER_CAMEL_CASE = "lower_camel_case"
    LOWER_CASE = "lower_case"
    KEBAB_CASE = "kebab_case"
    LOWER_DOT_CASE = "lower_dot_case"


_SEPARATORS = re.compile(r"[_\-.\s]+")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def split_words(name: str) -> list[str]:
    """Split ``fooBar``, ``foo_bar``, ``foo-bar`` and ``FOOBar`` into words."""
    spaced = _CAMEL_BOUNDARY.sub(" ", name)
    return [word for word in _SEPARATORS.split(spaced) if word]


def apply_naming(name: str, naming: Naming | None) -> str:
    """
    Transform an internal name according to a naming strategy.

    Leading underscores are kept so private attributes stay distinguishable.

    Args:
        name: Internal attribute name.
        naming: Strategy to apply, or None to return the name unchanged.

    Returns:
        The external name.
    """
    if naming is None:
        return name
    stripped = name.lstrip("_")
    lead = name[: len(name) - len(stripped)]
    words = [word.lower() for word in split_words(stripped)]
    if not words:
        return name

    if naming is Naming.SNAKE_CASE:
        converted = "_".join(words)
    elif naming is Naming.UPPER_CAMEL_CASE:
        converted = "".join(word.capitalize() for word in words)
    elif naming is Naming.LOWER_CAMEL_CASE:
        converted = words[0] + "".join(word.capitalize() for word in words[1:])
    elif naming is Naming.LOWER_CASE:
        converted = "".join(words)
    elif naming is Naming.KEBAB_CASE:
        converted = "-".join(words)
    elif naming is Naming.LOWER_DOT_CASE:
        converted = ".".join(words)
    else:
        raise ValueError(f"Unknown naming strategy: {naming!r}")
    return lead + converted


def to_attribute_name(key: str) -> str:
    """Best-effort reverse of any strategy: external key to snake_case."""
    return apply_naming(key, Naming.SNAKE_CASE)
