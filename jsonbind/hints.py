"""
Helpers for reading Python type annotations used as property hints.

A hint can be a plain class (``Item``), a parameterised container
(``list[Item]``, ``dict[str, Item]``, ``tuple[int, ...]``), an optional
(``Optional[Item]``, ``Item | None``), a union, a ``Literal`` or ``Any``.
"""

from __future__ import annotations

import collections.abc
import types
from typing import Any, Literal, Union, get_args, get_origin

_SEQUENCE_ORIGINS = {
    list: list,
    collections.abc.Sequence: list,
    collections.abc.MutableSequence: list,
    collections.abc.Iterable: list,
    collections.abc.Collection: list,
    set: set,
    collections.abc.Set: set,
    collections.abc.MutableSet: set,
    frozenset: frozenset,
}

_MAPPING_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


def is_union(hint: Any) -> bool:
    origin = get_origin(hint)
    return origin is Union or origin is types.UnionType


def strip_optional(hint: Any) -> Any:
    """``Optional[X]`` -> ``X``; other unions keep their non-None members."""
    if not is_union(hint):
        return hint
    members = [arg for arg in get_args(hint) if arg is not type(None)]
    if len(members) == 1:
        return members[0]
    return Union[tuple(members)]


def union_members(hint: Any) -> tuple:
    if is_union(hint):
        return tuple(arg for arg in get_args(hint) if arg is not type(None))
    return (hint,)


def is_literal(hint: Any) -> bool:
    return get_origin(hint) is Literal


def container_kind(hint: Any) -> type | None:
    """
    The concrete container a hint asks for.

    Returns:
        list, set, frozenset, tuple or dict; None for non-container hints.
    """
    hint = strip_optional(hint)
    origin = get_origin(hint) or hint
    if origin is tuple:
        return tuple
    if origin in _SEQUENCE_ORIGINS:
        return _SEQUENCE_ORIGINS[origin]
    if origin in _MAPPING_ORIGINS:
        return dict
    return None


def element_hint(hint: Any) -> Any:
    """Element hint of a homogeneous sequence/set, or None."""
    hint = strip_optional(hint)
    args = get_args(hint)
    if get_origin(hint) is tuple:
        if len(args) == 2 and args[1] is Ellipsis:
            return args[0]
        return None
    return args[0] if args else None


def tuple_hints(hint: Any) -> tuple | None:
    """Per-position hints of a fixed-length tuple, or None."""
    hint = strip_optional(hint)
    args = get_args(hint)
    if get_origin(hint) is tuple and args and not (len(args) == 2 and args[1] is Ellipsis):
        return args
    return None


def mapping_hints(hint: Any) -> tuple[Any, Any]:
    """(key hint, value hint) of a mapping; each may be None."""
    args = get_args(strip_optional(hint))
    if len(args) == 2:
        return args[0], args[1]
    return None, None


def target_class(hint: Any) -> type | None:
    """The class a hint designates, for non-container class hints."""
    hint = strip_optional(hint)
    if hint is None or hint is Any:
        return None
    if isinstance(hint, type) and container_kind(hint) is None:
        return hint
    return None


def referenced_class(hint: Any) -> type | None:
    """
    The class a reference property ultimately points to.

    ``Item``, ``list[Item]``, ``set[Item]`` and ``dict[str, Item]`` all
    designate ``Item``.
    """
    kind = container_kind(hint)
    if kind is dict:
        return referenced_class(mapping_hints(hint)[1])
    if kind is not None:
        return referenced_class(element_hint(hint))
    return target_class(hint)
