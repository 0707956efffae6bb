"""
Reference pairing.

A forward reference property is written normally; the back reference on
the child type is suppressed on output and restored on input by pointing
each child back at the owning instance.
"""

from __future__ import annotations

from typing import Any

from jsonbind.descriptors import PropertyDescriptor, Role
from jsonbind.hints import referenced_class
from jsonbind.registry import SchemaRegistry


def find_back_reference(
    forward: PropertyDescriptor,
    registry: SchemaRegistry,
    child_cls: type | None = None,
) -> PropertyDescriptor | None:
    """
    The back-reference property paired with ``forward``.

    Args:
        forward: A property with Role.FORWARD.
        registry: Registry to read the child descriptor from.
        child_cls: Runtime class of the child, when known; defaults to the
            class the forward property's hint designates.

    Returns:
        The unique BACK property sharing ``forward.reference``, or None.
    """
    cls = child_cls or referenced_class(forward.hint)
    if cls is None:
        return None
    descriptor = registry.describe(cls)
    if descriptor is None:
        return None
    for prop in descriptor.properties:
        if prop.role is Role.BACK and prop.reference == forward.reference:
            return prop
    return None


def _children(value: Any):
    if isinstance(value, dict):
        return list(value.values())
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def pair_back_references(
    owner: Any,
    forward: PropertyDescriptor,
    value: Any,
    registry: SchemaRegistry,
) -> None:
    """Point every child held by ``value`` back at ``owner``."""
    for child in _children(value):
        if child is None:
            continue
        back = find_back_reference(forward, registry, type(child))
        if back is None:
            continue
        if back.setter is not None:
            back.setter(child, owner)
        else:
            setattr(child, back.name, owner)
