"""
Exception hierarchy for the jsonbind library.

Every failure raised by the engines is a JsonBindError. The subclasses
only refine the category so callers can catch a narrower kind:

- SchemaError: conflicting declarations, raised while building or
  registering descriptors, never during a traversal
- CycleError: an object reached again on the same path without identity
- TypeResolutionError: unknown or missing discriminator, identity/type
  mismatch, unresolved forward identity
- RequiredValueError: missing required property or creator argument
- ShapeError: wrapper convention violated (arity, element kind)
- UnknownPropertyError: input key with no destination under a strict policy

Messages always carry the declaring type name and, when known, the key
path that led to the failing node, e.g. ``User["items"][0]["owner"]``.
"""

from __future__ import annotations

from typing import Sequence, Union

PathKey = Union[str, int]


def format_path(type_name: str | None, chain: Sequence[PathKey] = ()) -> str:
    """
    Render a key chain the way it appears in error messages.

    Args:
        type_name: Name of the type at the root of the chain.
        chain: Keys (str) and indices (int) followed from that type.

    Returns:
        A string such as ``User["items"][0]["owner"]``.
    """
    parts = [type_name or "<value>"]
    for key in chain:
        if isinstance(key, int):
            parts.append(f"[{key}]")
        else:
            parts.append(f'["{key}"]')
    return "".join(parts)


class JsonBindError(Exception):
    """
    Base class for every error raised by jsonbind.

    Deliberately not a ValueError: pydantic wraps ValueErrors raised inside
    validators, and descriptor validation must surface SchemaError as is.

    Attributes:
        type_name: Name of the declaring type, if known.
        chain: Key path from that type to the failing node.
    """

    def __init__(
        self,
        message: str,
        *,
        type_name: str | None = None,
        chain: Sequence[PathKey] = (),
    ):
        self.type_name = type_name
        self.chain = tuple(chain)
        if type_name is not None or self.chain:
            message = f"{message} (through reference chain: {format_path(type_name, self.chain)})"
        super().__init__(message)


class SchemaError(JsonBindError):
    """Conflicting or invalid descriptor declarations."""


class CycleError(JsonBindError):
    """An unbroken self-reference without declared identity."""


class TypeResolutionError(JsonBindError):
    """A discriminator or identity could not be resolved."""


class RequiredValueError(JsonBindError):
    """A required property or creator argument is absent."""


class ShapeError(JsonBindError):
    """A value does not have the shape its wrapper convention demands."""


class UnknownPropertyError(JsonBindError):
    """An input key has no destination and unknown keys are not tolerated."""
