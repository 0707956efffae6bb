"""
Type resolution for polymorphic values.

``type_id_of`` and ``type_from_id`` are inverse lookups between classes
and the discriminator written to the document. The remaining helpers
read and write the three wire conventions:

- PROPERTY:        {"@type": "Dog", "name": "Arthur"}
- WRAPPER_OBJECT:  {"Dog": {"name": "Arthur"}}
- WRAPPER_ARRAY:   ["Dog", {"name": "Arthur"}]
"""

from __future__ import annotations

import logging
from typing import Any, Iterator

from jsonbind.descriptors import SubType, TypeDescriptor, TypeInfo, TypeInfoAs
from jsonbind.errors import ShapeError, TypeResolutionError
from jsonbind.registry import SchemaRegistry

logger = logging.getLogger(__name__)


def type_id_of(cls: type, registry: SchemaRegistry) -> str:
    """
    Discriminator for ``cls``.

    A name given to ``cls`` in any ancestor's subtype table wins, then the
    class's own declared ``type_name``, then its ``__name__``.
    """
    for base in cls.__mro__:
        descriptor = registry.describe(base)
        if descriptor is None:
            continue
        for sub in descriptor.subtypes:
            if sub.cls is cls and sub.name:
                return sub.name
    descriptor = registry.describe(cls)
    if descriptor is not None and descriptor.type_name:
        return descriptor.type_name
    return cls.__name__


def _walk_subtypes(descriptor: TypeDescriptor, registry: SchemaRegistry) -> Iterator[SubType]:
    # Breadth-first through nested subtype tables.
    queue = list(descriptor.subtypes)
    visited: set[type] = {descriptor.cls}
    while queue:
        sub = queue.pop(0)
        if sub.cls in visited:
            continue
        visited.add(sub.cls)
        yield sub
        nested = registry.describe(sub.cls)
        if nested is not None:
            queue.extend(nested.subtypes)


def known_type_ids(descriptor: TypeDescriptor, registry: SchemaRegistry) -> list[str]:
    ids = [type_id_of(descriptor.cls, registry)]
    ids.extend(sub.name or type_id_of(sub.cls, registry) for sub in _walk_subtypes(descriptor, registry))
    return ids


def type_from_id(type_id: Any, descriptor: TypeDescriptor, registry: SchemaRegistry) -> type | None:
    """
    Class designated by ``type_id`` among ``descriptor.cls`` and its
    known subtypes.

    Explicit subtype-table names are matched first, then each candidate's
    resolved type id and class name.

    Returns:
        The class, or None when nothing matches.
    """
    static = descriptor.cls
    if type_id_of(static, registry) == type_id:
        return static
    subtypes = list(_walk_subtypes(descriptor, registry))
    for sub in subtypes:
        if sub.name is not None and sub.name == type_id:
            return sub.cls
    for sub in subtypes:
        if type_id_of(sub.cls, registry) == type_id or sub.cls.__name__ == type_id:
            return sub.cls
    return None


# =============================================================================
# Wire conventions
# =============================================================================


def wrap(plain: Any, type_id: str, info: TypeInfo) -> Any:
    """Attach a discriminator to a serialized value."""
    if info.use_as is TypeInfoAs.PROPERTY and isinstance(plain, dict):
        wrapped = {key: item for key, item in plain.items() if key != info.property}
        wrapped[info.property] = type_id
        return wrapped
    if info.use_as is TypeInfoAs.WRAPPER_OBJECT:
        return {type_id: plain}
    # WRAPPER_ARRAY, or PROPERTY on a value that is not an object.
    return [type_id, plain]


def extract_type_id(value: Any, info: TypeInfo, type_name: str, ctx) -> tuple[Any, Any]:
    """
    Split a document value into (discriminator, payload).

    The discriminator is None when a PROPERTY-style value carries none.

    Raises:
        ShapeError: The value does not follow the declared wrapper shape.
    """
    if info.use_as is TypeInfoAs.PROPERTY:
        if isinstance(value, list) and len(value) == 2 and isinstance(value[0], str):
            return value[0], value[1]
        if not isinstance(value, dict):
            raise ShapeError(
                f"Expected an object carrying \"{info.property}\" for {type_name}, "
                f"got {type(value).__name__}",
                **ctx.located(),
            )
        payload = dict(value)
        return payload.pop(info.property, None), payload

    if info.use_as is TypeInfoAs.WRAPPER_OBJECT:
        if not isinstance(value, dict) or len(value) != 1:
            raise ShapeError(
                f"Expected JSON Object with a single key (the type id) to resolve subtype of {type_name}",
                **ctx.located(),
            )
        (type_id, payload), = value.items()
        return type_id, payload

    if not isinstance(value, list) or len(value) != 2:
        raise ShapeError(
            f"Expected JSON Array of length 2 ([type id, value]) to resolve subtype of {type_name}",
            **ctx.located(),
        )
    if not isinstance(value[0], str):
        raise ShapeError(
            f"Expected a string type id as first element of the wrapper array of {type_name}, "
            f"got {type(value[0]).__name__}",
            **ctx.located(),
        )
    return value[0], value[1]


def resolve_subtype(value: Any, descriptor: TypeDescriptor, ctx) -> tuple[type, Any]:
    """
    Resolve the concrete class of a polymorphic document value.

    ``fail_on_missing_type_id`` is checked first, then
    ``fail_on_invalid_subtype``; with either off, the matching case falls
    back to the statically declared class.

    Returns:
        (class to materialize, payload without the discriminator)
    """
    info = descriptor.type_info
    registry = ctx.registry
    static = descriptor.cls
    type_id, payload = extract_type_id(value, info, static.__name__, ctx)

    if type_id is None:
        if ctx.features.fail_on_missing_type_id:
            raise TypeResolutionError(
                f"Missing type id when trying to resolve subtype of class {static.__name__}: "
                f'missing type id property "{info.property}"',
                **ctx.located(),
            )
        logger.debug(f"No type id for {static.__name__}; using the declared class")
        return static, payload

    resolved = type_from_id(type_id, descriptor, registry)
    if resolved is None:
        if ctx.features.fail_on_invalid_subtype:
            known = ", ".join(known_type_ids(descriptor, registry))
            raise TypeResolutionError(
                f'Could not resolve type id "{type_id}" as a subtype of {static.__name__}: '
                f"known type ids = [{known}]",
                **ctx.located(),
            )
        logger.debug(f"Unknown type id {type_id!r} for {static.__name__}; using the declared class")
        return static, payload

    if resolved is not static:
        logger.debug(f"Type id {type_id!r} re-targets {static.__name__} to {resolved.__name__}")
    return resolved, payload
