"""
jsonbind - schema-driven JSON data binding for Python object graphs.

Classes are described once, at startup, with explicit Type and Property
Descriptors; the engines then convert object graphs to JSON and back,
honouring:

- polymorphic typing (inline property, wrapper object, wrapper array)
- object identity (shared instances written once, then by id)
- forward/back reference pairs (cycles broken on output, restored on input)
- views, filters, inclusion policies and naming strategies
- custom converters, format directives, creators, unwrapping and root wrapping

Basic Usage:
    >>> import jsonbind
    >>> from jsonbind import PropertyDescriptor, TypeDescriptor
    >>>
    >>> class Point:
    ...     def __init__(self, x, y):
    ...         self.x, self.y = x, y
    >>>
    >>> jsonbind.register(TypeDescriptor(
    ...     cls=Point,
    ...     properties=(PropertyDescriptor(name="x", hint=int), PropertyDescriptor(name="y", hint=int)),
    ... ))
    >>> text = jsonbind.stringify(Point(1, 2))      # '{"x":1,"y":2}'
    >>> point = jsonbind.parse(text, Point)

Polymorphism:
    >>> jsonbind.register(
    ...     TypeDescriptor(cls=Animal, type_info=TypeInfo(), subtypes=(SubType(cls=Dog), SubType(cls=Cat)),
    ...                    properties=(PropertyDescriptor(name="name", hint=str),)),
    ... )
    >>> jsonbind.stringify([Dog("Arthur"), Cat("Merlin")])
    '[{"name":"Arthur","@type":"Dog"},{"name":"Merlin","@type":"Cat"}]'

The module-level functions use a default ObjectMapper. Applications that
need isolated schemas create their own:
    >>> mapper = ObjectMapper()
    >>> mapper.registry.register(...)

To add custom converters for a type:
    >>> jsonbind.register_serializer(Money, lambda money, ctx: str(money.amount))
    >>> jsonbind.register_deserializer(Money, lambda text, ctx: Money(text))
"""

from typing import Any

from jsonbind.converters import Converter, ConverterRegistry
from jsonbind.descriptors import (
    Access,
    AppendAttr,
    Creator,
    CreatorMode,
    CreatorParam,
    FormatSpec,
    IdGenerator,
    IdentityInfo,
    Include,
    PropertyDescriptor,
    Role,
    Shape,
    SubType,
    TypeDescriptor,
    TypeInfo,
    TypeInfoAs,
    Unwrap,
)
from jsonbind.errors import (
    CycleError,
    JsonBindError,
    RequiredValueError,
    SchemaError,
    ShapeError,
    TypeResolutionError,
    UnknownPropertyError,
)
from jsonbind.features import (
    DeserializationFeatures,
    Filter,
    FilterType,
    SerializationFeatures,
)
from jsonbind.mapper import ObjectMapper
from jsonbind.naming import Naming
from jsonbind.registry import SchemaRegistry
from jsonbind.resolver import type_from_id, type_id_of

# Mapper behind the module-level functions.
default_mapper = ObjectMapper()


def register(*descriptors: TypeDescriptor) -> None:
    """Register descriptors with the default mapper's registry."""
    default_mapper.registry.register(*descriptors)


def register_serializer(python_type: type | tuple[type, ...], fn: Converter, order: int = 0) -> None:
    """Register a global serializer with the default mapper."""
    default_mapper.converters.register_serializer(python_type, fn, order)


def register_deserializer(python_type: type | tuple[type, ...], fn: Converter, order: int = 0) -> None:
    """Register a global deserializer with the default mapper."""
    default_mapper.converters.register_deserializer(python_type, fn, order)


def serialize(value: Any, hint: Any = None, **options) -> Any:
    """
    Serialize an object graph to a plain value tree.

    Args:
        value: Any object graph.
        hint: Declared type of ``value``; defaults to its runtime type.
        **options: views, attributes, filters, features (see ObjectMapper).

    Returns:
        Nested dicts, lists and scalars ready for ``json.dumps``.

    Raises:
        CycleError: The graph holds a cycle no identity or reference pair breaks.

    Example:
        >>> serialize({"when": datetime(2020, 1, 1, tzinfo=timezone.utc)})
        {'when': 1577836800000}
    """
    return default_mapper.to_builtins(value, hint, **options)


def deserialize(data: Any, hint: Any = None, **options) -> Any:
    """
    Deserialize a plain value tree (as returned by ``json.loads``).

    Args:
        data: The plain value tree.
        hint: Target type, e.g. ``User`` or ``list[Animal]``.
        **options: views, injectables, creator_name, features (see ObjectMapper).

    Returns:
        The materialized object graph.

    Example:
        >>> animals = deserialize(json.loads(text), list[Animal])
    """
    return default_mapper.from_builtins(data, hint, **options)


def stringify(value: Any, hint: Any = None, **options) -> str:
    """Serialize to JSON text with the default mapper."""
    return default_mapper.stringify(value, hint, **options)


def parse(text: str | bytes, hint: Any = None, **options) -> Any:
    """Parse JSON text with the default mapper."""
    return default_mapper.parse(text, hint, **options)


__all__ = [
    # Core API
    "serialize",
    "deserialize",
    "stringify",
    "parse",
    "register",
    "register_serializer",
    "register_deserializer",
    "ObjectMapper",
    "default_mapper",
    "SchemaRegistry",
    "ConverterRegistry",
    "type_id_of",
    "type_from_id",
    # Descriptors
    "TypeDescriptor",
    "PropertyDescriptor",
    "TypeInfo",
    "SubType",
    "IdentityInfo",
    "AppendAttr",
    "Creator",
    "CreatorParam",
    "FormatSpec",
    "Unwrap",
    "Access",
    "Include",
    "TypeInfoAs",
    "IdGenerator",
    "Shape",
    "CreatorMode",
    "Role",
    "Naming",
    # Configuration
    "SerializationFeatures",
    "DeserializationFeatures",
    "Filter",
    "FilterType",
    # Errors
    "JsonBindError",
    "SchemaError",
    "CycleError",
    "TypeResolutionError",
    "RequiredValueError",
    "ShapeError",
    "UnknownPropertyError",
]
