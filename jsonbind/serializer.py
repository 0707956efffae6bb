"""
Serialization engine: object graph -> plain value tree.

The Serializer walks a value recursively and returns nested dicts, lists
and scalars ready for ``json.dumps``. For a described object the steps
run in this order:

1. NaN / infinity rewrites
2. global custom serializers, then the type's own serializer
3. identity shortcut: an object that already has an id is written as it
4. ignored types become null
5. single-value override
6. property enumeration (order, exclusion, inclusion, conversion,
   formatting, raw passthrough, naming, unwrapping)
7. identity assignment for first occurrences
8. polymorphic discriminator
9. root wrapping (top level only)

Children are serialized after the identity is assigned, each with a
forked context whose path set contains the parent, so a genuine cycle
is detected on the branch where it happens and nowhere else.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any

from jsonbind.context import TraversalContext
from jsonbind.descriptors import (
    Access,
    IdGenerator,
    Include,
    PropertyDescriptor,
    Role,
    TypeDescriptor,
)
from jsonbind.errors import CycleError, RequiredValueError, ShapeError
from jsonbind.formats import (
    PRIMITIVES,
    default_for_null,
    encode_scalar,
    encode_temporal,
    format_scalar,
    is_temporal,
    reshape,
    to_epoch_millis,
)
from jsonbind.hints import element_hint, mapping_hints, target_class
from jsonbind.resolver import type_id_of, wrap

logger = logging.getLogger(__name__)

_MISSING = object()

_CONTAINERS = (list, tuple, set, frozenset)


# =============================================================================
# Helpers
# =============================================================================


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, dict, list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def is_included(value: Any, include: Include | None, custom=None) -> bool:
    """
    Whether ``value`` survives an inclusion policy.

    ``custom`` follows the CUSTOM convention: it returns True to omit.
    """
    if include is None or include is Include.ALWAYS:
        return True
    if include is Include.NON_NULL:
        return value is not None
    if include is Include.NON_EMPTY:
        return not is_empty(value)
    if include is Include.NON_DEFAULT:
        if is_empty(value):
            return False
        if isinstance(value, (bool, int, float)):
            return value != type(value)()
        return True
    if include is Include.CUSTOM:
        return custom is None or not custom(value)
    return True


def instance_attributes(obj: Any) -> dict[str, Any]:
    """Public instance attributes, from ``__dict__`` or ``__slots__``."""
    if hasattr(obj, "__dict__"):
        items = vars(obj).items()
    else:
        names = []
        for klass in type(obj).__mro__:
            slots = klass.__dict__.get("__slots__", ())
            names.extend([slots] if isinstance(slots, str) else slots)
        items = [(name, getattr(obj, name)) for name in names if hasattr(obj, name)]
    return {name: value for name, value in items if not name.startswith("_")}


@dataclass
class _Entry:
    """A property that survived enumeration, waiting to be serialized."""

    key: str
    prop: PropertyDescriptor
    value: Any
    converted: bool = False


# =============================================================================
# Serializer
# =============================================================================


class Serializer:
    """
    Recursive object graph -> plain value transform.

    The engine holds no per-call state; everything call-scoped lives in
    the TraversalContext, so one instance may serve concurrent calls.

    Example:
        >>> ctx = mapper.serialization_context(value)
        >>> plain = Serializer().serialize(value, None, ctx)
    """

    def serialize(self, value: Any, hint: Any, ctx: TraversalContext, prop: PropertyDescriptor | None = None) -> Any:
        """
        Serialize a value, running custom converters first.

        Args:
            value: Any value: primitive, container or instance.
            hint: Statically declared type, or None to use the runtime type.
            ctx: Traversal context of this node.
            prop: Property holding the value, for its content and key
                converters.

        Returns:
            A plain value tree.

        Raises:
            CycleError: ``value`` is reached again on its own path.
            RequiredValueError: A required appended attribute is missing.
        """
        if isinstance(value, float):
            value = self._rewrite_float(value, ctx)

        converters = ctx.converters.serializers_for(type(value))
        if value is None or isinstance(value, PRIMITIVES):
            if not converters:
                return value
        else:
            descriptor = ctx.registry.describe(type(value))
            if descriptor is not None and descriptor.serializer is not None:
                converters = [*converters, descriptor.serializer]
        for fn in converters:
            value = fn(value, ctx)
        return self.serialize_value(value, hint, ctx, prop)

    def serialize_value(self, value: Any, hint: Any, ctx: TraversalContext, prop: PropertyDescriptor | None = None) -> Any:
        """Serialize without consulting custom converters for ``value`` itself."""
        if isinstance(value, float):
            value = self._rewrite_float(value, ctx)
        if value is None or isinstance(value, PRIMITIVES):
            return value
        if is_temporal(value):
            return encode_temporal(value, ctx.features.write_dates_as_timestamps)
        plain = encode_scalar(value)
        if plain is not value:
            return plain
        if isinstance(value, dict):
            return self._serialize_map(value, hint, ctx, prop)
        if isinstance(value, _CONTAINERS):
            return self._serialize_sequence(value, hint, ctx, prop)
        return self._serialize_object(value, ctx)

    # -------------------------------------------------------------------------
    # Scalars and cycles
    # -------------------------------------------------------------------------

    def _rewrite_float(self, value: float, ctx: TraversalContext) -> Any:
        features = ctx.features
        if math.isnan(value) and features.write_nan_as_zero:
            return 0
        if value == math.inf and features.write_positive_infinity_as is not None:
            return features.write_positive_infinity_as
        if value == -math.inf and features.write_negative_infinity_as is not None:
            return features.write_negative_infinity_as
        return value

    def _cycle(self, value: Any, ctx: TraversalContext) -> None:
        if ctx.features.write_self_references_as_null:
            logger.debug(f"Self reference to {type(value).__name__} written as null")
            return None
        raise CycleError(
            f"Direct self-reference leading to cycle on {type(value).__name__}",
            **ctx.located(),
        )

    def _is_ignored_value(self, value: Any, ctx: TraversalContext) -> bool:
        if value is None or isinstance(value, PRIMITIVES):
            return False
        descriptor = ctx.registry.describe(type(value))
        return descriptor is not None and descriptor.ignored

    # -------------------------------------------------------------------------
    # Containers
    # -------------------------------------------------------------------------

    def _serialize_sequence(self, seq, hint, ctx: TraversalContext, prop: PropertyDescriptor | None) -> list:
        if id(seq) in ctx.on_path:
            return self._cycle(seq, ctx)
        inner = ctx.enter(seq)
        item_hint = element_hint(hint)
        content_serializer = prop.content_serializer if prop is not None else None

        result = []
        for index, item in enumerate(seq):
            if self._is_ignored_value(item, ctx):
                continue
            child = inner.child(index, inner.local_filter)
            if content_serializer is not None:
                result.append(self.serialize_value(content_serializer(item, child), item_hint, child))
            else:
                result.append(self.serialize(item, item_hint, child))
        return result

    def _map_key(self, key: Any, prop: PropertyDescriptor | None, ctx: TraversalContext) -> Any:
        if prop is not None and prop.key_serializer is not None:
            return prop.key_serializer(key, ctx)
        if is_temporal(key):
            if ctx.features.write_date_keys_as_timestamps:
                return str(to_epoch_millis(key))
            return key.isoformat()
        key = encode_scalar(key)
        if isinstance(key, PRIMITIVES):
            return key
        return str(key)

    def _serialize_map(self, mapping: dict, hint, ctx: TraversalContext, prop: PropertyDescriptor | None) -> dict:
        if id(mapping) in ctx.on_path:
            return self._cycle(mapping, ctx)
        inner = ctx.enter(mapping)
        _, value_hint = mapping_hints(hint)

        items = list(mapping.items())
        if ctx.features.order_map_entries_by_keys:
            items.sort(key=lambda pair: str(pair[0]))

        content_include = prop.content_include if prop is not None else None
        content_filter = prop.content_filter if prop is not None else None
        content_serializer = prop.content_serializer if prop is not None else None

        result = {}
        for key, item in items:
            if not is_included(item, content_include, content_filter):
                continue
            if self._is_ignored_value(item, ctx):
                continue
            out_key = self._map_key(key, prop, ctx)
            child = inner.child(str(out_key), inner.local_filter)
            if content_serializer is not None:
                result[out_key] = self.serialize_value(content_serializer(item, child), value_hint, child)
            else:
                result[out_key] = self.serialize(item, value_hint, child)
        return result

    # -------------------------------------------------------------------------
    # Objects
    # -------------------------------------------------------------------------

    def _serialize_object(self, obj: Any, ctx: TraversalContext) -> Any:
        cls = type(obj)
        descriptor = ctx.registry.describe(cls)

        if descriptor is not None and descriptor.identity is not None and ctx.identities.seen(obj):
            object_id = ctx.identities.id_of(obj)
            logger.debug(f"{cls.__name__} already written; emitting id {object_id!r}")
            return self.serialize_value(object_id, None, ctx)

        if id(obj) in ctx.on_path:
            return self._cycle(obj, ctx)

        if descriptor is None:
            inner = ctx.enter(obj)
            return {
                name: self.serialize(value, None, inner.child(name))
                for name, value in instance_attributes(obj).items()
            }

        if descriptor.ignored:
            return None

        inner = ctx.enter(obj)
        if descriptor.value_property is not None:
            value = getattr(obj, descriptor.value_property)
            return self.serialize(value, None, inner.child(descriptor.value_property))

        entries = self._enumerate(obj, descriptor, inner)

        object_id = _MISSING
        if descriptor.identity is not None:
            info = descriptor.identity
            property_value = None
            if info.generator is IdGenerator.PROPERTY:
                property_value = self._identity_property_value(obj, descriptor, entries)
            object_id = ctx.identities.assign(obj, info, property_value)
            if info.always_as_id:
                return self.serialize_value(object_id, None, ctx)

        plain = self._write_entries(obj, descriptor, entries, inner)

        if object_id is not _MISSING and descriptor.identity.generator is not IdGenerator.PROPERTY:
            plain[descriptor.identity.property] = self.serialize_value(object_id, None, ctx)

        result: Any = reshape(plain, descriptor.format)

        if descriptor.type_info is not None:
            result = wrap(result, type_id_of(cls, ctx.registry), descriptor.type_info)

        if ctx.depth == 0 and ctx.features.wrap_root_value:
            result = {descriptor.root_name or cls.__name__: result}
        return result

    def _identity_property_value(self, obj, descriptor: TypeDescriptor, entries: list[_Entry]) -> Any:
        wanted = descriptor.identity.property
        for entry in entries:
            if entry.key == wanted or entry.prop.name == wanted:
                return entry.value
        prop = next(
            (p for p in descriptor.properties if wanted in (p.name, p.output_name(descriptor.naming))),
            None,
        )
        return self._read(obj, prop) if prop is not None else getattr(obj, wanted, None)

    def _read(self, obj: Any, prop: PropertyDescriptor) -> Any:
        if prop.getter is not None:
            return prop.getter(obj)
        return getattr(obj, prop.name, _MISSING)

    def _ordered(self, obj: Any, descriptor: TypeDescriptor, ctx: TraversalContext) -> list[PropertyDescriptor]:
        declared_names = {prop.name for prop in descriptor.properties}
        undeclared = tuple(
            PropertyDescriptor(name=name)
            for name in instance_attributes(obj)
            if name not in declared_names
        )
        return descriptor.ordered_properties(undeclared, ctx.features.sort_properties_alphabetically)

    def _in_view(self, prop: PropertyDescriptor, descriptor: TypeDescriptor, ctx: TraversalContext) -> bool:
        if ctx.views is None:
            return True
        views = prop.views if prop.views is not None else descriptor.views
        if views is None:
            return ctx.features.default_view_inclusion
        try:
            return any(issubclass(active, view) for active in ctx.views for view in views)
        except TypeError:
            logger.warning(f"Invalid view configuration on {descriptor.cls.__name__}.{prop.name}; including it")
            return True

    def _type_filter(self, descriptor: TypeDescriptor, ctx: TraversalContext):
        if descriptor.filter is None:
            return None
        found = ctx.filter_named(descriptor.filter)
        if found is None:
            logger.warning(f'No filter configured with id "{descriptor.filter}"; including every property')
        return found

    def _enumerate(self, obj: Any, descriptor: TypeDescriptor, ctx: TraversalContext) -> list[_Entry]:
        features = ctx.features
        naming = descriptor.naming
        type_filter = self._type_filter(descriptor, ctx)
        entries: list[_Entry] = []

        for prop in self._ordered(obj, descriptor, ctx):
            key = prop.output_name(naming)

            if prop.ignore:
                continue
            if descriptor.is_property_ignored(prop) and not descriptor.allow_getters:
                continue
            if prop.access is Access.WRITE_ONLY or prop.role is Role.BACK:
                continue
            if not self._in_view(prop, descriptor, ctx):
                continue
            if type_filter is not None and not type_filter.allows(prop.name, key):
                continue
            if ctx.local_filter is not None and not ctx.local_filter.allows(prop.name, key):
                continue

            value = self._read(obj, prop)
            if value is _MISSING:
                continue

            if self._is_ignored_value(value, ctx):
                continue
            declared = target_class(prop.hint)
            if declared is not None and self._is_ignored_type(declared, ctx):
                continue

            include = prop.include or descriptor.include or features.default_property_inclusion
            include_filter = prop.include_filter or descriptor.include_filter
            if not is_included(value, include, include_filter):
                continue

            converted = False
            if value is None:
                if prop.nulls_serializer is not None:
                    value = prop.nulls_serializer(None, ctx)
                    converted = True
                else:
                    value = default_for_null(declared, features)
            if prop.serializer is not None:
                value = prop.serializer(value, ctx.child(key))
                converted = True
            if prop.format is not None:
                value = format_scalar(value, prop.format)

            entries.append(_Entry(key, prop, value, converted))
        return entries

    def _is_ignored_type(self, cls: type, ctx: TraversalContext) -> bool:
        descriptor = ctx.registry.describe(cls)
        return descriptor is not None and descriptor.ignored

    def _write_entries(self, obj: Any, descriptor: TypeDescriptor, entries: list[_Entry], ctx: TraversalContext) -> dict:
        plain: dict[str, Any] = {}
        appended = self._appended(descriptor, ctx)

        if descriptor.prepend:
            plain.update(appended)

        for entry in entries:
            prop = entry.prop
            child = ctx.child(entry.key, ctx.filter_named(prop.filter) if prop.filter else None)
            if prop.filter and child.local_filter is None:
                logger.warning(f'No filter configured with id "{prop.filter}"; including every property')

            if prop.raw and isinstance(entry.value, str):
                try:
                    value = json.loads(entry.value)
                except json.JSONDecodeError as exc:
                    raise ShapeError(
                        f"Raw property \"{prop.name}\" of {descriptor.cls.__name__} is not valid JSON: {exc}",
                        **child.located(),
                    ) from exc
            elif entry.converted:
                value = self.serialize_value(entry.value, prop.hint, child, prop)
            else:
                value = self.serialize(entry.value, prop.hint, child, prop)
            value = reshape(value, prop.format)

            if prop.unwrapped is not None:
                self._splice(plain, entry, value, ctx)
            else:
                plain[entry.key] = value

        if descriptor.any_getter is not None:
            for key, value in (descriptor.any_getter(obj) or {}).items():
                if key not in plain:
                    plain[key] = self.serialize(value, None, ctx.child(key))

        if not descriptor.prepend:
            plain.update(appended)
        return plain

    def _splice(self, plain: dict, entry: _Entry, value: Any, ctx: TraversalContext) -> None:
        if value is None:
            return
        nested = ctx.registry.describe(type(entry.value))
        if nested is not None and nested.type_info is not None:
            raise ShapeError(
                f'Unwrapped property "{entry.prop.name}" holds a {type(entry.value).__name__}, '
                "which requires type information and cannot be unwrapped",
                **ctx.child(entry.key).located(),
            )
        if not isinstance(value, dict):
            raise ShapeError(
                f'Unwrapped property "{entry.prop.name}" must serialize to an object, '
                f"got {type(value).__name__}",
                **ctx.child(entry.key).located(),
            )
        unwrap = entry.prop.unwrapped
        for key, item in value.items():
            plain[f"{unwrap.prefix}{key}{unwrap.suffix}"] = item

    def _appended(self, descriptor: TypeDescriptor, ctx: TraversalContext) -> dict:
        appended: dict[str, Any] = {}
        for attr in descriptor.append:
            if attr.value not in ctx.attributes:
                if attr.required:
                    raise RequiredValueError(
                        f'Missing required appended attribute "{attr.value}"',
                        **ctx.located(),
                    )
                continue
            value = ctx.attributes[attr.value]
            if not is_included(value, attr.include):
                continue
            appended[attr.output_name] = self.serialize(value, None, ctx.child(attr.output_name))
        return appended
