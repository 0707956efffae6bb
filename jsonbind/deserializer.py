"""
Deserialization engine: plain value tree + target type -> object graph.

The Deserializer is driven by a type hint. Containers, unions and
scalars are handled structurally; described classes go through these
steps:

1. global custom deserializers, then the type's own deserializer
2. identity lookup (a known id returns the existing instance, an
   unknown scalar id becomes a placeholder patched later)
3. polymorphic re-targeting through the type resolver
4. ignored types become null
5. root unwrapping (top level only)
6. un-flattening of unwrapped properties
7. external -> internal name mapping, dropping read-only and ignored
   inputs and enforcing required properties
8. raw passthrough and per-property deserializers
9. creator selection and argument binding
10. instance creation, recorded in the identity arena before any child
11. remaining keys: declared properties, owned attributes, any-setter,
    else the unknown-property policy
12. back references set on every child of a forward reference
"""

from __future__ import annotations

import functools
import json
import logging
import typing
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, get_args
from uuid import UUID

from jsonbind.context import TraversalContext
from jsonbind.descriptors import (
    Access,
    CreatorMode,
    IdGenerator,
    PropertyDescriptor,
    Role,
    Shape,
    TypeDescriptor,
)
from jsonbind.errors import (
    JsonBindError,
    RequiredValueError,
    ShapeError,
    UnknownPropertyError,
)
from jsonbind.formats import decode_scalar, default_for_null, parse_formatted
from jsonbind.hints import (
    container_kind,
    element_hint,
    is_literal,
    is_union,
    mapping_hints,
    target_class,
    tuple_hints,
    union_members,
)
from jsonbind.identity import UnresolvedReference
from jsonbind.naming import apply_naming, to_attribute_name
from jsonbind.references import pair_back_references
from jsonbind.resolver import resolve_subtype

logger = logging.getLogger(__name__)

_MISSING = object()

_PRIMITIVE_TYPES = (str, int, float, bool)

_SCALAR_CLASSES = (date, Decimal, Enum, UUID, bytes, bytearray)


@functools.lru_cache(maxsize=None)
def _class_hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError):
        return dict(getattr(cls, "__annotations__", {}))


def _owns(instance: Any, cls: type, name: str) -> bool:
    """
    Whether ``instance`` has a data slot called ``name`` to copy a key into.

    Methods, properties and private names are never owned slots.
    """
    if name.startswith("_"):
        return False
    if name in getattr(instance, "__dict__", {}):
        return True
    if name in _class_hints(cls):
        return True
    return any(name in getattr(klass, "__slots__", ()) for klass in cls.__mro__)


class Deserializer:
    """
    Recursive plain value -> object graph transform.

    Like the Serializer, it keeps no per-call state of its own.

    Example:
        >>> ctx = mapper.deserialization_context(list[Animal])
        >>> animals = Deserializer().deserialize(data, list[Animal], ctx)
    """

    def deserialize(self, value: Any, hint: Any, ctx: TraversalContext, prop: PropertyDescriptor | None = None) -> Any:
        """
        Deserialize ``value`` into the type ``hint`` designates.

        Args:
            value: Plain value tree (as produced by ``json.loads``).
            hint: Target type; None or Any returns ``value`` unchanged.
            ctx: Traversal context of this node.
            prop: Property holding the value, for its content and key
                converters.

        Returns:
            The materialized value.

        Raises:
            TypeResolutionError: Unresolvable discriminator or identity.
            RequiredValueError: A required property or argument is absent.
            ShapeError: The value does not have the expected shape.
            UnknownPropertyError: Input key without destination.
        """
        if hint is None or hint is Any:
            return value

        if is_union(hint):
            if value is None:
                return None
            members = union_members(hint)
            if len(members) > 1:
                return self._deserialize_union(value, members, ctx)
            hint = members[0]

        if is_literal(hint):
            if value not in get_args(hint):
                raise ShapeError(f"{value!r} is not one of {get_args(hint)!r}", **ctx.located())
            return value

        kind = container_kind(hint)
        if kind is not None:
            return self._deserialize_container(value, hint, kind, ctx, prop)

        cls = target_class(hint)
        if cls is None or cls is object:
            return value

        converters = ctx.converters.deserializers_for(cls)
        descriptor = ctx.registry.describe(cls)
        if descriptor is not None and descriptor.deserializer is not None:
            converters = [*converters, descriptor.deserializer]
        if converters:
            for fn in converters:
                value = fn(value, ctx)
            return value

        if value is None:
            return self._null(cls, ctx)
        if cls in _PRIMITIVE_TYPES:
            return self._primitive(value, cls, ctx)
        if issubclass(cls, _SCALAR_CLASSES):
            try:
                return decode_scalar(value, cls)
            except (TypeError, ValueError) as e:
                raise ShapeError(f"Cannot read {cls.__name__} from {value!r}: {e}", **ctx.located()) from e
        return self._deserialize_object(value, cls, descriptor, ctx)

    # -------------------------------------------------------------------------
    # Scalars
    # -------------------------------------------------------------------------

    def _null(self, cls: type, ctx: TraversalContext) -> Any:
        default = default_for_null(cls, ctx.features)
        if default is not None:
            return default
        if cls in (int, float, bool) and ctx.features.fail_on_null_for_primitives:
            raise RequiredValueError(f"Cannot map null into primitive type {cls.__name__}", **ctx.located())
        return None

    def _primitive(self, value: Any, cls: type, ctx: TraversalContext) -> Any:
        features = ctx.features
        coerce = features.allow_coercion_of_scalars

        if cls is bool:
            if isinstance(value, bool):
                return value
            if coerce and isinstance(value, str) and value.lower() in ("true", "false"):
                return value.lower() == "true"
            if coerce and isinstance(value, int):
                return bool(value)
        elif cls is int:
            if isinstance(value, int) and not isinstance(value, bool):
                return value
            if isinstance(value, float) and features.accept_float_as_int:
                return int(value)
            if coerce and isinstance(value, str):
                try:
                    return int(value)
                except ValueError:
                    pass
        elif cls is float:
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
            if coerce and isinstance(value, str):
                try:
                    return float(value)
                except ValueError:
                    pass
        elif cls is str:
            if isinstance(value, str):
                return value
            if coerce and isinstance(value, bool):
                return "true" if value else "false"
            if coerce and isinstance(value, (int, float)):
                return str(value)

        raise ShapeError(f"Cannot deserialize {type(value).__name__} {value!r} into {cls.__name__}", **ctx.located())

    def _deserialize_union(self, value: Any, members: tuple, ctx: TraversalContext) -> Any:
        for member in members:
            cls = target_class(member)
            if cls in _PRIMITIVE_TYPES and isinstance(value, cls) and not (cls is int and isinstance(value, bool)):
                return value
        errors = []
        for member in members:
            try:
                return self.deserialize(value, member, ctx)
            except (JsonBindError, TypeError, ValueError) as e:
                errors.append(f"{getattr(member, '__name__', member)}: {e}")
        raise ShapeError(f"No member of the union accepts {value!r} ({'; '.join(errors)})", **ctx.located())

    # -------------------------------------------------------------------------
    # Containers
    # -------------------------------------------------------------------------

    def _bind(self, ctx: TraversalContext, value: Any, fixup) -> None:
        if isinstance(value, UnresolvedReference):
            ctx.identities.defer(value, fixup)

    def _map_key(self, key: str, key_hint: Any, ctx: TraversalContext) -> Any:
        cls = target_class(key_hint)
        if cls is None or cls is str:
            return key
        if cls is int:
            return int(key)
        if cls is float:
            return float(key)
        if cls is bool:
            return key == "true"
        if isinstance(key, str) and key.lstrip("-").isdigit() and issubclass(cls, _SCALAR_CLASSES):
            try:
                return decode_scalar(int(key), cls)
            except (TypeError, ValueError):
                pass
        try:
            return decode_scalar(key, cls)
        except (TypeError, ValueError) as e:
            raise ShapeError(f"Cannot read map key {key!r} as {cls.__name__}: {e}", **ctx.located()) from e

    def _deserialize_container(self, value: Any, hint: Any, kind: type, ctx: TraversalContext, prop: PropertyDescriptor | None) -> Any:
        if value is None:
            return None
        content_deserializer = prop.content_deserializer if prop is not None else None

        if kind is dict:
            if not isinstance(value, dict):
                raise ShapeError(f"Expected a JSON object, got {type(value).__name__}", **ctx.located())
            key_hint, value_hint = mapping_hints(hint)
            result: dict = {}
            for key, item in value.items():
                child = ctx.child(key)
                if prop is not None and prop.key_deserializer is not None:
                    out_key = prop.key_deserializer(key, child)
                else:
                    out_key = self._map_key(key, key_hint, child)
                if content_deserializer is not None:
                    result[out_key] = content_deserializer(item, child)
                else:
                    result[out_key] = self.deserialize(item, value_hint, child)
                self._bind(ctx, result[out_key], lambda instance, k=out_key: result.__setitem__(k, instance))
            return result

        if not isinstance(value, list):
            raise ShapeError(f"Expected a JSON array, got {type(value).__name__}", **ctx.located())

        positional = tuple_hints(hint) if kind is tuple else None
        if positional is not None and len(positional) != len(value):
            raise ShapeError(
                f"Expected an array of length {len(positional)}, got {len(value)}",
                **ctx.located(),
            )
        item_hint = element_hint(hint)
        items: list = []
        for index, item in enumerate(value):
            child = ctx.child(index)
            if content_deserializer is not None:
                items.append(content_deserializer(item, child))
            else:
                items.append(self.deserialize(item, positional[index] if positional else item_hint, child))
            self._bind(ctx, items[index], lambda instance, i=index: items.__setitem__(i, instance))

        if kind is list:
            return items
        if kind is set:
            result_set = set(items)
            for item in items:
                self._bind(ctx, item, lambda instance, ref=item: (result_set.discard(ref), result_set.add(instance)))
            return result_set
        return kind(items)

    # -------------------------------------------------------------------------
    # Objects
    # -------------------------------------------------------------------------

    def _plain_object(self, value: Any, cls: type, ctx: TraversalContext) -> Any:
        if not isinstance(value, dict):
            raise ShapeError(f"Cannot deserialize {type(value).__name__} into {cls.__name__}", **ctx.located())
        instance = cls.__new__(cls)
        hints = _class_hints(cls)
        for key, item in value.items():
            setattr(instance, key, self.deserialize(item, hints.get(key), ctx.child(key)))
        return instance

    def _unwrap_root(self, value: Any, descriptor: TypeDescriptor, ctx: TraversalContext) -> Any:
        root = descriptor.root_name or descriptor.cls.__name__
        if not isinstance(value, dict) or list(value) != [root]:
            found = list(value) if isinstance(value, dict) else type(value).__name__
            raise ShapeError(
                f'Root name "{root}" does not match the expected wrapper, found {found}',
                **ctx.located(),
            )
        return value[root]

    def _already_seen(self, value: Any, descriptor: TypeDescriptor, cls: type, ctx: TraversalContext) -> Any:
        info = descriptor.identity
        if isinstance(value, list):
            return None
        if isinstance(value, dict):
            if info.property not in value:
                return None
            return ctx.identities.lookup(info, value[info.property], cls, ctx.root_type, ctx.chain)
        found = ctx.identities.lookup(info, value, cls, ctx.root_type, ctx.chain)
        if found is not None:
            return found
        return ctx.identities.placeholder(info, value)

    def _deserialize_object(self, value: Any, cls: type, descriptor: TypeDescriptor | None, ctx: TraversalContext) -> Any:
        features = ctx.features
        if isinstance(value, list) and not value and features.accept_empty_array_as_null_object:
            return None
        if value == "" and features.accept_empty_string_as_null_object:
            return None
        if descriptor is None:
            return self._plain_object(value, cls, ctx)

        if ctx.depth == 0 and features.unwrap_root_value:
            value = self._unwrap_root(value, descriptor, ctx)

        if descriptor.identity is not None:
            found = self._already_seen(value, descriptor, cls, ctx)
            if found is not None:
                return found

        if descriptor.type_info is not None:
            resolved, value = resolve_subtype(value, descriptor, ctx)
            if resolved is not cls:
                cls = resolved
                descriptor = ctx.registry.describe(cls)
                if descriptor is None:
                    return self._plain_object(value, cls, ctx)

        if descriptor.ignored:
            return None

        if descriptor.format is not None and descriptor.format.shape is Shape.ARRAY and isinstance(value, list):
            value = self._from_positional(value, descriptor, ctx)

        creator = self._select_creator(descriptor, ctx)
        if not isinstance(value, dict):
            if creator is not None and creator.mode is CreatorMode.DELEGATING:
                return (creator.factory or cls)(value)
            raise ShapeError(f"Cannot deserialize {type(value).__name__} into {cls.__name__}", **ctx.located())

        return self._build(dict(value), cls, descriptor, creator, ctx)

    def _from_positional(self, value: list, descriptor: TypeDescriptor, ctx: TraversalContext) -> dict:
        props = [
            prop
            for prop in descriptor.ordered_properties()
            if not descriptor.is_property_ignored(prop)
            and prop.access is not Access.WRITE_ONLY
            and prop.role is not Role.BACK
        ]
        if len(value) > len(props):
            raise ShapeError(
                f"Expected at most {len(props)} values for {descriptor.cls.__name__}, got {len(value)}",
                **ctx.located(),
            )
        return {prop.output_name(descriptor.naming): item for prop, item in zip(props, value)}

    def _select_creator(self, descriptor: TypeDescriptor, ctx: TraversalContext):
        creator = descriptor.creator(ctx.creator_name)
        if creator is None and ctx.creator_name is not None:
            logger.warning(
                f'No creator named "{ctx.creator_name}" on {descriptor.cls.__name__}; using the default'
            )
            creator = descriptor.creator()
        return creator

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

    def _unflatten(self, data: dict, descriptor: TypeDescriptor, ctx: TraversalContext) -> None:
        for prop in descriptor.properties:
            if prop.unwrapped is None:
                continue
            nested = ctx.registry.describe(prop.hint)
            if nested is not None:
                names = [p.output_name(nested.naming) for p in nested.properties]
            else:
                names = list(_class_hints(prop.hint))
            prefix, suffix = prop.unwrapped.prefix, prop.unwrapped.suffix
            gathered = {}
            for name in names:
                key = f"{prefix}{name}{suffix}"
                if key in data:
                    gathered[name] = data.pop(key)
            if gathered:
                data[prop.output_name(descriptor.naming)] = gathered

    def _map_names(self, data: dict, descriptor: TypeDescriptor, ctx: TraversalContext) -> dict[str, tuple[PropertyDescriptor, str, Any]]:
        """
        Move declared properties out of ``data``.

        Returns:
            internal name -> (descriptor, input key, raw value) for every
            property that takes part in deserialization.
        """
        case_insensitive = ctx.features.accept_case_insensitive_properties
        lowered = {key.lower(): key for key in data} if case_insensitive else {}
        mapped: dict[str, tuple[PropertyDescriptor, str, Any]] = {}

        for prop in descriptor.properties:
            key = _MISSING
            for name in prop.input_names(descriptor.naming):
                if name in data:
                    key = name
                    break
                if case_insensitive and name.lower() in lowered:
                    key = lowered[name.lower()]
                    break

            if key is _MISSING:
                if prop.required and not prop.ignore and prop.inject is None:
                    raise RequiredValueError(
                        f'Required property "{prop.output_name(descriptor.naming)}" not found '
                        f"for {descriptor.cls.__name__}",
                        **ctx.located(),
                    )
                continue

            raw = data.pop(key)
            if prop.ignore:
                continue
            if descriptor.is_property_ignored(prop) and not descriptor.allow_setters:
                continue
            if prop.access is Access.READ_ONLY:
                continue
            if not self._in_view(prop, descriptor, ctx):
                continue
            mapped[prop.name] = (prop, key, raw)

        if not descriptor.allow_setters:
            for name in descriptor.ignored_properties:
                data.pop(name, None)
        return mapped

    def _property_value(self, prop: PropertyDescriptor, raw: Any, hint: Any, ctx: TraversalContext) -> Any:
        if prop.raw:
            return json.dumps(raw)
        if prop.deserializer is not None:
            return prop.deserializer(raw, ctx)
        if prop.format is not None:
            try:
                raw = parse_formatted(raw, prop.format, target_class(hint))
            except (TypeError, ValueError) as e:
                raise ShapeError(f'Cannot read formatted value {raw!r} of "{prop.name}": {e}', **ctx.located()) from e
        return self.deserialize(raw, hint, ctx, prop)

    def _assign(self, instance: Any, prop: PropertyDescriptor, value: Any, ctx: TraversalContext) -> None:
        def write(item: Any) -> None:
            if prop.setter is not None:
                prop.setter(instance, item)
            else:
                setattr(instance, prop.name, item)

        write(value)
        self._bind(ctx, value, write)

    def _create(
        self,
        cls: type,
        descriptor: TypeDescriptor,
        creator,
        mapped: dict,
        data: dict,
        ctx: TraversalContext,
    ) -> tuple[Any, list[tuple[PropertyDescriptor, Any]]]:
        """
        Materialize the instance.

        Returns:
            (instance, [(property, value)] of creator arguments bound to
            declared properties, for pairing and fix-ups)
        """
        if creator is None:
            return cls.__new__(cls), []

        factory = creator.factory or cls
        if creator.mode is CreatorMode.DELEGATING:
            whole = {key: raw for _, key, raw in mapped.values()}
            whole.update(data)
            mapped.clear()
            data.clear()
            return factory(whole), []

        features = ctx.features
        kwargs: dict[str, Any] = {}
        bound: list[tuple[PropertyDescriptor, Any]] = []
        for param in creator.params:
            prop = descriptor.get_property(param.property) if param.property else None
            hint = param.hint if param.hint is not None else (prop.hint if prop is not None else None)

            if param.json_name is not None:
                names = (param.json_name,)
            elif prop is not None:
                names = prop.input_names(descriptor.naming)
            else:
                names = (apply_naming(param.name, descriptor.naming),)

            key, raw = _MISSING, _MISSING
            if prop is not None and prop.name in mapped and param.json_name is None:
                _, key, raw = mapped.pop(prop.name)
            else:
                for name in names:
                    if name in data:
                        key, raw = name, data.pop(name)
                        break

            if raw is not _MISSING:
                arg = self._property_value(prop or PropertyDescriptor(name=param.name), raw, hint, ctx.child(key))
                if arg is None and features.fail_on_null_creator_properties:
                    raise RequiredValueError(
                        f'Null value for creator property "{names[0]}" of {cls.__name__}',
                        **ctx.located(),
                    )
            else:
                inject = param.inject or (prop.inject if prop is not None else None)
                if inject is not None and inject in ctx.injectables:
                    arg = ctx.injectables[inject]
                elif param.required or features.fail_on_missing_creator_properties:
                    raise RequiredValueError(
                        f'Missing creator property "{names[0]}" of {cls.__name__}',
                        **ctx.located(),
                    )
                else:
                    arg = None

            kwargs[param.name] = arg
            if prop is not None:
                bound.append((prop, arg))

        return factory(**kwargs), bound

    def _build(self, data: dict, cls: type, descriptor: TypeDescriptor, creator, ctx: TraversalContext) -> Any:
        registry = ctx.registry
        info = descriptor.identity
        object_id = _MISSING
        if info is not None:
            if info.generator is IdGenerator.PROPERTY and info.generator_fn is None:
                object_id = data.get(info.property, _MISSING)
            else:
                object_id = data.pop(info.property, _MISSING)

        self._unflatten(data, descriptor, ctx)
        mapped = self._map_names(data, descriptor, ctx)
        instance, bound = self._create(cls, descriptor, creator, mapped, data, ctx)

        if info is not None and object_id is not _MISSING:
            ctx.identities.record(info, object_id, instance)

        for prop, arg in bound:
            if isinstance(arg, UnresolvedReference):
                self._bind(ctx, arg, lambda item, p=prop: setattr(instance, p.name, item))
            if prop.role is Role.FORWARD and arg is not None:
                pair_back_references(instance, prop, arg, registry)

        provided = {prop.name for prop, _ in bound}
        for name, (prop, key, raw) in mapped.items():
            value = self._property_value(prop, raw, prop.hint, ctx.child(key))
            self._assign(instance, prop, value, ctx)
            provided.add(name)
            if prop.role is Role.FORWARD and value is not None:
                pair_back_references(instance, prop, value, registry)

        self._copy_unknown(instance, cls, descriptor, data, ctx)
        self._inject(instance, descriptor, provided, ctx)
        return instance

    def _copy_unknown(self, instance: Any, cls: type, descriptor: TypeDescriptor, data: dict, ctx: TraversalContext) -> None:
        hints = _class_hints(cls)
        for key, raw in data.items():
            name = to_attribute_name(key) if descriptor.naming is not None else key
            if _owns(instance, cls, name):
                setattr(instance, name, self.deserialize(raw, hints.get(name), ctx.child(key)))
            elif descriptor.any_setter is not None:
                descriptor.any_setter(instance, key, raw)
            elif descriptor.ignore_unknown is False or (
                descriptor.ignore_unknown is None and ctx.features.fail_on_unknown_properties
            ):
                raise UnknownPropertyError(
                    f'Unknown property "{key}" for {cls.__name__}',
                    **ctx.child(key).located(),
                )
            else:
                logger.debug(f'Dropping unknown property "{key}" of {cls.__name__}')

    def _inject(self, instance: Any, descriptor: TypeDescriptor, provided: set[str], ctx: TraversalContext) -> None:
        for prop in descriptor.properties:
            if prop.inject is None or prop.inject not in ctx.injectables:
                continue
            if prop.inject_use_input and prop.name in provided:
                continue
            self._assign(instance, prop, ctx.injectables[prop.inject], ctx)
