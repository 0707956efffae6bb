"""
Schema registry: the query interface the engines use to read descriptors.

Descriptors are registered once at startup. ``describe`` merges the
descriptors registered along a class's MRO so a subclass inherits its
bases' properties, polymorphism and identity declarations:

- scalar fields explicitly set on a subclass descriptor override the base
- properties merge by internal name, subclass entries replacing base ones
- ``type_name``, ``creators`` and ``root_name`` describe one class only
  and are never inherited

Queries are idempotent; merged results are cached until the next
registration.
"""

from __future__ import annotations

import logging
import threading

from jsonbind.descriptors import PropertyDescriptor, Role, TypeDescriptor
from jsonbind.errors import SchemaError
from jsonbind.hints import referenced_class

logger = logging.getLogger(__name__)

# Fields that belong to the exact class a descriptor was written for.
_NOT_INHERITED = frozenset({"cls", "properties", "type_name", "creators", "root_name"})


class SchemaRegistry:
    """
    Maps classes to their Type Descriptors.

    Registration is guarded by a lock; after startup the registry is only
    read, so concurrent calls may share one instance.

    Example:
        >>> registry = SchemaRegistry()
        >>> registry.register(TypeDescriptor(cls=Item, properties=(...)))
        >>> registry.describe(Item).properties
    """

    def __init__(self):
        self._declared: dict[type, TypeDescriptor] = {}
        self._merged: dict[type, TypeDescriptor | None] = {}
        self._lock = threading.RLock()

    def register(self, *descriptors: TypeDescriptor) -> None:
        """
        Register one or more descriptors.

        Reference pairing is validated once all given descriptors are in
        place, so mutually referencing types can be registered together.

        Raises:
            SchemaError: A forward reference and its back reference point
                at incompatible types.
        """
        with self._lock:
            previous = dict(self._declared)
            for descriptor in descriptors:
                if descriptor.cls in self._declared:
                    logger.debug(f"Replacing descriptor of {descriptor.cls.__name__}")
                self._declared[descriptor.cls] = descriptor
            self._merged.clear()
            try:
                for cls in list(self._declared):
                    self._check_links(cls)
            except SchemaError:
                self._declared = previous
                self._merged.clear()
                raise

    def is_registered(self, cls: type) -> bool:
        return cls in self._declared

    def describe(self, cls: type) -> TypeDescriptor | None:
        """
        Return the merged descriptor of ``cls``, or None when neither the
        class nor any of its bases is registered.
        """
        try:
            return self._merged[cls]
        except KeyError:
            pass
        with self._lock:
            merged = self._merge(cls)
            self._merged[cls] = merged
            return merged

    def describe_property(self, cls: type, name: str) -> PropertyDescriptor | None:
        descriptor = self.describe(cls)
        if descriptor is None:
            return None
        return descriptor.get_property(name)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _merge(self, cls: type) -> TypeDescriptor | None:
        chain = [self._declared[base] for base in reversed(cls.__mro__) if base in self._declared]
        if not chain:
            return None

        fields: dict = {}
        properties: dict[str, PropertyDescriptor] = {}
        for descriptor in chain:
            for name in descriptor.model_fields_set - _NOT_INHERITED:
                fields[name] = getattr(descriptor, name)
            for prop in descriptor.properties:
                properties[prop.name] = prop

        own = self._declared.get(cls)
        if own is not None:
            for name in ("type_name", "creators", "root_name"):
                fields[name] = getattr(own, name)

        if own is not None and len(chain) == 1:
            return own
        return TypeDescriptor(cls=cls, properties=tuple(properties.values()), **fields)

    def _check_links(self, cls: type) -> None:
        descriptor = self.describe(cls)
        if descriptor is None:
            return
        for prop in descriptor.properties:
            if prop.unwrapped is not None:
                nested = self.describe(prop.hint)
                if nested is not None and nested.type_info is not None:
                    raise SchemaError(
                        f'Unwrapped property "{prop.name}" refers to {prop.hint.__name__}, '
                        "which declares type information",
                        type_name=cls.__name__,
                    )
            if prop.role is not Role.FORWARD:
                continue
            child = referenced_class(prop.hint)
            child_descriptor = self.describe(child) if child is not None else None
            if child_descriptor is None:
                continue
            for back in child_descriptor.properties:
                if back.role is not Role.BACK or back.reference != prop.reference:
                    continue
                target = referenced_class(back.hint)
                if target is None:
                    continue
                if not (issubclass(cls, target) or issubclass(target, cls)):
                    raise SchemaError(
                        f'Back reference "{back.name}" of {child.__name__} expects '
                        f'{target.__name__}, but forward reference "{prop.name}" is declared '
                        f"on {cls.__name__}",
                        type_name=cls.__name__,
                    )
