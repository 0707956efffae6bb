"""
Identity and cycle tracking for one top-level call.

Three structures, all allocated per call and discarded when it returns:

- SerializationIdentities: object -> assigned id, so a second
  occurrence of an identity-declared object is written as its id
- DeserializationArena: (scope, id) -> instance, so every reference to an
  id resolves to one instance; ids referenced before their object
  appears are held as UnresolvedReference placeholders and patched when
  the object is materialized
- the "on path" set: a frozenset of ``id()`` values carried by the
  traversal context, forked on every descent and never merged, used to
  tell a true cycle from a legitimate re-visit
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable

from jsonbind.descriptors import IdentityInfo, IdGenerator
from jsonbind.errors import TypeResolutionError

logger = logging.getLogger(__name__)

# Scope used when an identity declaration names none.
DEFAULT_SCOPE = ""

_MISSING = object()


def scope_of(info: IdentityInfo) -> str:
    return info.scope if info.scope is not None else DEFAULT_SCOPE


def enter_path(on_path: frozenset[int], obj: Any) -> frozenset[int]:
    """A new path set with ``obj`` added; the original is left untouched."""
    return on_path | {id(obj)}


# =============================================================================
# Serialization
# =============================================================================


class SerializationIdentities:
    """
    Ids assigned to objects during one serialization call.

    Objects are keyed by ``id()``. Every recorded object is also kept in
    ``_refs`` so it cannot be collected and have its ``id()`` reused by a
    different object before the call ends.
    """

    def __init__(self):
        self._ids: dict[int, Any] = {}
        self._refs: list = []
        self._sequence = 0

    def seen(self, obj: Any) -> bool:
        return id(obj) in self._ids

    def id_of(self, obj: Any) -> Any:
        return self._ids[id(obj)]

    def assign(self, obj: Any, info: IdentityInfo, property_value: Any = None) -> Any:
        """
        Generate and record the id of a first occurrence.

        Args:
            obj: The object being written.
            info: Its identity declaration.
            property_value: Current value of the id property, used by
                IdGenerator.PROPERTY.

        Returns:
            The id to write.
        """
        if info.generator_fn is not None:
            object_id = info.generator_fn(obj)
        elif info.generator is IdGenerator.INT_SEQUENCE:
            self._sequence += 1
            object_id = self._sequence
        elif info.generator is IdGenerator.UUID4:
            object_id = str(uuid.uuid4())
        elif info.generator is IdGenerator.UUID1:
            object_id = str(uuid.uuid1())
        elif info.generator is IdGenerator.PROPERTY:
            object_id = property_value
        else:
            object_id = None

        self._ids[id(obj)] = object_id
        self._refs.append(obj)
        return object_id


# =============================================================================
# Deserialization
# =============================================================================


class UnresolvedReference:
    """Stand-in for an id whose object has not been materialized yet."""

    __slots__ = ("scope", "object_id")

    def __init__(self, scope: str, object_id: Any):
        self.scope = scope
        self.object_id = object_id

    def __repr__(self) -> str:
        return f"UnresolvedReference({self.scope!r}, {self.object_id!r})"


class DeserializationArena:
    """
    Instances materialized during one deserialization call, by scoped id.

    Slots holding an UnresolvedReference register a fix-up with
    ``defer``; ``record`` runs the fix-ups as soon as the instance for
    that id exists.
    """

    def __init__(self):
        self._instances: dict[tuple[str, Any], Any] = {}
        self._pending: dict[tuple[str, Any], list[Callable[[Any], None]]] = {}

    def get(self, scope: str, object_id: Any, default: Any = _MISSING) -> Any:
        return self._instances.get((scope, _hashable(object_id)), default)

    def has(self, scope: str, object_id: Any) -> bool:
        return (scope, _hashable(object_id)) in self._instances

    def lookup(self, info: IdentityInfo, object_id: Any, target: type, type_name: str, chain) -> Any:
        """
        Return the instance already recorded for ``object_id``, or None.

        Raises:
            TypeResolutionError: The id belongs to an instance that is not
                a ``target``.
        """
        instance = self.get(scope_of(info), object_id)
        if instance is _MISSING:
            return None
        if not isinstance(instance, target):
            raise TypeResolutionError(
                f'Already had Class "{type(instance).__name__}" for id {object_id!r}',
                type_name=type_name,
                chain=chain,
            )
        return instance

    def record(self, info: IdentityInfo, object_id: Any, instance: Any) -> None:
        key = (scope_of(info), _hashable(object_id))
        self._instances.setdefault(key, instance)
        for fixup in self._pending.pop(key, ()):
            fixup(instance)

    def placeholder(self, info: IdentityInfo, object_id: Any) -> UnresolvedReference:
        logger.debug(f"Forward reference to id {object_id!r} in scope {scope_of(info)!r}")
        return UnresolvedReference(scope_of(info), object_id)

    def defer(self, ref: UnresolvedReference, fixup: Callable[[Any], None]) -> None:
        """Run ``fixup(instance)`` once the referenced instance is recorded."""
        key = (ref.scope, _hashable(ref.object_id))
        if key in self._instances:
            fixup(self._instances[key])
        else:
            self._pending.setdefault(key, []).append(fixup)

    def finish(self, fail_on_unresolved: bool) -> None:
        """
        Settle ids that never got an instance.

        Raises:
            TypeResolutionError: Ids are still unresolved and
                ``fail_on_unresolved`` is set.
        """
        if not self._pending:
            return
        if fail_on_unresolved:
            names = ", ".join(f"{scope}: {object_id}" for scope, object_id in self._pending)
            raise TypeResolutionError(f"Found unresolved Object Ids: {names}")
        # Lenient mode leaves the raw id in place.
        for (_, object_id), fixups in self._pending.items():
            for fixup in fixups:
                fixup(object_id)
        self._pending.clear()


def _hashable(object_id: Any) -> Any:
    if isinstance(object_id, (list, dict)):
        return repr(object_id)
    return object_id
