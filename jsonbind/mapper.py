"""
ObjectMapper: the entry points that turn objects into JSON and back.

The mapper owns the long-lived, shared pieces (schema registry, custom
converters, default feature sets) and creates fresh per-call state
(traversal context, identity map or arena) on every call, so one mapper
can be shared between threads once its registries are populated.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping

from jsonbind.context import TraversalContext
from jsonbind.converters import ConverterRegistry
from jsonbind.deserializer import Deserializer
from jsonbind.errors import ShapeError
from jsonbind.features import DeserializationFeatures, Filter, SerializationFeatures
from jsonbind.identity import DeserializationArena, SerializationIdentities
from jsonbind.registry import SchemaRegistry
from jsonbind.serializer import Serializer

logger = logging.getLogger(__name__)


def _type_label(hint: Any) -> str:
    return getattr(hint, "__name__", None) or repr(hint)


class ObjectMapper:
    """
    Facade over the serialization and deserialization engines.

    Attributes:
        registry: Schema registry shared by every call.
        converters: Global custom converters shared by every call.
        serialization_features: Default serialization features.
        deserialization_features: Default deserialization features.

    Example:
        >>> mapper = ObjectMapper()
        >>> mapper.registry.register(TypeDescriptor(cls=User, properties=(...)))
        >>> text = mapper.stringify(user)
        >>> user = mapper.parse(text, User)

    Per-call options:
        views: Active view classes; properties outside them are skipped.
        attributes: Values for appended synthetic properties.
        filters: Filter groups by id.
        injectables: Values for injected properties and creator arguments.
        creator_name: Creator to use for the top-level type.
        features: Dict of feature overrides for this call only.
    """

    def __init__(
        self,
        registry: SchemaRegistry | None = None,
        converters: ConverterRegistry | None = None,
        serialization_features: SerializationFeatures | None = None,
        deserialization_features: DeserializationFeatures | None = None,
    ):
        self.registry = registry if registry is not None else SchemaRegistry()
        self.converters = converters if converters is not None else ConverterRegistry()
        self.serialization_features = serialization_features or SerializationFeatures()
        self.deserialization_features = deserialization_features or DeserializationFeatures()
        self._serializer = Serializer()
        self._deserializer = Deserializer()

    # =========================================================================
    # Contexts
    # =========================================================================

    def serialization_context(
        self,
        value: Any,
        *,
        views: tuple[type, ...] | None = None,
        attributes: Mapping[str, Any] | None = None,
        filters: Mapping[str, Filter] | None = None,
        features: Mapping[str, Any] | None = None,
    ) -> TraversalContext:
        return TraversalContext(
            registry=self.registry,
            converters=self.converters,
            features=self.serialization_features.with_overrides(features),
            identities=SerializationIdentities(),
            views=tuple(views) if views is not None else None,
            attributes=dict(attributes or {}),
            filters=dict(filters or {}),
            root_type=type(value).__name__,
        )

    def deserialization_context(
        self,
        hint: Any,
        *,
        views: tuple[type, ...] | None = None,
        injectables: Mapping[str, Any] | None = None,
        creator_name: str | None = None,
        features: Mapping[str, Any] | None = None,
    ) -> TraversalContext:
        return TraversalContext(
            registry=self.registry,
            converters=self.converters,
            features=self.deserialization_features.with_overrides(features),
            identities=DeserializationArena(),
            views=tuple(views) if views is not None else None,
            injectables=dict(injectables or {}),
            creator_name=creator_name,
            root_type=_type_label(hint),
        )

    # =========================================================================
    # Plain values
    # =========================================================================

    def to_builtins(self, value: Any, hint: Any = None, **options) -> Any:
        """
        Serialize ``value`` into nested dicts, lists and scalars.

        Args:
            value: The object graph to serialize.
            hint: Declared type of ``value``; defaults to its runtime type.
            **options: Per-call options (see the class docstring).

        Returns:
            A plain value tree ready for ``json.dumps``.

        Raises:
            JsonBindError: The graph cannot be serialized.
        """
        ctx = self.serialization_context(value, **options)
        logger.debug(f"Serializing {ctx.root_type}")
        return self._serializer.serialize(value, hint, ctx)

    def from_builtins(self, data: Any, hint: Any = None, **options) -> Any:
        """
        Deserialize a plain value tree into ``hint``.

        Forward identity references left unresolved when the traversal
        ends fail the call unless ``fail_on_unresolved_object_ids`` is off.

        Args:
            data: Plain value tree, as returned by ``json.loads``.
            hint: Target type, e.g. ``User`` or ``list[Animal]``.
            **options: Per-call options (see the class docstring).

        Returns:
            The materialized object graph.

        Raises:
            JsonBindError: The data cannot be deserialized into ``hint``.
        """
        ctx = self.deserialization_context(hint, **options)
        logger.debug(f"Deserializing {ctx.root_type}")
        result = self._deserializer.deserialize(data, hint, ctx)
        ctx.identities.finish(ctx.features.fail_on_unresolved_object_ids)
        return result

    # =========================================================================
    # Text
    # =========================================================================

    def stringify(self, value: Any, hint: Any = None, *, indent: int | None = None, **options) -> str:
        """
        Serialize ``value`` to JSON text.

        Output is compact unless ``indent`` is given.
        """
        plain = self.to_builtins(value, hint, **options)
        if indent is None:
            return json.dumps(plain, separators=(",", ":"), ensure_ascii=False)
        return json.dumps(plain, indent=indent, ensure_ascii=False)

    def parse(self, text: str | bytes, hint: Any = None, **options) -> Any:
        """
        Parse JSON text into ``hint``.

        Raises:
            ShapeError: ``text`` is not valid JSON.
            JsonBindError: The document cannot be deserialized into ``hint``.
        """
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ShapeError(f"Invalid JSON document: {e}") from e
        return self.from_builtins(data, hint, **options)
