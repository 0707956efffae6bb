"""
Traversal context threaded through one serialize/deserialize call.

The context is immutable: every descent forks it with
``dataclasses.replace``, so sibling branches never see each other's path
sets. The identity state object is the one deliberately shared piece; it
is created per call and is append-only for the call's duration.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Optional

from jsonbind.converters import ConverterRegistry
from jsonbind.errors import PathKey
from jsonbind.features import DeserializationFeatures, Filter, SerializationFeatures
from jsonbind.identity import enter_path
from jsonbind.registry import SchemaRegistry


@dataclass(frozen=True)
class TraversalContext:
    """
    Per-call state of a traversal.

    Attributes:
        registry: Schema registry queried for descriptors.
        converters: Global custom converter lists.
        features: Feature set of the current direction.
        identities: SerializationIdentities or DeserializationArena.
        views: Active views; None means no view filtering.
        attributes: Attribute bag feeding appended properties.
        filters: Filter groups by id.
        injectables: Injected values by key (deserialization).
        creator_name: Creator requested for the top-level type.
        on_path: ``id()`` of every object on the current root-to-node path.
        chain: Keys followed from the root, for error messages.
        root_type: Name of the top-level value's type.
        depth: Nesting depth; root wrapping only applies at depth 0.
        local_filter: Filter a parent property imposes on this node's keys.
    """

    registry: SchemaRegistry
    converters: ConverterRegistry
    features: SerializationFeatures | DeserializationFeatures
    identities: Any
    views: Optional[tuple[type, ...]] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)
    filters: Mapping[str, Filter] = field(default_factory=dict)
    injectables: Mapping[str, Any] = field(default_factory=dict)
    creator_name: Optional[str] = None
    on_path: frozenset[int] = frozenset()
    chain: tuple[PathKey, ...] = ()
    root_type: Optional[str] = None
    depth: int = 0
    local_filter: Optional[Filter] = None

    def enter(self, obj: Any) -> "TraversalContext":
        """Mark ``obj`` as being on the current path."""
        return replace(self, on_path=enter_path(self.on_path, obj))

    def child(self, key: PathKey, local_filter: Filter | None = None) -> "TraversalContext":
        """Fork the context for the value found under ``key``."""
        return replace(
            self,
            chain=self.chain + (key,),
            depth=self.depth + 1,
            local_filter=local_filter,
            creator_name=None,
        )

    def located(self) -> dict:
        """Keyword arguments locating this node in an error message."""
        return {"type_name": self.root_type, "chain": self.chain}

    def filter_named(self, filter_id: str | None) -> Filter | None:
        if filter_id is None:
            return None
        return self.filters.get(filter_id)
