"""
Global custom converters.

A converter is a ``fn(value, context) -> replacement`` registered for a
predicate type with an ``order``. The engines consult these lists before
any per-type schema logic; matching converters run in ascending order,
ties keeping registration order.
"""

from __future__ import annotations

from typing import Any, Callable, NamedTuple

Converter = Callable[[Any, Any], Any]


class ConverterEntry(NamedTuple):
    python_type: type
    order: int
    fn: Converter


class ConverterRegistry:
    """
    Ordered serializer and deserializer lists.

    Like the schema registry, these lists are appended to at startup and
    only read afterwards.

    Example:
        >>> converters = ConverterRegistry()
        >>> converters.register_serializer(Money, lambda m, ctx: str(m.amount))
        >>> converters.register_deserializer(Money, lambda v, ctx: Money(v))
    """

    def __init__(self):
        self._serializers: list[ConverterEntry] = []
        self._deserializers: list[ConverterEntry] = []

    def register_serializer(
        self,
        python_type: type | tuple[type, ...],
        fn: Converter,
        order: int = 0,
    ) -> None:
        """
        Register a serializer for one or more Python types.

        Args:
            python_type: The type(s) whose instances (subclasses included)
                the converter applies to.
            fn: ``fn(value, context)`` returning the replacement value.
            order: Lower runs first.
        """
        _add(self._serializers, python_type, fn, order)

    def register_deserializer(
        self,
        python_type: type | tuple[type, ...],
        fn: Converter,
        order: int = 0,
    ) -> None:
        """
        Register a deserializer for one or more target types.

        ``fn`` receives the plain input value and returns the instance.
        """
        _add(self._deserializers, python_type, fn, order)

    def serializers_for(self, value_type: type) -> list[Converter]:
        return _matching(self._serializers, value_type)

    def deserializers_for(self, target: type | None) -> list[Converter]:
        if target is None:
            return []
        return _matching(self._deserializers, target)


def _add(entries: list[ConverterEntry], python_type, fn: Converter, order: int) -> None:
    types_ = python_type if isinstance(python_type, tuple) else (python_type,)
    for t in types_:
        entries.append(ConverterEntry(t, order, fn))
    # sort() is stable, so equal orders keep registration order.
    entries.sort(key=lambda entry: entry.order)


def _matching(entries: list[ConverterEntry], cls: type) -> list[Converter]:
    return [entry.fn for entry in entries if issubclass(cls, entry.python_type)]
