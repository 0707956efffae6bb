"""
Type and Property Descriptors.

Descriptors are the static schema the engines consume. They are frozen
Pydantic models built explicitly at startup, usually as declarative
literals next to the classes they describe:

    >>> TypeDescriptor(
    ...     cls=User,
    ...     properties=(
    ...         PropertyDescriptor(name="id"),
    ...         PropertyDescriptor(name="items", hint=list[Item], role=Role.FORWARD),
    ...     ),
    ... )

Declarations that contradict each other are rejected with SchemaError
when the descriptor is constructed; checks that need more than one type
(reference pairing) run when the descriptor is registered.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from jsonbind.errors import SchemaError
from jsonbind.naming import Naming, apply_naming

DEFAULT_REFERENCE = "defaultReference"


# =============================================================================
# Enumerations
# =============================================================================


class Access(str, Enum):
    """Which direction a property takes part in."""

    READ_WRITE = "read_write"
    # Serialized only; dropped from input.
    READ_ONLY = "read_only"
    # Deserialized only; never written.
    WRITE_ONLY = "write_only"


class Include(str, Enum):
    """Inclusion policy for a property (or for map entries)."""

    ALWAYS = "always"
    NON_NULL = "non_null"
    NON_EMPTY = "non_empty"
    NON_DEFAULT = "non_default"
    CUSTOM = "custom"


class TypeInfoAs(str, Enum):
    """Wire convention for the polymorphic discriminator."""

    PROPERTY = "property"
    WRAPPER_OBJECT = "wrapper_object"
    WRAPPER_ARRAY = "wrapper_array"


class IdGenerator(str, Enum):
    INT_SEQUENCE = "int_sequence"
    PROPERTY = "property"
    UUID1 = "uuid1"
    UUID4 = "uuid4"
    NONE = "none"


class Shape(str, Enum):
    ANY = "any"
    ARRAY = "array"
    BOOLEAN = "boolean"
    NUMBER_FLOAT = "number_float"
    NUMBER_INT = "number_int"
    OBJECT = "object"
    SCALAR = "scalar"
    STRING = "string"


class CreatorMode(str, Enum):
    # Bind each parameter to an input property.
    PROPERTIES = "properties"
    # Hand the whole input mapping to the factory.
    DELEGATING = "delegating"


class Role(str, Enum):
    NONE = "none"
    FORWARD = "forward"
    BACK = "back"


# =============================================================================
# Option Models
# =============================================================================


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


class FormatSpec(_Frozen):
    """
    Format directive for a property or a whole type.

    Attributes:
        shape: Target shape; ANY keeps the natural encoding.
        pattern: strftime pattern used for dates under Shape.STRING.
        timezone: IANA zone name applied to datetimes before formatting.
        radix: Base used when writing integers as strings.
        to_fixed: Digits after the decimal point for numbers as strings.
        to_precision: Significant digits for numbers as strings.
        to_exponential: Digits after the point in exponential notation.
    """

    shape: Shape = Shape.ANY
    pattern: Optional[str] = None
    timezone: Optional[str] = None
    radix: Optional[int] = None
    to_fixed: Optional[int] = None
    to_precision: Optional[int] = None
    to_exponential: Optional[int] = None


class Unwrap(_Frozen):
    prefix: str = ""
    suffix: str = ""


class TypeInfo(_Frozen):
    use_as: TypeInfoAs = TypeInfoAs.PROPERTY
    property: str = "@type"


class SubType(_Frozen):
    """A known subtype; ``name`` overrides the subtype's own type id."""

    cls: type
    name: Optional[str] = None


class IdentityInfo(_Frozen):
    """
    Identity declaration for a type.

    Attributes:
        generator: How ids are produced for first occurrences.
        property: Name of the id key in the document (for
            IdGenerator.PROPERTY, the external name of an existing property).
        scope: Ids are unique per scope on input; types naming no scope
            share one default scope.
        generator_fn: Callable ``fn(obj) -> id`` overriding ``generator``.
        always_as_id: Emit the id even for the first occurrence.
    """

    generator: IdGenerator = IdGenerator.INT_SEQUENCE
    property: str = "@id"
    scope: Optional[str] = None
    generator_fn: Optional[Callable[[Any], Any]] = None
    always_as_id: bool = False


class AppendAttr(_Frozen):
    """
    Synthetic property filled from the per-call attribute bag.

    Attributes:
        value: Key looked up in the attribute bag.
        prop_name: External name; defaults to ``value``.
        required: Fail when the attribute is not supplied.
        include: Inclusion policy applied to the attribute's value.
    """

    value: str
    prop_name: Optional[str] = None
    required: bool = False
    include: Include = Include.ALWAYS

    @property
    def output_name(self) -> str:
        return self.prop_name or self.value


class CreatorParam(_Frozen):
    """
    Explicit binding of one creator argument.

    The argument is passed as keyword ``name``. Its input key is
    ``json_name`` when given, else the external name of ``property``, else
    ``name`` itself run through the type's naming strategy.
    """

    name: str
    property: Optional[str] = None
    json_name: Optional[str] = None
    required: bool = False
    inject: Optional[str] = None
    hint: Any = None


class Creator(_Frozen):
    factory: Optional[Callable[..., Any]] = None
    name: str = "default"
    mode: CreatorMode = CreatorMode.PROPERTIES
    params: tuple[CreatorParam, ...] = ()


# =============================================================================
# Descriptors
# =============================================================================


class PropertyDescriptor(_Frozen):
    """
    Static schema of one logical property.

    ``include_filter`` and ``content_filter`` follow the CUSTOM inclusion
    convention: they return True when the value must be omitted.
    Converters take ``(value, context)`` and return the replacement.
    """

    name: str
    json_name: Optional[str] = None
    aliases: tuple[str, ...] = ()
    access: Access = Access.READ_WRITE
    hint: Any = None
    required: bool = False
    ignore: bool = False

    include: Optional[Include] = None
    include_filter: Optional[Callable[[Any], bool]] = None
    content_include: Optional[Include] = None
    content_filter: Optional[Callable[[Any], bool]] = None

    serializer: Optional[Callable[..., Any]] = None
    deserializer: Optional[Callable[..., Any]] = None
    content_serializer: Optional[Callable[..., Any]] = None
    content_deserializer: Optional[Callable[..., Any]] = None
    key_serializer: Optional[Callable[..., Any]] = None
    key_deserializer: Optional[Callable[..., Any]] = None
    nulls_serializer: Optional[Callable[..., Any]] = None

    role: Role = Role.NONE
    reference: str = DEFAULT_REFERENCE

    format: Optional[FormatSpec] = None
    raw: bool = False
    filter: Optional[str] = None
    views: Optional[tuple[type, ...]] = None
    unwrapped: Optional[Unwrap] = None
    inject: Optional[str] = None
    inject_use_input: bool = True

    getter: Optional[Callable[[Any], Any]] = None
    setter: Optional[Callable[[Any, Any], None]] = None

    @model_validator(mode="after")
    def _check(self) -> "PropertyDescriptor":
        if not self.name:
            raise SchemaError("Property descriptor needs a non-empty name")
        if self.unwrapped is not None and not isinstance(self.hint, type):
            raise SchemaError(
                f'Unwrapped property "{self.name}" must declare a class type, got {self.hint!r}'
            )
        if self.role is Role.FORWARD and self.hint is None:
            raise SchemaError(
                f'Forward reference "{self.name}" must declare the type it refers to'
            )
        return self

    def output_name(self, naming: Naming | None = None) -> str:
        """External name written on output."""
        if self.json_name is not None:
            return self.json_name
        return apply_naming(self.name, naming)

    def input_names(self, naming: Naming | None = None) -> tuple[str, ...]:
        """Every external name accepted on input, primary first."""
        return (self.output_name(naming),) + tuple(
            alias for alias in self.aliases if alias != self.output_name(naming)
        )


class TypeDescriptor(_Frozen):
    """
    Static schema of one class.

    Attributes:
        cls: The described class.
        properties: Declared properties, in declaration order.
        type_name: Declared type id, used when no subtype table names it.
        type_info: Polymorphism declaration; None disables discriminators.
        subtypes: Known subtypes for resolving discriminators.
        identity: Identity declaration; None means no identity.
        include: Default inclusion for properties without their own.
        naming: Naming strategy for properties without an explicit json_name.
        ignore_unknown: True tolerates unknown input keys, False rejects
            them, None defers to the deserialization features.
        ignored_properties: Internal or external names excluded in both
            directions, unless re-enabled by allow_getters / allow_setters.
        order: Names written first, in this order.
        alphabetic: Sort the remaining properties by external name.
        append: Synthetic attributes taken from the attribute bag.
        prepend: Write the appended attributes before the properties.
        creators: Named alternative constructors.
        ignored: The type is never written or read (becomes null).
        root_name: Key used when wrapping a top-level value.
        value_property: Attribute whose value replaces the whole object.
        filter: Filter-group id applied to this type's own keys.
        views: Default views for properties declaring none.
        any_getter: ``fn(obj) -> dict`` of extra keys to write.
        any_setter: ``fn(obj, key, value)`` receiving unknown input keys.
        serializer: Whole-value converter applied before schema logic.
        deserializer: Whole-value converter applied before schema logic.
        format: Type-level shape; Shape.ARRAY writes values positionally.
    """

    cls: type
    properties: tuple[PropertyDescriptor, ...] = ()
    type_name: Optional[str] = None
    type_info: Optional[TypeInfo] = None
    subtypes: tuple[SubType, ...] = ()
    identity: Optional[IdentityInfo] = None
    include: Optional[Include] = None
    include_filter: Optional[Callable[[Any], bool]] = None
    naming: Optional[Naming] = None
    ignore_unknown: Optional[bool] = None
    ignored_properties: tuple[str, ...] = ()
    allow_getters: bool = False
    allow_setters: bool = False
    order: tuple[str, ...] = ()
    alphabetic: bool = False
    append: tuple[AppendAttr, ...] = ()
    prepend: bool = False
    creators: tuple[Creator, ...] = ()
    ignored: bool = False
    root_name: Optional[str] = None
    value_property: Optional[str] = None
    filter: Optional[str] = None
    views: Optional[tuple[type, ...]] = None
    any_getter: Optional[Callable[[Any], dict]] = None
    any_setter: Optional[Callable[[Any, str, Any], None]] = None
    serializer: Optional[Callable[..., Any]] = None
    deserializer: Optional[Callable[..., Any]] = None
    format: Optional[FormatSpec] = None

    @model_validator(mode="after")
    def _check(self) -> "TypeDescriptor":
        owner = self.cls.__name__
        active = [prop for prop in self.properties if not prop.ignore]

        seen_internal: set[str] = set()
        for prop in self.properties:
            if prop.name in seen_internal:
                raise SchemaError(f'Property "{prop.name}" is declared twice', type_name=owner)
            seen_internal.add(prop.name)

        outputs: dict[str, str] = {}
        inputs: dict[str, str] = {}
        for prop in active:
            name = prop.output_name(self.naming)
            if name in outputs:
                raise SchemaError(
                    f'Properties "{outputs[name]}" and "{prop.name}" both write "{name}"',
                    type_name=owner,
                )
            outputs[name] = prop.name
            for key in prop.input_names(self.naming):
                if key in inputs and inputs[key] != prop.name:
                    raise SchemaError(
                        f'Properties "{inputs[key]}" and "{prop.name}" both read "{key}"',
                        type_name=owner,
                    )
                inputs[key] = prop.name

        back_pairs: dict[str, str] = {}
        for prop in active:
            if prop.role is not Role.BACK:
                continue
            if prop.reference in back_pairs:
                raise SchemaError(
                    f'Multiple back-reference properties with name "{prop.reference}": '
                    f'"{back_pairs[prop.reference]}" and "{prop.name}"',
                    type_name=owner,
                )
            back_pairs[prop.reference] = prop.name

        known = set(seen_internal) | set(outputs)
        for name in self.order:
            if name not in known:
                raise SchemaError(f'Property order names unknown property "{name}"', type_name=owner)

        identity = self.identity
        if (
            identity is not None
            and identity.generator is IdGenerator.PROPERTY
            and identity.generator_fn is None
            and identity.property not in known
        ):
            raise SchemaError(
                f'Invalid Object Id definition: cannot find property with name "{identity.property}"',
                type_name=owner,
            )

        creator_names: set[str] = set()
        for creator in self.creators:
            if creator.name in creator_names:
                raise SchemaError(f'Creator "{creator.name}" is declared twice', type_name=owner)
            creator_names.add(creator.name)
            for param in creator.params:
                if param.property is not None and param.property not in seen_internal:
                    raise SchemaError(
                        f'Creator "{creator.name}" binds "{param.name}" to unknown property '
                        f'"{param.property}"',
                        type_name=owner,
                    )
        return self

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_property(self, name: str) -> PropertyDescriptor | None:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def creator(self, name: str | None = None) -> Creator | None:
        wanted = name or "default"
        for creator in self.creators:
            if creator.name == wanted:
                return creator
        return None

    def ordered_properties(
        self,
        extra: tuple[PropertyDescriptor, ...] = (),
        alphabetic: bool = False,
    ) -> list[PropertyDescriptor]:
        """
        Properties in output order: names listed in ``order`` first, then
        the rest in declaration order, or sorted by external name when the
        type or the caller asks for alphabetic order.

        Args:
            extra: Implicit properties appended after the declared ones.
            alphabetic: Feature-level request for alphabetic order.
        """
        candidates = list(self.properties) + list(extra)
        head: list[PropertyDescriptor] = []
        for name in self.order:
            for prop in candidates:
                if prop not in head and name in (prop.name, prop.output_name(self.naming)):
                    head.append(prop)
                    break
        rest = [prop for prop in candidates if prop not in head]
        if self.alphabetic or alphabetic:
            rest.sort(key=lambda prop: prop.output_name(self.naming))
        return head + rest

    def is_property_ignored(self, prop: PropertyDescriptor) -> bool:
        if prop.ignore:
            return True
        return (
            prop.name in self.ignored_properties
            or prop.output_name(self.naming) in self.ignored_properties
        )
