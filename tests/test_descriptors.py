"""
Tests for descriptors and the schema registry.

Tests cover:
1. Conflicting declarations rejected when a descriptor is built
2. Link checks run at registration, with rollback
3. Descriptor merging along the class hierarchy
"""

import pytest

from jsonbind import (
    Creator,
    CreatorParam,
    IdentityInfo,
    IdGenerator,
    Naming,
    PropertyDescriptor,
    Role,
    SchemaError,
    SchemaRegistry,
    SubType,
    TypeDescriptor,
    TypeInfo,
    Unwrap,
)


# =============================================================================
# Module-Level Test Classes
# =============================================================================

class Base:
    pass


class Derived(Base):
    pass


class Other:
    pass


class Parent:
    pass


class Child:
    pass


class TestPropertyDescriptor:
    """Single property checks."""

    def test_output_name_with_naming(self):
        """The naming strategy applies unless an explicit name is given."""
        assert PropertyDescriptor(name="first_name").output_name(Naming.KEBAB_CASE) == "first-name"
        assert PropertyDescriptor(name="first_name", json_name="fn").output_name(Naming.KEBAB_CASE) == "fn"

    def test_input_names_include_aliases(self):
        """Aliases follow the primary name."""
        prop = PropertyDescriptor(name="x", aliases=("left", "x"))
        assert prop.input_names() == ("x", "left")

    def test_empty_name(self):
        """A property needs a name."""
        with pytest.raises(SchemaError):
            PropertyDescriptor(name="")

    def test_unwrapped_needs_class(self):
        """Unwrapping needs a class to read the nested names from."""
        with pytest.raises(SchemaError, match="Unwrapped"):
            PropertyDescriptor(name="n", hint="Name", unwrapped=Unwrap())

    def test_forward_needs_hint(self):
        """A forward reference must name the referenced type."""
        with pytest.raises(SchemaError, match="Forward reference"):
            PropertyDescriptor(name="items", role=Role.FORWARD)

    def test_descriptors_are_frozen(self):
        """Descriptors cannot be changed after construction."""
        prop = PropertyDescriptor(name="x")
        with pytest.raises(Exception):
            prop.name = "y"


class TestTypeDescriptor:
    """Whole-type checks."""

    def test_duplicate_property(self):
        """A property name may appear only once."""
        with pytest.raises(SchemaError, match="declared twice"):
            TypeDescriptor(cls=Base, properties=(PropertyDescriptor(name="a"), PropertyDescriptor(name="a")))

    def test_duplicate_output_name(self):
        """Two properties cannot write the same key."""
        with pytest.raises(SchemaError, match='both write "a"'):
            TypeDescriptor(
                cls=Base,
                properties=(PropertyDescriptor(name="a"), PropertyDescriptor(name="b", json_name="a")),
            )

    def test_ignored_property_does_not_conflict(self):
        """Ignored properties are left out of the name checks."""
        TypeDescriptor(
            cls=Base,
            properties=(PropertyDescriptor(name="a"), PropertyDescriptor(name="b", json_name="a", ignore=True)),
        )

    def test_duplicate_alias(self):
        """Two properties cannot read the same key."""
        with pytest.raises(SchemaError, match='both read "x"'):
            TypeDescriptor(
                cls=Base,
                properties=(PropertyDescriptor(name="x"), PropertyDescriptor(name="y", aliases=("x",))),
            )

    def test_duplicate_back_reference_names(self):
        """Back references sharing a pair name are ambiguous."""
        with pytest.raises(SchemaError, match="Multiple back-reference properties"):
            TypeDescriptor(
                cls=Child,
                properties=(
                    PropertyDescriptor(name="owner", hint=Parent, role=Role.BACK),
                    PropertyDescriptor(name="holder", hint=Parent, role=Role.BACK),
                ),
            )

    def test_order_names_unknown_property(self):
        """The explicit order may only name declared properties."""
        with pytest.raises(SchemaError, match="unknown property"):
            TypeDescriptor(cls=Base, properties=(PropertyDescriptor(name="a"),), order=("b",))

    def test_property_identity_needs_property(self):
        """A PROPERTY id generator must name an existing property."""
        with pytest.raises(SchemaError, match="Invalid Object Id definition"):
            TypeDescriptor(
                cls=Base,
                identity=IdentityInfo(generator=IdGenerator.PROPERTY, property="id"),
                properties=(PropertyDescriptor(name="name"),),
            )

    def test_creator_param_unknown_property(self):
        """Creator parameters may only bind declared properties."""
        with pytest.raises(SchemaError, match="unknown property"):
            TypeDescriptor(
                cls=Base,
                properties=(PropertyDescriptor(name="a"),),
                creators=(Creator(params=(CreatorParam(name="b", property="b"),)),),
            )

    def test_duplicate_creator_name(self):
        """Creator names are unique per type."""
        with pytest.raises(SchemaError, match="declared twice"):
            TypeDescriptor(cls=Base, creators=(Creator(), Creator()))

    def test_ordered_properties(self):
        """Ordered names first, then the rest, optionally sorted."""
        descriptor = TypeDescriptor(
            cls=Base,
            properties=(PropertyDescriptor(name="c"), PropertyDescriptor(name="a"), PropertyDescriptor(name="b")),
            order=("b",),
        )
        assert [p.name for p in descriptor.ordered_properties()] == ["b", "c", "a"]
        assert [p.name for p in descriptor.ordered_properties(alphabetic=True)] == ["b", "a", "c"]

    def test_error_names_the_type(self):
        """Schema errors carry the declaring type name."""
        with pytest.raises(SchemaError) as excinfo:
            TypeDescriptor(cls=Other, properties=(PropertyDescriptor(name="a"),), order=("z",))
        assert "Other" in str(excinfo.value)


class TestRegistry:
    """Registration and merging."""

    def test_unregistered(self):
        """Classes without descriptors are not described."""
        assert SchemaRegistry().describe(Base) is None

    def test_subclass_inherits_properties(self):
        """A subclass without its own descriptor uses its ancestors'."""
        registry = SchemaRegistry()
        registry.register(TypeDescriptor(cls=Base, properties=(PropertyDescriptor(name="a"),)))
        merged = registry.describe(Derived)
        assert merged.cls is Derived
        assert [p.name for p in merged.properties] == ["a"]

    def test_subclass_adds_and_overrides(self):
        """Subclass declarations override same-named properties and add new ones."""
        registry = SchemaRegistry()
        registry.register(
            TypeDescriptor(cls=Base, properties=(PropertyDescriptor(name="a"), PropertyDescriptor(name="b"))),
            TypeDescriptor(cls=Derived, properties=(PropertyDescriptor(name="b", json_name="B"), PropertyDescriptor(name="c"))),
        )
        merged = registry.describe(Derived)
        assert [p.output_name() for p in merged.properties] == ["a", "B", "c"]
        assert registry.describe_property(Derived, "b").json_name == "B"

    def test_type_settings_inherited_but_not_names(self):
        """Type info is inherited; the type name and root name are not."""
        registry = SchemaRegistry()
        registry.register(TypeDescriptor(
            cls=Base,
            type_info=TypeInfo(),
            subtypes=(SubType(cls=Derived),),
            type_name="base",
            root_name="root",
        ))
        merged = registry.describe(Derived)
        assert merged.type_info is not None
        assert merged.type_name is None
        assert merged.root_name is None

    def test_incompatible_reference_pair(self):
        """A back reference expecting another owner type is rejected."""
        registry = SchemaRegistry()
        with pytest.raises(SchemaError, match="Back reference"):
            registry.register(
                TypeDescriptor(
                    cls=Parent,
                    properties=(PropertyDescriptor(name="children", hint=list[Child], role=Role.FORWARD),),
                ),
                TypeDescriptor(
                    cls=Child,
                    properties=(PropertyDescriptor(name="owner", hint=Other, role=Role.BACK),),
                ),
            )

    def test_failed_registration_rolls_back(self):
        """A rejected registration leaves the registry unchanged."""
        registry = SchemaRegistry()
        registry.register(TypeDescriptor(
            cls=Child,
            properties=(PropertyDescriptor(name="owner", hint=Other, role=Role.BACK),),
        ))
        with pytest.raises(SchemaError):
            registry.register(TypeDescriptor(
                cls=Parent,
                properties=(PropertyDescriptor(name="children", hint=list[Child], role=Role.FORWARD),),
            ))
        assert not registry.is_registered(Parent)
        assert registry.is_registered(Child)

    def test_unwrapped_polymorphic_type_rejected(self):
        """Unwrapping a type that declares type information is rejected."""
        registry = SchemaRegistry()
        with pytest.raises(SchemaError, match="type information"):
            registry.register(
                TypeDescriptor(cls=Base, type_info=TypeInfo(), subtypes=(SubType(cls=Derived),)),
                TypeDescriptor(cls=Other, properties=(PropertyDescriptor(name="inner", hint=Base, unwrapped=Unwrap()),)),
            )

    def test_reregistration_replaces(self):
        """Registering a class again replaces its descriptor."""
        registry = SchemaRegistry()
        registry.register(TypeDescriptor(cls=Base, properties=(PropertyDescriptor(name="a"),)))
        registry.register(TypeDescriptor(cls=Base, properties=(PropertyDescriptor(name="z"),)))
        assert [p.name for p in registry.describe(Base).properties] == ["z"]
