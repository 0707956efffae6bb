"""
Tests for forward/back reference pairs.

Tests cover:
1. Back references suppressed on output
2. Back references restored on input for single values and containers
3. Named reference pairs
4. The cycle the pair breaks, when the pair is not declared
"""

from typing import Optional

import pytest

from jsonbind import CycleError, PropertyDescriptor, Role, TypeDescriptor


# =============================================================================
# Module-Level Test Classes
# =============================================================================

class User:
    def __init__(self, id, email, items=None):
        self.id = id
        self.email = email
        self.items = items if items is not None else []


class Item:
    def __init__(self, id, name, owner=None):
        self.id = id
        self.name = name
        self.owner = owner


class Folder:
    def __init__(self, name, parent=None, children=None, index=None):
        self.name = name
        self.parent = parent
        self.children = children if children is not None else []
        self.index = index


def make_user():
    user = User(1, "john.alfa@gmail.com")
    user.items = [Item(1, "Book", user), Item(2, "Computer", user)]
    return user


def register_user_items(mapper):
    mapper.registry.register(
        TypeDescriptor(
            cls=User,
            properties=(
                PropertyDescriptor(name="id", hint=int),
                PropertyDescriptor(name="email", hint=str),
                PropertyDescriptor(name="items", hint=list[Item], role=Role.FORWARD),
            ),
        ),
        TypeDescriptor(
            cls=Item,
            properties=(
                PropertyDescriptor(name="id", hint=int),
                PropertyDescriptor(name="name", hint=str),
                PropertyDescriptor(name="owner", hint=User, role=Role.BACK),
            ),
        ),
    )


class TestBackReferences:
    """Forward/back pairs."""

    def test_back_reference_is_omitted(self, mapper):
        """Children are written without the back reference."""
        register_user_items(mapper)
        assert mapper.to_builtins(make_user()) == {
            "id": 1,
            "email": "john.alfa@gmail.com",
            "items": [{"id": 1, "name": "Book"}, {"id": 2, "name": "Computer"}],
        }

    def test_back_reference_is_restored(self, mapper):
        """Each child points back at the owning instance after parsing."""
        register_user_items(mapper)
        user = mapper.parse(mapper.stringify(make_user()), User)
        assert [item.name for item in user.items] == ["Book", "Computer"]
        assert user.items[0].owner is user
        assert user.items[1].owner is user

    def test_back_reference_in_input_is_ignored(self, mapper):
        """A back reference key present in the input does not overwrite the pairing."""
        register_user_items(mapper)
        data = {"id": 1, "email": "e", "items": [{"id": 1, "name": "Book", "owner": {"id": 9, "email": "x"}}]}
        user = mapper.from_builtins(data, User)
        assert user.items[0].owner is user

    def test_without_pair_is_a_cycle(self, mapper):
        """Undeclared, the same graph cycles through the owner."""
        with pytest.raises(CycleError) as excinfo:
            mapper.to_builtins(make_user())
        assert 'User["items"][0]["owner"]' in str(excinfo.value)

    def test_single_valued_forward(self, mapper):
        """A forward reference holding one object pairs that object."""
        mapper.registry.register(TypeDescriptor(
            cls=Folder,
            properties=(
                PropertyDescriptor(name="name", hint=str),
                PropertyDescriptor(name="index", hint=Optional[Folder], role=Role.FORWARD),
                PropertyDescriptor(name="parent", hint=Folder, role=Role.BACK),
            ),
            ignored_properties=("children",),
        ))
        root = Folder("root")
        root.index = Folder("index", parent=root)
        parsed = mapper.parse(mapper.stringify(root), Folder)
        assert parsed.index.parent is parsed

    def test_named_pairs(self, mapper):
        """Forward and back properties are matched by reference name."""
        mapper.registry.register(TypeDescriptor(
            cls=Folder,
            properties=(
                PropertyDescriptor(name="name", hint=str),
                PropertyDescriptor(name="children", hint=list[Folder], role=Role.FORWARD, reference="tree"),
                PropertyDescriptor(name="parent", hint=Folder, role=Role.BACK, reference="tree"),
            ),
            ignored_properties=("index",),
        ))
        root = Folder("root")
        root.children = [Folder("a", parent=root), Folder("b", parent=root)]
        plain = mapper.to_builtins(root)
        assert plain == {"name": "root", "children": [{"name": "a", "children": []}, {"name": "b", "children": []}]}
        parsed = mapper.from_builtins(plain, Folder)
        assert all(child.parent is parsed for child in parsed.children)

    def test_dict_of_children(self, mapper):
        """Children held in a dict are paired too."""
        mapper.registry.register(
            TypeDescriptor(
                cls=User,
                properties=(
                    PropertyDescriptor(name="id", hint=int),
                    PropertyDescriptor(name="items", hint=dict[str, Item], role=Role.FORWARD),
                ),
                ignored_properties=("email",),
            ),
            TypeDescriptor(
                cls=Item,
                properties=(
                    PropertyDescriptor(name="id", hint=int),
                    PropertyDescriptor(name="name", hint=str),
                    PropertyDescriptor(name="owner", hint=User, role=Role.BACK),
                ),
            ),
        )
        user = mapper.from_builtins({"id": 1, "items": {"book": {"id": 1, "name": "Book"}}}, User)
        assert user.items["book"].owner is user
