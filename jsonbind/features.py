"""
Feature flags and filter definitions.

Feature sets are frozen Pydantic models so a mapper's defaults can be
shared between threads and overridden per call with ``with_overrides``:

    >>> features = SerializationFeatures(sort_properties_alphabetically=True)
    >>> per_call = features.with_overrides({"wrap_root_value": True})
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from jsonbind.descriptors import Include


class _Features(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    # Shared by both directions.
    default_view_inclusion: bool = True
    set_default_value_for_primitives_on_null: bool = False
    set_default_value_for_number_on_null: bool = False
    set_default_value_for_string_on_null: bool = False
    set_default_value_for_boolean_on_null: bool = False

    def with_overrides(self, overrides: dict[str, Any] | None):
        """Return a copy with ``overrides`` applied, validating the keys."""
        if not overrides:
            return self
        return type(self).model_validate({**self.model_dump(), **overrides})


class SerializationFeatures(_Features):
    sort_properties_alphabetically: bool = False
    order_map_entries_by_keys: bool = False
    write_nan_as_zero: bool = False
    # None leaves infinities untouched.
    write_positive_infinity_as: Optional[Any] = None
    write_negative_infinity_as: Optional[Any] = None
    write_dates_as_timestamps: bool = True
    write_date_keys_as_timestamps: bool = False
    write_self_references_as_null: bool = False
    wrap_root_value: bool = False
    default_property_inclusion: Optional[Include] = None


class DeserializationFeatures(_Features):
    accept_case_insensitive_properties: bool = False
    accept_empty_array_as_null_object: bool = False
    accept_empty_string_as_null_object: bool = False
    accept_float_as_int: bool = False
    allow_coercion_of_scalars: bool = False
    fail_on_unknown_properties: bool = True
    fail_on_null_for_primitives: bool = False
    fail_on_missing_creator_properties: bool = False
    fail_on_null_creator_properties: bool = False
    fail_on_unresolved_object_ids: bool = True
    fail_on_invalid_subtype: bool = True
    fail_on_missing_type_id: bool = True
    unwrap_root_value: bool = False


# =============================================================================
# Filters
# =============================================================================


class FilterType(str, Enum):
    SERIALIZE_ALL = "serialize_all"
    SERIALIZE_ALL_EXCEPT = "serialize_all_except"
    FILTER_OUT_ALL_EXCEPT = "filter_out_all_except"


class Filter(BaseModel):
    """
    A named filter group supplied per call.

    Attributes:
        type: How ``values`` is interpreted.
        values: External or internal property names.
    """

    model_config = ConfigDict(frozen=True)

    type: FilterType = FilterType.SERIALIZE_ALL
    values: tuple[str, ...] = ()

    def allows(self, *names: str) -> bool:
        """Whether a property known under any of ``names`` is written."""
        if self.type is FilterType.SERIALIZE_ALL:
            return True
        listed = any(name in self.values for name in names)
        if self.type is FilterType.SERIALIZE_ALL_EXCEPT:
            return not listed
        return listed
