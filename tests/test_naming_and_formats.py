"""
Tests for naming strategies and scalar format helpers.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from jsonbind import FormatSpec, Naming, Shape
from jsonbind.errors import JsonBindError, format_path
from jsonbind.formats import (
    decode_datetime,
    encode_temporal,
    format_scalar,
    parse_formatted,
    reshape,
    to_epoch_millis,
)
from jsonbind.naming import apply_naming, split_words, to_attribute_name


class TestNaming:
    """Naming strategies."""

    @pytest.mark.parametrize("naming,expected", [
        (Naming.SNAKE_CASE, "user_id_value"),
        (Naming.UPPER_CAMEL_CASE, "UserIdValue"),
        (Naming.LOWER_CAMEL_CASE, "userIdValue"),
        (Naming.LOWER_CASE, "useridvalue"),
        (Naming.KEBAB_CASE, "user-id-value"),
        (Naming.LOWER_DOT_CASE, "user.id.value"),
    ])
    def test_strategies(self, naming, expected):
        """Each strategy rewrites a snake_case name."""
        assert apply_naming("user_id_value", naming) == expected

    def test_no_strategy(self):
        """Without a strategy the name is unchanged."""
        assert apply_naming("user_id", None) == "user_id"

    def test_leading_underscore_kept(self):
        """Private prefixes survive the rewrite."""
        assert apply_naming("_user_id", Naming.LOWER_CAMEL_CASE) == "_userId"

    def test_split_words(self):
        """Words are found across camel, snake and kebab boundaries."""
        assert split_words("userIdValue") == ["user", "Id", "Value"]
        assert split_words("user-id_value") == ["user", "id", "value"]

    def test_to_attribute_name(self):
        """External keys map back to snake_case attribute names."""
        assert to_attribute_name("firstName") == "first_name"
        assert to_attribute_name("first-name") == "first_name"


class TestTemporal:
    """Date helpers."""

    def test_epoch_millis_of_date(self):
        """Dates are midnight UTC."""
        assert to_epoch_millis(date(1970, 1, 2)) == 86400000

    def test_encode_iso(self):
        """ISO text is used when timestamps are off."""
        assert encode_temporal(date(2020, 1, 2), False) == "2020-01-02"

    def test_decode_patterns(self):
        """Patterned text is parsed with strptime."""
        assert decode_datetime("02/01/2020", "%d/%m/%Y") == datetime(2020, 1, 2)

    def test_decode_millis(self):
        """Numbers are epoch milliseconds in UTC."""
        assert decode_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)


class TestFormatDirectives:
    """Format directive helpers."""

    def test_precision(self):
        """Precision counts significant digits."""
        assert format_scalar(3.14159, FormatSpec(shape=Shape.STRING, to_precision=3)) == "3.14"

    def test_exponential(self):
        """Exponential notation uses the requested digits."""
        assert format_scalar(12345, FormatSpec(shape=Shape.STRING, to_exponential=2)) == "1.23e+04"

    def test_negative_radix(self):
        """Negative integers keep their sign in another base."""
        assert format_scalar(-10, FormatSpec(shape=Shape.STRING, radix=2)) == "-1010"

    def test_number_int_from_date(self):
        """NUMBER_INT writes dates as epoch milliseconds."""
        assert format_scalar(date(1970, 1, 2), FormatSpec(shape=Shape.NUMBER_INT)) == 86400000

    def test_string_of_decimal(self):
        """STRING writes other scalars through their plain form."""
        assert format_scalar(Decimal("2.50"), FormatSpec(shape=Shape.STRING)) == "2.50"

    def test_reshape_object_to_array(self):
        """ARRAY turns an object into its values."""
        assert reshape({"a": 1, "b": 2}, FormatSpec(shape=Shape.ARRAY)) == [1, 2]

    def test_reshape_array_to_object(self):
        """OBJECT turns an array into an index-keyed object."""
        assert reshape([1, 2], FormatSpec(shape=Shape.OBJECT)) == {"0": 1, "1": 2}

    def test_parse_formatted(self):
        """STRING-formatted values are read back for known targets."""
        assert parse_formatted("ff", FormatSpec(shape=Shape.STRING, radix=16), int) == 255
        assert parse_formatted("true", FormatSpec(shape=Shape.STRING), bool) is True
        assert parse_formatted(5, FormatSpec(shape=Shape.STRING), int) == 5


class TestErrors:
    """Error messages."""

    def test_format_path(self):
        """Keys are quoted and indices are bare."""
        assert format_path("User", ["items", 0, "owner"]) == 'User["items"][0]["owner"]'

    def test_message_carries_path(self):
        """The reference chain is appended to the message."""
        error = JsonBindError("boom", type_name="User", chain=("items", 1))
        assert str(error) == 'boom (through reference chain: User["items"][1])'
        assert error.chain == ("items", 1)

    def test_not_a_value_error(self):
        """Library errors are not ValueErrors."""
        assert not issubclass(JsonBindError, ValueError)
