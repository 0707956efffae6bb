"""
Scalar codecs and format directives.

Two kinds of rewriting live here:

- codecs for values JSON has no native form for (datetimes, dates,
  decimals, UUIDs, enums, bytes), used in both directions
- FormatSpec handling: scalar directives (STRING, NUMBER_INT,
  NUMBER_FLOAT, BOOLEAN, SCALAR) run on the raw value before it is
  serialized; structural directives (ARRAY, OBJECT) reshape the plain
  value after its children have been serialized
"""

from __future__ import annotations

import base64
import math
from datetime import date, datetime, time, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID
from zoneinfo import ZoneInfo

from jsonbind.descriptors import FormatSpec, Shape

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"

PRIMITIVES = (str, int, float, bool, type(None))


# =============================================================================
# Temporal values
# =============================================================================


def _aware(value: datetime) -> datetime:
    # Naive datetimes are read as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_epoch_millis(value: date) -> int:
    if not isinstance(value, datetime):
        value = datetime.combine(value, time(), tzinfo=timezone.utc)
    return int(round(_aware(value).timestamp() * 1000))


def encode_temporal(value: date, as_timestamp: bool) -> int | str:
    """Epoch milliseconds, or ISO-8601 text when timestamps are off."""
    if as_timestamp:
        return to_epoch_millis(value)
    return value.isoformat()


def decode_datetime(value: Any, pattern: str | None = None) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str):
        if pattern:
            return datetime.strptime(value, pattern)
        return datetime.fromisoformat(value)
    raise TypeError(f"cannot read a datetime from {type(value).__name__}")


def decode_date(value: Any, pattern: str | None = None) -> date:
    if isinstance(value, str) and not pattern:
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    return decode_datetime(value, pattern).date()


# =============================================================================
# Other scalars
# =============================================================================


def encode_scalar(value: Any) -> Any:
    """Plain form of Decimal, UUID, Enum and bytes values; others unchanged."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    return value


def decode_scalar(value: Any, cls: type) -> Any:
    """
    Rebuild a scalar of class ``cls`` from its plain form.

    Raises:
        TypeError, ValueError: The value cannot represent ``cls``.
    """
    if isinstance(value, cls) and not (cls is int and isinstance(value, bool)):
        return value
    if issubclass(cls, Enum):
        return cls(value)
    if cls is Decimal:
        return Decimal(str(value))
    if cls is UUID:
        return UUID(str(value))
    if cls is bytes:
        return base64.b64decode(value)
    if cls is bytearray:
        return bytearray(base64.b64decode(value))
    if issubclass(cls, datetime):
        return decode_datetime(value)
    if issubclass(cls, date):
        return decode_date(value)
    raise TypeError(f"cannot read {cls.__name__} from {type(value).__name__}")


def is_temporal(value: Any) -> bool:
    return isinstance(value, date)


def default_for_null(cls: type | None, features) -> Any:
    """
    Replacement for a null primitive under the set-default-on-null features.

    Returns:
        0, 0.0, "" or False for the matching enabled feature, else None.
    """
    if cls is None:
        return None
    everything = features.set_default_value_for_primitives_on_null
    if cls is bool:
        return False if everything or features.set_default_value_for_boolean_on_null else None
    if cls in (int, float):
        return cls() if everything or features.set_default_value_for_number_on_null else None
    if cls is str:
        return "" if everything or features.set_default_value_for_string_on_null else None
    return None


# =============================================================================
# Format directives
# =============================================================================


def _to_radix(number: int, radix: int) -> str:
    if not 2 <= radix <= 36:
        raise ValueError(f"radix must be between 2 and 36, got {radix}")
    if number == 0:
        return "0"
    sign = "-" if number < 0 else ""
    number = abs(number)
    digits = []
    while number:
        number, rem = divmod(number, radix)
        digits.append(_DIGITS[rem])
    return sign + "".join(reversed(digits))


def _number_to_string(value: int | float, spec: FormatSpec) -> str:
    if spec.radix is not None and float(value).is_integer():
        return _to_radix(int(value), spec.radix)
    if spec.to_exponential is not None:
        return f"{value:.{spec.to_exponential}e}"
    if spec.to_fixed is not None:
        return f"{value:.{spec.to_fixed}f}"
    if spec.to_precision is not None:
        return f"{value:.{spec.to_precision}g}"
    if isinstance(value, float) and value.is_integer() and not math.isinf(value):
        return str(int(value))
    return str(value)


def format_date(value: date, spec: FormatSpec) -> str:
    if isinstance(value, datetime) and spec.timezone:
        value = _aware(value).astimezone(ZoneInfo(spec.timezone))
    if spec.pattern:
        return value.strftime(spec.pattern)
    return value.isoformat()


def format_scalar(value: Any, spec: FormatSpec | None) -> Any:
    """
    Apply the scalar part of a format directive to a raw value.

    Values the directive does not apply to are returned unchanged.
    """
    if spec is None or value is None:
        return value
    shape = spec.shape

    if shape is Shape.STRING or (shape is Shape.ANY and spec.pattern and is_temporal(value)):
        if is_temporal(value):
            return format_date(value, spec)
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return _number_to_string(value, spec)
        if shape is Shape.STRING:
            return str(encode_scalar(value))
        return value
    if shape is Shape.BOOLEAN:
        return bool(value)
    if shape is Shape.NUMBER_INT:
        if is_temporal(value):
            return to_epoch_millis(value)
        return int(float(value))
    if shape is Shape.NUMBER_FLOAT:
        if is_temporal(value):
            return float(to_epoch_millis(value))
        return float(value)
    if shape is Shape.SCALAR:
        plain = encode_scalar(value)
        return plain if isinstance(plain, PRIMITIVES) else None
    return value


def reshape(plain: Any, spec: FormatSpec | None) -> Any:
    """Apply ARRAY/OBJECT reshaping to an already serialized value."""
    if spec is None:
        return plain
    if spec.shape is Shape.ARRAY:
        if isinstance(plain, dict):
            return list(plain.values())
        if isinstance(plain, list):
            return plain
        return [plain]
    if spec.shape is Shape.OBJECT and isinstance(plain, list):
        return {str(index): item for index, item in enumerate(plain)}
    return plain


def parse_formatted(value: Any, spec: FormatSpec | None, cls: type | None) -> Any:
    """
    Undo a scalar directive on input where the target class says how.

    Only text produced by STRING directives is handled here (patterned
    dates, radix integers, fixed/precision numbers); everything else is
    left for the regular scalar decoding.
    """
    if spec is None or cls is None or not isinstance(value, str):
        return value
    if issubclass(cls, datetime):
        return decode_datetime(value, spec.pattern)
    if issubclass(cls, date):
        return decode_date(value, spec.pattern)
    if cls is int:
        return int(value, spec.radix or 10)
    if cls is float:
        return float(value)
    if cls is Decimal:
        return Decimal(value)
    if cls is bool:
        return value == "true"
    return value
