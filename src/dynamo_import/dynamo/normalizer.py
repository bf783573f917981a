"""
Item -> record normalization.

Numbers come back from DynamoDB as :class:`decimal.Decimal` (38 digits of
precision). Indexing them as floats would silently lose digits, so every
numeric attribute is rendered as its plain decimal string instead::

    {"id": Decimal("12345678901234567890"), "gone": None, "name": "x"}
    -> {"id": "12345678901234567890", "name": "x"}
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from dynamo_import.framework.logging import get_logger

logger = get_logger(__name__)


class DynamoType(str, Enum):
    """DynamoDB attribute type tags."""

    B = "B"
    BOOL = "BOOL"
    BS = "BS"
    L = "L"
    M = "M"
    N = "N"
    NS = "NS"
    NULL = "NULL"
    S = "S"
    SS = "SS"


@dataclass(frozen=True)
class FieldMapping:
    """One ``<field>`` of an entity: index field name, source column, type tag."""

    name: str
    column: str | None = None
    type: str | None = None

    @property
    def source(self) -> str:
        return self.column or self.name


def build_type_map(fields: Iterable[FieldMapping]) -> dict[str, DynamoType]:
    """
    Map source columns to their declared DynamoDB type.

    Fields without a type are ignored; an unknown type tag is logged and
    skipped.
    """
    type_map: dict[str, DynamoType] = {}
    for mapping in fields:
        if not mapping.type:
            continue
        try:
            type_map[mapping.source] = DynamoType(mapping.type.strip().upper())
        except ValueError:
            logger.warning(
                "field_type_invalid",
                field=mapping.name,
                type=mapping.type,
                valid_types=[t.value for t in DynamoType],
            )
    return type_map


def to_decimal_string(value: Decimal | int | float) -> str:
    """Plain (non-exponent) decimal rendering of a number."""
    if isinstance(value, float):
        value = Decimal(repr(value))
    elif isinstance(value, int):
        return str(value)
    return format(value, "f")


def _is_number(value: Any) -> bool:
    return isinstance(value, (Decimal, int, float)) and not isinstance(value, bool)


def coerce_value(value: Any) -> Any:
    """Stringify numbers at any depth of lists, maps and sets; nested nulls stay ``None``."""
    if _is_number(value):
        return to_decimal_string(value)
    if isinstance(value, Mapping):
        return {key: coerce_value(inner) for key, inner in value.items()}
    if isinstance(value, list):
        return [coerce_value(inner) for inner in value]
    if isinstance(value, (set, frozenset)):
        return {coerce_value(inner) for inner in value}
    return value


class RecordNormalizer:
    """
    Converts deserialized items into records for the indexing pipeline.

    Top-level null attributes are dropped. Numbers become plain decimal
    strings wherever they appear, including inside ``L``, ``M`` and ``NS``
    values. ``type_map`` is kept for explicit per-field casting; it does not
    change the default coercion.
    """

    def __init__(self, type_map: Mapping[str, DynamoType] | None = None):
        self.type_map: dict[str, DynamoType] = dict(type_map or {})

    def normalize(self, item: Mapping[str, Any]) -> dict[str, Any]:
        record: dict[str, Any] = {}
        for name, value in item.items():
            if value is not None:
                record[name] = coerce_value(value)
        return record

    __call__ = normalize
