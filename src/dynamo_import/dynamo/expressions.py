"""
Entity attribute mini-language -> QuerySpec.

An entity is configured with flat string attributes. Attributes that share a
prefix form a map; the part of the key after the prefix only has to be unique::

    tableName="Orders"
    keyConditionExpression="#yr = :yyyy"
    nameMapYear="#yr,year"                  ->  {"#yr": "year"}
    valueMapYear="Int::yyyy,1985"           ->  {":yyyy": 1985}
    valueMapFlag="Bool:flag,true"           ->  {":flag": True}

Name-map values are ``<placeholder>,<attribute>``. Value-map values are
``<type>:<placeholder>,<literal>``; the placeholder gets its ``:`` sigil back
after splitting. Malformed entries are skipped with an
:class:`~dynamo_import.core.errors.ExpressionParseWarning`, never fatal.

In delta mode every key above except ``tableName`` gains the ``DELTA`` suffix
(``nameMapDELTAYear``, ``keyConditionExpressionDELTA``).
"""

from __future__ import annotations

import math
import re
import warnings
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from dynamo_import.core.errors import ConfigurationError, ExpressionParseWarning
from dynamo_import.dynamo.variables import DeltaContext, VariableResolver
from dynamo_import.framework.logging import get_logger

logger = get_logger(__name__)

NAME_MAP = "nameMap"
VALUE_MAP = "valueMap"
KEY_CONDITION_EXPRESSION = "keyConditionExpression"
FILTER_EXPRESSION = "filterExpression"
PROJECTION_EXPRESSION = "projectionExpression"

NAME_ATTR_DELIMITER = ","
VALUE_TYPE_DELIMITER = ":"
VALUE_ATTR_DELIMITER = ","
VALUE_SIGIL = ":"

_INTEGER = re.compile(r"^[+-]?\d+$")

INT_MIN, INT_MAX = -(2**31), 2**31 - 1
LONG_MIN, LONG_MAX = -(2**63), 2**63 - 1


class ValueKind(str, Enum):
    """Literal types accepted in value-map entries."""

    INTEGER = "integer"
    LONG = "long"
    BOOLEAN = "boolean"
    NUMBER = "number"
    STRING = "string"

    @classmethod
    def from_alias(cls, alias: str) -> ValueKind | None:
        return _KIND_ALIASES.get(alias.strip().lower())


_KIND_ALIASES = {
    "integer": ValueKind.INTEGER,
    "int": ValueKind.INTEGER,
    "long": ValueKind.LONG,
    "l": ValueKind.LONG,
    "boolean": ValueKind.BOOLEAN,
    "bool": ValueKind.BOOLEAN,
    "number": ValueKind.NUMBER,
    "float": ValueKind.NUMBER,
    "decimal": ValueKind.NUMBER,
    "double": ValueKind.NUMBER,
    "n": ValueKind.NUMBER,
    "string": ValueKind.STRING,
    "s": ValueKind.STRING,
}


@dataclass(frozen=True)
class ValueBinding:
    """A typed literal bound to a ``:placeholder``."""

    placeholder: str
    kind: ValueKind
    value: Any


@dataclass(frozen=True)
class QuerySpec:
    """
    Everything needed to issue one query or scan.

    Empty maps are normalized to ``None`` so "nothing configured" and
    "configured but empty" read the same downstream.
    """

    key_condition_expression: str | None = None
    filter_expression: str | None = None
    projection_expression: str | None = None
    name_map: dict[str, str] | None = None
    value_map: dict[str, Any] | None = None

    def __post_init__(self) -> None:
        if not self.name_map:
            object.__setattr__(self, "name_map", None)
        if not self.value_map:
            object.__setattr__(self, "value_map", None)
        if self.key_condition_expression and self.value_map is None:
            raise ConfigurationError(
                f"A key condition expression is set ('{self.key_condition_expression}') "
                f"but no values are bound; configure at least one [{VALUE_MAP}*] attribute"
            ).with_context(attribute=KEY_CONDITION_EXPRESSION)

    @property
    def is_scan(self) -> bool:
        """True when no key condition is configured; a filter alone is applied to a Scan."""
        return not self.key_condition_expression

    def describe(self) -> str:
        """Multi-line summary for diagnostics."""
        return (
            f"Key Condition: {self.key_condition_expression}\n"
            f"Filter: {self.filter_expression}\n"
            f"Projection: {self.projection_expression}\n"
            f"Name Map: {self.name_map}\n"
            f"Value Map: {self.value_map}"
        )

    def to_log_dict(self) -> dict[str, Any]:
        return {
            "key_condition": self.key_condition_expression,
            "filter": self.filter_expression,
            "projection": self.projection_expression,
            "name_map": self.name_map,
            "value_map": self.value_map,
        }


class ExpressionParser:
    """
    Decodes an entity's attributes into a :class:`QuerySpec`.

    Args:
        attributes: Ordered ``(key, value)`` pairs from the entity definition
        resolver: Variable resolver used for ``${...}`` substitution
        delta: Import mode; selects the attribute-key variant to read
    """

    def __init__(
        self,
        attributes: Iterable[tuple[str, str]],
        resolver: VariableResolver | None = None,
        delta: DeltaContext | None = None,
    ):
        self._attributes: list[tuple[str, str]] = list(attributes)
        self._resolver = resolver or VariableResolver()
        self._delta = delta or DeltaContext()

    def parse(self) -> QuerySpec:
        """Build the QuerySpec for the current import mode."""
        condition_field = self._delta.field(KEY_CONDITION_EXPRESSION)
        filter_field = self._delta.field(FILTER_EXPRESSION)
        projection_field = self._delta.field(PROJECTION_EXPRESSION)

        spec = QuerySpec(
            key_condition_expression=self._expression(condition_field),
            filter_expression=self._expression(filter_field),
            projection_expression=self._expression(projection_field),
            name_map=self.parse_name_map(self._delta.field(NAME_MAP)),
            value_map=_values(self.parse_value_map(self._delta.field(VALUE_MAP))),
        )
        logger.debug("query_spec_parsed", mode=self._delta.mode.value, **spec.to_log_dict())
        return spec

    # -------------------------------------------------------------------------
    # ATTRIBUTE LOOKUP
    # -------------------------------------------------------------------------

    def attribute(self, key: str) -> str | None:
        """Return the last value configured for ``key``."""
        found = None
        for name, value in self._attributes:
            if name == key:
                found = value
        return found

    def prefixed(self, prefix: str) -> list[tuple[str, str]]:
        """
        Attributes whose key starts with ``prefix``, in configuration order.

        In full mode, keys that belong to the delta variant of the same prefix
        are excluded so ``nameMapDELTAYear`` is not read as a full-mode entry.
        """
        excluded = None if self._delta.is_delta else prefix + self._delta.suffix
        return [
            (key, value)
            for key, value in self._attributes
            if key.startswith(prefix) and not (excluded and key.startswith(excluded))
        ]

    def _expression(self, field: str) -> str | None:
        raw = self.attribute(field)
        if raw is None:
            logger.debug("expression_not_configured", attribute=field)
            return None
        resolved = self._resolver.replace_tokens(raw).strip()
        if not resolved:
            logger.debug("expression_empty", attribute=field)
            return None
        logger.debug("expression_configured", attribute=field, expression=resolved)
        return resolved

    # -------------------------------------------------------------------------
    # MAP PARSING
    # -------------------------------------------------------------------------

    def parse_name_map(self, prefix: str) -> dict[str, str] | None:
        """Decode ``<placeholder>,<attribute>`` entries under ``prefix``."""
        entries = self.prefixed(prefix)
        if not entries:
            logger.debug("name_map_not_configured", prefix=prefix)
            return None

        name_map: dict[str, str] = {}
        for key, value in entries:
            placeholder, sep, field_name = value.partition(NAME_ATTR_DELIMITER)
            if not sep:
                _skip(key, value, f"must contain 2 values delimited by '{NAME_ATTR_DELIMITER}'")
                continue

            placeholder = self._resolver.replace_tokens(placeholder).strip()
            field_name = self._resolver.replace_tokens(field_name).strip()
            if not placeholder or not field_name:
                _skip(key, value, f"both sides of '{NAME_ATTR_DELIMITER}' must be non-empty")
                continue

            name_map[placeholder] = field_name
            logger.debug("name_map_entry", attribute=key, placeholder=placeholder, field=field_name)

        return name_map or None

    def parse_value_map(self, prefix: str) -> dict[str, ValueBinding] | None:
        """Decode ``<type>:<placeholder>,<literal>`` entries under ``prefix``."""
        entries = self.prefixed(prefix)
        if not entries:
            logger.debug("value_map_not_configured", prefix=prefix)
            return None

        bindings: dict[str, ValueBinding] = {}
        for key, value in entries:
            binding = self._parse_value_entry(key, value)
            if binding is not None:
                bindings[binding.placeholder] = binding
                logger.debug(
                    "value_map_entry",
                    attribute=key,
                    kind=binding.kind.value,
                    placeholder=binding.placeholder,
                    value=binding.value,
                )
        return bindings or None

    def _parse_value_entry(self, key: str, value: str) -> ValueBinding | None:
        type_name, sep, fields = value.partition(VALUE_TYPE_DELIMITER)
        if not sep:
            _skip(key, value, f"must contain delimiter '{VALUE_TYPE_DELIMITER}' between type and field/value")
            return None

        type_name = type_name.strip()
        if not type_name:
            _skip(key, value, f"does not contain a type before '{VALUE_TYPE_DELIMITER}'")
            return None

        kind = ValueKind.from_alias(type_name)
        if kind is None:
            _skip(key, value, f"invalid type '{type_name}', valid types: {sorted(_KIND_ALIASES)}")
            return None

        field_name, sep, literal = fields.partition(VALUE_ATTR_DELIMITER)
        if not sep:
            _skip(key, value, f"must contain delimiter '{VALUE_ATTR_DELIMITER}' between field and value")
            return None

        field_name = self._resolver.replace_tokens(field_name).strip()
        literal = self._resolver.replace_tokens(literal).strip()
        if not field_name:
            _skip(key, value, "placeholder name is empty")
            return None
        if not literal:
            _skip(key, value, "value is empty")
            return None

        # The type delimiter doubles as the placeholder sigil; splitting removed it.
        if not field_name.startswith(VALUE_SIGIL):
            field_name = VALUE_SIGIL + field_name

        try:
            parsed = parse_literal(kind, literal)
        except ValueError as e:
            _skip(key, value, f"value '{literal}' is not a valid {kind.value}: {e}")
            return None

        return ValueBinding(placeholder=field_name, kind=kind, value=parsed)


def parse_literal(kind: ValueKind, literal: str) -> Any:
    """Parse ``literal`` as ``kind``; raises ValueError when it does not fit."""
    match kind:
        case ValueKind.INTEGER | ValueKind.LONG:
            if not _INTEGER.match(literal):
                raise ValueError("not an integer")
            number = int(literal)
            low, high = (INT_MIN, INT_MAX) if kind is ValueKind.INTEGER else (LONG_MIN, LONG_MAX)
            if not low <= number <= high:
                raise ValueError(f"out of range [{low}, {high}]")
            return number
        case ValueKind.BOOLEAN:
            lowered = literal.lower()
            if lowered not in ("true", "false"):
                raise ValueError("expected 'true' or 'false'")
            return lowered == "true"
        case ValueKind.NUMBER:
            if "_" in literal:
                raise ValueError("not a number")
            number = float(literal)
            if not math.isfinite(number):
                raise ValueError("not a finite number")
            return number
        case ValueKind.STRING:
            return literal
    raise ValueError(f"unsupported kind {kind}")


def _values(bindings: dict[str, ValueBinding] | None) -> dict[str, Any] | None:
    if not bindings:
        return None
    return {placeholder: binding.value for placeholder, binding in bindings.items()}


def _skip(key: str, value: str, reason: str) -> None:
    message = f"attribute [{key}] value [{value}] is malformed, {reason}; entry skipped"
    logger.warning("expression_entry_skipped", attribute=key, value=value, reason=reason)
    warnings.warn(message, ExpressionParseWarning, stacklevel=3)


def parse_query_spec(
    attributes: Sequence[tuple[str, str]],
    resolver: VariableResolver | None = None,
    delta: DeltaContext | None = None,
) -> QuerySpec:
    """Convenience wrapper around :class:`ExpressionParser`."""
    return ExpressionParser(attributes, resolver=resolver, delta=delta).parse()
