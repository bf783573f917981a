"""
Variable substitution and delta-mode context.

Expression strings in the entity configuration may reference variables with
``${namespace.name}`` tokens, for example::

    filterExpressionDELTA="#ts > :since"
    valueMapDELTASince="Long:since,${dynamo.last_index_time_millis}"

The host pipeline supplies its own variables (``dataimporter.last_index_time``
among them). In delta mode :class:`DeltaContext` re-publishes the last import
time as two epoch integers under the ``dynamo`` namespace.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from dynamo_import.core.errors import DateParseError
from dynamo_import.framework.logging import get_logger

logger = get_logger(__name__)

LAST_INDEX_TIME = "dataimporter.last_index_time"
LAST_INDEX_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

DELTA_NAMESPACE = "dynamo"
LAST_INDEX_MILLIS = f"{DELTA_NAMESPACE}.last_index_time_millis"
LAST_INDEX_SECONDS = f"{DELTA_NAMESPACE}.last_index_time_seconds"

_TOKEN = re.compile(r"\$\{([^}]*)\}")


class ImportMode(str, Enum):
    """Import run type."""

    FULL = "full"
    DELTA = "delta"


class VariableResolver:
    """
    Resolves ``${name}`` tokens against a flat map of dotted names.

    Unknown names resolve to the empty string, matching how the host pipeline
    treats unresolved variables.
    """

    def __init__(self, variables: Mapping[str, Any] | None = None):
        self._variables: dict[str, Any] = dict(variables or {})

    def get(self, name: str) -> Any:
        return self._variables.get(name)

    def set(self, name: str, value: Any) -> None:
        self._variables[name] = value

    def __contains__(self, name: str) -> bool:
        return name in self._variables

    def replace_tokens(self, text: str | None) -> str | None:
        """Substitute every ``${name}`` token in ``text``."""
        if text is None:
            return None
        return _TOKEN.sub(self._lookup, text)

    def _lookup(self, match: re.Match) -> str:
        name = match.group(1).strip()
        value = self._variables.get(name)
        if value is None:
            logger.debug("variable_unresolved", variable=name)
            return ""
        return str(value)


@dataclass(frozen=True)
class DeltaContext:
    """
    Import mode plus the field-prefix suffix it implies.

    Attributes:
        mode: Full or delta import
        suffix: Appended to every mode-dependent configuration key in delta mode
    """

    mode: ImportMode = ImportMode.FULL
    suffix: str = "DELTA"

    @property
    def is_delta(self) -> bool:
        return self.mode is ImportMode.DELTA

    def field(self, base: str) -> str:
        """Return the configuration key for ``base`` in the current mode."""
        if self.is_delta:
            return base + self.suffix
        return base

    def inject(self, resolver: VariableResolver) -> bool:
        """
        Publish the last import time as epoch milliseconds and seconds.

        Returns True when both variables were set. An unparseable or missing
        timestamp is logged and leaves them unset.
        """
        raw = resolver.get(LAST_INDEX_TIME)
        if raw is None or str(raw).strip() == "":
            logger.debug("last_index_time_missing", variable=LAST_INDEX_TIME)
            return False

        try:
            millis = parse_last_index_time(str(raw))
        except DateParseError as e:
            logger.warning("last_index_time_unparseable", **e.to_dict())
            return False

        resolver.set(LAST_INDEX_MILLIS, millis)
        resolver.set(LAST_INDEX_SECONDS, millis // 1000)
        logger.debug(
            "delta_variables_injected",
            last_index_time=str(raw),
            millis=millis,
        )
        return True


def parse_last_index_time(value: str) -> int:
    """Parse a last-import timestamp (UTC) into epoch milliseconds."""
    try:
        parsed = datetime.strptime(value.strip(), LAST_INDEX_TIME_FORMAT)
    except ValueError as e:
        raise DateParseError(
            f"Cannot parse [{LAST_INDEX_TIME}] value '{value}', expected format {LAST_INDEX_TIME_FORMAT}",
            cause=e,
        ).with_context(attribute=LAST_INDEX_TIME) from e
    return int(parsed.replace(tzinfo=timezone.utc).timestamp() * 1000)
