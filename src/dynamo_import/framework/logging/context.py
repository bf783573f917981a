"""
Per-run import context carried in a contextvar.

The CLI sets the run id, entity and mode once; the entity adapter adds the
resolved table name. Every structlog entry picks these up through
:func:`merge_import_context` so individual call sites never repeat them.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, replace
from dataclasses import fields as dataclass_fields
from typing import Any

import structlog


def new_id() -> str:
    return uuid.uuid4().hex[:8]


@dataclass(frozen=True)
class ImportContext:
    """Which run, entity and table the current log entries belong to."""

    run_id: str | None = None
    entity: str | None = None
    table_name: str | None = None
    mode: str | None = None
    step: str | None = None
    span_id: str | None = None
    parent_span_id: str | None = None

    def fields(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in dataclass_fields(self) if getattr(self, f.name) is not None}

    def updated(self, **values: Any) -> ImportContext:
        """Copy with the known, non-None ``values`` applied."""
        known = {f.name for f in dataclass_fields(self)}
        return replace(self, **{k: v for k, v in values.items() if k in known and v is not None})


_EMPTY = ImportContext()
_current: ContextVar[ImportContext] = ContextVar("dynamo_import_context", default=_EMPTY)


def get_context() -> ImportContext:
    return _current.get()


def set_context(
    *,
    run_id: str | None = None,
    entity: str | None = None,
    table_name: str | None = None,
    mode: str | None = None,
) -> ImportContext:
    """Start a fresh context for one import run (a run id is generated if absent)."""
    ctx = ImportContext(run_id=run_id or new_id(), entity=entity, table_name=table_name, mode=mode)
    _current.set(ctx)
    return ctx


def bind_context(**values: Any) -> ImportContext:
    ctx = get_context().updated(**values)
    _current.set(ctx)
    return ctx


def clear_context() -> None:
    _current.set(_EMPTY)


@contextmanager
def scoped_context(**values: Any) -> Iterator[ImportContext]:
    """Apply ``values`` for the duration of the block, then put the old context back."""
    token = _current.set(get_context().updated(**values))
    try:
        yield _current.get()
    finally:
        _current.reset(token)


def merge_import_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor; explicit event keys win over context values."""
    for key, value in get_context().fields().items():
        event_dict.setdefault(key, value)
    return event_dict


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)
