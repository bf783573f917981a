"""
Record source protocol.

The indexing pipeline reads every entity through this interface: ``fetch``
drains it into one :class:`SourceResult`, ``stream`` hands out batches.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from dynamo_import.core.errors import DynamoImportError, RemoteError

Row = dict[str, Any]


class SourceType(str, Enum):
    DYNAMODB = "dynamodb"
    CUSTOM = "custom"


@dataclass
class SourceMetadata:
    """What one fetch read and how long it took."""

    source_name: str
    source_type: SourceType
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    table_name: str | None = None
    operation: str | None = None
    query: str | None = None
    row_count: int | None = None
    pages_fetched: int | None = None
    duration_ms: int | None = None
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        out = {k: v for k, v in asdict(self).items() if v not in (None, {})}
        out["source_type"] = self.source_type.value
        out["fetched_at"] = self.fetched_at.isoformat()
        return out


@dataclass
class SourceResult:
    """Either the fetched rows or the error that stopped the fetch."""

    data: list[Row] | None = None
    metadata: SourceMetadata | None = None
    success: bool = True
    error: DynamoImportError | None = None

    @classmethod
    def ok(cls, data: list[Row], metadata: SourceMetadata) -> SourceResult:
        metadata.row_count = len(data)
        return cls(data=data, metadata=metadata)

    @classmethod
    def fail(cls, error: DynamoImportError, metadata: SourceMetadata | None = None) -> SourceResult:
        return cls(metadata=metadata, success=False, error=error)

    def unwrap(self) -> list[Row]:
        """Rows on success; otherwise raise the captured error."""
        if self.error is not None:
            raise self.error
        if not self.success or self.data is None:
            raise RemoteError("Source result carries neither rows nor an error")
        return self.data

    def __len__(self) -> int:
        return len(self.data or ())


@runtime_checkable
class Source(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def source_type(self) -> SourceType: ...

    def fetch(self, params: dict[str, Any] | None = None) -> SourceResult: ...


@runtime_checkable
class StreamingSource(Source, Protocol):
    @property
    def supports_streaming(self) -> bool: ...

    def stream(self, params: dict[str, Any] | None = None, batch_size: int = 1000) -> Iterator[list[Row]]:
        """Yield lists of at most ``batch_size`` rows."""
        ...


class BaseSource:
    """
    Common plumbing for concrete sources.

    Subclasses implement ``fetch``; they get metadata construction and a
    uniform way to turn foreign exceptions into :class:`RemoteError`.
    """

    def __init__(self, name: str, source_type: SourceType, *, config: dict[str, Any] | None = None):
        self._name = name
        self._source_type = source_type
        self._config = config or {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def source_type(self) -> SourceType:
        return self._source_type

    def fetch(self, params: dict[str, Any] | None = None) -> SourceResult:
        raise NotImplementedError

    def _create_metadata(self, params: dict[str, Any] | None = None, **values: Any) -> SourceMetadata:
        return SourceMetadata(self._name, self._source_type, params=dict(params or {}), **values)

    def _wrap_error(self, error: Exception, message: str | None = None) -> DynamoImportError:
        if isinstance(error, DynamoImportError):
            return error
        wrapped = RemoteError(message or str(error), cause=error)
        return wrapped.with_context(source_name=self._name, source_type=self._source_type.value)
