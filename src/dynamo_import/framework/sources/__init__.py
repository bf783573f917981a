"""Source protocol package."""

from dynamo_import.framework.sources.protocol import (
    BaseSource,
    Row,
    Source,
    SourceMetadata,
    SourceResult,
    SourceType,
    StreamingSource,
)

__all__ = [
    "BaseSource",
    "Row",
    "Source",
    "SourceMetadata",
    "SourceResult",
    "SourceType",
    "StreamingSource",
]
