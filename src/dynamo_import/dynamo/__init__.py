"""
DynamoDB connector.

Usage:
    from dynamo_import.dynamo import DynamoDataSource, DynamoEntityProcessor, EntityConfig

    source = DynamoDataSource()
    source.init({"region": "us-east-1"})

    entity = EntityConfig.build("orders", [("tableName", "Orders")])
    processor = DynamoEntityProcessor(source, entity)
    processor.init()
    while (row := processor.next_row()) is not None:
        ...
"""

from dynamo_import.dynamo.datasource import DynamoDataSource
from dynamo_import.dynamo.entity import DynamoEntityProcessor, EntityConfig
from dynamo_import.dynamo.expressions import ExpressionParser, QuerySpec, ValueKind, parse_query_spec
from dynamo_import.dynamo.normalizer import DynamoType, FieldMapping, RecordNormalizer
from dynamo_import.dynamo.planner import QueryPlanner, ResultCursor
from dynamo_import.dynamo.source import DynamoTableSource
from dynamo_import.dynamo.variables import DeltaContext, ImportMode, VariableResolver

__all__ = [
    "DynamoDataSource",
    "DynamoEntityProcessor",
    "EntityConfig",
    "ExpressionParser",
    "QuerySpec",
    "ValueKind",
    "parse_query_spec",
    "DynamoType",
    "FieldMapping",
    "RecordNormalizer",
    "QueryPlanner",
    "ResultCursor",
    "DynamoTableSource",
    "DeltaContext",
    "ImportMode",
    "VariableResolver",
]
