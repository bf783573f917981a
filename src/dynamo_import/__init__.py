"""
dynamo_import: DynamoDB import connector for a document indexing pipeline.

Reads the records of one DynamoDB table per entity (full or delta), with
configurable credentials, key-condition/filter/projection expressions and
lossless numeric normalization.
"""

__version__ = "0.1.0"
