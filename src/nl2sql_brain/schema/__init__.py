"""Catalog records, schema snapshots, and prompt formatting."""

from nl2sql_brain.schema.cache import (
    CacheError,
    load_schema_snapshot,
    parse_schema_snapshot,
    save_schema_snapshot,
)
from nl2sql_brain.schema.catalog import (
    DEFAULT_DATABASE,
    ColumnInfo,
    DatabaseInfo,
    TableInfo,
)
from nl2sql_brain.schema.formatter import (
    SchemaContext,
    format_schema_for_context,
    get_schema_summary,
)

__all__ = [
    "CacheError",
    "ColumnInfo",
    "DEFAULT_DATABASE",
    "DatabaseInfo",
    "SchemaContext",
    "TableInfo",
    "format_schema_for_context",
    "get_schema_summary",
    "load_schema_snapshot",
    "parse_schema_snapshot",
    "save_schema_snapshot",
]
