"""Render catalog metadata as a bounded DDL-like prompt block."""

from __future__ import annotations

from dataclasses import dataclass

from nl2sql_brain.schema.catalog import DatabaseInfo, TableInfo

DEFAULT_MAX_TABLES = 20
DEFAULT_MAX_COLUMNS_PER_TABLE = 15
DEFAULT_MAX_CONTEXT_LENGTH = 3000

SCHEMA_HEADER = (
    "DATABASE SCHEMA:\n"
    "The following tables are available in your database:\n"
)
TABLE_LIMIT_MARKER = "-- [Schema truncated, more tables available]"
LENGTH_LIMIT_MARKER = "\n-- [Schema truncated for context limit]"


@dataclass(frozen=True)
class SchemaContext:
    """Formatted schema text plus what made it into the text."""

    formatted: str
    table_count: int
    column_count: int
    truncated: bool


def _render_table(qualified_name: str, table: TableInfo, max_columns: int) -> list[str]:
    columns = table.columns[:max_columns]
    column_defs = ",\n".join(
        f"  {column.name} {column.type}{'' if column.nullable else ' NOT NULL'}"
        for column in columns
    )
    lines = [f"CREATE TABLE {qualified_name} (", column_defs, ");"]

    hidden = len(table.columns) - max_columns
    if hidden > 0:
        lines.append(f"-- ... and {hidden} more columns")
    if table.row_count > 0:
        lines.append(f"-- Approximately {table.row_count:,} rows")
    lines.append("")
    return lines


def _clip(text: str, limit: int) -> str:
    keep = limit - len(LENGTH_LIMIT_MARKER)
    if keep <= 0:
        return text[:limit]
    return text[:keep] + LENGTH_LIMIT_MARKER


def format_schema_for_context(
    databases: list[DatabaseInfo],
    *,
    max_tables: int = DEFAULT_MAX_TABLES,
    max_columns_per_table: int = DEFAULT_MAX_COLUMNS_PER_TABLE,
    max_context_length: int = DEFAULT_MAX_CONTEXT_LENGTH,
) -> SchemaContext:
    """Render databases -> tables -> columns as ``CREATE TABLE`` blocks.

    Tables are emitted in catalog order until ``max_tables`` is reached. The
    assembled text is then clipped to ``max_context_length`` characters
    (truncation marker included) rather than dropping whole tables.
    ``truncated`` is also set when a table loses columns to the per-table cap.
    """
    table_count = 0
    column_count = 0
    truncated = False
    columns_dropped = False
    parts = [SCHEMA_HEADER]

    for database in databases:
        for table in database.tables:
            if table_count >= max_tables:
                truncated = True
                break
            parts.extend(
                _render_table(
                    database.qualified_name(table), table, max_columns_per_table
                )
            )
            table_count += 1
            column_count += min(len(table.columns), max_columns_per_table)
            if len(table.columns) > max_columns_per_table:
                columns_dropped = True
        if truncated:
            break

    if truncated:
        parts.append(TABLE_LIMIT_MARKER)
    truncated = truncated or columns_dropped

    formatted = "\n".join(parts)
    if len(formatted) > max_context_length:
        formatted = _clip(formatted, max_context_length)
        truncated = True

    return SchemaContext(
        formatted=formatted,
        table_count=table_count,
        column_count=column_count,
        truncated=truncated,
    )


def get_schema_summary(databases: list[DatabaseInfo]) -> str:
    """Short ``"N tables, M columns"`` description for display."""
    total_tables = sum(len(database.tables) for database in databases)
    total_columns = sum(
        len(table.columns) for database in databases for table in database.tables
    )
    table_word = "table" if total_tables == 1 else "tables"
    column_word = "column" if total_columns == 1 else "columns"
    return f"{total_tables} {table_word}, {total_columns} {column_word}"
