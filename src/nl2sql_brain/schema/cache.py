"""Schema snapshot persistence for running outside a live catalog."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from nl2sql_brain.schema.catalog import ColumnInfo, DatabaseInfo, TableInfo


class CacheError(RuntimeError):
    """Raised when schema snapshot operations fail."""


def _parse_columns(
    database_name: str, table_name: str, payload: Any
) -> list[ColumnInfo]:
    if not isinstance(payload, list):
        raise CacheError(f"Table '{database_name}.{table_name}' has invalid 'columns'.")

    columns: list[ColumnInfo] = []
    for column in payload:
        if not isinstance(column, dict):
            raise CacheError(
                f"Table '{database_name}.{table_name}' has invalid column entry."
            )
        name = column.get("name")
        column_type = column.get("type")
        nullable = column.get("nullable", True)
        if not isinstance(name, str) or not name.strip():
            raise CacheError(
                f"Table '{database_name}.{table_name}' has a column without a name."
            )
        if not isinstance(column_type, str):
            raise CacheError(
                f"Column '{database_name}.{table_name}.{name}' missing type."
            )
        if not isinstance(nullable, bool):
            raise CacheError(
                f"Column '{database_name}.{table_name}.{name}' has invalid nullable."
            )
        columns.append(ColumnInfo(name=name, type=column_type, nullable=nullable))
    return columns


def parse_schema_snapshot(payload: dict[str, Any]) -> list[DatabaseInfo]:
    """Validate a ``{"databases": [...]}`` payload into catalog records."""
    databases_payload = payload.get("databases")
    if not isinstance(databases_payload, list):
        raise CacheError("Schema snapshot is missing a valid 'databases' list.")

    databases: list[DatabaseInfo] = []
    for database in databases_payload:
        if not isinstance(database, dict):
            raise CacheError("Schema snapshot has invalid database entry.")
        database_name = database.get("name")
        if not isinstance(database_name, str) or not database_name.strip():
            raise CacheError("Schema snapshot database is missing a valid 'name'.")

        tables_payload = database.get("tables", [])
        if not isinstance(tables_payload, list):
            raise CacheError(f"Database '{database_name}' has invalid 'tables'.")

        tables: list[TableInfo] = []
        for table in tables_payload:
            if not isinstance(table, dict):
                raise CacheError(f"Database '{database_name}' has invalid table entry.")
            table_name = table.get("name")
            if not isinstance(table_name, str) or not table_name.strip():
                raise CacheError(
                    f"Database '{database_name}' has a table without a name."
                )
            row_count = table.get("row_count", 0)
            if isinstance(row_count, bool) or not isinstance(row_count, int):
                raise CacheError(
                    f"Table '{database_name}.{table_name}' has invalid row_count."
                )
            tables.append(
                TableInfo(
                    name=table_name,
                    columns=_parse_columns(
                        database_name, table_name, table.get("columns", [])
                    ),
                    row_count=row_count,
                )
            )
        databases.append(DatabaseInfo(name=database_name, tables=tables))
    return databases


def save_schema_snapshot(path: Path, databases: list[DatabaseInfo]) -> None:
    """Persist catalog records as JSON."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise CacheError(f"Failed to create snapshot directory: {exc}") from exc

    payload = {"databases": [database.to_dict() for database in databases]}
    try:
        path.write_text(
            json.dumps(payload, indent=2) + "\n",
            encoding="utf-8",
        )
    except OSError as exc:
        raise CacheError(f"Failed to write schema snapshot file: {exc}") from exc


def load_schema_snapshot(path: Path) -> list[DatabaseInfo]:
    """Load and validate a schema snapshot JSON file."""
    if not path.exists():
        raise CacheError(f"Schema snapshot file does not exist: {path}")

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CacheError(f"Schema snapshot file is not valid JSON: {exc}") from exc
    except OSError as exc:
        raise CacheError(f"Failed to read schema snapshot file: {exc}") from exc

    if not isinstance(payload, dict):
        raise CacheError("Schema snapshot payload root must be a JSON object.")

    return parse_schema_snapshot(payload)
