"""Catalog metadata handed over by the schema service."""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_DATABASE = "memory"


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str
    nullable: bool = True

    def to_dict(self) -> dict[str, object]:
        return {"name": self.name, "type": self.type, "nullable": self.nullable}


@dataclass(frozen=True)
class TableInfo:
    name: str
    columns: list[ColumnInfo] = field(default_factory=list)
    row_count: int = 0

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "row_count": self.row_count,
            "columns": [column.to_dict() for column in self.columns],
        }


@dataclass(frozen=True)
class DatabaseInfo:
    name: str
    tables: list[TableInfo] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "tables": [table.to_dict() for table in self.tables],
        }

    def qualified_name(self, table: TableInfo) -> str:
        if self.name == DEFAULT_DATABASE:
            return table.name
        return f"{self.name}.{table.name}"

    @property
    def table_count(self) -> int:
        return len(self.tables)
