"""Conversation records owned by the generation orchestrator."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any, Literal

Role = Literal["system", "user", "assistant"]
QueryStatus = Literal["running", "success", "error"]


def _now() -> datetime:
    return datetime.now(tz=UTC)


def new_message_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class QueryResultData:
    """Tabular result returned by the external query executor."""

    columns: list[str]
    column_types: list[str]
    rows: list[dict[str, Any]]
    row_count: int


@dataclass(frozen=True)
class QueryResult:
    """Execution state of the SQL attached to an assistant message."""

    status: QueryStatus
    data: QueryResultData | None = None
    error: str | None = None
    executed_at: datetime | None = None


@dataclass(frozen=True)
class ConversationMessage:
    """A single turn in the text-to-SQL conversation."""

    role: Role
    content: str
    id: str = field(default_factory=new_message_id)
    timestamp: datetime = field(default_factory=_now)
    sql: str | None = None
    query_result: QueryResult | None = None

    def with_query_result(self, query_result: QueryResult) -> ConversationMessage:
        return replace(self, query_result=query_result)

    @property
    def has_successful_result(self) -> bool:
        return (
            self.role == "assistant"
            and bool(self.sql)
            and self.query_result is not None
            and self.query_result.status == "success"
            and self.query_result.data is not None
        )
