"""Prompt builder for text-to-SQL generation requests."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass

from nl2sql_brain.llm.base import ChatMessage
from nl2sql_brain.models.conversation import ConversationMessage, QueryResultData
from nl2sql_brain.schema.catalog import DatabaseInfo
from nl2sql_brain.schema.formatter import (
    DEFAULT_MAX_COLUMNS_PER_TABLE,
    DEFAULT_MAX_CONTEXT_LENGTH,
    DEFAULT_MAX_TABLES,
    SchemaContext,
    format_schema_for_context,
)

MAX_RESULTS_IN_CONTEXT = 3
MAX_ROWS_PER_RESULT = 10
DEFAULT_MAX_PROMPT_CHARS = 12000


class PromptBuildError(RuntimeError):
    """Raised when a generation prompt cannot be built within its limits."""


TEXT_TO_SQL_SYSTEM_PROMPT = """You are a SQL query generator for an analytical database.

RULES:
1. Output ONLY the SQL query - no explanations, no markdown code fences
2. ONLY use tables and columns shown in the DATABASE SCHEMA below
3. If a table or column doesn't exist in the schema, don't use it
4. Always check the schema for correct table and column names
5. Write a single statement

Dialect notes:
- Use ILIKE for case-insensitive matching
- LIMIT goes at the end: SELECT * FROM table LIMIT 10
- String literals use single quotes: 'value'
- Use || for string concatenation
- Date functions: date_trunc('month', col), date_part('year', col)
- GROUP BY ALL groups by every non-aggregated column

IMPORTANT: Start your response directly with SELECT, INSERT, UPDATE, DELETE, \
CREATE, WITH, SHOW, DESCRIBE, or another SQL keyword. No explanations, no markdown."""

RESULTS_CONTEXT_HEADER = (
    "\n\n--- PREVIOUS QUERY RESULTS ---\n"
    "You can reference these results to write follow-up queries or analyze "
    "the data further.\n\n"
)

FEW_SHOT_EXAMPLES: tuple[ChatMessage, ...] = (
    ChatMessage("user", "Show me the top 5 customers by total orders"),
    ChatMessage(
        "assistant",
        "SELECT customer_id, COUNT(*) AS total_orders FROM orders "
        "GROUP BY customer_id ORDER BY total_orders DESC LIMIT 5",
    ),
    ChatMessage("user", "Find duplicate emails"),
    ChatMessage(
        "assistant",
        "SELECT email, COUNT(*) AS count FROM users GROUP BY email HAVING COUNT(*) > 1",
    ),
    ChatMessage("user", "Calculate month over month revenue growth"),
    ChatMessage(
        "assistant",
        "SELECT\n"
        "  date_trunc('month', order_date) AS month,\n"
        "  SUM(amount) AS revenue,\n"
        "  LAG(SUM(amount)) OVER (ORDER BY date_trunc('month', order_date)) AS prev_month\n"
        "FROM orders\n"
        "GROUP BY date_trunc('month', order_date)\n"
        "ORDER BY month",
    ),
    ChatMessage("user", "Sample 100 random rows from the transactions table"),
    ChatMessage("assistant", "SELECT * FROM transactions USING SAMPLE 100"),
)


@dataclass(frozen=True)
class PromptBundle:
    """Inspectable prompt handed to a provider."""

    question: str
    messages: list[ChatMessage]
    schema_context: SchemaContext
    prompt_chars: int


def _render_result(sql: str | None, data: QueryResultData) -> str:
    preview = data.rows[:MAX_ROWS_PER_RESULT]
    column_info = ", ".join(
        f"{column} ({column_type})"
        for column, column_type in zip(data.columns, data.column_types)
    )
    return (
        f"Previous Query: {sql}\n"
        f"Columns: {column_info}\n"
        f"Row Count: {data.row_count}\n"
        f"Sample Data (first {min(MAX_ROWS_PER_RESULT, data.row_count)} rows):\n"
        f"{json.dumps(preview, indent=2, default=str)}"
    )


def build_results_context(messages: Sequence[ConversationMessage]) -> str:
    """Summarize the most recent successful query results for follow-ups."""
    results = [
        (message.sql, message.query_result.data)
        for message in messages
        if message.has_successful_result
    ]
    recent = results[-MAX_RESULTS_IN_CONTEXT:]
    if not recent:
        return ""
    return RESULTS_CONTEXT_HEADER + "\n\n---\n\n".join(
        _render_result(sql, data) for sql, data in recent
    )


def build_text_to_sql_messages(
    user_query: str,
    schema_context: str,
    previous_messages: Sequence[ConversationMessage] = (),
    include_few_shot: bool = True,
) -> list[ChatMessage]:
    """Assemble system prompt, schema, results context, examples, and question."""
    results_context = build_results_context(previous_messages)
    messages = [
        ChatMessage(
            "system",
            f"{TEXT_TO_SQL_SYSTEM_PROMPT}\n\n{schema_context}{results_context}",
        )
    ]
    if include_few_shot:
        messages.extend(FEW_SHOT_EXAMPLES)
    messages.append(ChatMessage("user", user_query))
    return messages


def _prompt_chars(messages: Sequence[ChatMessage]) -> int:
    return sum(len(message.content) for message in messages)


@dataclass(frozen=True)
class PromptBuilder:
    """Builds prompts that stay within a total character budget.

    The schema block is the only elastic part: its allowance is whatever the
    fixed parts (instructions, results context, examples, question) leave of
    ``max_prompt_chars``, capped at ``max_schema_chars``.
    """

    max_prompt_chars: int = DEFAULT_MAX_PROMPT_CHARS
    max_tables: int = DEFAULT_MAX_TABLES
    max_columns_per_table: int = DEFAULT_MAX_COLUMNS_PER_TABLE
    max_schema_chars: int = DEFAULT_MAX_CONTEXT_LENGTH
    include_few_shot: bool = True

    def build(
        self,
        question: str,
        databases: Sequence[DatabaseInfo],
        previous_messages: Sequence[ConversationMessage] = (),
    ) -> PromptBundle:
        normalized_question = question.strip()
        if not normalized_question:
            raise PromptBuildError("Question cannot be empty.")

        fixed = build_text_to_sql_messages(
            normalized_question,
            "",
            previous_messages,
            self.include_few_shot,
        )
        schema_budget = min(
            self.max_schema_chars, self.max_prompt_chars - _prompt_chars(fixed)
        )
        if schema_budget <= 0:
            raise PromptBuildError(
                "Prompt exceeds the character budget before adding the schema "
                f"({_prompt_chars(fixed)} > {self.max_prompt_chars})."
            )

        schema_context = format_schema_for_context(
            list(databases),
            max_tables=self.max_tables,
            max_columns_per_table=self.max_columns_per_table,
            max_context_length=schema_budget,
        )
        messages = build_text_to_sql_messages(
            normalized_question,
            schema_context.formatted,
            previous_messages,
            self.include_few_shot,
        )
        return PromptBundle(
            question=normalized_question,
            messages=messages,
            schema_context=schema_context,
            prompt_chars=_prompt_chars(messages),
        )
