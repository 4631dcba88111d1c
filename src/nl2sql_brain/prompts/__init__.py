"""Prompt builders for nl2sql-brain."""

from nl2sql_brain.prompts.sql_generation import (
    FEW_SHOT_EXAMPLES,
    TEXT_TO_SQL_SYSTEM_PROMPT,
    PromptBuilder,
    PromptBuildError,
    PromptBundle,
    build_results_context,
    build_text_to_sql_messages,
)

__all__ = [
    "FEW_SHOT_EXAMPLES",
    "TEXT_TO_SQL_SYSTEM_PROMPT",
    "PromptBuildError",
    "PromptBuilder",
    "PromptBundle",
    "build_results_context",
    "build_text_to_sql_messages",
]
