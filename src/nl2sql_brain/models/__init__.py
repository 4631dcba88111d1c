"""Typed records shared across nl2sql-brain components."""

from nl2sql_brain.models.catalog import (
    ANTHROPIC_MODELS,
    AVAILABLE_MODELS,
    DEFAULT_MODEL,
    OPENAI_MODELS,
    ModelDescriptor,
    ModelOption,
    get_model_descriptor,
)
from nl2sql_brain.models.conversation import (
    ConversationMessage,
    QueryResult,
    QueryResultData,
)

__all__ = [
    "ANTHROPIC_MODELS",
    "AVAILABLE_MODELS",
    "DEFAULT_MODEL",
    "OPENAI_MODELS",
    "ConversationMessage",
    "ModelDescriptor",
    "ModelOption",
    "QueryResult",
    "QueryResultData",
    "get_model_descriptor",
]
