"""SQL extraction and formatting utilities."""

from nl2sql_brain.sql.formatting import (
    SQLParseError,
    format_sql_for_display,
    parse_sql,
)
from nl2sql_brain.sql.parser import (
    ParsedSQLResult,
    extract_sql_from_response,
    starts_with_sql_keyword,
)

__all__ = [
    "ParsedSQLResult",
    "SQLParseError",
    "extract_sql_from_response",
    "format_sql_for_display",
    "parse_sql",
    "starts_with_sql_keyword",
]
