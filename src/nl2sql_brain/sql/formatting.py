"""SQL parsing and display helpers backed by SQLGlot."""

from __future__ import annotations

from sqlglot import exp, parse_one
from sqlglot.errors import ParseError, TokenError

DEFAULT_DIALECT = "duckdb"


class SQLParseError(RuntimeError):
    """Raised when SQL cannot be parsed."""


def parse_sql(sql: str, dialect: str = DEFAULT_DIALECT) -> exp.Expression:
    """Parse a single SQL statement in ``dialect``."""
    normalized = sql.strip().rstrip(";").strip()
    if not normalized:
        raise SQLParseError("SQL cannot be empty.")

    try:
        return parse_one(normalized, read=dialect)
    except (ParseError, TokenError) as exc:
        raise SQLParseError(f"Invalid SQL: {exc}") from exc


def format_sql_for_display(sql: str, dialect: str = DEFAULT_DIALECT) -> str:
    """Pretty-print ``sql``; text SQLGlot cannot parse is returned as-is."""
    try:
        expression = parse_sql(sql, dialect)
    except SQLParseError:
        return sql.strip()
    return expression.sql(dialect=dialect, pretty=True)
