"""Tests for SQL extraction from model replies."""

import pytest

from nl2sql_brain.sql.formatting import SQLParseError, format_sql_for_display, parse_sql
from nl2sql_brain.sql.parser import extract_sql_from_response, starts_with_sql_keyword
from nl2sql_brain.sql.rules import (
    ISSUE_FROM_CODE_BLOCK,
    ISSUE_LONGEST_CODE_BLOCK,
    ISSUE_MISMATCHED_PARENS,
    ISSUE_MISSING_FROM,
    ISSUE_NO_KEYWORD,
    ISSUE_REMOVED_PREFIX,
    ISSUE_TRIMMED_TRAILING,
)


class TestCodeBlocks:
    """Fenced answers take priority over everything else."""

    def test_fenced_sql_block(self):
        result = extract_sql_from_response("Sure! ```sql\nSELECT 1;\n```")
        assert result.sql == "SELECT 1;"
        assert result.issues == [ISSUE_FROM_CODE_BLOCK]
        assert result.confidence == pytest.approx(0.9)

    def test_first_block_starting_with_keyword_wins(self):
        text = (
            "First install it:\n```\npip install duckdb\n```\n"
            "Then run:\n```sql\n  select count(*) from users  \n```\n"
            "```sql\nSELECT 2 FROM t\n```"
        )
        result = extract_sql_from_response(text)
        assert result.sql == "select count(*) from users"
        assert result.issues == [ISSUE_FROM_CODE_BLOCK]

    def test_longest_block_used_when_none_start_with_keyword(self):
        text = "```\nfoo\n```\n```\n-- note\nSELECT * FROM users\n```"
        result = extract_sql_from_response(text)
        assert result.sql is None
        assert result.issues == [ISSUE_LONGEST_CODE_BLOCK, ISSUE_NO_KEYWORD]

    def test_empty_blocks_are_ignored(self):
        result = extract_sql_from_response("```sql\n```\nSELECT name FROM users")
        assert result.sql == "SELECT name FROM users"
        assert result.issues == []
        assert result.confidence == 1.0


class TestPlainText:
    """Replies without code fences."""

    def test_plain_statement(self):
        result = extract_sql_from_response("SELECT name FROM users WHERE id = 1")
        assert result.sql == "SELECT name FROM users WHERE id = 1"
        assert result.issues == []
        assert result.confidence == 1.0

    def test_explanatory_prefix_and_trailing_prose(self):
        text = "Here's the SQL:\nSELECT name FROM users;\nThis returns every user."
        result = extract_sql_from_response(text)
        assert result.sql == "SELECT name FROM users;"
        assert result.issues == [ISSUE_REMOVED_PREFIX, ISSUE_TRIMMED_TRAILING]
        assert result.confidence == pytest.approx(0.8)

    def test_lowercase_statement_after_prefix(self):
        result = extract_sql_from_response("The query is: select * from orders")
        assert result.sql == "select * from orders"
        assert result.issues == [ISSUE_REMOVED_PREFIX]

    def test_prose_before_uppercase_keyword(self):
        result = extract_sql_from_response("To list users run SELECT * FROM users;")
        assert result.sql == "SELECT * FROM users;"
        assert result.issues == []

    def test_keeps_statement_when_text_after_semicolon_is_sql(self):
        text = "SELECT 1 FROM a; SELECT 2 FROM b;"
        result = extract_sql_from_response(text)
        assert result.sql == text

    def test_refusal_has_no_sql(self):
        result = extract_sql_from_response("I cannot help with that request.")
        assert result.sql is None
        assert result.confidence == 0
        assert result.issues[-1] == ISSUE_NO_KEYWORD

    @pytest.mark.parametrize(
        "text",
        ["Importantly, I cannot help with that.", "Updated tables are not listed."],
    )
    def test_keyword_inside_a_longer_word_is_prose(self, text):
        result = extract_sql_from_response(text)
        assert result.sql is None
        assert result.issues[-1] == ISSUE_NO_KEYWORD

    def test_stray_backticks_are_removed(self):
        result = extract_sql_from_response("`SELECT name FROM users`")
        assert result.sql == "SELECT name FROM users"

    @pytest.mark.parametrize(
        "text",
        [
            "WITH t AS (SELECT 1 AS x) SELECT x FROM t",
            "DESCRIBE users",
            "SHOW TABLES",
            "CREATE TABLE t (id INTEGER)",
            "COPY users TO 'users.csv'",
        ],
    )
    def test_recognised_statement_kinds(self, text):
        assert extract_sql_from_response(text).sql == text


class TestStructuralNotes:
    """Structural notes lower confidence but never reject the statement."""

    def test_select_without_from(self):
        result = extract_sql_from_response("SELECT name WHERE id = 1")
        assert result.sql == "SELECT name WHERE id = 1"
        assert ISSUE_MISSING_FROM in result.issues

    @pytest.mark.parametrize("text", ["SELECT 1", "SELECT 1+1;", "SELECT (2 * 3)"])
    def test_constant_select_needs_no_from(self, text):
        assert ISSUE_MISSING_FROM not in extract_sql_from_response(text).issues

    def test_mismatched_parentheses(self):
        result = extract_sql_from_response("SELECT COUNT(*) FROM users WHERE id IN (1, 2")
        assert result.sql is not None
        assert result.issues == [ISSUE_MISMATCHED_PARENS]
        assert result.confidence == pytest.approx(0.9)

    def test_each_issue_costs_confidence(self):
        text = "Sure, here's: ```\nnot sql\n``` ```\nSELECT (x WHERE\n```"
        result = extract_sql_from_response(text)
        assert result.sql == "SELECT (x WHERE"
        assert result.issues == [
            ISSUE_FROM_CODE_BLOCK,
            ISSUE_MISSING_FROM,
            ISSUE_MISMATCHED_PARENS,
        ]
        assert result.confidence == pytest.approx(0.7)


class TestFormatting:
    def test_pretty_prints_valid_sql(self):
        formatted = format_sql_for_display("select name from users where id = 1;")
        assert formatted.startswith("SELECT")
        assert "\nFROM users" in formatted

    def test_unparseable_sql_is_returned_unchanged(self):
        assert format_sql_for_display("  SELECT (1  ") == "SELECT (1"

    def test_parse_sql_rejects_empty(self):
        with pytest.raises(SQLParseError):
            parse_sql(" ; ")


@pytest.mark.parametrize(
    "text, expected",
    [
        ("select 1", True),
        ("SELECT(1)", True),
        ("WITH", True),
        ("Importantly", False),
        ("Selection of rows", False),
        ("", False),
    ],
)
def test_starts_with_sql_keyword(text, expected):
    assert starts_with_sql_keyword(text) is expected
