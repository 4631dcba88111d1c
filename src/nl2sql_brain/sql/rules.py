"""Heuristic rules used to pull SQL out of free-form model output.

These patterns are approximate. They were tuned against typical chat-model
replies (fenced answers, "Here's the query:" preambles, trailing notes) and
are not backed by a grammar. Extend the tables below rather than adding
special cases to the parser.
"""

from __future__ import annotations

import re

SQL_KEYWORDS: tuple[str, ...] = (
    "SELECT",
    "INSERT",
    "UPDATE",
    "DELETE",
    "CREATE",
    "DROP",
    "ALTER",
    "WITH",
    "SHOW",
    "DESCRIBE",
    "EXPLAIN",
    "PRAGMA",
    "COPY",
    "EXPORT",
    "IMPORT",
)

CODE_BLOCK_PATTERN = re.compile(r"```(?:sql|SQL)?\s*(.*?)```", re.DOTALL)

# Checked in order; only the first match is removed.
EXPLANATORY_PREFIX_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^(?:Here(?:'s| is)(?: the)? (?:SQL|query)[:\s]*)",
        r"^(?:The (?:SQL|query) (?:is|would be)[:\s]*)",
        r"^(?:SQL[:\s]+)",
        r"^(?:Query[:\s]+)",
        r"^(?:Try this[:\s]*)",
        r"^(?:You can use[:\s]*)",
        r"^(?:Sure[,!]?\s*(?:here(?:'s| is)[:\s]*)?)",
        r"^(?:Certainly[,!]?\s*(?:here(?:'s| is)[:\s]*)?)",
    )
)

_KEYWORD_ALTERNATION = "|".join(SQL_KEYWORDS)

# A keyword counts as the start of SQL when it is written in upper case, or
# in any case at the beginning of a line. Lower-case words in prose ("help
# with that") must not be mistaken for a statement.
KEYWORD_TOKEN_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b(?:" + _KEYWORD_ALTERNATION + r")\b"),
    re.compile(
        r"^[ \t]*(?:" + _KEYWORD_ALTERNATION + r")\b", re.IGNORECASE | re.MULTILINE
    ),
)

LEADING_KEYWORD_PATTERN = re.compile(
    r"(?:" + _KEYWORD_ALTERNATION + r")\b", re.IGNORECASE
)

TRAILING_EXPLANATION_PATTERN = re.compile(
    r"^(?:This|Note|The above|It |I |You |Where |Which |Here |--)", re.IGNORECASE
)

STRAY_BACKTICKS_PATTERN = re.compile(r"^`+|`+$")

FROM_CLAUSE_PATTERN = re.compile(r"\bFROM\b", re.IGNORECASE)

# SELECT 1, SELECT 1+1, SELECT (2 * 3); ...
CONSTANT_SELECT_PATTERN = re.compile(r"^SELECT\s+[\d+\-*/() ]+;?\s*$", re.IGNORECASE)

ISSUE_FROM_CODE_BLOCK = "Extracted from code block"
ISSUE_LONGEST_CODE_BLOCK = "Used longest code block"
ISSUE_REMOVED_PREFIX = "Removed explanatory prefix"
ISSUE_TRIMMED_TRAILING = "Trimmed trailing explanation after semicolon"
ISSUE_NO_KEYWORD = "Does not start with expected SQL keyword"
ISSUE_MISSING_FROM = "SELECT query might be missing FROM clause"
ISSUE_MISMATCHED_PARENS = "Mismatched parentheses - query may be incomplete"

CONFIDENCE_PENALTY_PER_ISSUE = 0.1
MIN_CONFIDENCE = 0.1
