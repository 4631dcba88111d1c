"""Extract and score a SQL candidate from raw model text."""

from __future__ import annotations

from dataclasses import dataclass, field

from nl2sql_brain.sql.rules import (
    CODE_BLOCK_PATTERN,
    CONFIDENCE_PENALTY_PER_ISSUE,
    CONSTANT_SELECT_PATTERN,
    EXPLANATORY_PREFIX_PATTERNS,
    FROM_CLAUSE_PATTERN,
    ISSUE_FROM_CODE_BLOCK,
    ISSUE_LONGEST_CODE_BLOCK,
    ISSUE_MISMATCHED_PARENS,
    ISSUE_MISSING_FROM,
    ISSUE_NO_KEYWORD,
    ISSUE_REMOVED_PREFIX,
    ISSUE_TRIMMED_TRAILING,
    KEYWORD_TOKEN_PATTERNS,
    LEADING_KEYWORD_PATTERN,
    MIN_CONFIDENCE,
    STRAY_BACKTICKS_PATTERN,
    TRAILING_EXPLANATION_PATTERN,
)


@dataclass(frozen=True)
class ParsedSQLResult:
    """Outcome of SQL extraction; ``sql`` is None when nothing usable was found."""

    sql: str | None
    confidence: float
    issues: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return self.sql is not None


def starts_with_sql_keyword(text: str) -> bool:
    return LEADING_KEYWORD_PATTERN.match(text) is not None


def _code_blocks(text: str) -> list[str]:
    blocks = (match.group(1).strip() for match in CODE_BLOCK_PATTERN.finditer(text))
    return [block for block in blocks if block]


def _pick_code_block(blocks: list[str], issues: list[str]) -> str:
    for block in blocks:
        if starts_with_sql_keyword(block):
            issues.append(ISSUE_FROM_CODE_BLOCK)
            return block
    issues.append(ISSUE_LONGEST_CODE_BLOCK)
    # max() keeps the first of equally long blocks.
    return max(blocks, key=len)


def _strip_explanatory_prefix(text: str, issues: list[str]) -> str:
    for pattern in EXPLANATORY_PREFIX_PATTERNS:
        if pattern.search(text):
            issues.append(ISSUE_REMOVED_PREFIX)
            return pattern.sub("", text, count=1).strip()
    return text


def _slice_from_first_keyword(text: str, issues: list[str]) -> str:
    starts = [
        match.start()
        for match in (pattern.search(text) for pattern in KEYWORD_TOKEN_PATTERNS)
        if match is not None
    ]
    if not starts:
        return text

    sql_part = text[min(starts):]
    semicolon = sql_part.find(";")
    if semicolon != -1:
        after = sql_part[semicolon + 1:].strip()
        if not after or TRAILING_EXPLANATION_PATTERN.search(after):
            sql_part = sql_part[: semicolon + 1]
            if after:
                issues.append(ISSUE_TRIMMED_TRAILING)
    return sql_part.strip()


def _structural_issues(sql: str) -> list[str]:
    issues: list[str] = []
    if sql.upper().startswith("SELECT"):
        has_from = FROM_CLAUSE_PATTERN.search(sql) or CONSTANT_SELECT_PATTERN.search(sql)
        if not has_from:
            issues.append(ISSUE_MISSING_FROM)
    if sql.count("(") != sql.count(")"):
        issues.append(ISSUE_MISMATCHED_PARENS)
    return issues


def extract_sql_from_response(response: str) -> ParsedSQLResult:
    """Pull the most plausible SQL statement out of a model reply.

    The pipeline is ordered: fenced code blocks win; otherwise explanatory
    prefixes are removed and the text is sliced from the first SQL keyword,
    dropping prose after a terminating semicolon. Every heuristic that fires
    is recorded in ``issues`` and costs 0.1 confidence.
    """
    issues: list[str] = []
    cleaned = response.strip()

    blocks = _code_blocks(cleaned)
    if blocks:
        cleaned = _pick_code_block(blocks, issues)
    else:
        cleaned = _strip_explanatory_prefix(cleaned, issues)
        cleaned = _slice_from_first_keyword(cleaned, issues)

    cleaned = STRAY_BACKTICKS_PATTERN.sub("", cleaned).strip()

    if not starts_with_sql_keyword(cleaned):
        issues.append(ISSUE_NO_KEYWORD)
        return ParsedSQLResult(sql=None, confidence=0.0, issues=issues)

    issues.extend(_structural_issues(cleaned))

    confidence = max(MIN_CONFIDENCE, 1.0 - CONFIDENCE_PENALTY_PER_ISSUE * len(issues))
    return ParsedSQLResult(sql=cleaned, confidence=round(confidence, 2), issues=issues)
