"""nl2sql-brain: natural language to SQL with pluggable model backends."""

__version__ = "0.1.0"
