"""Command-line entrypoint for nl2sql-brain."""

from __future__ import annotations

import argparse
import os
import sys

from nl2sql_brain import __version__

PROVIDER_CHOICES = ("local", "openai", "anthropic", "openai-compatible")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nl2sql-brain",
        description=(
            "Turn natural-language questions into SQL with a local model or a "
            "hosted AI provider."
        ),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level for stderr diagnostics (default: NL2SQL_LOG_LEVEL or WARNING).",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser(
        "config-check",
        help="Validate environment configuration for nl2sql-brain.",
    )
    subparsers.add_parser(
        "list-models",
        help="List local and hosted models that can be selected.",
    )
    connection_parser = subparsers.add_parser(
        "test-connection",
        help="Check that the configured provider can be reached.",
    )
    connection_parser.add_argument(
        "--provider",
        choices=PROVIDER_CHOICES,
        default=None,
        help="Provider to test (default: NL2SQL_PROVIDER).",
    )
    subparsers.add_parser(
        "show-schema",
        help="Show the schema snapshot as it is sent to the model.",
    )
    prompt_parser = subparsers.add_parser(
        "build-prompt",
        help="Build the text-to-SQL prompt for a question without calling a model.",
    )
    prompt_parser.add_argument("question", help="Natural language question.")
    generate_parser = subparsers.add_parser(
        "generate-sql",
        help="Stream a SQL answer for a question from the configured provider.",
    )
    generate_parser.add_argument("question", help="Natural language question.")
    generate_parser.add_argument(
        "--provider",
        choices=PROVIDER_CHOICES,
        default=None,
        help="Provider to use (default: NL2SQL_PROVIDER).",
    )
    generate_parser.add_argument(
        "--quiet",
        action="store_true",
        help="Do not echo streamed tokens; print only the extracted SQL.",
    )
    extract_parser = subparsers.add_parser(
        "extract-sql",
        help="Extract and score SQL from a model reply ('-' reads stdin).",
    )
    extract_parser.add_argument("text", help="Model reply text, or '-' for stdin.")
    return parser


def _print_missing_dependencies() -> int:
    print(
        "Runtime dependencies are missing. "
        "Install project dependencies first (pip install -e .).",
        file=sys.stderr,
    )
    return 2


def _load_databases(settings):
    """Schema snapshot databases, or an empty catalog when no snapshot exists."""
    from loguru import logger

    from nl2sql_brain.schema.cache import load_schema_snapshot

    if not settings.schema_snapshot_path.exists():
        logger.warning(
            "No schema snapshot at {}; prompting without schema",
            settings.schema_snapshot_path,
        )
        return []
    return load_schema_snapshot(settings.schema_snapshot_path)


def _print_parse_result(parsed) -> None:
    from nl2sql_brain.sql.formatting import format_sql_for_display

    print(f"- confidence: {parsed.confidence:.2f}")
    print("- issues:")
    if parsed.issues:
        for issue in parsed.issues:
            print(f"  - {issue}")
    else:
        print("  - (none)")
    print("\nSQL:")
    print(format_sql_for_display(parsed.sql) if parsed.sql else "(none)")


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        from nl2sql_brain.logging_config import setup_logging
    except ModuleNotFoundError:
        return _print_missing_dependencies()

    log_level = (args.log_level or os.getenv("NL2SQL_LOG_LEVEL") or "WARNING").upper()
    try:
        setup_logging(level=log_level)
    except ValueError as exc:
        print(f"Configuration error:\n{exc}", file=sys.stderr)
        return 2

    if args.command == "config-check":
        try:
            from nl2sql_brain.config import ConfigError, load_settings
        except ModuleNotFoundError:
            return _print_missing_dependencies()

        try:
            settings = load_settings()
        except ConfigError as exc:
            print(f"Configuration error:\n{exc}", file=sys.stderr)
            return 2

        def redacted(value: str) -> str:
            return "***" if value else "(not set)"

        print("Configuration loaded successfully:")
        print(f"- NL2SQL_PROVIDER: {settings.provider.value}")
        print(f"- NL2SQL_LOCAL_MODEL: {settings.local_model}")
        print(f"- OPENAI_API_KEY: {redacted(settings.openai_api_key)}")
        print(f"- OPENAI_MODEL: {settings.openai_model}")
        print(f"- OPENAI_BASE_URL: {settings.openai_base_url or '(default)'}")
        print(f"- ANTHROPIC_API_KEY: {redacted(settings.anthropic_api_key)}")
        print(f"- ANTHROPIC_MODEL: {settings.anthropic_model}")
        print(f"- ANTHROPIC_BASE_URL: {settings.anthropic_base_url or '(default)'}")
        print(f"- COMPATIBLE_BASE_URL: {settings.compatible_base_url or '(not set)'}")
        print(f"- COMPATIBLE_MODEL: {settings.compatible_model or '(not set)'}")
        print(f"- COMPATIBLE_API_KEY: {redacted(settings.compatible_api_key)}")
        print(f"- SCHEMA_SNAPSHOT_PATH: {settings.schema_snapshot_path}")
        print(f"- NL2SQL_LOG_LEVEL: {settings.log_level}")
        return 0

    if args.command == "list-models":
        try:
            from nl2sql_brain.models.catalog import (
                ANTHROPIC_MODELS,
                AVAILABLE_MODELS,
                DEFAULT_MODEL,
                OPENAI_MODELS,
            )
        except ModuleNotFoundError:
            return _print_missing_dependencies()

        print("Local models:")
        for descriptor in AVAILABLE_MODELS:
            marker = " [default]" if descriptor.id == DEFAULT_MODEL.id else ""
            print(
                f"- {descriptor.id}{marker}: {descriptor.display_name} "
                f"({descriptor.size_estimate}, {descriptor.context_length} ctx)"
            )
            print(f"  {descriptor.description}")
        for title, options in (("OpenAI", OPENAI_MODELS), ("Anthropic", ANTHROPIC_MODELS)):
            print(f"\n{title} models:")
            for option in options:
                print(f"- {option.id}: {option.name} - {option.description}")
        return 0

    if args.command == "test-connection":
        try:
            from nl2sql_brain.config import ConfigError, ProviderType, load_settings
            from nl2sql_brain.llm.registry import ProviderRegistry
        except ModuleNotFoundError:
            return _print_missing_dependencies()

        try:
            settings = load_settings()
            provider_type = ProviderType(args.provider or settings.provider)
            result = ProviderRegistry().test_connection(
                provider_type, settings.provider_config(provider_type)
            )
        except ConfigError as exc:
            print(f"Configuration error:\n{exc}", file=sys.stderr)
            return 2

        if not result.success:
            print(
                f"Connection test for {provider_type.value} failed:\n{result.error}",
                file=sys.stderr,
            )
            return 1
        print(f"Connection test for {provider_type.value} succeeded.")
        return 0

    if args.command == "show-schema":
        try:
            from nl2sql_brain.config import ConfigError, load_settings
            from nl2sql_brain.schema.cache import CacheError, load_schema_snapshot
            from nl2sql_brain.schema.formatter import (
                format_schema_for_context,
                get_schema_summary,
            )
        except ModuleNotFoundError:
            return _print_missing_dependencies()

        try:
            settings = load_settings()
            databases = load_schema_snapshot(settings.schema_snapshot_path)
        except ConfigError as exc:
            print(f"Configuration error:\n{exc}", file=sys.stderr)
            return 2
        except CacheError as exc:
            print(f"Schema snapshot read failed:\n{exc}", file=sys.stderr)
            return 1

        context = format_schema_for_context(databases)
        print("Schema snapshot loaded:")
        print(f"- snapshot_path: {settings.schema_snapshot_path}")
        print(f"- databases: {', '.join(db.name for db in databases) or '(none)'}")
        print(f"- summary: {get_schema_summary(databases)}")
        print(f"- truncated: {'yes' if context.truncated else 'no'}")
        print("\n--- SCHEMA CONTEXT ---")
        print(context.formatted)
        return 0

    if args.command == "build-prompt":
        try:
            from nl2sql_brain.config import ConfigError, load_settings
            from nl2sql_brain.prompts.sql_generation import PromptBuilder, PromptBuildError
            from nl2sql_brain.schema.cache import CacheError
        except ModuleNotFoundError:
            return _print_missing_dependencies()

        try:
            settings = load_settings()
            databases = _load_databases(settings)
            bundle = PromptBuilder().build(args.question, databases)
        except ConfigError as exc:
            print(f"Configuration error:\n{exc}", file=sys.stderr)
            return 2
        except CacheError as exc:
            print(f"Schema snapshot read failed:\n{exc}", file=sys.stderr)
            return 1
        except PromptBuildError as exc:
            print(f"Prompt build failed:\n{exc}", file=sys.stderr)
            return 1

        print("Prompt build succeeded:")
        print(f"- question: {bundle.question}")
        print(
            f"- schema: {bundle.schema_context.table_count} tables, "
            f"{bundle.schema_context.column_count} columns"
            f"{' (truncated)' if bundle.schema_context.truncated else ''}"
        )
        print(f"- prompt_chars: {bundle.prompt_chars}")
        for message in bundle.messages:
            print(f"\n--- {message.role.upper()} ---")
            print(message.content)
        return 0

    if args.command == "generate-sql":
        try:
            from nl2sql_brain.config import ConfigError, ProviderType, load_settings
            from nl2sql_brain.llm.base import ProviderError
            from nl2sql_brain.orchestrator import GenerationOrchestrator
            from nl2sql_brain.prompts.sql_generation import PromptBuildError
            from nl2sql_brain.schema.cache import CacheError
        except ModuleNotFoundError:
            return _print_missing_dependencies()

        printed = 0
        echoed = False

        def echo_tokens(snapshot) -> None:
            nonlocal printed, echoed
            text = snapshot.streaming_text
            if len(text) < printed:
                printed = 0
            if len(text) > printed:
                sys.stdout.write(text[printed:])
                sys.stdout.flush()
                printed = len(text)
                echoed = True

        try:
            settings = load_settings()
            databases = _load_databases(settings)
            provider_type = ProviderType(args.provider or settings.provider)
            with GenerationOrchestrator.from_settings(settings, provider_type) as brain:
                brain.set_schema(databases)
                brain.initialize_provider()
                if not args.quiet:
                    brain.subscribe(echo_tokens)
                try:
                    brain.generate_sql(args.question)
                except KeyboardInterrupt:
                    brain.abort_generation()
                    raise
                parsed = brain.last_parse
        except ConfigError as exc:
            print(f"Configuration error:\n{exc}", file=sys.stderr)
            return 2
        except CacheError as exc:
            print(f"Schema snapshot read failed:\n{exc}", file=sys.stderr)
            return 1
        except PromptBuildError as exc:
            print(f"Prompt build failed:\n{exc}", file=sys.stderr)
            return 1
        except ProviderError as exc:
            print(f"SQL generation failed:\n{exc}", file=sys.stderr)
            return 1
        except ValueError as exc:
            print(f"Invalid question:\n{exc}", file=sys.stderr)
            return 1

        if echoed:
            print()
        if parsed is None or parsed.sql is None:
            print("\nNo SQL statement found in the model reply.", file=sys.stderr)
            if parsed is not None:
                for issue in parsed.issues:
                    print(f"- {issue}", file=sys.stderr)
            return 1
        print("\nSQL generation succeeded:")
        _print_parse_result(parsed)
        return 0

    if args.command == "extract-sql":
        try:
            from nl2sql_brain.sql.parser import extract_sql_from_response
        except ModuleNotFoundError:
            return _print_missing_dependencies()

        text = sys.stdin.read() if args.text == "-" else args.text
        parsed = extract_sql_from_response(text)
        if parsed.sql is None:
            print("No SQL statement found:")
            for issue in parsed.issues:
                print(f"- {issue}")
            return 1
        print("SQL extracted:")
        _print_parse_result(parsed)
        return 0

    print(f"Command '{args.command}' is not implemented.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
