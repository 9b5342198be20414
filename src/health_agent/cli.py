"""Command line interface for asking questions about your health data."""

import argparse
import asyncio
import re
import sys

from .aggregation import HealthAggregator
from .completion import CompletionClient
from .config import Settings, SourceSettings, get_settings
from .conversation import ConversationOrchestrator
from .logging import setup_logging
from .serializer import serialize_summary
from .sources import HealthDataSource, create_source
from .tracing import setup_tracing

_HEADING_RE = re.compile(r"^\s*#+\s*")


def clean_markdown_titles(markdown: str) -> str:
    """Strip leading heading markers so answers read as plain text."""
    return "\n".join(
        _HEADING_RE.sub("", line) if line.strip().startswith("#") else line
        for line in markdown.splitlines()
    )


def build_orchestrator(
    settings: Settings, source: HealthDataSource | None = None
) -> ConversationOrchestrator:
    """Wire a source, aggregator and completion client into an orchestrator."""
    source = source or create_source(settings)
    return ConversationOrchestrator(
        source=source,
        aggregator=HealthAggregator(source, settings.aggregation),
        completion_client=CompletionClient(settings.completion),
    )


async def _ask(settings: Settings, question: str) -> int:
    orchestrator = build_orchestrator(settings)
    try:
        reply = await orchestrator.ask(question)
    finally:
        await orchestrator.stop()

    if reply is None:
        print("Error: health data access was denied or the question was empty", file=sys.stderr)
        return 1
    print(clean_markdown_titles(reply.text))
    return 0


async def _chat(settings: Settings) -> int:
    orchestrator = build_orchestrator(settings)
    print("Ask about your health (Ctrl-D to quit).")
    try:
        while True:
            try:
                question = await asyncio.to_thread(input, "> ")
            except EOFError:
                print()
                return 0

            reply = await orchestrator.ask(question)
            if reply is not None:
                print(clean_markdown_titles(reply.text))
                print()
            elif question.strip():
                print("Health data access was denied.", file=sys.stderr)
    finally:
        await orchestrator.stop()


async def _summary(settings: Settings) -> int:
    source = create_source(settings)
    if not await source.request_authorization():
        print("Error: health data access was denied", file=sys.stderr)
        return 1
    document = await HealthAggregator(source, settings.aggregation).collect()
    print(serialize_summary(document))
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="health-agent",
        description="Ask an AI assistant about trends in your health data",
    )
    parser.add_argument(
        "--source",
        choices=["influxdb", "export"],
        default=None,
        help="Health data source (default: SOURCE_KIND or influxdb)",
    )
    parser.add_argument(
        "--export-path",
        default=None,
        help="Health Auto Export JSON file for the export source",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    ask_parser = subparsers.add_parser("ask", help="Ask a single question")
    ask_parser.add_argument("question", help="Question about your health")

    subparsers.add_parser("chat", help="Interactive question loop")
    subparsers.add_parser("summary", help="Print the collected health summary JSON")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.

    Usage:
        health-agent ask "How has my resting heart rate changed?"
        health-agent --source export --export-path export.json chat
        health-agent summary
    """
    args = build_parser().parse_args(argv)

    settings = get_settings()
    if args.source or args.export_path:
        source_settings = SourceSettings(
            kind=args.source or settings.source.kind,
            export_path=args.export_path or settings.source.export_path,
        )
        settings = settings.model_copy(update={"source": source_settings})

    setup_logging(settings.app)
    setup_tracing(settings.tracing)

    try:
        match args.command:
            case "ask":
                code = asyncio.run(_ask(settings, args.question))
            case "chat":
                code = asyncio.run(_chat(settings))
            case _:
                code = asyncio.run(_summary(settings))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        code = 2
    except KeyboardInterrupt:
        code = 130

    sys.exit(code)
