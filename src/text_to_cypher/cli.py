"""Command-line entry point: ask questions, preview Cypher, inspect schemas and models."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from .client import ClientOptions, TextToCypher, config_from_env
from .providers import ProviderRouter
from .trace import CompositeTraceSink, JsonlTraceSink, StdoutTraceSink, daily_trace_path
from .types import PipelineError, PipelineResponse, TraceSink


def _build_trace(args: argparse.Namespace) -> TraceSink | None:
    sinks: list[TraceSink] = []
    if not args.no_log:
        base = Path(os.getenv("TRACE_LOG_DIR", "logs/traces"))
        sinks.append(JsonlTraceSink(daily_trace_path(base)))
    if args.trace:
        sinks.append(StdoutTraceSink())
    if not sinks:
        return None
    return sinks[0] if len(sinks) == 1 else CompositeTraceSink(*sinks)


def _build_client(args: argparse.Namespace) -> TextToCypher:
    options = ClientOptions.from_env()
    if args.model:
        options = ClientOptions(args.model, options.api_key, options.graph_connection)
    return TextToCypher(options, config=config_from_env(), trace=_build_trace(args))


def _build_router() -> ProviderRouter:
    return ProviderRouter(os.getenv("TEXT_TO_CYPHER_API_KEY", ""), config=config_from_env())


def _load_messages(source: str) -> list[dict[str, object]]:
    text = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    data = json.loads(text)
    if not isinstance(data, list):
        raise ValueError("Messages file must hold a JSON array of {role, content} objects")
    return data


def _print_response(response: PipelineResponse, as_json: bool) -> int:
    if as_json:
        print(json.dumps(response.to_dict(), indent=2, ensure_ascii=False, default=str))
        return 0 if response.ok else 1

    if response.cypher_query:
        print("Cypher:\n" + response.cypher_query + "\n")
    if not response.ok:
        print(f"Error: {response.error}", file=sys.stderr)
        return 1
    if response.cypher_result is not None:
        print("Rows:")
        print(json.dumps(response.cypher_result, indent=2, ensure_ascii=False, default=str))
    if response.answer:
        print("\nAnswer:\n" + response.answer)
    elif response.cypher_result is not None:
        print("\nAnswer: (not available)")
    return 0


async def _dispatch(args: argparse.Namespace) -> int:
    if args.command == "models":
        router = _build_router()
        try:
            if args.provider:
                models = await router.list_models_by_provider(args.provider)
            else:
                models = await router.list_all_models()
        finally:
            await router.aclose()
        print("\n".join(models))
        return 0

    async with _build_client(args) as client:
        if args.command == "schema":
            schema_json = await client.discover_schema(args.graph, refresh=args.refresh)
            print(json.dumps(json.loads(schema_json), indent=2, ensure_ascii=False))
            return 0
        if args.command == "chat":
            response = await client.text_to_cypher_with_messages(args.graph, _load_messages(args.messages))
        elif args.command == "cypher":
            response = await client.cypher_only(args.graph, " ".join(args.question))
        else:
            response = await client.text_to_cypher(args.graph, " ".join(args.question))
    return _print_response(response, args.json)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="text-to-cypher", description="Ask a graph database questions in plain language"
    )
    parser.add_argument("--model", help="Model identifier, overrides TEXT_TO_CYPHER_MODEL")
    parser.add_argument("--json", action="store_true", help="Print the raw JSON response")
    parser.add_argument("--no-log", action="store_true", help="Disable JSONL trace logging")
    parser.add_argument("--trace", action="store_true", help="Stream trace events to stdout")
    parser.add_argument("--debug", action="store_true", help="Verbose logging and stack traces")

    commands = parser.add_subparsers(dest="command", required=True)

    query = commands.add_parser("query", help="Answer a question: generate, execute and summarise")
    query.add_argument("graph")
    query.add_argument("question", nargs="+")

    chat = commands.add_parser("chat", help="Answer the last user message of a conversation")
    chat.add_argument("graph")
    chat.add_argument("messages", help="JSON file with [{role, content}, ...], or - for stdin")

    cypher = commands.add_parser("cypher", help="Generate Cypher without executing it")
    cypher.add_argument("graph")
    cypher.add_argument("question", nargs="+")

    schema = commands.add_parser("schema", help="Print the discovered schema as JSON")
    schema.add_argument("graph")
    schema.add_argument("--refresh", action="store_true", help="Bypass the schema cache")

    models = commands.add_parser("models", help="List available model identifiers")
    models.add_argument("--provider", help="Only list models of this provider")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return asyncio.run(_dispatch(args))
    except (PipelineError, ValueError, OSError) as exc:
        step = getattr(exc, "step", None)
        if step:
            print(f"Error in step '{step}': {exc}", file=sys.stderr)
        else:
            print(f"Error: {exc}", file=sys.stderr)
        if args.debug:
            import traceback

            traceback.print_exc()
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
