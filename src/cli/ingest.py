# =============================================================================
# src/cli/ingest.py -- CLI for ragvault collections
# =============================================================================
#
# Operator tool for the same ingestion and retrieval pipeline the web API
# runs, without a browser in the loop.
#
# Supported subcommands:
#
#   upload           -- Ingest a PDF or .txt file into a collection, printing
#                      each progress event as it happens
#   query            -- Retrieve the passages nearest to a question
#   collections      -- list / create / delete collections
#   verify-embedding -- Check the configured embedding model is installed
#                      and answers a test request
#
# Provider selection is shared with the web server (src.main), so a
# collection built here is searchable there and vice versa.
#
# Usage examples:
#   python -m src.cli.ingest collections create handbook
#   python -m src.cli.ingest upload ./employee-handbook.pdf --collection handbook
#   python -m src.cli.ingest query "how many leave days?" --collection handbook
#   python -m src.cli.ingest verify-embedding
# =============================================================================

"""Standalone CLI for uploading documents to and searching ragvault collections.

Usage::

    python -m src.cli.ingest upload FILE --collection NAME [--create]
    python -m src.cli.ingest query TEXT --collection NAME [--top-k 5]
    python -m src.cli.ingest collections list
    python -m src.cli.ingest verify-embedding
"""

from __future__ import annotations

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path
from typing import Any

from src.config.loader import settings_from_config
from src.config.settings import Settings
from src.models.ingestion import DocumentUpload, EventStatus, ProgressEvent

_TEST_SENTENCE = "This is a test sentence for embedding."


def _build_components(app_settings: Settings) -> dict[str, Any]:
    """Build providers and services exactly as the web server does.

    Imported lazily so ``--help`` does not pay for chromadb and openai.
    """
    from src.main import build_providers, build_services

    return build_services(app_settings, **build_providers(app_settings))


def _print_event(event: ProgressEvent) -> None:
    """Progress listener: one line per event."""
    if event.status is EventStatus.ERROR:
        print(f"[{event.progress:3d}%] error: {event.error}", file=sys.stderr)
        return
    line = f"[{event.progress:3d}%] {event.status.value:<16} {event.message}"
    if event.current_batch is not None and event.total_batches is not None:
        line += f" (batch {event.current_batch}/{event.total_batches})"
    print(line)


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_upload(args: argparse.Namespace, components: dict[str, Any]) -> int:
    from src.pipeline.cancellation import CancellationToken
    from src.pipeline.progress_channel import ProgressChannel

    path = Path(args.file)
    if not path.is_file():
        print(f"Error: file not found: {path}", file=sys.stderr)
        return 1

    if args.create:
        await components["vector_store"].create_collection(
            args.collection,
            metadata={"embedding_model": components["embedding_provider"].get_model_name()},
        )

    content_type, _ = mimetypes.guess_type(path.name)
    upload = DocumentUpload(
        file_name=path.name,
        content_type=content_type or "",
        data=path.read_bytes(),
        collection_name=args.collection,
    )

    print(f"Uploading {path.name} ({upload.byte_size} bytes) to '{args.collection}'")
    channel = ProgressChannel()
    channel.register_listener(_print_event)

    outcome = await components["job_controller"].run(upload, channel, CancellationToken())

    print()
    print(f"Result: {outcome.phase.value}  {outcome.message}")
    print(f"  Chunks saved: {outcome.chunks_saved}")
    return 0 if outcome.succeeded else 1


async def _handle_query(args: argparse.Namespace, components: dict[str, Any]) -> int:
    result = await components["retrieval_service"].retrieve(
        args.text,
        args.collection,
        top_k=args.top_k,
        rewrite=not args.no_rewrite,
    )
    if result.error_kind:
        print(f"Error ({result.error_kind}): {result.error}", file=sys.stderr)
        return 1

    if result.search_query != result.query:
        print(f"Search query: {result.search_query}")
    if not result.passages:
        print("No matching passages.")
        return 0

    for number, passage in enumerate(result.passages, start=1):
        source = passage.metadata.get("filename", "?")
        print(
            f"\n[{number}] {passage.relevance.value}  distance={passage.distance:.3f}  "
            f"{source}  ({passage.id})"
        )
        print(passage.text)
    return 0


async def _handle_collections(args: argparse.Namespace, components: dict[str, Any]) -> int:
    from src.utils.errors import CollectionNotFoundError

    store = components["vector_store"]

    if args.action == "list":
        collections = await store.list_collections()
        if not collections:
            print("No collections.")
        for info in collections:
            model = info.metadata.get("embedding_model", "")
            print(f"  {info.name:<32} {info.count:>8} chunks  {model}")
        return 0

    if not args.name:
        print(f"Error: collections {args.action} needs a NAME", file=sys.stderr)
        return 1

    if args.action == "create":
        info = await store.create_collection(
            args.name,
            metadata={"embedding_model": components["embedding_provider"].get_model_name()},
        )
        print(f"Collection '{info.name}' ready ({info.count} chunks).")
        return 0

    if not args.yes:
        confirm = input(f"Delete collection '{args.name}' and all its chunks? [y/N] ")
        if confirm.strip().lower() not in ("y", "yes"):
            print("  Aborted.")
            return 1
    try:
        await store.delete_collection(args.name)
    except CollectionNotFoundError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    print(f"Deleted collection '{args.name}'.")
    return 0


async def _handle_verify_embedding(app_settings: Settings) -> int:
    """Check the embedding model is installed, then embed a test sentence."""
    from src.main import build_providers
    from src.services.ingestion.embedding_batcher import embedding_failure_message
    from src.utils.errors import EmbeddingError

    provider = build_providers(app_settings)["embedding_provider"]
    model = provider.get_model_name()
    print(f"Embedding provider: {provider.get_provider_name()}  model: {model}")

    try:
        if hasattr(provider, "list_models"):
            models = await provider.list_models()
            print(f"Available models ({len(models)}):")
            for name in models:
                print(f"  - {name}")
        if not await provider.check_model_available():
            print(f"Embedding model '{model}' is NOT available.")
            if not app_settings.uses_openai():
                print(f"To install it, run:\n  ollama pull {model}")
            return 1
        print(f"Embedding model '{model}' is available.")

        vector = await provider.embed_single(_TEST_SENTENCE)
    except EmbeddingError as exc:
        print(f"Error: {embedding_failure_message(exc, model)}", file=sys.stderr)
        return 1

    print(f"Generated a test embedding ({len(vector)} dimensions).")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.ingest",
        description="Upload documents to and search ragvault collections.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # -- upload --
    upload_parser = subparsers.add_parser("upload", help="Ingest a PDF or .txt file")
    upload_parser.add_argument("file", help="Path to the document")
    upload_parser.add_argument("--collection", "-c", required=True, help="Target collection")
    upload_parser.add_argument(
        "--create",
        action="store_true",
        help="Create the collection first if it does not exist",
    )

    # -- query --
    query_parser = subparsers.add_parser("query", help="Retrieve relevant passages")
    query_parser.add_argument("text", help="Question or message to search for")
    query_parser.add_argument("--collection", "-c", required=True, help="Collection to search")
    query_parser.add_argument("--top-k", type=int, default=5, dest="top_k")
    query_parser.add_argument(
        "--no-rewrite",
        action="store_true",
        dest="no_rewrite",
        help="Embed the text as given instead of asking the chat model to rewrite it",
    )

    # -- collections --
    coll_parser = subparsers.add_parser("collections", help="Manage collections")
    coll_parser.add_argument("action", choices=["list", "create", "delete"])
    coll_parser.add_argument("name", nargs="?", default=None)
    coll_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    # -- verify-embedding --
    subparsers.add_parser(
        "verify-embedding", help="Check the configured embedding model is available"
    )

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> None:
    """CLI entry point: parse the subcommand and dispatch to its handler."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = settings_from_config()

    # verify-embedding needs only the embedding provider.
    if args.command == "verify-embedding":
        sys.exit(asyncio.run(_handle_verify_embedding(app_settings)))

    components = _build_components(app_settings)

    if args.command == "upload":
        exit_code = asyncio.run(_handle_upload(args, components))
    elif args.command == "query":
        exit_code = asyncio.run(_handle_query(args, components))
    elif args.command == "collections":
        exit_code = asyncio.run(_handle_collections(args, components))
    else:
        parser.print_help()
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
