from __future__ import annotations

"""Command-line entrypoints for ingestion and one-shot questions."""

import argparse
import asyncio
import sys

from supportrag.app.dependencies import build_ingestion_pipeline, build_query_pipeline
from supportrag.app.main import configure_logging
from supportrag.app.settings import load_settings
from supportrag.loaders.csv_loader import DocumentSourceError, load_support_articles
from supportrag.rag.batcher import BatchProgress
from supportrag.rag.errors import (
    ConfigurationError,
    ConnectivityError,
    EmbeddingFailure,
    SynthesisFailure,
)
from supportrag.rag.pipeline import QueryResult

DEFAULT_QUERY = "what features were released in february?"
DEFAULT_CSV = "supportdocs.csv"


def build_ask_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="supportrag-ask",
        description="Answer a question from the support-article index.",
    )
    parser.add_argument("-query", "--query", default=DEFAULT_QUERY, help="Question to answer.")
    parser.add_argument(
        "-eval",
        "--eval",
        dest="evaluate",
        action="store_true",
        help="Judge the answer for groundedness and relevance.",
    )
    parser.add_argument("--top-k", type=int, default=None, help="Number of chunks to retrieve.")
    parser.add_argument(
        "--strategy",
        choices=["exact", "approximate"],
        default=None,
        help="Ranking strategy (defaults to RAG_RETRIEVAL_STRATEGY).",
    )
    return parser


def build_ingest_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="supportrag-ingest",
        description="Chunk, embed and store the support-article corpus.",
    )
    parser.add_argument("--csv", default=DEFAULT_CSV, help="Path to the articles CSV.")
    parser.add_argument(
        "--policy",
        choices=["halt", "skip"],
        default=None,
        help="Batch failure policy (defaults to RAG_FAILURE_POLICY).",
    )
    return parser


def format_result(result: QueryResult) -> str:
    lines = [f"Query: {result.answer.query}", "", result.answer.text]
    if result.evaluation is not None:
        lines.extend(
            [
                "",
                f"Groundedness: {result.evaluation.groundedness.verdict}",
                f"  {result.evaluation.groundedness.reasoning}",
                f"Relevance: {result.evaluation.relevance.verdict}",
                f"  {result.evaluation.relevance.reasoning}",
            ]
        )
    if result.evaluation_error is not None:
        lines.extend(["", f"Evaluation unavailable: {result.evaluation_error}"])
    return "\n".join(lines)


def _print_progress(progress: BatchProgress) -> None:
    print(
        f"Batch {progress.batch_number}/{progress.total_batches}: "
        f"{progress.total_stored}/{progress.total_chunks} chunks stored"
    )


def ask_main(argv: list[str] | None = None) -> int:
    args = build_ask_parser().parse_args(argv)
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    configure_logging(settings.log_level)
    try:
        pipeline = build_query_pipeline(settings, strategy=args.strategy)
        result = asyncio.run(
            pipeline.answer(args.query, top_k=args.top_k, evaluate=args.evaluate)
        )
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except (EmbeddingFailure, ConnectivityError, SynthesisFailure) as exc:
        print(f"Query failed: {exc}", file=sys.stderr)
        return 1
    print(format_result(result))
    return 0


def ingest_main(argv: list[str] | None = None) -> int:
    args = build_ingest_parser().parse_args(argv)
    try:
        settings = load_settings()
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    configure_logging(settings.log_level)
    try:
        documents = load_support_articles(args.csv)
        pipeline = build_ingestion_pipeline(settings, policy=args.policy)
        report = asyncio.run(pipeline.run(documents, on_progress=_print_progress))
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2
    except DocumentSourceError as exc:
        print(f"Document source error: {exc}", file=sys.stderr)
        return 2
    except ConnectivityError as exc:
        print(f"Vector store unreachable: {exc}", file=sys.stderr)
        return 1
    print(
        f"Stored {report.stored}/{report.total_chunks} chunks "
        f"({report.total_batches} batches, failed: {report.failed_batches or 'none'})"
    )
    for failure in report.failures:
        print(f"  {failure}", file=sys.stderr)
    if report.halted:
        print("Ingestion halted after a failed batch", file=sys.stderr)
        return 1
    return 0 if report.ok else 1


def ask() -> None:
    raise SystemExit(ask_main())


def ingest() -> None:
    raise SystemExit(ingest_main())


if __name__ == "__main__":
    ask()
