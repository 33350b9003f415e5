"""CivicLens CLI — run pipeline stages, search, and print analytic views."""

import argparse
import asyncio
import logging
import sys

import mlflow

from civiclens.config import settings
from civiclens.observability.logging import correlation_id, new_correlation_id, setup_logging
from civiclens.observability.prompts import log_prompt_to_run

logger = logging.getLogger(__name__)


def _init_mlflow() -> None:
    """Initialize MLflow tracking for the current process."""
    mlflow.set_tracking_uri(settings.mlflow_tracking_uri)
    mlflow.set_experiment(settings.mlflow_experiment_name)


def _run_stage(name: str, coro_factory) -> int:
    """Run one stage inside an MLflow run with its own correlation ID."""
    from civiclens.pipeline.stages import StageFailedError

    correlation_id.set(new_correlation_id(name))
    with mlflow.start_run(run_name=name):
        if name == "extract":
            log_prompt_to_run("extraction")
        try:
            result = asyncio.run(coro_factory())
        except StageFailedError as e:
            mlflow.set_tag("status", "failed")
            logger.error("%s; rerun the stage once the service recovers", e)
            return 1
        mlflow.log_metrics(result.as_metrics())
        mlflow.set_tag("status", "ok")

    print(f"{result.stage}: {result.rows_out}/{result.rows_in} rows written, {result.rows_rejected} rejected")
    return 0


def _print_matches(phrase: str, matches) -> None:
    print(f"\nFound {len(matches)} results for {phrase!r}:\n")
    for i, m in enumerate(matches, 1):
        print(f"--- Result {i} (distance={m.distance:.4f}) ---")
        print(f"Record: {m.record_id}")
        print(f"{m.content[:300]}")
        print()


def _search(phrase: str, k: int, images: bool) -> int:
    async def _run():
        from civiclens.retrieval.search import search_complaints, search_images
        from civiclens.storage.db import get_session

        session = await get_session()
        try:
            if images:
                return await search_images(session, phrase, k)
            return await search_complaints(session, phrase, k)
        finally:
            await session.close()

    _print_matches(phrase, asyncio.run(_run()))
    return 0


def _views(view: str, category: str | None, precision: int | None) -> int:
    from civiclens.analytics.anomaly import daily_counts_view
    from civiclens.analytics.hotspots import aggregate_hotspots
    from civiclens.storage.complaints import fetch_complaints
    from civiclens.storage.db import get_session

    async def _load():
        session = await get_session()
        try:
            return await fetch_complaints(
                session, with_coordinates=(view == "hotspots"), category=category,
            )
        finally:
            await session.close()

    records = asyncio.run(_load())

    if view == "anomalies":
        print(f"{'category':<25} {'day':<12} {'count':>6} {'rolling_avg':>12}")
        for row in daily_counts_view(records, window_days=settings.rolling_window_days):
            avg = f"{row.rolling_average:.2f}" if row.rolling_average is not None else "-"
            print(f"{row.category:<25} {row.day.isoformat():<12} {row.count:>6} {avg:>12}")
    else:
        print(f"{'category':<25} {'point':<40} {'count':>6}")
        for cell in aggregate_hotspots(records, precision=precision):
            print(f"{cell.category:<25} {cell.geometry_wkt:<40} {cell.count:>6}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="civiclens-pipeline",
        description="Enrich municipal complaints with hosted AI models.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Install pgvector and create tables")
    sub.add_parser("extract", help="Rebuild structured extractions from resolution text")
    sub.add_parser("embed-text", help="Rebuild complaint text embeddings")

    images = sub.add_parser("embed-images", help="Rebuild image embeddings from the object catalog")
    images.add_argument("pattern", help="Catalog pattern, e.g. s3://bucket/photos/*.jpg")

    for name, help_text in (
        ("search", "Semantic search over complaint resolutions"),
        ("search-images", "Text-to-image search over evidence photos"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("phrase", nargs="+")
        p.add_argument("-k", type=int, default=settings.search_default_k)

    anomalies = sub.add_parser("anomalies", help="Daily counts with trailing rolling average")
    anomalies.add_argument("--category")

    hotspots = sub.add_parser("hotspots", help="Complaint counts per location")
    hotspots.add_argument("--category")
    hotspots.add_argument("--precision", type=int, default=None,
                          help="Round coordinates to N decimals before grouping")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for `civiclens-pipeline`."""
    args = build_parser().parse_args(argv)
    setup_logging(json_format=settings.log_json, level=settings.log_level)

    if args.command == "init-db":
        from civiclens.storage.db import init_db
        asyncio.run(init_db())
        sys.exit(0)

    if args.command in ("extract", "embed-text", "embed-images"):
        from civiclens.pipeline.stages import (
            run_extraction_stage,
            run_image_embedding_stage,
            run_text_embedding_stage,
        )

        _init_mlflow()
        factories = {
            "extract": run_extraction_stage,
            "embed-text": run_text_embedding_stage,
            "embed-images": lambda: run_image_embedding_stage(args.pattern),
        }
        sys.exit(_run_stage(args.command, factories[args.command]))

    if args.command in ("search", "search-images"):
        _init_mlflow()
        sys.exit(_search(" ".join(args.phrase), args.k, images=args.command == "search-images"))

    sys.exit(_views(args.command, args.category, getattr(args, "precision", None)))


if __name__ == "__main__":
    main()
