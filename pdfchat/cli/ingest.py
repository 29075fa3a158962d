"""Admin CLI for the pdfchat ingestion pipeline.

Usage::

    pdfchat-admin enqueue --file /path/to/guide.pdf
    pdfchat-admin ingest --file /path/to/guide.pdf
    pdfchat-admin stats
    pdfchat-admin dead-letters --limit 20
    pdfchat-admin replay --job-id 4f1c...

``enqueue`` copies the file into the upload directory and queues it for the
worker, exactly like an HTTP upload.  ``ingest`` processes the file
in-process without the queue, which is handy for local corpora and for
debugging a document that keeps getting dead-lettered.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any

from pdfchat.config.settings import Settings
from pdfchat.models.jobs import UploadJob
from pdfchat.services.ingestion.uploads import copy_upload
from pdfchat.utils.errors import PDFChatError
from pdfchat.utils.logging import configure_logging
from pdfchat.wiring import build_components, close_components


async def _handle_enqueue(args: argparse.Namespace, components: dict[str, Any]) -> int:
    source = Path(args.file)
    if not source.is_file():
        print(f"Error: file not found: {source}", file=sys.stderr)
        return 1

    settings: Settings = components["settings"]
    stored = await asyncio.to_thread(copy_upload, settings.upload_dir, source)
    job = UploadJob(file_name=source.name, storage_path=str(stored))
    try:
        await components["job_queue"].enqueue(job)
    except PDFChatError:
        await asyncio.to_thread(stored.unlink, missing_ok=True)
        raise

    print(f"Queued {source.name}")
    print(f"  Job ID:      {job.job_id}")
    print(f"  Stored as:   {stored}")
    return 0


async def _handle_ingest(args: argparse.Namespace, components: dict[str, Any]) -> int:
    source = Path(args.file)
    if not source.is_file():
        print(f"Error: file not found: {source}", file=sys.stderr)
        return 1

    print(f"Ingesting PDF: {source.name}")
    job = UploadJob(file_name=source.name, storage_path=str(source))
    result = await components["ingestion_service"].process_job(job)

    print("\nIngestion complete:")
    print(f"  Pages with text: {result.pages}")
    print(f"  Chunks stored:   {result.chunks_created}")
    print(f"  Stale removed:   {result.stale_chunks_removed}")
    print(f"  Time:            {result.ingestion_time:.2f}s")
    return 0


async def _handle_stats(args: argparse.Namespace, components: dict[str, Any]) -> int:
    vector_store = components["vector_store"]
    stats = await vector_store.get_stats()
    depth = await components["job_queue"].depth()

    print("Corpus Statistics")
    print("=" * 40)
    print(f"  Collection:       {vector_store.collection_name}")
    print(f"  Total chunks:     {stats.total_chunks}")
    print(f"  Total documents:  {stats.total_documents}")
    for name in stats.documents:
        print(f"    - {name}")
    print("\nQueue")
    print("=" * 40)
    print(f"  Pending:          {depth.pending}")
    print(f"  Processing:       {depth.processing}")
    print(f"  Dead-lettered:    {depth.dead}")
    return 0


async def _handle_dead_letters(args: argparse.Namespace, components: dict[str, Any]) -> int:
    entries = await components["job_queue"].list_dead_letters(limit=args.limit)
    if not entries:
        print("No dead-lettered jobs.")
        return 0

    for entry in entries:
        job_id = entry.job.job_id if entry.job else "<malformed>"
        print(f"{entry.failed_at.isoformat()}  {job_id}  {entry.file_name or '-'}")
        print(f"    {entry.error_kind} after {entry.attempts} attempt(s): {entry.error_message}")
    return 0


async def _handle_replay(args: argparse.Namespace, components: dict[str, Any]) -> int:
    replayed = await components["job_queue"].replay_dead_letter(args.job_id)
    if not replayed:
        print(f"Error: no dead-lettered job with id {args.job_id}", file=sys.stderr)
        return 1
    print(f"Job {args.job_id} returned to the queue.")
    return 0


_HANDLERS = {
    "enqueue": _handle_enqueue,
    "ingest": _handle_ingest,
    "stats": _handle_stats,
    "dead-letters": _handle_dead_letters,
    "replay": _handle_replay,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pdfchat-admin",
        description="Manage pdfchat uploads, the ingestion queue, and the vector store.",
    )
    subparsers = parser.add_subparsers(dest="command")

    enqueue_parser = subparsers.add_parser("enqueue", help="Queue a local PDF for the worker")
    enqueue_parser.add_argument("--file", required=True, help="Path to the PDF file")

    ingest_parser = subparsers.add_parser(
        "ingest", help="Process a local PDF now, bypassing the queue"
    )
    ingest_parser.add_argument("--file", required=True, help="Path to the PDF file")

    subparsers.add_parser("stats", help="Show corpus and queue statistics")

    dead_parser = subparsers.add_parser("dead-letters", help="List dead-lettered jobs")
    dead_parser.add_argument(
        "--limit", type=int, default=20, help="Maximum entries to show (default: 20)"
    )

    replay_parser = subparsers.add_parser(
        "replay", help="Move a dead-lettered job back onto the queue"
    )
    replay_parser.add_argument("--job-id", required=True, help="ID of the dead-lettered job")

    return parser


async def run_command(args: argparse.Namespace, settings: Settings) -> int:
    """Build components for *settings*, run one subcommand, and clean up."""
    components = build_components(settings)
    try:
        return await _HANDLERS[args.command](args, components)
    finally:
        await close_components(components)


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(1)

    settings = Settings()
    configure_logging(log_level=settings.log_level, json_output=False)

    try:
        exit_code = asyncio.run(run_command(args, settings))
    except PDFChatError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
