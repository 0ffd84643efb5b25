#!/usr/bin/env python3
"""Periodic draft queue worker.

Drives ``DraftQueue.process_batch`` on a fixed interval, the same entry point
the HTTP trigger uses. Several workers may run at once: claims are atomic.

Usage:
    # Run forever, one batch of 3 every 30 seconds
    python scripts/run_draft_worker.py

    # Single batch, then exit
    python scripts/run_draft_worker.py --once --limit 5

    # Audit transcript integrity before each batch
    python scripts/run_draft_worker.py --verify-transcripts

Run from backend directory:
    python scripts/run_draft_worker.py --help
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
from pymongo.errors import ConnectionFailure

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from drafting.db.mongo import close_database
from drafting.services.draft_queue import DEFAULT_BATCH_LIMIT, get_draft_queue
from drafting.services.storage import get_storage
from drafting.services.transcript_store import DEFAULT_AUDIT_LIMIT, TranscriptStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 30.0


async def run_once(limit: int, verify_transcripts: bool) -> int:
    """Run one batch and return the number of completed jobs."""
    if verify_transcripts:
        report = await TranscriptStore(get_storage()).audit(limit=DEFAULT_AUDIT_LIMIT)
        if not report.ok:
            logger.warning(f"{report.issue_count} transcript integrity issues found")

    results = await get_draft_queue().process_batch(limit=limit)
    completed = sum(1 for result in results if result.processed)
    outcomes = ", ".join(
        result.reason.value if result.reason else "processed" for result in results
    )
    logger.info(f"Batch finished: {completed} completed ({outcomes})")
    return completed


async def run_worker(args: argparse.Namespace) -> None:
    try:
        while True:
            try:
                await get_storage().ensure_indexes()
                await run_once(args.limit, args.verify_transcripts)
            except ConnectionFailure as e:
                if args.once:
                    raise
                logger.error(f"MongoDB unavailable, retrying in {args.interval}s: {e}")
            if args.once:
                break
            await asyncio.sleep(args.interval)
    finally:
        await close_database()


def main() -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Process the background draft queue")
    parser.add_argument("--once", action="store_true", help="Run a single batch and exit")
    parser.add_argument(
        "--limit",
        type=int,
        default=DEFAULT_BATCH_LIMIT,
        help="Jobs per batch (clamped to 1-10)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=float(os.getenv("DRAFT_WORKER_INTERVAL_SECONDS", DEFAULT_INTERVAL_SECONDS)),
        help="Seconds between batches",
    )
    parser.add_argument(
        "--verify-transcripts",
        action="store_true",
        help="Run the transcript integrity audit before each batch",
    )
    args = parser.parse_args()

    try:
        asyncio.run(run_worker(args))
    except KeyboardInterrupt:
        logger.info("Draft worker stopped")


if __name__ == "__main__":
    main()
