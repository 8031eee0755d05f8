"""
Backfill embeddings for every movie that does not have one yet.

Usage:
    python scripts/backfill_embeddings.py --batch-size 20 --delay 0.5
"""
import argparse
import asyncio
import logging
import sys

from cinerank.config import settings
from cinerank.exceptions import CineRankError
from cinerank.services.backfill_service import EmbeddingBackfillService
from cinerank.services.embeddings_service import MistralEmbeddingsService
from cinerank.services.qdrant_client import QdrantClient

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("backfill_embeddings")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create embeddings for movies that lack them")
    parser.add_argument("--batch-size", type=int, default=settings.BACKFILL_BATCH_SIZE,
                        help="Movies embedded per batch")
    parser.add_argument("--delay", type=float, default=settings.BACKFILL_DELAY_SECONDS,
                        help="Seconds to wait between batches")
    parser.add_argument("--create-collection", action="store_true",
                        help="Create the collection first if it does not exist")
    return parser.parse_args()


async def main(batch_size: int, delay: float, create_collection: bool = False) -> int:
    store = QdrantClient.from_settings(settings)
    if create_collection and not await store.collection_exists():
        await store.create_collection(settings.EMBEDDING_DIMENSION)
    if not await store.collection_exists():
        logger.error(f"Collection '{store.collection_name}' does not exist")
        return 1

    service = EmbeddingBackfillService(
        store=store,
        embeddings=MistralEmbeddingsService.from_settings(settings),
        delay_seconds=delay,
    )
    result = await service.backfill(batch_size)

    logger.info(
        f"{result.status}: {result.processed} embedded, {result.failed} failed, "
        f"{result.remaining} remaining across {result.batches} batches"
    )
    for error in result.errors:
        logger.warning(error)
    return 0 if result.status == "success" else 1


if __name__ == "__main__":
    args = parse_args()
    try:
        sys.exit(asyncio.run(main(args.batch_size, args.delay, args.create_collection)))
    except CineRankError as e:
        logger.error(f"Backfill aborted: {e}")
        sys.exit(1)
