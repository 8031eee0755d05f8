import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from cinerank.exceptions import BackfillAlreadyRunning, InvalidArgument
from cinerank.models.movie import MovieRecord
from cinerank.services.embeddings_service import MistralEmbeddingsService, build_movie_text
from cinerank.services.qdrant_client import QdrantClient

logger = logging.getLogger(__name__)

# Payload key set once a point has an embedding
EMBEDDED_AT_KEY = "embedded_at"

# Failures beyond this are only counted
MAX_REPORTED_ERRORS = 20


def unembedded_filter(exclude_ids: Optional[List[Any]] = None) -> Dict[str, Any]:
    """Points that have never been embedded, minus ``exclude_ids``."""
    query_filter: Dict[str, Any] = {"must": [{"is_empty": {"key": EMBEDDED_AT_KEY}}]}
    if exclude_ids:
        query_filter["must_not"] = [{"has_id": list(exclude_ids)}]
    return query_filter


class BackfillResult(BaseModel):
    status: str = "failed"
    message: str = ""
    batches: int = 0
    processed: int = 0
    failed: int = 0
    remaining: int = 0
    errors: List[str] = Field(default_factory=list)


class EmbeddingBackfillService:
    """
    Computes and stores embeddings for movies that do not have one yet.

    Runs are serialised within the process. Two processes backfilling the same
    collection may embed the same movie twice; the write is idempotent, so
    this costs API calls but not correctness.
    """

    def __init__(
        self,
        store: QdrantClient,
        embeddings: MistralEmbeddingsService,
        delay_seconds: float = 1.0,
    ):
        self.store = store
        self.embeddings = embeddings
        self.delay_seconds = delay_seconds
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def count_remaining(self) -> int:
        return await self.store.count_points(unembedded_filter())

    async def backfill(self, batch_size: int = 10) -> BackfillResult:
        """
        Embed every movie lacking an embedding, ``batch_size`` at a time.

        Per-movie failures are logged and skipped for the rest of the run.
        The loop sleeps ``delay_seconds`` between batches and stops once a
        scan comes back empty.

        Args:
            batch_size: Movies fetched and embedded per batch

        Returns:
            BackfillResult with counters

        Raises:
            BackfillAlreadyRunning: if another run holds the lock
        """
        if batch_size < 1:
            raise InvalidArgument(f"batch_size must be >= 1, got {batch_size}")
        if self._lock.locked():
            raise BackfillAlreadyRunning("An embedding backfill is already running")

        async with self._lock:
            return await self._run(batch_size)

    async def _run(self, batch_size: int) -> BackfillResult:
        result = BackfillResult()
        failed_ids: List[Any] = []

        logger.info("Starting to create embeddings for movies...")
        try:
            total = await self.count_remaining()
            logger.info(f"Total movies to process: {total}")

            while True:
                page = await self.store.scroll(
                    query_filter=unembedded_filter(failed_ids),
                    limit=batch_size,
                )
                points = page["points"]
                if not points:
                    break

                if result.batches:
                    await asyncio.sleep(self.delay_seconds)

                result.batches += 1
                logger.info(f"Processing batch {result.batches}: {len(points)} movies")

                for point in points:
                    if await self._embed_point(point, result):
                        result.processed += 1
                        if result.processed % 50 == 0:
                            logger.info(f"Processed {result.processed}/{total} movies")
                    else:
                        failed_ids.append(point.get("id"))

            result.remaining = await self.count_remaining()
            result.status = "success"
            result.message = f"Completed processing {result.processed} movies"
            logger.info(f"{result.message} ({result.failed} failed, {result.remaining} remaining)")

        except Exception as e:
            logger.error(f"Error during embedding backfill: {e}")
            result.message = f"Error: {str(e)}"

        return result

    async def _embed_point(self, point: Dict[str, Any], result: BackfillResult) -> bool:
        payload = point.get("payload") or {}
        title = payload.get("title") or point.get("id")
        try:
            movie = MovieRecord.from_payload(payload)
            embedding = await self.embeddings.embed(build_movie_text(movie))
            await self.store.update_vectors([{"id": point["id"], "vector": embedding}])
            await self.store.set_payload(
                [point["id"]],
                {
                    EMBEDDED_AT_KEY: datetime.now(timezone.utc).isoformat(),
                    "embedding_model": self.embeddings.model_name,
                },
            )
            return True
        except Exception as e:
            logger.error(f"Error processing movie {title}: {e}")
            result.failed += 1
            if len(result.errors) < MAX_REPORTED_ERRORS:
                result.errors.append(f"Failed to embed movie {payload.get('movie_id', point.get('id'))}")
            return False
