"""
Candidate retrieval over the movie vector index.
"""
import logging
from typing import Any, Dict, List, Optional

from cinerank.models.movie import CandidateMovie, MovieRecord, RecommendationFilters
from cinerank.services.qdrant_client import QdrantClient

logger = logging.getLogger(__name__)


def over_fetch_limit(limit: int, amplification: int = 3, floor: int = 10) -> int:
    """
    Number of neighbours to request so reranking still fills the requested page.
    Never smaller than ``limit``.
    """
    return max(limit * max(1, amplification), floor, limit)


def build_filter(filters: Optional[RecommendationFilters]) -> Optional[Dict[str, Any]]:
    """
    Translate structured filters into a Qdrant payload filter.

    Genres, languages and countries match when the movie has any of the
    requested values; rated is an exact match; years are inclusive bounds.
    """
    if filters is None or filters.is_empty():
        return None

    must: List[Dict[str, Any]] = []
    if filters.genres:
        must.append({"key": "genres", "match": {"any": list(filters.genres)}})
    if filters.rated:
        must.append({"key": "rated", "match": {"value": filters.rated}})
    if filters.year_from is not None or filters.year_to is not None:
        year_range: Dict[str, int] = {}
        if filters.year_from is not None:
            year_range["gte"] = filters.year_from
        if filters.year_to is not None:
            year_range["lte"] = filters.year_to
        must.append({"key": "year", "range": year_range})
    if filters.languages:
        must.append({"key": "languages", "match": {"any": list(filters.languages)}})
    if filters.countries:
        must.append({"key": "countries", "match": {"any": list(filters.countries)}})

    return {"must": must}


def _point_vector(point: Dict[str, Any], vector_name: str) -> Optional[List[float]]:
    vector = point.get("vector")
    if isinstance(vector, dict):
        return vector.get(vector_name) or None
    return vector or None


class CandidateRetriever:
    """
    Issues nearest-neighbour queries against the movie collection.
    """

    def __init__(self, store: QdrantClient, exact: bool = True):
        self.store = store
        self.exact = exact

    async def retrieve(
        self,
        query_vector: List[float],
        limit: int,
        filters: Optional[RecommendationFilters] = None,
    ) -> List[CandidateMovie]:
        """
        Fetch the ``limit`` nearest movies that satisfy ``filters``.

        Args:
            query_vector: Embedded user query
            limit: Over-fetched result count
            filters: Optional structured filters, pushed down to the index

        Returns:
            Candidates with the index score as similarity; empty when nothing matches

        Raises:
            UpstreamError: when the index query itself fails
        """
        query_filter = build_filter(filters)
        logger.info(f"Vector search for {limit} candidates (filtered={query_filter is not None})")

        hits = await self.store.search(
            query_vector=query_vector,
            limit=limit,
            query_filter=query_filter,
            exact=self.exact,
        )

        candidates = []
        for hit in hits:
            try:
                record = MovieRecord.from_payload(hit.get("payload") or {})
            except ValueError as e:
                logger.warning(f"Skipping malformed point {hit.get('id')}: {e}")
                continue
            candidates.append(CandidateMovie.from_record(record, hit.get("score") or 0.0))

        logger.info(f"Vector search returned {len(candidates)} candidates")
        return candidates

    async def sample(
        self,
        filters: Optional[RecommendationFilters] = None,
        size: int = 200,
    ) -> List[MovieRecord]:
        """
        Fetch a bounded sample of movies using structured filters only.
        Persisted embeddings are returned alongside each record.
        """
        records: List[MovieRecord] = []
        offset = None
        query_filter = build_filter(filters)

        while len(records) < size:
            page = await self.store.scroll(
                query_filter=query_filter,
                limit=min(100, size - len(records)),
                offset=offset,
                with_vectors=True,
            )
            for point in page["points"]:
                try:
                    records.append(
                        MovieRecord.from_payload(
                            point.get("payload") or {},
                            embedding=_point_vector(point, self.store.vector_name),
                        )
                    )
                except ValueError as e:
                    logger.warning(f"Skipping malformed point {point.get('id')}: {e}")
            offset = page["next_page_offset"]
            if offset is None or not page["points"]:
                break

        logger.info(f"Sampled {len(records)} movies for local ranking")
        return records[:size]
