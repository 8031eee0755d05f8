"""
Recommendation orchestration: embed, retrieve, rerank, paginate.
"""
import asyncio
import logging
from typing import Dict, List, Tuple

from cinerank.exceptions import (
    ConfigurationError,
    IndexUnavailableError,
    InvalidArgument,
    RecommendationFailed,
    UpstreamError,
)
from cinerank.models.movie import (
    CandidateMovie,
    MovieRecord,
    RankedRecommendation,
    RecommendationFilters,
    RecommendationPage,
    RecommendationQuery,
)
from cinerank.reranking.reranker import RelevanceReranker
from cinerank.services.embeddings_service import MistralEmbeddingsService, build_movie_text, cosine_similarity
from cinerank.services.retriever import CandidateRetriever, over_fetch_limit

logger = logging.getLogger(__name__)


def paginate(
    items: List[RankedRecommendation],
    page: int,
    limit: int
) -> Tuple[List[RankedRecommendation], bool]:
    """
    Slice one page out of the full ranked list.

    Returns:
        (page items, has_more). Pages past the end are empty, not errors.
    """
    if page < 1 or limit < 1:
        raise InvalidArgument(f"page and limit must be >= 1 (page={page}, limit={limit})")
    skip = (page - 1) * limit
    page_items = items[skip:skip + limit]
    has_more = skip + len(page_items) < len(items)
    return page_items, has_more


class RecommendationService:
    """
    Turns a free-text description into a ranked, paginated list of movies.

    Only query embedding and candidate retrieval failures reach the caller
    (as RecommendationFailed); reranking and enrichment always degrade.
    """

    def __init__(
        self,
        embeddings: MistralEmbeddingsService,
        retriever: CandidateRetriever,
        reranker: RelevanceReranker,
        amplification: int = 3,
        floor: int = 10,
        fallback_enabled: bool = True,
        fallback_sample_size: int = 200,
        fallback_max_embeddings: int = 50,
        fallback_timeout: float = 20.0,
        enrich_explanations: bool = False,
        explanation_threshold: int = 70,
    ):
        self.embeddings = embeddings
        self.retriever = retriever
        self.reranker = reranker
        self.amplification = amplification
        self.floor = floor
        self.fallback_enabled = fallback_enabled
        self.fallback_sample_size = fallback_sample_size
        self.fallback_max_embeddings = fallback_max_embeddings
        self.fallback_timeout = fallback_timeout
        self.enrich_explanations = enrich_explanations
        self.explanation_threshold = explanation_threshold

    async def recommend(self, query: RecommendationQuery) -> RecommendationPage:
        """
        Run the recommendation pipeline for one request.

        Args:
            query: Description, pagination and optional filters

        Returns:
            Page of ranked recommendations with total count and has-more flag

        Raises:
            InvalidArgument: for an empty description or bad pagination
            RecommendationFailed: when the query cannot be embedded or candidates cannot be retrieved
        """
        query.validate_bounds()
        description = query.description.strip()

        # Step 1: Embed the description
        logger.info(f"Creating embedding for description: \"{description}\"")
        try:
            query_vector = await self.embeddings.embed(description)
        except (ConfigurationError, UpstreamError) as e:
            logger.error(f"Query embedding failed: {e}")
            raise RecommendationFailed(f"Could not embed the search description: {e}") from e

        # Step 2: Over-fetch candidates so reranking can reorder across pages
        fetch_limit = over_fetch_limit(query.limit, self.amplification, self.floor)
        degraded = False
        try:
            candidates = await self.retriever.retrieve(query_vector, fetch_limit, query.filters)
        except IndexUnavailableError as e:
            if not self.fallback_enabled:
                raise RecommendationFailed(f"Vector index unavailable: {e}") from e
            logger.warning(f"Vector index unavailable, ranking a local sample instead: {e}")
            candidates = await self._local_candidates(query_vector, query.filters, fetch_limit)
            degraded = True
        except UpstreamError as e:
            logger.error(f"Candidate retrieval failed: {e}")
            raise RecommendationFailed(f"Could not retrieve candidates: {e}") from e

        # Step 3: Nothing matched
        if not candidates:
            logger.info("No candidates matched, returning empty recommendations")
            return RecommendationPage(items=[], total_count=0, has_more=False, degraded=degraded)

        # Step 4: Rerank on the text of the query
        if degraded:
            ranked = self.reranker.fallback_rank(candidates)
        else:
            ranked = await self.reranker.rank(description, candidates)

        # Step 5: Paginate the ranked list
        page_items, has_more = paginate(ranked, query.page, query.limit)

        # Step 6: Merge full movie attributes back by id
        records: Dict[str, MovieRecord] = {movie.id: movie.source for movie in candidates}
        page_items = [
            item.model_copy(update={"movie": records.get(item.id, item.candidate.source)})
            for item in page_items
        ]

        if self.enrich_explanations and not degraded:
            page_items = await self._enrich(description, page_items)

        logger.info(
            f"Returning {len(page_items)} recommendations "
            f"(page {query.page}, total: {len(ranked)}, degraded={degraded})"
        )
        return RecommendationPage(
            items=page_items,
            total_count=len(ranked),
            has_more=has_more,
            degraded=degraded,
        )

    async def _enrich(
        self,
        description: str,
        items: List[RankedRecommendation]
    ) -> List[RankedRecommendation]:
        enriched = []
        for item in items:
            if item.relevance_score > self.explanation_threshold:
                reason = await self.reranker.explain(description, item)
                item = item.model_copy(update={"reason": reason})
            enriched.append(item)
        return enriched

    async def _local_candidates(
        self,
        query_vector: List[float],
        filters: RecommendationFilters,
        fetch_limit: int,
    ) -> List[CandidateMovie]:
        """
        Rank a bounded, filter-only sample by cosine similarity in process.
        The whole step is bounded by ``fallback_timeout``.
        """
        try:
            return await asyncio.wait_for(
                self._rank_sample(query_vector, filters, fetch_limit),
                timeout=self.fallback_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Local fallback ranking exceeded {self.fallback_timeout}s")
            raise RecommendationFailed("Fallback ranking timed out") from e
        except (ConfigurationError, UpstreamError) as e:
            logger.error(f"Local fallback ranking failed: {e}")
            raise RecommendationFailed(f"Could not retrieve candidates: {e}") from e

    async def _rank_sample(
        self,
        query_vector: List[float],
        filters: RecommendationFilters,
        fetch_limit: int,
    ) -> List[CandidateMovie]:
        records = await self.retriever.sample(filters, self.fallback_sample_size)

        # Reuse persisted vectors, compute a bounded number of missing ones
        missing = [record for record in records if not record.embedding][:self.fallback_max_embeddings]
        computed: Dict[str, List[float]] = {}
        if missing:
            try:
                vectors = await self.embeddings.embed_batch([build_movie_text(record) for record in missing])
                computed = {record.id: vector for record, vector in zip(missing, vectors)}
            except UpstreamError as e:
                logger.warning(f"Could not embed sampled movies, using stored embeddings only: {e}")

        scored: List[CandidateMovie] = []
        for record in records:
            vector = record.embedding or computed.get(record.id)
            if not vector:
                continue
            try:
                similarity = cosine_similarity(query_vector, vector)
            except InvalidArgument as e:
                logger.warning(f"Skipping movie {record.id}: {e}")
                continue
            scored.append(CandidateMovie.from_record(record, similarity))

        scored.sort(key=lambda movie: movie.similarity_score, reverse=True)
        logger.info(f"Local ranking scored {len(scored)} of {len(records)} sampled movies")
        return scored[:fetch_limit]
