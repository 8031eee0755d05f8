import logging

from fastapi import APIRouter, Body, Depends, HTTPException

from cinerank.dependencies import get_backfill_service, get_recommendation_service, get_vector_store
from cinerank.exceptions import BackfillAlreadyRunning, InvalidArgument, RecommendationFailed, UpstreamError
from cinerank.models.schemas import (
    BackfillRequest,
    BackfillResponse,
    RecommendMoviesRequest,
    RecommendationsResponse,
    VectorStatusResponse,
)
from cinerank.services.backfill_service import EmbeddingBackfillService, unembedded_filter
from cinerank.services.qdrant_client import QdrantClient
from cinerank.services.recommendation_service import RecommendationService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/recommendations", response_model=RecommendationsResponse)
async def recommend_movies(
    request: RecommendMoviesRequest,
    service: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationsResponse:
    """
    Recommend movies matching a free-text description.
    
    Embeds the description, retrieves nearest movies from the vector index,
    reranks them with the LLM and returns the requested page.
    
    Args:
        request: Description, pagination and optional filters
        
    Returns:
        Ranked recommendations with total count and has-more flag
    """
    try:
        page = await service.recommend(request.to_query())
    except InvalidArgument as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except RecommendationFailed as e:
        logger.error(f"Recommendation failed: {e}")
        raise HTTPException(status_code=502, detail=f"Recommendation failed: {str(e)}") from e
    
    return RecommendationsResponse.from_page(page, request.description)


@router.post("/embeddings/backfill", response_model=BackfillResponse)
async def backfill_embeddings(
    request: BackfillRequest = Body(default=BackfillRequest()),
    service: EmbeddingBackfillService = Depends(get_backfill_service),
) -> BackfillResponse:
    """
    Compute and store embeddings for movies that do not have one yet.
    
    Args:
        request: Backfill configuration (batchSize)
        
    Returns:
        Backfill status and counters
    """
    logger.info(f"Starting embedding backfill (batch_size={request.batch_size})...")
    try:
        result = await service.backfill(request.batch_size)
    except BackfillAlreadyRunning as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    
    return BackfillResponse(**result.model_dump())


@router.get("/vector/status", response_model=VectorStatusResponse)
async def get_vector_database_status(
    store: QdrantClient = Depends(get_vector_store),
    backfill: EmbeddingBackfillService = Depends(get_backfill_service),
) -> VectorStatusResponse:
    """
    Get vector database status and statistics.
    
    Returns:
        Database health, collection info, movie and embedding counts
    """
    healthy = await store.health_check()
    exists = await store.collection_exists() if healthy else False
    total = embedded = 0
    info = None
    
    if exists:
        try:
            total = await store.count_points()
            embedded = total - await store.count_points(unembedded_filter())
        except UpstreamError as e:
            logger.error(f"Error counting movies: {e}")
        info = await store.get_collection_info()
    
    return VectorStatusResponse(
        healthy=healthy,
        collection_exists=exists,
        total_movies=total,
        embedded_movies=embedded,
        backfill_running=backfill.running,
        collection_info=info,
    )


@router.get("/health")
async def health_check():
    """
    Health check endpoint.
    """
    return {"status": "ok"}
