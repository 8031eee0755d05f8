"""
Service wiring. Everything is built once at startup and injected per request.
"""
import logging
from dataclasses import dataclass

from fastapi import Request

from cinerank.config import Settings
from cinerank.reranking import RelevanceReranker, create_chat_model
from cinerank.services.backfill_service import EmbeddingBackfillService
from cinerank.services.embeddings_service import MistralEmbeddingsService
from cinerank.services.qdrant_client import QdrantClient
from cinerank.services.recommendation_service import RecommendationService
from cinerank.services.retriever import CandidateRetriever

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    store: QdrantClient
    embeddings: MistralEmbeddingsService
    recommendations: RecommendationService
    backfill: EmbeddingBackfillService


def build_container(settings: Settings) -> ServiceContainer:
    """
    Construct every service from settings.

    Raises:
        ConfigurationError: if a required credential is missing
    """
    store = QdrantClient.from_settings(settings)
    embeddings = MistralEmbeddingsService.from_settings(settings)
    reranker = RelevanceReranker(create_chat_model(settings), mode=settings.RERANK_MODE)

    recommendations = RecommendationService(
        embeddings=embeddings,
        retriever=CandidateRetriever(store, exact=settings.VECTOR_SEARCH_EXACT),
        reranker=reranker,
        amplification=settings.OVERFETCH_AMPLIFICATION,
        floor=settings.OVERFETCH_FLOOR,
        fallback_enabled=settings.FALLBACK_ENABLED,
        fallback_sample_size=settings.FALLBACK_SAMPLE_SIZE,
        fallback_max_embeddings=settings.FALLBACK_MAX_EMBEDDINGS,
        fallback_timeout=settings.FALLBACK_TIMEOUT_SECONDS,
        enrich_explanations=settings.EXPLANATION_ENRICHMENT,
        explanation_threshold=settings.EXPLANATION_THRESHOLD,
    )
    backfill = EmbeddingBackfillService(
        store=store,
        embeddings=embeddings,
        delay_seconds=settings.BACKFILL_DELAY_SECONDS,
    )
    logger.info(f"Services ready (rerank mode: {settings.RERANK_MODE})")
    return ServiceContainer(
        store=store,
        embeddings=embeddings,
        recommendations=recommendations,
        backfill=backfill,
    )


# Dependencies
def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_recommendation_service(request: Request) -> RecommendationService:
    return get_container(request).recommendations


def get_backfill_service(request: Request) -> EmbeddingBackfillService:
    return get_container(request).backfill


def get_vector_store(request: Request) -> QdrantClient:
    return get_container(request).store
