import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from unittest.mock import AsyncMock, MagicMock

from cinerank.dependencies import get_backfill_service, get_recommendation_service, get_vector_store
from cinerank.main import app
from cinerank.services.backfill_service import EmbeddingBackfillService
from cinerank.services.qdrant_client import QdrantClient
from cinerank.services.recommendation_service import RecommendationService


@pytest.fixture
def mock_recommendations():
    return AsyncMock(spec=RecommendationService)


@pytest.fixture
def mock_backfill():
    mock = AsyncMock(spec=EmbeddingBackfillService)
    mock.running = False
    return mock


@pytest.fixture
def mock_store():
    return AsyncMock(spec=QdrantClient)


@pytest_asyncio.fixture
async def client(mock_recommendations, mock_backfill, mock_store):
    # Override dependencies
    app.dependency_overrides[get_recommendation_service] = lambda: mock_recommendations
    app.dependency_overrides[get_backfill_service] = lambda: mock_backfill
    app.dependency_overrides[get_vector_store] = lambda: mock_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}
