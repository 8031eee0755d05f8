import pytest
from unittest.mock import AsyncMock

from cinerank.models.movie import CandidateMovie, MovieRecord
from cinerank.services.embeddings_service import MistralEmbeddingsService


def _make_record(movie_id, title=None, genres=None, year=None, embedding=None, **extra):
    return MovieRecord(
        id=movie_id,
        title=title or f"Movie {movie_id}",
        genres=genres or [],
        year=year,
        embedding=embedding,
        **extra,
    )


def _make_candidate(movie_id, similarity=0.5, **kwargs):
    return CandidateMovie.from_record(_make_record(movie_id, **kwargs), similarity)


@pytest.fixture
def make_record():
    return _make_record


@pytest.fixture
def make_candidate():
    return _make_candidate


@pytest.fixture
def mock_embeddings():
    mock = AsyncMock(spec=MistralEmbeddingsService)
    mock.model_name = "mistral-embed"
    mock.embed.return_value = [1.0, 0.0]
    return mock


class InMemoryStore:
    """Stand-in for QdrantClient that understands the filters backfill sends."""

    vector_name = "embedding"

    def __init__(self, payloads):
        self.points = {
            index: {"id": index, "payload": dict(payload)}
            for index, payload in enumerate(payloads, 1)
        }
        self.vectors = {}
        self.scroll_calls = 0

    def _matches(self, point, query_filter):
        if not query_filter:
            return True
        for condition in query_filter.get("must", []):
            if "is_empty" in condition and point["payload"].get(condition["is_empty"]["key"]):
                return False
        for condition in query_filter.get("must_not", []):
            if "has_id" in condition and point["id"] in condition["has_id"]:
                return False
        return True

    async def scroll(self, query_filter=None, limit=10, offset=None, with_vectors=False):
        self.scroll_calls += 1
        matched = [point for point in self.points.values() if self._matches(point, query_filter)]
        return {"points": matched[:limit], "next_page_offset": None}

    async def count_points(self, query_filter=None):
        return sum(1 for point in self.points.values() if self._matches(point, query_filter))

    async def update_vectors(self, points):
        for point in points:
            self.vectors[point["id"]] = point["vector"]

    async def set_payload(self, point_ids, payload):
        for point_id in point_ids:
            self.points[point_id]["payload"].update(payload)


@pytest.fixture
def movie_store():
    def factory(count, broken_titles=()):
        payloads = [
            {"movie_id": f"m{index}", "title": f"Movie {index}", "plot": "A plot."}
            for index in range(count)
        ]
        for title in broken_titles:
            payloads.append({"movie_id": title.lower(), "title": title})
        return InMemoryStore(payloads)
    return factory
