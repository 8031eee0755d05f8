import asyncio

import httpx
import pytest
from unittest.mock import AsyncMock
from langchain_core.language_models import FakeListChatModel
from langchain_core.runnables import RunnableLambda

from cinerank.exceptions import IndexUnavailableError, InvalidArgument, RecommendationFailed, UpstreamError
from cinerank.models.movie import RecommendationFilters, RecommendationQuery
from cinerank.reranking.reranker import RelevanceReranker
from cinerank.services.recommendation_service import RecommendationService, paginate
from cinerank.services.qdrant_client import QdrantClient
from cinerank.services.retriever import CandidateRetriever

NO_VECTOR = "Wrong input: Not existing vector name error: embedding"


def unavailable_llm(calls):
    def _raise(prompt_value):
        calls.append(prompt_value)
        raise RuntimeError("LLM unavailable")
    return RunnableLambda(_raise)


@pytest.fixture
def mock_retriever():
    return AsyncMock(spec=CandidateRetriever)


@pytest.fixture
def llm_calls():
    return []


@pytest.fixture
def build_service(mock_embeddings, mock_retriever, llm_calls):
    def factory(reranker=None, **options):
        return RecommendationService(
            embeddings=mock_embeddings,
            retriever=mock_retriever,
            reranker=reranker or RelevanceReranker(unavailable_llm(llm_calls)),
            **options,
        )
    return factory


def test_paginate_boundaries():
    items = list(range(25))

    assert paginate(items, 1, 10) == (list(range(10)), True)
    assert paginate(items, 3, 10) == (list(range(20, 25)), False)
    assert paginate(items, 4, 10) == ([], False)
    assert paginate(list(range(20)), 2, 10) == (list(range(10, 20)), False)
    with pytest.raises(InvalidArgument):
        paginate(items, 0, 10)


@pytest.mark.asyncio
async def test_recommend_pages_over_full_ranking(build_service, mock_retriever, make_candidate):
    mock_retriever.retrieve.return_value = [
        make_candidate(f"m{i}", 1 - i / 100, poster=f"https://img/{i}.jpg") for i in range(25)
    ]
    service = build_service()

    page = await service.recommend(RecommendationQuery(description="slow burn thriller", page=3, limit=10))

    assert page.total_count == 25
    assert page.has_more is False
    assert [item.id for item in page.items] == [f"m{i}" for i in range(20, 25)]
    assert page.items[0].position == 20
    assert page.items[0].movie.poster == "https://img/20.jpg"
    mock_retriever.retrieve.assert_awaited_once()
    assert mock_retriever.retrieve.await_args.args[1] == 30


@pytest.mark.asyncio
async def test_recommend_passes_filters(build_service, mock_retriever, make_candidate):
    mock_retriever.retrieve.return_value = [make_candidate("m1", 0.9)]
    filters = RecommendationFilters(genres=["Horror"], year_from=1980)

    await build_service().recommend(RecommendationQuery(description="creepy", limit=2, filters=filters))

    query_vector, limit, passed_filters = mock_retriever.retrieve.await_args.args
    assert limit == 10
    assert passed_filters == filters


@pytest.mark.asyncio
async def test_empty_candidates_skip_reranking(build_service, mock_retriever):
    mock_retriever.retrieve.return_value = []
    reranker = AsyncMock(spec=RelevanceReranker)

    page = await build_service(reranker=reranker).recommend(RecommendationQuery(description="nothing matches"))

    assert page.items == []
    assert page.total_count == 0
    assert page.has_more is False
    reranker.rank.assert_not_called()


@pytest.mark.asyncio
async def test_embedding_failure_is_recommendation_failed(build_service, mock_embeddings, mock_retriever):
    mock_embeddings.embed.side_effect = UpstreamError("Embeddings API error: 500", service="embeddings", status_code=500)

    with pytest.raises(RecommendationFailed):
        await build_service().recommend(RecommendationQuery(description="anything"))
    mock_retriever.retrieve.assert_not_called()


@pytest.mark.asyncio
async def test_retrieval_failure_is_recommendation_failed(build_service, mock_retriever):
    mock_retriever.retrieve.side_effect = UpstreamError("Qdrant search error: 500", service="qdrant", status_code=500)

    with pytest.raises(RecommendationFailed):
        await build_service().recommend(RecommendationQuery(description="anything"))


@pytest.mark.asyncio
async def test_invalid_query(build_service, mock_embeddings):
    with pytest.raises(InvalidArgument):
        await build_service().recommend(RecommendationQuery(description="   "))
    with pytest.raises(InvalidArgument):
        await build_service().recommend(RecommendationQuery(description="ok", page=0))
    mock_embeddings.embed.assert_not_called()


@pytest.mark.asyncio
async def test_llm_ranking_applied(build_service, mock_retriever, make_candidate):
    mock_retriever.retrieve.return_value = [make_candidate("a", 0.9), make_candidate("b", 0.8)]
    reranker = RelevanceReranker(FakeListChatModel(responses=['["b", "a"]']))

    page = await build_service(reranker=reranker).recommend(RecommendationQuery(description="b-movie"))

    assert [item.id for item in page.items] == ["b", "a"]
    assert page.items[0].relevance_score == 95
    assert page.degraded is False


@pytest.mark.asyncio
async def test_degraded_path_ranks_local_sample(
    build_service, mock_embeddings, mock_retriever, make_record, llm_calls
):
    mock_embeddings.embed.return_value = [1.0, 0.0]
    mock_embeddings.embed_batch.return_value = [[0.0, 1.0]]
    mock_retriever.retrieve.side_effect = IndexUnavailableError(NO_VECTOR, service="qdrant", status_code=400)
    mock_retriever.sample.return_value = [
        make_record("exact", embedding=[1.0, 0.0]),
        make_record("unembedded"),
        make_record("diagonal", embedding=[0.7, 0.7]),
    ]

    page = await build_service().recommend(RecommendationQuery(description="anything", limit=10))

    assert page.degraded is True
    assert [item.id for item in page.items] == ["exact", "diagonal", "unembedded"]
    assert page.items[0].relevance_score == 95
    assert page.items[0].candidate.similarity_score == pytest.approx(1.0)
    mock_embeddings.embed_batch.assert_awaited_once()
    assert len(mock_embeddings.embed_batch.await_args.args[0]) == 1
    assert llm_calls == []


@pytest.mark.asyncio
async def test_degraded_path_survives_sample_embedding_failure(
    build_service, mock_embeddings, mock_retriever, make_record
):
    mock_embeddings.embed_batch.side_effect = UpstreamError("down", service="embeddings")
    mock_retriever.retrieve.side_effect = IndexUnavailableError(NO_VECTOR, service="qdrant", status_code=400)
    mock_retriever.sample.return_value = [make_record("stored", embedding=[1.0, 0.0]), make_record("bare")]

    page = await build_service().recommend(RecommendationQuery(description="anything"))

    assert [item.id for item in page.items] == ["stored"]


@pytest.mark.asyncio
async def test_degraded_path_disabled(build_service, mock_retriever):
    mock_retriever.retrieve.side_effect = IndexUnavailableError(NO_VECTOR, service="qdrant", status_code=400)

    with pytest.raises(RecommendationFailed):
        await build_service(fallback_enabled=False).recommend(RecommendationQuery(description="anything"))
    mock_retriever.sample.assert_not_called()


@pytest.mark.asyncio
async def test_degraded_path_timeout(build_service, mock_retriever):
    async def slow_sample(*args, **kwargs):
        await asyncio.sleep(1)
        return []

    mock_retriever.retrieve.side_effect = IndexUnavailableError(NO_VECTOR, service="qdrant", status_code=400)
    mock_retriever.sample.side_effect = slow_sample

    with pytest.raises(RecommendationFailed):
        await build_service(fallback_timeout=0.01).recommend(RecommendationQuery(description="anything"))


@pytest.mark.asyncio
async def test_explanation_enrichment(build_service, mock_retriever, make_candidate):
    mock_retriever.retrieve.return_value = [make_candidate(f"m{i}", 0.9 - i / 10) for i in range(7)]
    llm = FakeListChatModel(responses=[
        '["m0", "m1", "m2", "m3", "m4", "m5", "m6"]',
        "First pick because of its plot.",
        "Second pick.",
        "Third pick.",
        "Fourth pick.",
        "Fifth pick.",
    ])
    service = build_service(
        reranker=RelevanceReranker(llm),
        enrich_explanations=True,
        explanation_threshold=70,
    )

    page = await service.recommend(RecommendationQuery(description="anything", limit=7))

    assert page.items[0].reason == "First pick because of its plot."
    assert page.items[4].reason == "Fifth pick."
    # Scores 70 and 65 are not above the threshold
    assert page.items[5].reason.startswith("#6")
    assert page.items[6].reason.startswith("#7")


@pytest.mark.asyncio
async def test_cowboy_and_astronaut_scenario(build_service, mock_retriever, make_candidate):
    mock_retriever.retrieve.return_value = [
        make_candidate("m1", 0.42),
        make_candidate("m2", 0.31),
        make_candidate("toy-story", 0.81, title="Toy Story", genres=["Animation", "Adventure"]),
        make_candidate("m3", 0.49),
        make_candidate("m4", 0.12),
        make_candidate("m5", 0.25),
    ]

    page = await build_service().recommend(RecommendationQuery(
        description="a story where a cowboy and astronaut become friends",
        limit=1,
    ))

    assert len(page.items) == 1
    assert page.items[0].id == "toy-story"
    assert page.items[0].relevance_score == 95
    assert page.total_count == 6
    assert page.has_more is True


def qdrant_returning(status_code, text, paths):
    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path.endswith("/points/scroll"):
            return httpx.Response(200, json={"result": {
                "points": [{"id": 1, "payload": {"movie_id": "m1", "title": "Alien"}, "vector": {"embedding": [1.0, 0.0]}}],
                "next_page_offset": None,
            }})
        return httpx.Response(status_code, text=text)
    return QdrantClient("http://qdrant:6333", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_missing_collection_fails_without_fallback(mock_embeddings, llm_calls):
    paths = []
    store = qdrant_returning(404, "Not found: Collection `movies` doesn't exist!", paths)
    service = RecommendationService(
        embeddings=mock_embeddings,
        retriever=CandidateRetriever(store),
        reranker=RelevanceReranker(unavailable_llm(llm_calls)),
    )

    with pytest.raises(RecommendationFailed):
        await service.recommend(RecommendationQuery(description="anything"))
    assert paths == ["/collections/movies/points/search"]


@pytest.mark.asyncio
async def test_unknown_vector_name_uses_local_ranking(mock_embeddings, llm_calls):
    paths = []
    store = qdrant_returning(400, NO_VECTOR, paths)
    service = RecommendationService(
        embeddings=mock_embeddings,
        retriever=CandidateRetriever(store),
        reranker=RelevanceReranker(unavailable_llm(llm_calls)),
    )

    page = await service.recommend(RecommendationQuery(description="anything"))

    assert page.degraded is True
    assert [item.id for item in page.items] == ["m1"]
    assert paths == ["/collections/movies/points/search", "/collections/movies/points/scroll"]
