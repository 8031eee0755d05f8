import pytest
from unittest.mock import AsyncMock

from cinerank.config import Settings
from cinerank.core.scheduler import run_scheduled_backfill, start_scheduler
from cinerank.dependencies import build_container
from cinerank.exceptions import BackfillAlreadyRunning, ConfigurationError
from cinerank.reranking.llm import create_chat_model
from cinerank.services.backfill_service import EmbeddingBackfillService


def test_llm_key_falls_back_to_mistral_key():
    settings = Settings(_env_file=None, MISTRAL_API_KEY="mistral", LLM_API_KEY=None)

    assert settings.llm_api_key == "mistral"


def test_chat_model_requires_key():
    with pytest.raises(ConfigurationError):
        create_chat_model(Settings(_env_file=None, MISTRAL_API_KEY=None, LLM_API_KEY=None))


def test_build_container():
    settings = Settings(_env_file=None, MISTRAL_API_KEY="k", RERANK_MODE="detailed", OVERFETCH_AMPLIFICATION=4)

    container = build_container(settings)

    assert container.recommendations.reranker.mode == "detailed"
    assert container.recommendations.amplification == 4
    assert container.backfill.store is container.store
    assert container.store.collection_name == "movies"


def test_build_container_without_key():
    with pytest.raises(ConfigurationError):
        build_container(Settings(_env_file=None, MISTRAL_API_KEY=None))


def test_scheduler_disabled_by_default():
    service = AsyncMock(spec=EmbeddingBackfillService)

    assert start_scheduler(service, Settings(_env_file=None)) is False


@pytest.mark.asyncio
async def test_scheduled_run_skips_when_busy():
    service = AsyncMock(spec=EmbeddingBackfillService)
    service.backfill.side_effect = BackfillAlreadyRunning("busy")

    await run_scheduled_backfill(service, 10)

    service.backfill.assert_awaited_once_with(10)
