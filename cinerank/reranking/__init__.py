"""LLM reranking of retrieved movie candidates."""

from cinerank.reranking.llm import create_chat_model
from cinerank.reranking.parser import ScoredEntry, extract_json_array, parse_ranked_ids, parse_scored_entries
from cinerank.reranking.reranker import (
    MIN_RANKED_SCORE,
    UNRANKED_SCORE,
    RelevanceReranker,
    describe_match,
    position_score,
)

__all__ = [
    "create_chat_model",
    "ScoredEntry",
    "extract_json_array",
    "parse_ranked_ids",
    "parse_scored_entries",
    "MIN_RANKED_SCORE",
    "UNRANKED_SCORE",
    "RelevanceReranker",
    "describe_match",
    "position_score",
]
