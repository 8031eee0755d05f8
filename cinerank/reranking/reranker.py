"""
LLM relevance reranking with similarity fallback.
"""
import logging
from typing import Dict, List, Literal, Optional

from langchain_core.output_parsers import StrOutputParser
from langchain_core.runnables import Runnable

from cinerank.exceptions import ParseError
from cinerank.models.movie import CandidateMovie, RankedRecommendation
from cinerank.reranking.parser import ScoredEntry, parse_ranked_ids, parse_scored_entries
from cinerank.reranking.prompts import (
    detailed_ranking_prompt,
    explanation_inputs,
    explanation_prompt,
    fast_ranking_prompt,
    format_movie_list,
)

logger = logging.getLogger(__name__)

TOP_SCORE = 95
SCORE_STEP = 5
MIN_RANKED_SCORE = 20
UNRANKED_SCORE = 15

RankingSource = Literal["llm", "similarity", "unranked"]


def _pending(candidates: List[CandidateMovie]) -> Dict[str, List[CandidateMovie]]:
    """Candidates grouped by id, in input order. Duplicate ids are kept."""
    pending: Dict[str, List[CandidateMovie]] = {}
    for movie in candidates:
        pending.setdefault(movie.id, []).append(movie)
    return pending


def _take(pending: Dict[str, List[CandidateMovie]], movie_id: str) -> Optional[CandidateMovie]:
    queue = pending.get(movie_id)
    return queue.pop(0) if queue else None


def position_score(rank: int) -> int:
    """Relevance for the zero-based ``rank``: 95, 90, 85 ... floored at 20."""
    return max(TOP_SCORE - SCORE_STEP * rank, MIN_RANKED_SCORE)


def describe_match(
    relevance_score: int,
    position: int,
    genres: Optional[List[str]] = None,
    source: RankingSource = "llm",
) -> str:
    """
    Short human-readable reason for a ranked movie.

    Args:
        relevance_score: 0-100 score
        position: Zero-based position in the full ranked list
        genres: Movie genres; the first two are mentioned
        source: What produced the ranking
    """
    rank = position + 1
    rank_text = f"Top {rank}" if rank <= 3 else f"#{rank}"
    if relevance_score >= 90:
        score_text = "Perfect Match"
    elif relevance_score >= 75:
        score_text = "Excellent Match"
    elif relevance_score >= 60:
        score_text = "Great Match"
    else:
        score_text = "Good Match"

    parts = [rank_text, score_text]
    if genres:
        parts.append(" & ".join(genres[:2]))

    if source == "llm":
        parts.append("AI-ranked for relevance")
    elif source == "similarity":
        parts.append("Vector similarity match")
    else:
        parts.append("Not ranked by AI")

    return " • ".join(parts)


class RelevanceReranker:
    """
    Reorders retrieved candidates with a single LLM call.

    ``mode`` picks the primary response shape: ``fast`` asks for an ordered id
    list, ``detailed`` for scored objects. The other shape is tried when the
    primary parse fails. Every input candidate appears exactly once in the
    output, and any failure degrades to similarity ordering.
    """

    def __init__(
        self,
        llm: Runnable,
        mode: Literal["fast", "detailed"] = "fast",
    ):
        if mode not in ("fast", "detailed"):
            raise ValueError(f"Unsupported rerank mode '{mode}'")
        self.llm = llm
        self.mode = mode

        prompt = fast_ranking_prompt if mode == "fast" else detailed_ranking_prompt
        self.ranking_chain: Runnable = prompt | llm | StrOutputParser()
        self.explanation_chain: Runnable = explanation_prompt | llm | StrOutputParser()

    async def rank(self, query: str, candidates: List[CandidateMovie]) -> List[RankedRecommendation]:
        """
        Rank ``candidates`` against the user's free-text ``query``.

        Never raises for upstream or parse failures; falls back to ordering by
        similarity score instead.
        """
        if not candidates:
            return []

        logger.info(f"Ranking {len(candidates)} movies ({self.mode} mode) for query: \"{query}\"")

        try:
            response = await self.ranking_chain.ainvoke({
                "user_query": query,
                "movie_list": format_movie_list(candidates),
            })
        except Exception as e:
            logger.error(f"LLM ranking call failed: {e}")
            return self.fallback_rank(candidates)

        try:
            ranked = self._apply_response(response, candidates)
        except ParseError as e:
            logger.warning(f"Failed to parse ranking response: {e}")
            logger.debug(f"Raw response: {response!r}")
            return self.fallback_rank(candidates)

        logger.info(f"Ranking completed: {len(ranked)} movies ranked")
        return ranked

    def fallback_rank(self, candidates: List[CandidateMovie]) -> List[RankedRecommendation]:
        """Order by descending similarity; ties keep their input order."""
        logger.warning("Using fallback ranking based on vector similarity")
        ordered = sorted(candidates, key=lambda movie: movie.similarity_score, reverse=True)
        return [
            self._make(movie, position_score(position), position, source="similarity")
            for position, movie in enumerate(ordered)
        ]

    async def explain(self, query: str, item: RankedRecommendation) -> str:
        """
        Ask the LLM for a richer explanation of one recommendation.
        Returns the existing reason if the call fails or comes back empty.
        """
        try:
            text = await self.explanation_chain.ainvoke(explanation_inputs(query, item))
        except Exception as e:
            logger.warning(f"Explanation enrichment failed for {item.id}: {e}")
            return item.reason
        text = (text or "").strip()
        return text or item.reason

    def _apply_response(self, response: str, candidates: List[CandidateMovie]) -> List[RankedRecommendation]:
        if self.mode == "fast":
            parsers = (self._from_ranked_ids, self._from_scored_entries)
        else:
            parsers = (self._from_scored_entries, self._from_ranked_ids)

        errors = []
        for apply in parsers:
            try:
                return apply(response, candidates)
            except ParseError as e:
                errors.append(str(e))
        raise ParseError("; ".join(errors))

    def _from_ranked_ids(self, response: str, candidates: List[CandidateMovie]) -> List[RankedRecommendation]:
        ranked_ids = parse_ranked_ids(response)
        remaining = _pending(candidates)

        ranked: List[RankedRecommendation] = []
        for movie_id in ranked_ids:
            movie = _take(remaining, movie_id)
            if movie is None:
                continue
            position = len(ranked)
            ranked.append(self._make(movie, position_score(position), position))

        if not ranked:
            raise ParseError("Ranking response did not mention any candidate")

        return self._append_unranked(ranked, remaining)

    def _from_scored_entries(self, response: str, candidates: List[CandidateMovie]) -> List[RankedRecommendation]:
        entries = parse_scored_entries(response)
        remaining = _pending(candidates)

        matched: List[tuple] = []
        for entry in entries:
            movie = _take(remaining, entry.id)
            if movie is not None:
                matched.append((movie, entry))

        if not matched:
            raise ParseError("Detailed response did not mention any candidate")

        # Stable sort keeps the model's order for equal scores
        matched.sort(key=lambda pair: pair[1].score, reverse=True)
        ranked = [
            self._make_scored(movie, entry, position)
            for position, (movie, entry) in enumerate(matched)
        ]
        return self._append_unranked(ranked, remaining)

    def _append_unranked(
        self,
        ranked: List[RankedRecommendation],
        remaining: Dict[str, List[CandidateMovie]],
    ) -> List[RankedRecommendation]:
        missing = [movie for queue in remaining.values() for movie in queue]
        if missing:
            logger.info(f"{len(missing)} candidates missing from LLM response, appending as unranked")
        for movie in missing:
            ranked.append(self._make(movie, UNRANKED_SCORE, len(ranked), source="unranked"))
        return ranked

    def _make(
        self,
        movie: CandidateMovie,
        score: int,
        position: int,
        source: RankingSource = "llm",
    ) -> RankedRecommendation:
        return RankedRecommendation(
            candidate=movie,
            relevance_score=score,
            reason=describe_match(score, position, movie.genres, source),
            position=position,
        )

    def _make_scored(self, movie: CandidateMovie, entry: ScoredEntry, position: int) -> RankedRecommendation:
        # Keep ranked items above the unranked tail
        score = int(round(min(100.0, max(float(MIN_RANKED_SCORE), entry.score))))
        reason = entry.explanation or describe_match(score, position, movie.genres)
        return RankedRecommendation(
            candidate=movie,
            relevance_score=score,
            reason=reason,
            position=position,
        )
