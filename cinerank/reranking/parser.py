"""
Parsing of LLM ranking responses.

Two stages: a strict JSON parse of the (fence-stripped) response, then a
scan for the first bracketed JSON array embedded in surrounding prose.
"""
import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional

from cinerank.exceptions import ParseError

logger = logging.getLogger(__name__)

_ARRAY_START = re.compile(r"\[")
_QUOTED = re.compile(r'"([^"\\]+)"')
_DECODER = json.JSONDecoder()


@dataclass
class ScoredEntry:
    """One element of a detailed-mode response."""
    id: str
    score: float
    explanation: Optional[str] = None
    matching_elements: List[str] = field(default_factory=list)


def _strip_json_markers(payload: str) -> str:
    text = payload.strip()
    if text.startswith("```") and text.endswith("```"):
        text = text.strip("`")
        if text.startswith("json"):
            text = text[4:]
    return text.strip()


def extract_json_array(response: str) -> List[Any]:
    """
    Return the JSON array contained in an LLM response.

    Raises:
        ParseError: if no array can be decoded
    """
    if not isinstance(response, str) or not response.strip():
        raise ParseError("Empty LLM response")

    cleaned = _strip_json_markers(response)

    # Stage 1: the whole response is JSON
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        for key in ("ranking", "results", "movies", "ids"):
            if isinstance(parsed.get(key), list):
                return parsed[key]

    # Stage 2: first decodable array inside surrounding prose
    for match in _ARRAY_START.finditer(response):
        try:
            value, _ = _DECODER.raw_decode(response, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(value, list):
            return value

    raise ParseError("No valid JSON array found in response")


def _entry_id(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (str, int)):
        text = str(value).strip()
        return text or None
    return None


def parse_ranked_ids(response: str) -> List[str]:
    """
    Parse a fast-mode response: an ordered array of movie ids.

    Objects carrying an ``id`` are accepted so a detailed-shaped reply still
    yields an order. As a last resort every quoted string in the response is
    taken as an id. Duplicates keep their first position.
    """
    try:
        items = extract_json_array(response)
    except ParseError:
        items = _QUOTED.findall(response or "")
        if not items:
            raise
        logger.debug("Recovered ranking from quoted strings in response")

    ids: List[str] = []
    seen = set()
    for item in items:
        movie_id = _entry_id(item.get("id") if isinstance(item, dict) else item)
        if movie_id and movie_id not in seen:
            seen.add(movie_id)
            ids.append(movie_id)

    if not ids:
        raise ParseError("Ranking response did not contain any movie ids")
    return ids


def parse_scored_entries(response: str) -> List[ScoredEntry]:
    """
    Parse a detailed-mode response: ``[{id, relevanceScore, explanation, matchingElements}]``.
    Entries without an id or a finite numeric score are skipped.
    """
    items = extract_json_array(response)

    entries: List[ScoredEntry] = []
    seen = set()
    for item in items:
        if not isinstance(item, dict):
            continue
        movie_id = _entry_id(item.get("id", item.get("movieId")))
        raw_score = item.get("relevanceScore", item.get("score"))
        if not movie_id or movie_id in seen:
            continue
        if (
            isinstance(raw_score, bool)
            or not isinstance(raw_score, (int, float))
            or not math.isfinite(raw_score)
        ):
            logger.debug(f"Skipping entry without a finite numeric score: {item!r}")
            continue
        explanation = item.get("explanation")
        matching = item.get("matchingElements") or []
        seen.add(movie_id)
        entries.append(
            ScoredEntry(
                id=movie_id,
                score=float(raw_score),
                explanation=explanation.strip() if isinstance(explanation, str) and explanation.strip() else None,
                matching_elements=[str(element) for element in matching if element] if isinstance(matching, list) else [],
            )
        )

    if not entries:
        raise ParseError("Detailed response did not contain any scored entries")
    return entries
