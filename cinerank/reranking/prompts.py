"""
Prompt templates for LLM reranking.
"""
from typing import List

from langchain_core.prompts import ChatPromptTemplate

from cinerank.models.movie import CandidateMovie, RankedRecommendation

PLOT_PREVIEW_CHARS = 200


FAST_RANKING_SYSTEM_PROMPT = """You are a movie recommendation AI. Your task is to quickly rank movies by relevance to a user query.

Instructions:
1. Analyze each movie's relevance to the user query
2. Consider plot, genres, themes, and vector similarity
3. Return ONLY a JSON array with movie IDs ranked by relevance (most relevant first)
4. Format: ["movie_id_1", "movie_id_2", "movie_id_3", ...]
5. Include ALL movies in the ranking, just reorder them

Example:
User Query: "space adventure with robots"
Response: ["star_wars_id", "wall_e_id", "interstellar_id", "blade_runner_id"]"""


DETAILED_RANKING_SYSTEM_PROMPT = """You are a movie recommendation AI. Score how well each movie matches a user query.

Instructions:
1. Judge every movie against the query: plot, themes, genres, tone and era
2. Give each movie a relevanceScore from 0 (unrelated) to 100 (exactly what was asked for)
3. Write a one-sentence explanation addressed to the user
4. List the elements of the movie that match the query
5. Return ONLY a JSON array, one object per movie, sorted by relevanceScore descending

Format:
[{{"id": "movie_id", "relevanceScore": 87, "explanation": "...", "matchingElements": ["...", "..."]}}]"""


RANKING_HUMAN_PROMPT = """User Query: "{user_query}"

Movies to rank (with vector similarity scores):
{movie_list}

Return only the JSON array, no other text:"""


EXPLANATION_SYSTEM_PROMPT = """You are a film critic helping a user pick a movie.
In two or three sentences, explain why the movie below fits what the user asked for.
Refer to concrete plot points or themes. Do not invent facts that are not in the description."""


EXPLANATION_HUMAN_PROMPT = """User Query: "{user_query}"

Movie: {title} ({year})
Genres: {genres}
Plot: {plot}"""


fast_ranking_prompt = ChatPromptTemplate.from_messages([
    ("system", FAST_RANKING_SYSTEM_PROMPT),
    ("human", RANKING_HUMAN_PROMPT),
])

detailed_ranking_prompt = ChatPromptTemplate.from_messages([
    ("system", DETAILED_RANKING_SYSTEM_PROMPT),
    ("human", RANKING_HUMAN_PROMPT),
])

explanation_prompt = ChatPromptTemplate.from_messages([
    ("system", EXPLANATION_SYSTEM_PROMPT),
    ("human", EXPLANATION_HUMAN_PROMPT),
])


def format_movie_list(candidates: List[CandidateMovie]) -> str:
    """Serialize candidates into the numbered list embedded in ranking prompts."""
    entries = []
    for index, movie in enumerate(candidates, 1):
        plot_text = movie.fullplot or movie.plot or "No plot available"
        genres_text = ", ".join(movie.genres) if movie.genres else "Unknown genres"
        entries.append(
            f"{index}. ID: {movie.id}\n"
            f"Title: {movie.title} ({movie.year or 'Unknown year'})\n"
            f"Plot: {plot_text[:PLOT_PREVIEW_CHARS]}...\n"
            f"Genres: {genres_text}\n"
            f"Vector Similarity: {movie.similarity_score * 100:.1f}%"
        )
    return "\n\n".join(entries)


def explanation_inputs(user_query: str, item: RankedRecommendation) -> dict:
    movie = item.candidate
    return {
        "user_query": user_query,
        "title": movie.title,
        "year": movie.year or "Unknown year",
        "genres": ", ".join(movie.genres) if movie.genres else "Unknown genres",
        "plot": movie.fullplot or movie.plot or "No plot available",
    }
