"""
Embeddings service using the Mistral embeddings API.
"""
import logging
from typing import List, Optional, Sequence

import httpx
import numpy as np

from cinerank.config import Settings
from cinerank.exceptions import ConfigurationError, InvalidArgument, UpstreamError
from cinerank.models.movie import MovieRecord

logger = logging.getLogger(__name__)


def cosine_similarity(vector_a: Sequence[float], vector_b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors.

    Returns 0.0 when either vector has zero norm.

    Raises:
        InvalidArgument: if the vectors differ in length
    """
    if len(vector_a) != len(vector_b):
        raise InvalidArgument(
            f"Vectors must have the same length ({len(vector_a)} != {len(vector_b)})"
        )

    a = np.asarray(vector_a, dtype=np.float64)
    b = np.asarray(vector_b, dtype=np.float64)
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(a, b) / (norm_a * norm_b))
    # Floating point can push parallel vectors marginally past +/-1
    return max(-1.0, min(1.0, similarity))


def build_movie_text(movie: MovieRecord) -> str:
    """
    Prepare text for embedding from a movie record.
    Combines title, plots, genres, people, year and rating.

    Args:
        movie: Movie record to summarise

    Returns:
        Labelled text for embedding
    """
    parts = []

    if movie.title:
        parts.append(f"Title: {movie.title}")

    if movie.plot:
        parts.append(f"Plot: {movie.plot}")

    if movie.fullplot:
        parts.append(f"Full Plot: {movie.fullplot}")

    if movie.genres:
        parts.append(f"Genres: {', '.join(movie.genres)}")

    if movie.directors:
        parts.append(f"Directors: {', '.join(movie.directors)}")

    if movie.cast:
        parts.append(f"Cast: {', '.join(movie.cast[:10])}")

    if movie.year:
        parts.append(f"Year: {movie.year}")

    if movie.rated:
        parts.append(f"Rating: {movie.rated}")

    return ". ".join(parts)


class MistralEmbeddingsService:
    """
    Service for generating embeddings over the Mistral REST API.
    Every call goes to the network; nothing is cached.
    """

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.mistral.ai/v1",
        model_name: str = "mistral-embed",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key:
            raise ConfigurationError("MISTRAL_API_KEY is not configured")

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model_name = model_name
        self.timeout = timeout
        self._transport = transport

        self.headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        logger.info(f"Embeddings client configured for model '{self.model_name}'")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "MistralEmbeddingsService":
        return cls(
            api_key=settings.MISTRAL_API_KEY,
            base_url=settings.EMBEDDING_BASE_URL,
            model_name=settings.EMBEDDING_MODEL,
            timeout=settings.EMBEDDING_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def embed(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Input text to embed

        Returns:
            Embedding vector
        """
        if not text or not text.strip():
            raise InvalidArgument("Text to embed cannot be empty")

        embeddings = await self._request([text])
        return embeddings[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts in one call.

        Either every text gets an embedding or UpstreamError is raised.

        Args:
            texts: List of input texts

        Returns:
            Embedding vectors in input order
        """
        if not texts:
            return []
        if any(not text or not text.strip() for text in texts):
            raise InvalidArgument("Texts to embed cannot be empty")

        return await self._request(texts)

    async def _request(self, texts: List[str]) -> List[List[float]]:
        payload = {
            "model": self.model_name,
            "inputs": texts,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/embeddings",
                    headers=self.headers,
                    json=payload
                )
        except httpx.TimeoutException as e:
            logger.error(f"Embedding request timed out: {e}")
            raise UpstreamError("Embedding request timed out", service="embeddings") from e
        except httpx.HTTPError as e:
            logger.error(f"Error calling embeddings API: {e}")
            raise UpstreamError(f"Embedding request failed: {e}", service="embeddings") from e

        if not response.is_success:
            logger.error(f"Embeddings API error: {response.status_code} - {response.text}")
            raise UpstreamError(
                f"Embeddings API error: {response.status_code}",
                service="embeddings",
                status_code=response.status_code,
            )

        try:
            data = response.json().get("data") or []
            embeddings = [item["embedding"] for item in data]
        except (ValueError, AttributeError, KeyError, TypeError) as e:
            raise UpstreamError("Malformed embeddings payload", service="embeddings") from e

        if len(embeddings) != len(texts) or any(not embedding for embedding in embeddings):
            raise UpstreamError(
                f"Expected {len(texts)} embeddings, received {len(embeddings)}",
                service="embeddings",
            )

        return embeddings
