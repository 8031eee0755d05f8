"""
Qdrant Vector Database Client using REST API.
The collection doubles as the movie document store: every movie is a point
whose payload is the movie document and whose named vector is added by backfill.
"""
import logging
from typing import List, Dict, Any, Optional

import httpx

from cinerank.config import Settings
from cinerank.exceptions import IndexUnavailableError, UpstreamError

logger = logging.getLogger(__name__)


class QdrantClient:
    """
    Qdrant client using REST API for vector operations.
    """

    def __init__(
        self,
        base_url: str,
        collection_name: str = "movies",
        vector_name: str = "embedding",
        api_key: Optional[str] = None,
        verify_ssl: bool = True,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.collection_name = collection_name
        self.vector_name = vector_name
        self.api_key = api_key
        self.verify_ssl = verify_ssl
        self.timeout = timeout
        self._transport = transport

        # Setup headers
        self.headers = {
            "Content-Type": "application/json"
        }
        if self.api_key:
            self.headers["api-key"] = self.api_key

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "QdrantClient":
        return cls(
            base_url=settings.QDRANT_URL,
            collection_name=settings.QDRANT_COLLECTION_NAME,
            vector_name=settings.QDRANT_VECTOR_NAME,
            api_key=settings.QDRANT_API_KEY,
            verify_ssl=settings.QDRANT_VERIFY_SSL,
            timeout=settings.QDRANT_TIMEOUT_SECONDS,
            transport=transport,
        )

    @property
    def collection_url(self) -> str:
        return f"{self.base_url}/collections/{self.collection_name}"

    def _client(self, timeout: Optional[float] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            verify=self.verify_ssl,
            timeout=timeout or self.timeout,
            transport=self._transport,
        )

    async def _send(
        self,
        method: str,
        url: str,
        operation: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Issue a request and translate failures into UpstreamError.

        A rejected vector name means the collection exists but its vector index
        does not, which callers can tell apart from other errors. A missing
        collection (404) is a plain UpstreamError.
        """
        try:
            async with self._client(timeout) as client:
                response = await client.request(
                    method,
                    url,
                    headers=self.headers,
                    json=json,
                    params=params,
                )
        except httpx.TimeoutException as e:
            logger.error(f"Qdrant {operation} timed out: {e}")
            raise UpstreamError(f"Qdrant {operation} timed out", service="qdrant") from e
        except httpx.HTTPError as e:
            logger.error(f"Error during Qdrant {operation}: {e}")
            raise UpstreamError(f"Qdrant {operation} failed: {e}", service="qdrant") from e

        if response.is_success:
            try:
                return response.json()
            except ValueError as e:
                raise UpstreamError(f"Qdrant {operation} returned invalid JSON", service="qdrant") from e

        detail = response.text
        logger.error(f"Qdrant {operation} error: {response.status_code} - {detail}")
        if response.status_code == 400 and "vector name" in detail.lower():
            raise IndexUnavailableError(
                f"Vector index unavailable for '{self.collection_name}' during {operation}",
                service="qdrant",
                status_code=response.status_code,
            )
        raise UpstreamError(
            f"Qdrant {operation} error: {response.status_code}",
            service="qdrant",
            status_code=response.status_code,
        )

    async def health_check(self) -> bool:
        """
        Check if Qdrant is accessible.
        """
        try:
            async with self._client(10.0) as client:
                response = await client.get(
                    f"{self.base_url}/",
                    headers=self.headers
                )
                response.raise_for_status()
                logger.info("Qdrant health check passed")
                return True
        except Exception as e:
            logger.error(f"Qdrant health check failed: {e}")
            return False

    async def collection_exists(self) -> bool:
        """
        Check if the collection exists.
        """
        try:
            async with self._client(10.0) as client:
                response = await client.get(
                    self.collection_url,
                    headers=self.headers
                )
                return response.status_code == 200
        except Exception as e:
            logger.error(f"Error checking collection existence: {e}")
            return False

    async def create_collection(self, vector_size: int = 1024) -> None:
        """
        Create the collection with a named cosine vector of the given size.
        """
        payload = {
            "vectors": {
                self.vector_name: {
                    "size": vector_size,
                    "distance": "Cosine"
                }
            }
        }
        await self._send("PUT", self.collection_url, "create_collection", json=payload)
        logger.info(f"Collection '{self.collection_name}' created successfully")

    async def search(
        self,
        query_vector: List[float],
        limit: int = 10,
        query_filter: Optional[Dict[str, Any]] = None,
        exact: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Search for similar vectors in the collection.

        Args:
            query_vector: The query embedding vector
            limit: Maximum number of results to return
            query_filter: Qdrant filter applied before scoring
            exact: Bypass the ANN index and score every candidate

        Returns:
            List of search results with id, score, and payload
        """
        payload: Dict[str, Any] = {
            "vector": {"name": self.vector_name, "vector": query_vector},
            "limit": limit,
            "with_payload": True,
        }
        if query_filter:
            payload["filter"] = query_filter
        if exact:
            payload["params"] = {"exact": True}

        result = await self._send(
            "POST",
            f"{self.collection_url}/points/search",
            "search",
            json=payload,
        )
        return result.get("result") or []

    async def scroll(
        self,
        query_filter: Optional[Dict[str, Any]] = None,
        limit: int = 10,
        offset: Optional[Any] = None,
        with_vectors: bool = False,
    ) -> Dict[str, Any]:
        """
        Page through points matching a filter.

        Returns:
            Dict with ``points`` and ``next_page_offset``
        """
        payload: Dict[str, Any] = {
            "limit": limit,
            "with_payload": True,
            "with_vector": [self.vector_name] if with_vectors else False,
        }
        if query_filter:
            payload["filter"] = query_filter
        if offset is not None:
            payload["offset"] = offset

        result = await self._send(
            "POST",
            f"{self.collection_url}/points/scroll",
            "scroll",
            json=payload,
        )
        body = result.get("result") or {}
        return {
            "points": body.get("points") or [],
            "next_page_offset": body.get("next_page_offset"),
        }

    async def update_vectors(self, points: List[Dict[str, Any]]) -> None:
        """
        Attach named vectors to existing points.

        Args:
            points: List of ``{"id": ..., "vector": [...]}`` entries
        """
        body = {
            "points": [
                {"id": point["id"], "vector": {self.vector_name: point["vector"]}}
                for point in points
            ]
        }
        await self._send(
            "PUT",
            f"{self.collection_url}/points/vectors",
            "update_vectors",
            json=body,
            params={"wait": "true"},
        )

    async def set_payload(self, point_ids: List[Any], payload: Dict[str, Any]) -> None:
        """
        Merge payload keys into existing points.
        """
        await self._send(
            "POST",
            f"{self.collection_url}/points/payload",
            "set_payload",
            json={"payload": payload, "points": point_ids},
            params={"wait": "true"},
        )

    async def count_points(self, query_filter: Optional[Dict[str, Any]] = None) -> int:
        """
        Count points in the collection, optionally matching a filter.
        """
        body: Dict[str, Any] = {"exact": True}
        if query_filter:
            body["filter"] = query_filter
        result = await self._send(
            "POST",
            f"{self.collection_url}/points/count",
            "count",
            json=body,
        )
        return int((result.get("result") or {}).get("count", 0))

    async def get_collection_info(self) -> Optional[Dict[str, Any]]:
        """
        Get collection information including count of points.
        """
        try:
            return await self._send("GET", self.collection_url, "collection_info", timeout=10.0)
        except UpstreamError as e:
            logger.error(f"Error getting collection info: {e}")
            return None
