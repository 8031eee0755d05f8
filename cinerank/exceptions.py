"""
Error taxonomy shared by the recommendation pipeline.
"""
from typing import Optional


class CineRankError(Exception):
    """Base exception for the application"""
    pass


class ConfigurationError(CineRankError):
    """A required credential or resource is missing. Never retried."""


class UpstreamError(CineRankError):
    """An external service (embeddings, vector store, LLM) failed or returned an invalid payload."""

    def __init__(self, message: str, service: str = "upstream", status_code: Optional[int] = None):
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class IndexUnavailableError(UpstreamError):
    """The collection has no usable vector index (unknown vector name)."""


class ParseError(CineRankError):
    """A generation response matched none of the accepted shapes."""


class InvalidArgument(CineRankError, ValueError):
    """Caller error such as mismatched vector lengths or bad pagination."""


class RecommendationFailed(CineRankError):
    """Query embedding or candidate retrieval failed and no fallback applied."""


class BackfillAlreadyRunning(CineRankError):
    """A backfill run is already in progress in this process."""
