from datetime import datetime
from typing import List, Dict, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cinerank.config import settings
from cinerank.models.movie import (
    MovieRecord,
    RankedRecommendation,
    RecommendationFilters,
    RecommendationPage,
    RecommendationQuery,
)


class RecommendMoviesRequest(BaseModel):
    """
    Request model for description-based recommendations.
    """
    model_config = ConfigDict(populate_by_name=True)

    description: str = Field(..., min_length=1, description="What the user wants to watch")
    limit: int = Field(default=settings.DEFAULT_LIMIT, ge=1, le=settings.MAX_LIMIT, description="Page size")
    page: int = Field(default=1, ge=1, description="1-based page number")
    genres: Optional[List[str]] = Field(default=None, description="Match any of these genres")
    rated: Optional[str] = Field(default=None, description="Exact content rating, e.g. PG-13")
    year_from: Optional[int] = Field(default=None, alias="yearFrom")
    year_to: Optional[int] = Field(default=None, alias="yearTo")
    languages: Optional[List[str]] = None
    countries: Optional[List[str]] = None

    @model_validator(mode="after")
    def _check_years(self) -> "RecommendMoviesRequest":
        if self.year_from is not None and self.year_to is not None and self.year_from > self.year_to:
            raise ValueError("yearFrom must not be greater than yearTo")
        return self

    def to_query(self) -> RecommendationQuery:
        return RecommendationQuery(
            description=self.description,
            limit=self.limit,
            page=self.page,
            filters=RecommendationFilters(
                genres=self.genres or [],
                rated=self.rated,
                year_from=self.year_from,
                year_to=self.year_to,
                languages=self.languages or [],
                countries=self.countries or [],
            ),
        )


class MovieOut(BaseModel):
    """
    Movie attributes exposed to clients. Never includes the embedding.
    """
    id: str
    title: str
    plot: Optional[str] = None
    fullplot: Optional[str] = None
    poster: Optional[str] = None
    year: Optional[int] = None
    genres: List[str] = []
    rated: Optional[str] = None
    runtime: Optional[int] = None
    imdb: Optional[Dict[str, Any]] = None
    directors: List[str] = []
    cast: List[str] = []
    languages: List[str] = []
    countries: List[str] = []
    released: Optional[datetime] = None
    awards: Optional[Dict[str, Any]] = None
    tomatoes: Optional[Dict[str, Any]] = None
    type: Optional[str] = None

    @classmethod
    def from_record(cls, record: MovieRecord) -> "MovieOut":
        return cls(**record.model_dump())


class MovieRecommendation(BaseModel):
    """
    Single recommendation item.
    """
    movie: MovieOut
    similarity: float = Field(..., ge=0.0, le=1.0, description="Relevance score scaled to 0-1")
    reason: str

    @classmethod
    def from_ranked(cls, item: RankedRecommendation) -> "MovieRecommendation":
        record = item.movie or item.candidate.source
        return cls(
            movie=MovieOut.from_record(record),
            similarity=item.relevance_score / 100,
            reason=item.reason,
        )


class RecommendationsResponse(BaseModel):
    """
    Response model for description-based recommendations.
    """
    model_config = ConfigDict(populate_by_name=True)

    recommendations: List[MovieRecommendation]
    total_count: int = Field(..., alias="totalCount")
    has_more: bool = Field(..., alias="hasMore")
    search_description: str = Field(..., alias="searchDescription")

    @classmethod
    def from_page(cls, page: RecommendationPage, description: str) -> "RecommendationsResponse":
        return cls(
            recommendations=[MovieRecommendation.from_ranked(item) for item in page.items],
            total_count=page.total_count,
            has_more=page.has_more,
            search_description=description,
        )


class BackfillRequest(BaseModel):
    """
    Request model for embedding backfill.
    """
    model_config = ConfigDict(populate_by_name=True)

    batch_size: int = Field(default=10, ge=1, le=500, alias="batchSize")


class BackfillResponse(BaseModel):
    """
    Response model for embedding backfill.
    """
    status: str
    message: str
    batches: int
    processed: int
    failed: int
    remaining: int
    errors: List[str] = []


class VectorStatusResponse(BaseModel):
    """
    Response model for vector database status.
    """
    healthy: bool
    collection_exists: bool
    total_movies: int
    embedded_movies: int
    backfill_running: bool = False
    collection_info: Optional[Dict[str, Any]] = None
