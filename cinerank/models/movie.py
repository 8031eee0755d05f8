"""
Typed records flowing through the recommendation pipeline.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from cinerank.exceptions import InvalidArgument


# Payload keys copied verbatim between the store and MovieRecord
_LIST_FIELDS = ("genres", "cast", "directors", "languages", "countries")
_SCALAR_FIELDS = ("title", "plot", "fullplot", "runtime", "poster", "rated", "year", "type")
_OBJECT_FIELDS = ("awards", "imdb", "tomatoes")


class MovieRecord(BaseModel):
    """A persisted movie. The embedding never leaves the service."""
    
    model_config = ConfigDict(frozen=True)
    
    id: str = Field(..., description="Opaque stable identifier")
    title: str
    plot: Optional[str] = None
    fullplot: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    runtime: Optional[int] = None
    cast: List[str] = Field(default_factory=list)
    directors: List[str] = Field(default_factory=list)
    poster: Optional[str] = None
    languages: List[str] = Field(default_factory=list)
    countries: List[str] = Field(default_factory=list)
    released: Optional[datetime] = None
    year: Optional[int] = None
    rated: Optional[str] = None
    awards: Optional[Dict[str, Any]] = None
    imdb: Optional[Dict[str, Any]] = None
    tomatoes: Optional[Dict[str, Any]] = None
    type: Optional[str] = None
    embedding: Optional[List[float]] = Field(default=None, exclude=True, repr=False)
    
    @classmethod
    def from_payload(
        cls,
        payload: Dict[str, Any],
        embedding: Optional[List[float]] = None
    ) -> "MovieRecord":
        """
        Build a record from a raw store document.
        
        Args:
            payload: Stored document (``movie_id`` or ``_id`` holds the identifier)
            embedding: Persisted vector, when the store returned one
            
        Returns:
            Typed MovieRecord
        """
        movie_id = payload.get("movie_id") or payload.get("_id") or payload.get("id")
        if movie_id is None:
            raise InvalidArgument("Stored movie document has no identifier")
        
        data: Dict[str, Any] = {"id": str(movie_id), "title": payload.get("title") or "Untitled"}
        for key in _SCALAR_FIELDS[1:] + _OBJECT_FIELDS:
            if payload.get(key) is not None:
                data[key] = payload[key]
        for key in _LIST_FIELDS:
            value = payload.get(key)
            if value:
                data[key] = list(value)
        if payload.get("released"):
            data["released"] = payload["released"]
        if isinstance(data.get("year"), str):
            # mflix stores a handful of years as e.g. "1994è"
            digits = "".join(ch for ch in data["year"] if ch.isdigit())[:4]
            data["year"] = int(digits) if digits else None
        
        return cls(**data, embedding=embedding)


class CandidateMovie(BaseModel):
    """
    Lean projection of a MovieRecord returned by vector retrieval.
    Lives only for the duration of one recommendation request.
    """
    
    model_config = ConfigDict(frozen=True)
    
    id: str
    title: str
    plot: Optional[str] = None
    fullplot: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    year: Optional[int] = None
    directors: List[str] = Field(default_factory=list)
    cast: List[str] = Field(default_factory=list)
    rated: Optional[str] = None
    similarity_score: float = Field(
        ...,
        description="Index relevance score, usually in [0, 1] but not guaranteed"
    )
    source: MovieRecord = Field(..., exclude=True, repr=False)
    
    @classmethod
    def from_record(cls, record: MovieRecord, similarity_score: float) -> "CandidateMovie":
        return cls(
            id=record.id,
            title=record.title,
            plot=record.plot,
            fullplot=record.fullplot,
            genres=record.genres,
            year=record.year,
            directors=record.directors,
            cast=record.cast,
            rated=record.rated,
            similarity_score=float(similarity_score or 0.0),
            source=record,
        )


class RankedRecommendation(BaseModel):
    """A candidate after relevance reranking."""
    
    candidate: CandidateMovie
    relevance_score: int = Field(..., ge=0, le=100)
    reason: str
    position: int = Field(..., ge=0, description="Zero-based position in the full ranked list")
    movie: Optional[MovieRecord] = Field(
        default=None,
        description="Full movie attributes, merged back after pagination"
    )

    @property
    def id(self) -> str:
        return self.candidate.id


class RecommendationFilters(BaseModel):
    """Optional structured filters applied at retrieval time."""
    
    genres: List[str] = Field(default_factory=list)
    rated: Optional[str] = None
    year_from: Optional[int] = None
    year_to: Optional[int] = None
    languages: List[str] = Field(default_factory=list)
    countries: List[str] = Field(default_factory=list)
    
    @model_validator(mode="after")
    def _check_year_range(self) -> "RecommendationFilters":
        if self.year_from is not None and self.year_to is not None and self.year_from > self.year_to:
            raise ValueError("year_from must not be greater than year_to")
        return self
    
    def is_empty(self) -> bool:
        return not (
            self.genres or self.rated or self.year_from is not None
            or self.year_to is not None or self.languages or self.countries
        )


class RecommendationQuery(BaseModel):
    """A free-text recommendation request."""
    
    description: str
    page: int = 1
    limit: int = 10
    filters: RecommendationFilters = Field(default_factory=RecommendationFilters)

    def validate_bounds(self) -> None:
        """Raise InvalidArgument for an empty description or bad pagination."""
        if not self.description.strip():
            raise InvalidArgument("description must be a non-empty string")
        if self.page < 1:
            raise InvalidArgument(f"page must be >= 1, got {self.page}")
        if self.limit < 1:
            raise InvalidArgument(f"limit must be >= 1, got {self.limit}")


class RecommendationPage(BaseModel):
    """One page of ranked recommendations."""
    
    items: List[RankedRecommendation] = Field(default_factory=list)
    total_count: int = 0
    has_more: bool = False
    degraded: bool = False
