from typing import Literal, Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Configuration settings for the recommendation service.
    Loads from environment variables or .env file.
    """
    
    # Service Configuration
    LOG_LEVEL: str = "INFO"
    
    # Embeddings Configuration
    MISTRAL_API_KEY: Optional[str] = None
    EMBEDDING_BASE_URL: str = "https://api.mistral.ai/v1"
    EMBEDDING_MODEL: str = "mistral-embed"
    EMBEDDING_DIMENSION: int = 1024  # mistral-embed dimension
    EMBEDDING_TIMEOUT_SECONDS: float = 30.0
    
    # Qdrant Configuration
    QDRANT_URL: str = "http://localhost:6333"
    QDRANT_API_KEY: Optional[str] = None
    QDRANT_COLLECTION_NAME: str = "movies"
    QDRANT_VECTOR_NAME: str = "embedding"
    QDRANT_VERIFY_SSL: bool = True
    QDRANT_TIMEOUT_SECONDS: float = 30.0
    VECTOR_SEARCH_EXACT: bool = True
    
    # LLM Configuration (any OpenAI-compatible chat endpoint)
    LLM_API_KEY: Optional[str] = None  # Falls back to MISTRAL_API_KEY
    LLM_BASE_URL: str = "https://api.mistral.ai/v1"
    LLM_MODEL: str = "mistral-large-latest"
    LLM_TEMPERATURE: float = 0.1
    LLM_TIMEOUT_SECONDS: float = 60.0
    
    # Recommendation Configuration
    DEFAULT_LIMIT: int = 10
    MAX_LIMIT: int = 50
    OVERFETCH_AMPLIFICATION: int = 3
    OVERFETCH_FLOOR: int = 10
    RERANK_MODE: Literal["fast", "detailed"] = "fast"
    EXPLANATION_ENRICHMENT: bool = False
    EXPLANATION_THRESHOLD: int = 70
    
    # Degraded path (vector index unavailable)
    FALLBACK_ENABLED: bool = True
    FALLBACK_SAMPLE_SIZE: int = 200
    FALLBACK_MAX_EMBEDDINGS: int = 50
    FALLBACK_TIMEOUT_SECONDS: float = 20.0
    
    # Backfill Configuration
    BACKFILL_BATCH_SIZE: int = 10
    BACKFILL_DELAY_SECONDS: float = 1.0
    BACKFILL_SCHEDULE_ENABLED: bool = False
    BACKFILL_INTERVAL_MINUTES: int = 60
    
    @property
    def llm_api_key(self) -> Optional[str]:
        return self.LLM_API_KEY or self.MISTRAL_API_KEY
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
