import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cinerank.api.routes import router
from cinerank.config import settings
from cinerank.core.scheduler import start_scheduler, stop_scheduler
from cinerank.dependencies import build_container

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="CineRank Recommendation Service",
    description="Semantic movie recommendations with LLM reranking",
    version="0.1.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this based on your needs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.on_event("startup")
async def _startup() -> None:
    app.state.container = build_container(settings)
    start_scheduler(app.state.container.backfill, settings)


@app.on_event("shutdown")
async def _shutdown() -> None:
    stop_scheduler()


@app.get("/")
async def root():
    """
    Root endpoint.
    """
    return {
        "service": "CineRank Recommendation Service",
        "version": "0.1.0",
        "description": "Semantic movie recommendations with LLM reranking"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
