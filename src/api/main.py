from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.dependencies import get_pipeline_service
from src.api.routes.pipeline import router as pipeline_router
from src.config import settings
from src.logging_config import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(settings.log_level)
    yield
    if get_pipeline_service.cache_info().currsize:
        await get_pipeline_service().shutdown()


app = FastAPI(
    title="Media Ingestion Pipeline API",
    description="Transcription, content analysis and persistence for uploaded media",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
    ],
    allow_origin_regex=r"https://.*\.vercel\.app|http://localhost:\d+",
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(pipeline_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "healthy"}
