"""FastAPI application entry point."""

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ivrflow import config
from ivrflow.db.database import close_database, init_database

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown."""
    await init_database(config.DATABASE_PATH)
    logger.info("Database ready at %s", config.DATABASE_PATH)

    yield

    await close_database()


app = FastAPI(
    title="IVR Flow Studio",
    description="Author, validate and publish versioned IVR call flows",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware - allow any localhost port for local editor builds
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=config.CORS_ORIGIN_REGEX,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


# Import and include routers after app is created to avoid circular imports
from ivrflow.api import changesets, flows, routing, segment_types, segments  # noqa: E402

app.include_router(flows.router, prefix="/api/v1", tags=["flows"])
app.include_router(changesets.router, prefix="/api/v1", tags=["changesets"])
app.include_router(segments.router, prefix="/api/v1", tags=["segments"])
app.include_router(segment_types.router, prefix="/api/v1", tags=["segment-types"])
app.include_router(routing.router, prefix="/api/v1", tags=["routing"])
