"""FastAPI application entry point with lifespan management."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pawmatch.api.router import api_router
from pawmatch.config import settings
from pawmatch.dependencies import get_engine, get_storage_manager

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    logger.info("Starting PawMatch backend...")

    # Connect to MongoDB + ChromaDB and prepare stores
    storage = get_storage_manager()
    await storage.initialize()
    logger.info("Storage manager initialized successfully")

    # Build the conversation engine on top of the stores
    get_engine()
    logger.info("Conversation engine ready")

    yield

    # Cleanup (flushes pending cache writes)
    await storage.close()
    logger.info("PawMatch backend shut down cleanly")


app = FastAPI(
    title="PawMatch API",
    description="Conversational puppy adoption matching service",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        settings.frontend_url,
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount API routes
app.include_router(api_router, prefix="/api")

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
