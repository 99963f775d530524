"""Health check endpoint for infrastructure monitoring."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends

from pawmatch.config import Settings, get_settings
from pawmatch.dependencies import get_storage_manager
from pawmatch.memory.manager import StorageManager

logger = logging.getLogger(__name__)
router = APIRouter()


async def _check_mongodb(storage: StorageManager) -> dict[str, Any]:
    """Ping MongoDB and return status."""
    try:
        await storage.mongo_db.command("ping")
        return {"status": "healthy"}
    except Exception as exc:
        logger.warning("MongoDB health check failed: %s", exc)
        return {"status": "unhealthy", "error": str(exc)}


async def _check_chromadb(storage: StorageManager) -> dict[str, Any]:
    """Heartbeat ChromaDB and return status."""
    try:
        heartbeat = storage.chroma_client.heartbeat()
        return {"status": "healthy", "heartbeat": heartbeat}
    except Exception as exc:
        logger.warning("ChromaDB health check failed: %s", exc)
        return {"status": "unhealthy", "error": str(exc)}


@router.get("")
async def health_check(
    settings: Settings = Depends(get_settings),
    storage: StorageManager = Depends(get_storage_manager),
) -> dict[str, Any]:
    """Return aggregate health of all backend services."""
    services = {
        "mongodb": await _check_mongodb(storage),
        "chromadb": await _check_chromadb(storage),
    }

    overall = (
        "healthy"
        if all(s["status"] == "healthy" for s in services.values())
        else "degraded"
    )

    return {
        "status": overall,
        "app": settings.app_name,
        "catalog_backend": settings.catalog_backend,
        "services": services,
    }
