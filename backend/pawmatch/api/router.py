"""Central API router that aggregates all route modules."""

from fastapi import APIRouter

from pawmatch.api.cache import router as cache_router
from pawmatch.api.chat import router as chat_router
from pawmatch.api.health import router as health_router
from pawmatch.api.preferences import router as preferences_router
from pawmatch.api.recommendations import router as recommendations_router

api_router = APIRouter()

api_router.include_router(health_router, prefix="/health", tags=["health"])
api_router.include_router(chat_router, prefix="/chat", tags=["chat"])
api_router.include_router(preferences_router, prefix="/preferences", tags=["preferences"])
api_router.include_router(cache_router, prefix="/cache", tags=["cache"])
api_router.include_router(recommendations_router, tags=["matching"])
