"""Main API v1 router that combines all endpoint routers."""

from fastapi import APIRouter

from rag_control.api.v1.endpoints import credentials, health, rag_config, reembed

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(health.router)
api_router.include_router(credentials.router)
api_router.include_router(rag_config.router)
api_router.include_router(reembed.router)
