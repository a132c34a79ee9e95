from fastapi import APIRouter

from app.interfaces.api.health import router as health_router
from app.interfaces.api.posts import router as posts_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(posts_router)
